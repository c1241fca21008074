from celery import shared_task
from celery.utils.log import get_task_logger
from django.core.cache import cache
from functools import wraps

from core.clustering.cache import CacheSweeper
from core.clustering.conf import get_setting
from core.clustering.pipeline import (
    ClusteringEngine,
    FullRecompute,
    outcome_to_dict,
)

logger = get_task_logger(__name__)

_engine = None


def get_engine():
    """
    The worker's clustering engine, built from settings on first use.

    Each worker process keeps its own in-memory result cache.
    """
    global _engine
    if _engine is None:
        _engine = ClusteringEngine.from_settings()
    return _engine


def task_lock(timeout=60 * 10):
    """
    Decorator that prevents a task from being executed concurrently.
    Uses Django's cache to create a lock based on the task name and the
    string/int arguments.

    Args:
        timeout: Lock timeout in seconds (default: 10 minutes)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            task_name = func.__name__
            lock_args = [str(arg) for arg in args if isinstance(arg, (int, str))]
            lock_kwargs = [
                f"{key}:{value}"
                for key, value in kwargs.items()
                if isinstance(value, (int, str))
            ]
            lock_key = f"task_lock:{task_name}:{':'.join(lock_args)}:{':'.join(lock_kwargs)}"

            acquired = cache.add(lock_key, "locked", timeout)

            if acquired:
                try:
                    return func(*args, **kwargs)
                finally:
                    cache.delete(lock_key)
            else:
                logger.info(f"Task {task_name} with args {lock_args} is already running. Skipping.")
                return None
        return wrapper
    return decorator


@shared_task
@task_lock(timeout=60 * 5)
def recompute_poll_clustering(poll_id, payload):
    """
    Recompute clustering for a poll and publish it to the worker cache.

    Args:
        poll_id: poll identifier
        payload: {"statements": [...], "votes": [...]} as accepted by
            FullRecompute

    Returns:
        dict: outcome summary (see outcome_to_dict)
    """
    timeout = get_setting("RECOMPUTE_TIMEOUT_SECONDS")
    logger.info(f"Recomputing clustering for poll {poll_id} (timeout {timeout}s)")

    request = FullRecompute(
        poll_id=poll_id,
        votes=payload.get("votes", []),
        statements=payload.get("statements", []),
    )

    try:
        outcome = get_engine().run_with_timeout(request, timeout)
    except Exception:
        logger.exception(f"Clustering failed for poll {poll_id}")
        raise

    summary = outcome_to_dict(outcome)
    logger.info(f"Poll {poll_id}: {summary['status']}")
    return summary


@shared_task
def sweep_clustering_cache():
    """
    Remove expired entries from the worker's clustering cache.

    Schedule it with celery beat every CACHE_SWEEP_INTERVAL_SECONDS.

    Returns:
        Number of entries removed
    """
    removed = CacheSweeper(get_engine().cache).run_once()
    logger.info(f"Clustering cache sweep removed {removed} entries")
    return removed
