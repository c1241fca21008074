"""
Clustering settings.

Defaults live here; `settings.CLUSTERING` (see opinionmap/settings.py) can
override any of them.
"""

from django.conf import settings

DEFAULTS = {
    "MIN_USERS": 20,
    "MIN_STATEMENTS": 6,
    "MIN_VARIANCE_EXPLAINED": 0.4,
    "MIN_SILHOUETTE_SCORE": 0.25,
    "CACHE_MAX_SIZE": 100,
    "CACHE_TTL_SECONDS": 5 * 60,
    "CACHE_SWEEP_INTERVAL_SECONDS": 60,
    "RECOMPUTE_TIMEOUT_SECONDS": 30,
    "RANDOM_STATE": 42,
}


def get_clustering_settings():
    """
    Return the effective clustering settings.

    Returns:
        dict: DEFAULTS updated with settings.CLUSTERING (unknown keys kept)
    """
    merged = dict(DEFAULTS)
    merged.update(getattr(settings, "CLUSTERING", {}) or {})
    return merged


def get_setting(name):
    return get_clustering_settings()[name]
