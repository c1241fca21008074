"""
Clustering orchestration for a poll.

Runs the full pipeline (opinion matrix -> PCA -> fine clusters -> coarse
groups -> classification -> weights) and publishes the complete result to
the cache in one step, so readers never see a partially computed result.

Requests:
- FullRecompute: everything from the poll's votes and statements
- IncrementalUpdate: place one user on the existing map, reusing the cached
  PCA basis and centroids

Outcomes:
- Clustered: a ClusteringResult (stale=True when served from the cache after
  a failed or timed-out recomputation)
- ColdStart: too few voters for groups, statements weighted without them
- NotEnoughSignal: too few statements, too little variance, or no cached
  result to update

Malformed input (ValidationError) is not an outcome; it propagates.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
import time

import numpy as np
import logging

from .cache import ClusteringCache
from .coalitions import analyze_coalitions
from .consensus import compute_group_agreements
from .exceptions import InsufficientDataError, QualityError, ValidationError
from .hierarchical import create_coarse_groups
from .hulls import compute_convex_hull
from .kmeans import MIN_USERS, assign_to_nearest_cluster, cluster_voters
from .matrix_builder import (
    build_opinion_matrix,
    build_vote_rows,
    count_usable_users,
    statement_vote_counts,
)
from .metrics import compute_consensus_level, compute_quality_tier
from .pca import MIN_VARIANCE_EXPLAINED, compute_pca, project_user
from .schemas import (
    ClusteringMetadata,
    ClusteringResult,
    CoarseGroup,
    StatementInfo,
    UserPosition,
    VoteRecord,
    parse_records,
)
from .strategies import CoalitionStrategy, StatisticalStrategy
from .weights import clustering_weight, cold_start_weight, unclassified_weight

logger = logging.getLogger(__name__)

MIN_STATEMENTS = 6
MIN_SILHOUETTE_SCORE = 0.25
GROUP_LABEL = "Opinion Group {number}"


@dataclass(frozen=True)
class FullRecompute:
    poll_id: str
    votes: list  # VoteRecord or dicts with the same keys
    statements: list  # StatementInfo or dicts with the same keys


@dataclass(frozen=True)
class IncrementalUpdate:
    poll_id: str
    user_id: str
    votes: dict  # {statement_id: -1/0/1}


@dataclass
class Clustered:
    result: ClusteringResult
    stale: bool = False


@dataclass
class ColdStart:
    poll_id: str
    weights: dict = field(default_factory=dict)  # statement_id -> WeightComponents
    reason: str = ""


@dataclass
class NotEnoughSignal:
    poll_id: str
    reason: str
    error: Exception = None


def outcome_to_dict(outcome):
    """JSON-serializable summary of an outcome, for task results and the CLI."""
    if isinstance(outcome, Clustered):
        return {
            "status": "clustered",
            "poll_id": outcome.result.poll_id,
            "stale": outcome.stale,
            "result": outcome.result.model_dump(mode="json"),
        }
    if isinstance(outcome, ColdStart):
        return {
            "status": "cold_start",
            "poll_id": outcome.poll_id,
            "reason": outcome.reason,
            "weights": {
                sid: w.model_dump(mode="json") for sid, w in outcome.weights.items()
            },
        }
    return {
        "status": "not_enough_signal",
        "poll_id": outcome.poll_id,
        "reason": outcome.reason,
    }


def _utcnow():
    return datetime.now(timezone.utc)


def build_coarse_groups(coordinates, coarse_labels, coarse_centroids, fine_to_coarse):
    """
    Describe each coarse group: label, centroid, member fine clusters, size
    and the convex hull of its members on the map.
    """
    coordinates = np.asarray(coordinates, dtype=float)
    coarse_labels = np.asarray(coarse_labels, dtype=int)
    groups = []

    for group_id, centroid in enumerate(coarse_centroids):
        members = coordinates[coarse_labels == group_id]
        groups.append(
            CoarseGroup(
                group_id=group_id,
                label=GROUP_LABEL.format(number=group_id + 1),
                centroid=[float(x) for x in centroid],
                fine_cluster_ids=sorted(
                    f for f, c in fine_to_coarse.items() if c == group_id
                ),
                user_count=int(len(members)),
                hull=compute_convex_hull(members),
            )
        )
    return groups


class ClusteringEngine:
    """
    Computes and publishes clustering results for polls.

    The engine owns its cache; pass one in to share it between engines or
    with a sweeper.

    Usage:
        engine = ClusteringEngine()
        outcome = engine.run(FullRecompute(poll_id, votes, statements))
        if isinstance(outcome, Clustered):
            outcome.result.model_dump(mode="json")
    """

    def __init__(
        self,
        cache=None,
        min_users=MIN_USERS,
        min_statements=MIN_STATEMENTS,
        min_variance_explained=MIN_VARIANCE_EXPLAINED,
        min_silhouette_score=MIN_SILHOUETTE_SCORE,
        random_state=42,
        now=_utcnow,
    ):
        self.cache = cache if cache is not None else ClusteringCache()
        self.min_users = min_users
        self.min_statements = min_statements
        self.min_variance_explained = min_variance_explained
        self.min_silhouette_score = min_silhouette_score
        self.random_state = random_state
        self.now = now

    @classmethod
    def from_settings(cls, cache=None):
        """Engine configured from the CLUSTERING Django settings."""
        from .cache import build_cache_from_settings
        from .conf import get_clustering_settings

        conf = get_clustering_settings()
        return cls(
            cache=cache if cache is not None else build_cache_from_settings(),
            min_users=conf["MIN_USERS"],
            min_statements=conf["MIN_STATEMENTS"],
            min_variance_explained=conf["MIN_VARIANCE_EXPLAINED"],
            min_silhouette_score=conf["MIN_SILHOUETTE_SCORE"],
            random_state=conf["RANDOM_STATE"],
        )

    def run(self, request):
        """
        Dispatch a FullRecompute or IncrementalUpdate.

        Returns:
            Clustered, ColdStart or NotEnoughSignal

        Raises:
            ValidationError: malformed votes or statements
        """
        if isinstance(request, FullRecompute):
            handler = self._full_recompute
        elif isinstance(request, IncrementalUpdate):
            handler = self._incremental_update
        else:
            raise TypeError(f"Unsupported clustering request: {request!r}")

        try:
            return handler(request)
        except ValidationError:
            raise
        except (InsufficientDataError, QualityError) as e:
            logger.warning(f"Poll {request.poll_id}: not enough signal: {e}")
            return NotEnoughSignal(poll_id=request.poll_id, reason=str(e), error=e)

    def run_with_timeout(self, request, timeout):
        """
        Run a request with a time limit.

        If the computation times out or ends without a result, the last
        cached result for the poll is returned (even if expired) as
        Clustered(stale=True). A timed-out computation keeps running in the
        background and still publishes when it finishes.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clustering")
        future = executor.submit(self.run, request)
        try:
            outcome = future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning(
                f"Poll {request.poll_id}: clustering timed out after {timeout}s"
            )
            outcome = NotEnoughSignal(
                poll_id=request.poll_id,
                reason=f"Clustering timed out after {timeout}s",
            )
        finally:
            executor.shutdown(wait=False)

        if isinstance(outcome, NotEnoughSignal):
            stale = self.cache.peek_stale(request.poll_id)
            if stale is not None:
                logger.info(f"Poll {request.poll_id}: serving last cached result")
                return Clustered(result=stale, stale=True)
        return outcome

    def invalidate(self, poll_id):
        self.cache.invalidate(poll_id)

    def _cold_start(self, poll_id, votes, statements, reason):
        statement_ids = [s.statement_id for s in statements]
        counts = statement_vote_counts(votes, statement_ids)
        totals = [c.total for c in counts.values()]
        avg_votes = float(np.mean(totals)) if totals else 0.0
        now = self.now()

        weights = {
            s.statement_id: cold_start_weight(
                s.created_at,
                counts[s.statement_id],
                counts[s.statement_id].total,
                avg_votes,
                now=now,
            )
            for s in statements
        }
        logger.info(f"Poll {poll_id}: cold start ({reason})")
        return ColdStart(poll_id=poll_id, weights=weights, reason=reason)

    def _full_recompute(self, request):
        started = time.perf_counter()
        poll_id = request.poll_id
        votes = parse_records(VoteRecord, request.votes)
        statements = parse_records(StatementInfo, request.statements)
        statement_ids = [s.statement_id for s in statements]

        if len(set(statement_ids)) != len(statement_ids):
            raise ValidationError(
                "Duplicate statement IDs", {"poll_id": poll_id}
            )

        logger.info(
            f"Poll {poll_id}: full recompute with {len(votes)} votes on "
            f"{len(statements)} statements"
        )

        matrix = build_opinion_matrix(votes, statement_ids)
        usable_users = count_usable_users(matrix)

        if usable_users < self.min_users:
            return self._cold_start(
                poll_id,
                votes,
                statements,
                f"Insufficient users: {usable_users}/{self.min_users}",
            )

        if len(statements) < self.min_statements:
            raise InsufficientDataError(
                f"Insufficient statements: {len(statements)}/{self.min_statements}",
                {"poll_id": poll_id},
            )

        # Step 1: PCA projection
        pca = compute_pca(
            matrix, n_components=2, min_variance_explained=self.min_variance_explained
        )

        # Step 2: fine clusters on all users
        fine = cluster_voters(pca.coordinates, random_state=self.random_state)
        if fine.silhouette_score < self.min_silhouette_score:
            logger.warning(
                f"Poll {poll_id}: low clustering quality, silhouette "
                f"{fine.silhouette_score:.3f} < {self.min_silhouette_score}"
            )

        # Step 3: coarse opinion groups from the fine centroids
        coarse = create_coarse_groups(fine.centroids, random_state=self.random_state)
        coarse_labels = np.array(
            [coarse.fine_to_coarse[int(label)] for label in fine.labels], dtype=int
        )

        # Step 4: classify statements by group agreement, both views
        vote_rows = build_vote_rows(
            votes, matrix.user_ids, statement_ids, missing=np.nan
        )
        agreements = compute_group_agreements(vote_rows, coarse_labels, statement_ids)
        classifications = StatisticalStrategy().classify_all(agreements)
        coalition_classifications = CoalitionStrategy().classify_all(agreements)

        groups = build_coarse_groups(
            pca.coordinates, coarse_labels, coarse.coarse_centroids, coarse.fine_to_coarse
        )
        coalition_analysis = analyze_coalitions(
            classifications, coarse.coarse_k, [g.label for g in groups]
        )

        # Step 5: statement weights
        weights = self._clustering_weights(votes, statements, classifications)

        types = [c.type for c in classifications]
        metadata = ClusteringMetadata(
            total_users=matrix.n_users,
            total_statements=len(statement_ids),
            num_fine_clusters=fine.num_clusters,
            num_coarse_groups=coarse.coarse_k,
            silhouette_score=fine.silhouette_score,
            coarse_silhouette_score=coarse.silhouette_score,
            total_variance_explained=pca.total_variance_explained,
            quality_tier=compute_quality_tier(
                pca.total_variance_explained, fine.silhouette_score
            ),
            consensus_level=compute_consensus_level(types, len(statement_ids)),
            computation_time=time.perf_counter() - started,
        )

        result = ClusteringResult(
            poll_id=poll_id,
            computed_at=self.now(),
            metadata=metadata,
            pca=pca.to_snapshot(),
            statement_ids=statement_ids,
            fine_centroids=fine.centroids.tolist(),
            fine_to_coarse=coarse.fine_to_coarse,
            coarse_groups=groups,
            user_positions=[
                UserPosition(
                    user_id=user_id,
                    pc1=float(pca.coordinates[i, 0]),
                    pc2=float(pca.coordinates[i, 1]),
                    fine_cluster_id=int(fine.labels[i]),
                    coarse_group_id=int(coarse_labels[i]),
                )
                for i, user_id in enumerate(matrix.user_ids)
            ],
            group_agreements=agreements,
            classifications=classifications,
            coalition_classifications=coalition_classifications,
            coalition_analysis=coalition_analysis,
            weights=weights,
        )

        # Publish only once everything is computed
        self.cache.set(poll_id, result)
        logger.info(
            f"Poll {poll_id}: clustered {matrix.n_users} users into "
            f"{coarse.coarse_k} groups in {metadata.computation_time:.2f}s "
            f"(quality {metadata.quality_tier})"
        )
        return Clustered(result=result)

    def _clustering_weights(self, votes, statements, classifications):
        counts = statement_vote_counts(votes, [s.statement_id for s in statements])
        by_statement = {c.statement_id: c for c in classifications}
        now = self.now()

        weights = {}
        for statement in statements:
            classification = by_statement.get(statement.statement_id)
            if classification is None:
                # Nobody in any group agreed or disagreed
                logger.debug(
                    f"Statement {statement.statement_id} is unclassified, "
                    f"using neutral weight"
                )
                weights[statement.statement_id] = unclassified_weight(
                    statement.created_at, now=now
                )
                continue
            weights[statement.statement_id] = clustering_weight(
                classification.group_agreements.values(),
                classification.type,
                statement.created_at,
                counts[statement.statement_id],
                now=now,
            )
        return weights

    def _incremental_update(self, request):
        poll_id = request.poll_id
        cached = self.cache.get(poll_id)
        if cached is None:
            raise InsufficientDataError(
                "No cached clustering result to update", {"poll_id": poll_id}
            )

        for statement_id, value in request.votes.items():
            if value not in (-1, 0, 1):
                raise ValidationError(
                    f"Invalid vote value {value!r} for statement {statement_id}",
                    {"user_id": request.user_id},
                )

        # Passes are missing opinions for the projection, as in compute_pca
        user_votes = [
            None if request.votes.get(sid, 0) == 0 else request.votes[sid]
            for sid in cached.statement_ids
        ]
        pc1, pc2 = project_user(
            user_votes,
            cached.pca.components,
            cached.pca.mean_vector,
            cached.pca.statement_means,
        )[:2]
        fine_id = assign_to_nearest_cluster((pc1, pc2), cached.fine_centroids)
        coarse_id = cached.fine_to_coarse[fine_id]

        position = UserPosition(
            user_id=request.user_id,
            pc1=pc1,
            pc2=pc2,
            fine_cluster_id=fine_id,
            coarse_group_id=coarse_id,
        )
        positions = [p for p in cached.user_positions if p.user_id != request.user_id]
        positions.append(position)

        coordinates = np.array([[p.pc1, p.pc2] for p in positions])
        coarse_labels = np.array([p.coarse_group_id for p in positions], dtype=int)
        groups = build_coarse_groups(
            coordinates,
            coarse_labels,
            [g.centroid for g in cached.coarse_groups],
            cached.fine_to_coarse,
        )

        result = cached.model_copy(
            update={
                "computed_at": self.now(),
                "version": cached.version + 1,
                "user_positions": positions,
                "coarse_groups": groups,
                "metadata": cached.metadata.model_copy(
                    update={"total_users": len(positions)}
                ),
            }
        )

        self.cache.set(poll_id, result)
        logger.info(
            f"Poll {poll_id}: placed user {request.user_id} in group {coarse_id} "
            f"(fine cluster {fine_id})"
        )
        return Clustered(result=result)
