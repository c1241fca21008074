"""
Clustering quality and aggregation metrics.

Implements the silhouette score used to pick the number of opinion groups,
per-group vote aggregation, and the quality/consensus summaries attached to
every clustering result.

References:
- Rousseeuw, P.J. (1987). "Silhouettes: A graphical aid to the interpretation
  and validation of cluster analysis." J. Computational and Applied
  Mathematics, 20, 53-65. doi:10.1016/0377-0427(87)90125-7
"""

import numpy as np
from sklearn.metrics import silhouette_samples
import logging

from .schemas import CONSENSUS_TYPES

logger = logging.getLogger(__name__)


def compute_silhouette_score(points, labels):
    """
    Compute the mean silhouette score for a clustering.

    s(i) = (b(i) - a(i)) / max(a(i), b(i))
    - a(i) = mean distance to the other points of the same cluster
    - b(i) = lowest mean distance to the points of any other cluster

    Points in singleton clusters are skipped. A point whose a and b are both
    zero (duplicates shared by two clusters) contributes 0.

    Args:
        points: numpy array (N x 2)
        labels: cluster assignments (N,)

    Returns:
        float: silhouette score (-1 to 1)
            -1 = incorrect clustering
            0 = overlapping clusters
            1 = well-separated clusters
    """
    points = np.asarray(points, dtype=float)
    labels = np.asarray(labels)
    unique_labels, inverse, counts = np.unique(
        labels, return_inverse=True, return_counts=True
    )

    if points.shape[0] == 0 or len(unique_labels) < 2:
        logger.debug("Cannot compute silhouette: fewer than 2 clusters")
        return 0.0

    if len(unique_labels) >= len(labels):
        logger.debug("Cannot compute silhouette: every cluster is a singleton")
        return 0.0

    samples = silhouette_samples(points, labels)
    in_group = counts[inverse.ravel()] > 1
    if not in_group.any():
        return 0.0
    return float(np.mean(samples[in_group]))


def compute_group_vote_counts(vote_rows, group_labels, statement_ids):
    """
    Aggregate voting patterns per group and statement.

    Args:
        vote_rows: numpy array (N_users x N_statements) of -1/0/1
            (0 is a pass; NaN, if used for missing votes, is not counted)
        group_labels: group assignment per user (N_users,)
        statement_ids: list of statement IDs

    Returns:
        dict: {
            statement_id: {
                group_id: {'agree': count, 'disagree': count, 'pass': count}
            }
        }
    """
    vote_rows = np.asarray(vote_rows)
    group_labels = np.asarray(group_labels)
    aggregation = {}

    for statement_idx, statement_id in enumerate(statement_ids):
        per_group = {}
        for group_id in np.unique(group_labels):
            votes_on_statement = vote_rows[group_labels == group_id, statement_idx]
            per_group[int(group_id)] = {
                "agree": int(np.sum(votes_on_statement == 1)),
                "disagree": int(np.sum(votes_on_statement == -1)),
                "pass": int(np.sum(votes_on_statement == 0)),
            }
        aggregation[statement_id] = per_group

    return aggregation


def compute_quality_tier(total_variance_explained, silhouette_score):
    """
    Summarize clustering quality.

    Returns:
        'high' (variance >= 0.6 and silhouette >= 0.4),
        'medium' (variance >= 0.4 and silhouette >= 0.25) or 'low'
    """
    if total_variance_explained >= 0.6 and silhouette_score >= 0.4:
        return "high"
    if total_variance_explained >= 0.4 and silhouette_score >= 0.25:
        return "medium"
    return "low"


def compute_consensus_level(classification_types, total_statements):
    """
    Share of consensus statements among all statements.

    Returns:
        'high' (>= 50%), 'medium' (>= 30%) or 'low'
    """
    if total_statements <= 0:
        return "low"
    n_consensus = sum(1 for t in classification_types if t in CONSENSUS_TYPES)
    ratio = n_consensus / total_statements
    if ratio >= 0.5:
        return "high"
    if ratio >= 0.3:
        return "medium"
    return "low"
