"""
Hierarchical grouping of fine clusters into opinion groups.

Implements Polis-style two-level clustering:
- Fine clusters (K=20/50/100) on all users
- Coarse groups (K=2-5, silhouette-selected) on the fine cluster centroids

References:
- Rousseeuw, P.J. (1987). "Silhouettes: A graphical aid to the interpretation
  and validation of cluster analysis." J. Computational and Applied
  Mathematics, 20, 53-65. doi:10.1016/0377-0427(87)90125-7
- Polis implementation: github.com/compdemocracy/polis
  (math/src/polismath/math/conversation.clj - group-k-smoother)
"""

from dataclasses import dataclass, field

import numpy as np
import logging

from .exceptions import InsufficientDataError
from .kmeans import run_kmeans
from .metrics import compute_silhouette_score

logger = logging.getLogger(__name__)


@dataclass
class CoarseGrouping:
    coarse_k: int
    coarse_centroids: np.ndarray  # coarse_k x 2
    fine_to_coarse: dict  # fine cluster id -> coarse group id
    silhouette_score: float
    silhouette_scores: dict = field(default_factory=dict)  # k -> score


def _order_by_position(labels, centroids):
    """
    Relabel groups left to right along PC1 (then PC2) so group ids are
    stable between runs on similar data.
    """
    order = np.lexsort((centroids[:, 1], centroids[:, 0]))
    remap = np.empty(len(order), dtype=int)
    remap[order] = np.arange(len(order))
    return remap[labels], centroids[order]


def create_coarse_groups(
    fine_centroids,
    k_range=(2, 5),
    silhouette_threshold=0.0,
    random_state=42,
):
    """
    Merge fine clusters into 2-5 opinion groups.

    Runs k-means on the fine cluster centroids for every K in k_range and
    keeps the K with the best silhouette score. A larger K is only taken when
    it improves the score by more than silhouette_threshold, so with the
    default of 0 the first K reaching the maximum wins.

    The silhouette coefficient (Rousseeuw, 1987) measures clustering quality:
    - s(i) = (b(i) - a(i)) / max(a(i), b(i))
    - a(i) = mean intra-cluster distance (cohesion)
    - b(i) = mean nearest-cluster distance (separation)
    - Range: -1 (wrong cluster) to +1 (well clustered)

    Args:
        fine_centroids: fine cluster centroids (K_fine x 2)
        k_range: tuple (min_k, max_k) for group clustering (default 2-5)
        silhouette_threshold: minimum improvement required to increase k
        random_state: seed for k-means++ initialization

    Returns:
        CoarseGrouping

    Raises:
        InsufficientDataError: fewer than 2 fine clusters
    """
    fine_centroids = np.asarray(fine_centroids, dtype=float)
    n_fine = fine_centroids.shape[0]

    if n_fine < 2:
        raise InsufficientDataError(
            "Need at least 2 fine clusters to create coarse groups",
            {"fine_clusters": n_fine},
        )

    min_k, max_k = k_range
    min_k = max(2, min_k)
    max_k = min(max_k, n_fine)

    logger.info(
        f"Auto-selecting k for coarse groups: k_range=({min_k}, {max_k}), "
        f"{n_fine} fine clusters"
    )

    silhouette_scores = {}
    models = {}

    for k in range(min_k, max_k + 1):
        kmeans = run_kmeans(fine_centroids, k, max_iter=50, random_state=random_state)
        labels = kmeans.labels_.astype(int)
        score = compute_silhouette_score(fine_centroids, labels)
        silhouette_scores[k] = score
        models[k] = (labels, kmeans.cluster_centers_)
        logger.debug(f"k={k}: silhouette={score:.4f}")

    best_k = min_k
    best_score = silhouette_scores[min_k]

    for k in range(min_k + 1, max_k + 1):
        improvement = silhouette_scores[k] - best_score
        if improvement > silhouette_threshold:
            best_k = k
            best_score = silhouette_scores[k]

    logger.info(
        f"Selected k={best_k} (silhouette={best_score:.4f}) "
        f"from scores: {silhouette_scores}"
    )

    labels, centroids = _order_by_position(*models[best_k])
    fine_to_coarse = {fine_id: int(coarse_id) for fine_id, coarse_id in enumerate(labels)}

    return CoarseGrouping(
        coarse_k=best_k,
        coarse_centroids=centroids,
        fine_to_coarse=fine_to_coarse,
        silhouette_score=best_score,
        silhouette_scores=silhouette_scores,
    )
