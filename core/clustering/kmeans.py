"""
K-means clustering for fine-grained opinion clusters.

Implements k-means on PCA-projected user coordinates with a population-based
choice of K, plus nearest-centroid assignment for incremental updates.

References:
- Lloyd, S.P. (1982). "Least squares quantization in PCM."
  IEEE Transactions on Information Theory, 28(2), 129-137.
  doi:10.1109/TIT.1982.1056489
- Arthur, D. & Vassilvitskii, S. (2007). "k-means++: The advantages of
  careful seeding." SODA '07, 1027-1035.
- Polis implementation: github.com/compdemocracy/polis
  (math/src/polismath/math/clusters.clj)
"""

from dataclasses import dataclass
import warnings

import numpy as np
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning as SklearnConvergenceWarning
import logging

from .exceptions import ConvergenceLimit, InsufficientDataError, ValidationError
from .metrics import compute_silhouette_score

logger = logging.getLogger(__name__)

MIN_USERS = 20
MAX_ITERATIONS = 100
TOLERANCE = 1e-4


@dataclass
class KMeansResult:
    labels: np.ndarray  # fine cluster per user (N,)
    centroids: np.ndarray  # K x 2
    num_clusters: int
    silhouette_score: float
    iterations: int
    converged: bool
    inertia: float = 0.0


def determine_optimal_k(user_count):
    """
    Pick K from the number of users who voted.

    Polis uses K=100 for large conversations; smaller populations get a
    smaller K so every fine cluster can hold at least one user:

    - 20-49 users: K=20
    - 50-99 users: K=50
    - 100+ users: K=100

    Raises:
        InsufficientDataError: fewer than 20 users
    """
    if user_count < MIN_USERS:
        raise InsufficientDataError(
            f"Insufficient users for clustering: {user_count}. "
            f"Minimum required: {MIN_USERS}.",
            {"user_count": user_count},
        )
    if user_count < 50:
        return 20
    if user_count < 100:
        return 50
    return 100


def validate_coordinates(coordinates):
    coordinates = np.asarray(coordinates, dtype=float)
    if coordinates.ndim != 2 or coordinates.shape[1] != 2:
        raise ValidationError("All coordinates must be 2D [pc1, pc2]")
    return coordinates


def run_kmeans(points, k, max_iter=MAX_ITERATIONS, tol=TOLERANCE, random_state=42):
    """
    Fit scikit-learn k-means with k-means++ seeding.

    Duplicate points can leave fewer distinct clusters than K; that is logged
    rather than surfaced as a scikit-learn warning.

    Returns:
        fitted KMeans instance
    """
    kmeans = KMeans(
        n_clusters=k,
        init="k-means++",
        n_init=10,
        max_iter=max_iter,
        tol=tol,
        random_state=random_state,
        algorithm="lloyd",
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=SklearnConvergenceWarning)
        kmeans.fit(points)

    distinct = len(np.unique(kmeans.labels_))
    if distinct < k:
        logger.debug(
            f"Only {distinct} distinct clusters for k={k} "
            f"(duplicate points in input)"
        )
    return kmeans


def cluster_voters(
    coordinates,
    k=None,
    max_iter=MAX_ITERATIONS,
    tol=TOLERANCE,
    random_state=42,
):
    """
    K-means clustering on user projections.

    Args:
        coordinates: numpy array (N_users x 2), PCA-projected coordinates
        k: number of clusters (default: determine_optimal_k)
        max_iter: iteration cap (default 100)
        tol: convergence tolerance (default 1e-4)
        random_state: seed for k-means++ initialization

    Returns:
        KMeansResult

    Raises:
        InsufficientDataError: fewer than 20 users
        ValidationError: non-2D coordinates or K outside [1, N_users]
    """
    coordinates = validate_coordinates(coordinates)
    n_users = coordinates.shape[0]

    if n_users < MIN_USERS:
        raise InsufficientDataError(
            f"Insufficient users for clustering: {n_users}. "
            f"Minimum required: {MIN_USERS}.",
            {"user_count": n_users},
        )

    if k is None:
        k = determine_optimal_k(n_users)
        logger.info(f"Auto-selected k={k} for {n_users} users")

    if k < 1 or k > n_users:
        raise ValidationError(
            f"K ({k}) must be between 1 and the user count ({n_users})",
            {"k": k, "user_count": n_users},
        )

    logger.info(
        f"Running k-means: {n_users} users, k={k}, max_iter={max_iter}"
    )

    kmeans = run_kmeans(coordinates, k, max_iter, tol, random_state)
    labels = kmeans.labels_.astype(int)
    centroids = kmeans.cluster_centers_
    iterations = int(kmeans.n_iter_)
    converged = iterations < max_iter

    if not converged:
        warnings.warn(
            f"K-means reached the iteration cap ({max_iter}) without "
            f"converging; using best-effort clusters",
            ConvergenceLimit,
            stacklevel=2,
        )
        logger.warning(f"K-means stopped at iteration cap {max_iter}")

    silhouette = compute_silhouette_score(coordinates, labels)

    unique, counts = np.unique(labels, return_counts=True)
    logger.info(
        f"K-means complete: {len(unique)} non-empty clusters of {k}, "
        f"silhouette={silhouette:.3f}"
    )
    logger.debug(f"Inertia (within-cluster variance): {kmeans.inertia_:.2f}")

    return KMeansResult(
        labels=labels,
        centroids=centroids,
        num_clusters=k,
        silhouette_score=silhouette,
        iterations=iterations,
        converged=converged,
        inertia=float(kmeans.inertia_),
    )


def assign_to_nearest_cluster(user_coordinates, centroids):
    """
    Assign a single user to the nearest centroid (Euclidean distance).

    Used for incremental updates when a new user votes.

    Args:
        user_coordinates: (pc1, pc2)
        centroids: existing centroids (K x 2)

    Returns:
        int: cluster ID (0 to K-1); the first centroid wins ties
    """
    point = np.asarray(user_coordinates, dtype=float)
    if point.shape != (2,):
        raise ValidationError("User coordinates must be 2D [pc1, pc2]")

    centroids = np.asarray(centroids, dtype=float)
    if centroids.ndim != 2 or centroids.shape[0] == 0:
        raise ValidationError("At least one centroid is required")

    distances = np.linalg.norm(centroids - point, axis=1)
    return int(np.argmin(distances))
