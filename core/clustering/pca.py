"""
PCA projection of the opinion matrix.

Implements Principal Component Analysis over a sparse voting matrix:
missing votes are imputed with the statement (column) mean, the matrix is
mean-centered and decomposed with SVD. Users are projected onto the first
two components for the opinion map.

The PCA basis (components, mean vector, statement means) is kept so new
voters can be projected incrementally without recomputing the decomposition.

References:
- Pearson, K. (1901). "On lines and planes of closest fit to systems of
  points in space." Philosophical Magazine, Series 6, 2(11), 559-572.
- Hotelling, H. (1933). "Analysis of a complex of statistical variables
  into principal components." J. Educational Psychology, 24, 417-441.
- Jolliffe, I.T. (2002). Principal Component Analysis, 2nd ed. Springer.
- Polis implementation: github.com/compdemocracy/polis
  (math/src/polismath/math/pca.clj)
"""

from dataclasses import dataclass

import numpy as np
from scipy.linalg import svd
import logging

from .exceptions import InsufficientDataError, QualityError, ValidationError
from .matrix_builder import OpinionMatrix
from .schemas import PCASnapshot

logger = logging.getLogger(__name__)

# Below this, voting is too random or sparse for meaningful clusters
MIN_VARIANCE_EXPLAINED = 0.4


@dataclass
class PCAResult:
    coordinates: np.ndarray  # N_users x n_components
    components: np.ndarray  # n_components x N_statements
    variance_explained: np.ndarray  # n_components
    total_variance_explained: float
    mean_vector: np.ndarray  # N_statements, used for centering
    statement_means: np.ndarray  # N_statements, used for imputation
    singular_values: np.ndarray

    def to_snapshot(self):
        return PCASnapshot(
            components=self.components.tolist(),
            variance_explained=self.variance_explained.tolist(),
            total_variance_explained=float(self.total_variance_explained),
            mean_vector=self.mean_vector.tolist(),
            statement_means=self.statement_means.tolist(),
        )


def compute_statement_means(data):
    """
    Mean of the non-null votes in each column, 0 for all-null columns.

    Args:
        data: numpy array (N_users x N_statements), NaN = missing

    Returns:
        numpy array (N_statements,)
    """
    present = ~np.isnan(data)
    counts = present.sum(axis=0)
    sums = np.where(present, data, 0.0).sum(axis=0)
    return np.divide(
        sums,
        counts,
        out=np.zeros(data.shape[1]),
        where=counts > 0,
    )


def impute_missing(data, statement_means):
    """Replace NaN cells with the mean of their column."""
    return np.where(np.isnan(data), statement_means[np.newaxis, :], data)


def _flip_signs(U, Vt):
    """
    Make component signs deterministic: the largest-magnitude loading of
    every component is positive.
    """
    max_idx = np.argmax(np.abs(Vt), axis=1)
    signs = np.sign(Vt[np.arange(Vt.shape[0]), max_idx])
    signs[signs == 0] = 1.0
    return U * signs[np.newaxis, :], Vt * signs[:, np.newaxis]


def compute_pca(
    opinion_matrix,
    n_components=2,
    min_variance_explained=MIN_VARIANCE_EXPLAINED,
):
    """
    Compute PCA with column-mean imputation using SVD.

    Args:
        opinion_matrix: OpinionMatrix (N_users x N_statements)
                        Values: +1 (agree), 0 (pass), -1 (disagree), NaN (no vote)
        n_components: int, number of components (default 2 for visualization)
        min_variance_explained: reject the run below this total ratio

    Returns:
        PCAResult

    Raises:
        ValidationError: empty matrix or n_components out of range
        InsufficientDataError: fewer than 2 users
        QualityError: total variance explained below the threshold
    """
    if not isinstance(opinion_matrix, OpinionMatrix):
        opinion_matrix = OpinionMatrix.from_rows(opinion_matrix)

    data = opinion_matrix.data
    n_users, n_statements = data.shape

    if n_users == 0 or n_statements == 0:
        raise ValidationError("Opinion matrix is empty")

    if n_users < 2:
        raise InsufficientDataError(
            f"Need at least 2 users for PCA, got {n_users}"
        )

    if n_components < 1 or n_components > min(n_users, n_statements):
        raise ValidationError(
            f"n_components must be between 1 and "
            f"{min(n_users, n_statements)}, got {n_components}"
        )

    logger.info(
        f"Computing PCA: {n_users} users, {n_statements} statements, "
        f"{n_components} components"
    )

    # Step 1: mean imputation for missing votes
    statement_means = compute_statement_means(data)
    imputed = impute_missing(data, statement_means)

    # Step 2: mean-center (imputation keeps column means unchanged, but the
    # mean vector is computed from the imputed matrix to stay exact)
    mean_vector = imputed.mean(axis=0)
    centered = imputed - mean_vector

    # Step 3: SVD decomposition: X = U @ S @ Vt
    U, S, Vt = svd(centered, full_matrices=False)
    U, Vt = _flip_signs(U, Vt)

    total_variance = float(np.sum(S ** 2))
    if total_variance > 0:
        variance_explained = (S[:n_components] ** 2) / total_variance
    else:
        variance_explained = np.zeros(n_components)
    total_variance_explained = float(
        min(1.0, max(0.0, variance_explained.sum()))
    )

    if total_variance_explained < min_variance_explained:
        raise QualityError(
            f"PCA quality too low: only {total_variance_explained * 100:.1f}% "
            f"variance explained. Minimum required: "
            f"{min_variance_explained * 100:.0f}%. Voting patterns are too "
            f"random or sparse",
            {
                "n_users": n_users,
                "n_statements": n_statements,
                "variance_explained": round(total_variance_explained, 4),
            },
        )

    components = Vt[:n_components, :]
    coordinates = centered @ components.T

    logger.info(
        f"PCA complete: variance explained = {variance_explained} "
        f"(total {total_variance_explained:.3f})"
    )
    logger.debug(
        f"User projection range: "
        f"x=[{coordinates[:, 0].min():.2f}, {coordinates[:, 0].max():.2f}]"
    )

    return PCAResult(
        coordinates=coordinates,
        components=components,
        variance_explained=variance_explained,
        total_variance_explained=total_variance_explained,
        mean_vector=mean_vector,
        statement_means=statement_means,
        singular_values=S,
    )


def project_user(user_votes, components, mean_vector, statement_means):
    """
    Project a single user's votes onto an existing PCA basis.

    Used for near-real-time updates when a new vote arrives: the same
    imputation and centering as compute_pca, without a new decomposition.

    Args:
        user_votes: sequence of -1/0/1 with None or NaN for missing votes
        components: (n_components x N_statements) loadings
        mean_vector: (N_statements,) centering vector
        statement_means: (N_statements,) imputation values

    Returns:
        tuple of floats, one per component (pc1, pc2)
    """
    votes = np.array(
        [np.nan if v is None else v for v in user_votes], dtype=float
    )
    components = np.asarray(components, dtype=float)
    mean_vector = np.asarray(mean_vector, dtype=float)
    statement_means = np.asarray(statement_means, dtype=float)

    if votes.shape[0] != mean_vector.shape[0]:
        raise ValidationError(
            f"Vote count mismatch: {votes.shape[0]} votes vs "
            f"{mean_vector.shape[0]} statements"
        )
    if components.ndim != 2 or components.shape[1] != mean_vector.shape[0]:
        raise ValidationError(
            "Components must be an (n_components x N_statements) matrix"
        )

    imputed = np.where(np.isnan(votes), statement_means, votes)
    centered = imputed - mean_vector
    return tuple(float(x) for x in components @ centered)
