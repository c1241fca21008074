"""
Tests for PCA projection of the opinion matrix.
"""

import numpy as np
import pytest

from core.clustering.exceptions import (
    InsufficientDataError,
    QualityError,
    ValidationError,
)
from core.clustering.matrix_builder import OpinionMatrix
from core.clustering.pca import (
    compute_pca,
    compute_statement_means,
    impute_missing,
    project_user,
)


def opposed_rows(n_per_side=5, n_statements=6):
    """Two mirrored voting patterns: one dominant axis."""
    pattern = [1 if j % 2 == 0 else -1 for j in range(n_statements)]
    rows = [list(pattern) for _ in range(n_per_side)]
    rows += [[-v for v in pattern] for _ in range(n_per_side)]
    return rows


class TestComputePCA:
    """Projection shapes, variance and validation."""

    def test_two_opposed_groups_are_one_axis(self):
        result = compute_pca(opposed_rows())

        assert result.coordinates.shape == (10, 2)
        assert result.components.shape == (2, 6)
        assert len(result.variance_explained) == 2
        assert result.total_variance_explained == pytest.approx(1.0)
        # The groups land on opposite sides of PC1
        assert np.all(result.coordinates[:5, 0] * result.coordinates[5:, 0] < 0)

    def test_total_variance_is_within_unit_interval(self):
        np.random.seed(42)
        rows = np.random.choice([-1, 1], size=(30, 8))
        rows[:15, :4] = 1
        rows[15:, :4] = -1

        result = compute_pca(OpinionMatrix.from_rows(rows.tolist()),
                             min_variance_explained=0.0)

        assert 0.0 <= result.total_variance_explained <= 1.0
        assert np.all(result.variance_explained >= 0)
        assert result.variance_explained[0] >= result.variance_explained[1]

    def test_sign_is_deterministic(self):
        first = compute_pca(opposed_rows())
        second = compute_pca(opposed_rows())

        np.testing.assert_allclose(first.components, second.components)
        for component in first.components:
            assert component[np.argmax(np.abs(component))] > 0

    def test_random_votes_fail_quality_check(self):
        np.random.seed(7)
        rows = np.random.choice([-1, 1], size=(40, 30)).tolist()

        with pytest.raises(QualityError) as excinfo:
            compute_pca(rows)

        assert "variance_explained" in excinfo.value.context

    def test_constant_matrix_has_no_variance(self):
        rows = [[1, 1, 1] for _ in range(5)]

        with pytest.raises(QualityError):
            compute_pca(rows)

        result = compute_pca(rows, min_variance_explained=0.0)
        assert result.total_variance_explained == 0.0

    def test_empty_matrix_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_pca(OpinionMatrix(np.empty((0, 3)), [], ["a", "b", "c"]))

    def test_single_user_is_not_enough(self):
        with pytest.raises(InsufficientDataError):
            compute_pca([[1, -1, 1]])

    def test_n_components_out_of_range(self):
        with pytest.raises(ValidationError):
            compute_pca(opposed_rows(), n_components=0)
        with pytest.raises(ValidationError):
            compute_pca(opposed_rows(), n_components=7)

    def test_missing_votes_are_imputed_with_column_mean(self):
        rows = opposed_rows()
        rows[0][0] = None

        result = compute_pca(rows)

        assert not np.isnan(result.coordinates).any()
        assert result.statement_means[0] == pytest.approx(-1 / 9)


def test_compute_statement_means_all_null_column_is_zero():
    data = np.array([[1.0, np.nan], [-1.0, np.nan], [1.0, np.nan]])

    means = compute_statement_means(data)

    np.testing.assert_allclose(means, [1 / 3, 0.0])
    np.testing.assert_allclose(impute_missing(data, means)[:, 1], [0, 0, 0])


class TestProjectUser:
    """Incremental projection onto an existing basis."""

    def test_existing_user_projects_to_same_coordinates(self):
        rows = opposed_rows()
        result = compute_pca(rows)

        pc = project_user(
            rows[0], result.components, result.mean_vector, result.statement_means
        )

        assert pc == pytest.approx(tuple(result.coordinates[0]))

    def test_missing_votes_use_statement_means(self):
        rows = opposed_rows()
        result = compute_pca(rows)

        pc = project_user(
            [None] * 6, result.components, result.mean_vector, result.statement_means
        )

        # All-missing voter sits at the center of the map
        assert pc == pytest.approx((0.0, 0.0))

    def test_length_mismatch_is_rejected(self):
        result = compute_pca(opposed_rows())

        with pytest.raises(ValidationError):
            project_user(
                [1, -1], result.components, result.mean_vector, result.statement_means
            )
