"""
Tests for voter clustering: fine k-means clusters, coarse opinion groups and
the silhouette score that selects them.
"""

import warnings

import numpy as np
import pytest
from sklearn.exceptions import ConvergenceWarning as SklearnConvergenceWarning
from sklearn.metrics import silhouette_score

from core.clustering.exceptions import (
    ConvergenceLimit,
    InsufficientDataError,
    ValidationError,
)
from core.clustering.hierarchical import create_coarse_groups
from core.clustering.kmeans import (
    assign_to_nearest_cluster,
    cluster_voters,
    determine_optimal_k,
)
from core.clustering.metrics import (
    compute_consensus_level,
    compute_group_vote_counts,
    compute_quality_tier,
    compute_silhouette_score,
)


class TestDetermineOptimalK:
    @pytest.mark.parametrize(
        "user_count, expected",
        [(20, 20), (49, 20), (50, 50), (99, 50), (100, 100), (5000, 100)],
    )
    def test_population_thresholds(self, user_count, expected):
        assert determine_optimal_k(user_count) == expected

    def test_too_few_users(self):
        with pytest.raises(InsufficientDataError):
            determine_optimal_k(19)


class TestClusterVoters:
    """Fine k-means clustering on projected users."""

    def test_cluster_voters(self, two_cluster_coordinates):
        result = cluster_voters(two_cluster_coordinates, k=3)

        assert len(result.labels) == 40
        assert result.centroids.shape == (3, 2)
        assert result.num_clusters == 3
        assert result.inertia > 0
        assert len(np.unique(result.labels)) <= 3

    def test_default_k_depends_on_population(self, two_cluster_coordinates):
        result = cluster_voters(two_cluster_coordinates)

        assert result.num_clusters == 20
        assert result.centroids.shape == (20, 2)

    def test_separated_blobs_get_high_silhouette(self, two_cluster_coordinates):
        result = cluster_voters(two_cluster_coordinates, k=2)

        assert result.converged
        assert result.silhouette_score > 0.8
        # Each blob ends up in a single cluster
        assert len(set(result.labels[:20])) == 1
        assert len(set(result.labels[20:])) == 1
        assert result.labels[0] != result.labels[20]

    def test_same_seed_same_result(self, two_cluster_coordinates):
        first = cluster_voters(two_cluster_coordinates, k=4, random_state=1)
        second = cluster_voters(two_cluster_coordinates, k=4, random_state=1)

        np.testing.assert_array_equal(first.labels, second.labels)

    def test_fewer_than_20_users(self):
        with pytest.raises(InsufficientDataError) as excinfo:
            cluster_voters(np.zeros((19, 2)))

        assert excinfo.value.context["user_count"] == 19

    def test_k_larger_than_population(self, two_cluster_coordinates):
        with pytest.raises(ValidationError):
            cluster_voters(two_cluster_coordinates, k=41)

    def test_non_2d_coordinates(self):
        with pytest.raises(ValidationError):
            cluster_voters(np.zeros((25, 3)))

    def test_iteration_cap_warns(self):
        np.random.seed(42)
        points = np.random.randn(200, 2)

        with pytest.warns(ConvergenceLimit):
            result = cluster_voters(points, k=20, max_iter=1)

        assert not result.converged
        assert result.iterations == 1

    def test_duplicate_points_do_not_warn(self):
        points = np.vstack([np.zeros((10, 2)), np.ones((10, 2))])

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = cluster_voters(points, k=5)

        assert len(result.labels) == 20
        assert not [
            w for w in caught if issubclass(w.category, SklearnConvergenceWarning)
        ]


class TestAssignToNearestCluster:
    def test_nearest_centroid(self):
        centroids = [[0.0, 0.0], [5.0, 5.0], [-5.0, 5.0]]

        assert assign_to_nearest_cluster((4.0, 4.5), centroids) == 1
        assert assign_to_nearest_cluster((-4.0, 4.0), centroids) == 2

    def test_first_centroid_wins_ties(self):
        centroids = [[1.0, 0.0], [-1.0, 0.0]]

        assert assign_to_nearest_cluster((0.0, 0.0), centroids) == 0

    def test_invalid_input(self):
        with pytest.raises(ValidationError):
            assign_to_nearest_cluster((1.0, 2.0, 3.0), [[0.0, 0.0]])
        with pytest.raises(ValidationError):
            assign_to_nearest_cluster((1.0, 2.0), [])


class TestSilhouetteScore:
    def test_well_separated(self):
        points = np.array([[0, 0], [0, 0.1], [10, 0], [10, 0.1]])
        labels = np.array([0, 0, 1, 1])

        assert compute_silhouette_score(points, labels) > 0.9

    def test_single_cluster_scores_zero(self):
        points = np.random.randn(10, 2)

        assert compute_silhouette_score(points, np.zeros(10)) == 0.0

    def test_singletons_are_skipped(self):
        points = np.array([[0, 0], [0, 0.1], [10, 0]])
        labels = np.array([0, 0, 1])

        # Only the two points of cluster 0 count
        assert compute_silhouette_score(points, labels) == pytest.approx(
            1 - 0.1 / np.mean([10, np.hypot(10, 0.1)]), rel=1e-3
        )

    def test_shared_duplicates_contribute_zero(self):
        points = np.array([[0, 0], [0, 0], [0, 0], [0, 0]])
        labels = np.array([0, 0, 1, 1])

        assert compute_silhouette_score(points, labels) == 0.0

    def test_misassigned_points_score_negative(self):
        points = np.array([[0, 0], [10, 0], [0, 0.1], [10, 0.1]])
        labels = np.array([0, 0, 1, 1])

        assert compute_silhouette_score(points, labels) < 0

    def test_matches_scikit_learn_without_singletons(self, two_cluster_coordinates):
        labels = np.array([0] * 20 + [1] * 20)

        assert compute_silhouette_score(
            two_cluster_coordinates, labels
        ) == pytest.approx(silhouette_score(two_cluster_coordinates, labels))

    def test_all_singletons_score_zero(self):
        points = np.array([[0, 0], [1, 0], [5, 5]])

        assert compute_silhouette_score(points, np.array([0, 1, 2])) == 0.0


class TestCoarseGroups:
    """Merging fine clusters into 2-5 opinion groups."""

    def test_two_clear_groups(self):
        np.random.seed(42)
        left = np.random.randn(10, 2) * 0.1 + [-4, 0]
        right = np.random.randn(10, 2) * 0.1 + [4, 0]

        grouping = create_coarse_groups(np.vstack([left, right]))

        assert grouping.coarse_k == 2
        assert set(grouping.silhouette_scores) == {2, 3, 4, 5}
        # Relabelled left to right
        assert all(grouping.fine_to_coarse[i] == 0 for i in range(10))
        assert all(grouping.fine_to_coarse[i] == 1 for i in range(10, 20))
        assert grouping.coarse_centroids[0][0] < grouping.coarse_centroids[1][0]

    def test_four_clear_groups(self):
        np.random.seed(42)
        corners = [[-5, -5], [-5, 5], [5, -5], [5, 5]]
        fine = np.vstack(
            [np.random.randn(5, 2) * 0.1 + corner for corner in corners]
        )

        grouping = create_coarse_groups(fine)

        assert grouping.coarse_k == 4
        assert len(set(grouping.fine_to_coarse.values())) == 4

    def test_k_range_is_capped_by_centroid_count(self):
        grouping = create_coarse_groups([[0, 0], [1, 0], [10, 0]])

        assert set(grouping.silhouette_scores) == {2, 3}
        assert grouping.coarse_k in (2, 3)
        assert len(grouping.fine_to_coarse) == 3

    def test_single_centroid(self):
        with pytest.raises(InsufficientDataError):
            create_coarse_groups([[0.0, 0.0]])


def test_compute_group_vote_counts():
    rows = np.array([[1, -1], [1, 0], [-1, 1]])

    counts = compute_group_vote_counts(rows, [0, 0, 1], ["s1", "s2"])

    assert counts["s1"][0] == {"agree": 2, "disagree": 0, "pass": 0}
    assert counts["s2"][0] == {"agree": 0, "disagree": 1, "pass": 1}
    assert counts["s1"][1] == {"agree": 0, "disagree": 1, "pass": 0}


@pytest.mark.parametrize(
    "variance, silhouette, expected",
    [
        (0.6, 0.4, "high"),
        (0.59, 0.9, "medium"),
        (0.9, 0.25, "medium"),
        (0.9, 0.24, "low"),
        (0.39, 0.9, "low"),
    ],
)
def test_quality_tier(variance, silhouette, expected):
    assert compute_quality_tier(variance, silhouette) == expected


def test_consensus_level():
    assert compute_consensus_level(["positive_consensus", "divisive"], 2) == "high"
    assert compute_consensus_level(["negative_consensus", "normal", "bridge"], 3) == "medium"
    assert compute_consensus_level(["divisive"] * 4, 4) == "low"
    assert compute_consensus_level([], 0) == "low"
