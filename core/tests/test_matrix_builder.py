"""
Tests for building opinion matrices from vote records.
"""

import numpy as np
import pytest

from core.clustering.exceptions import ValidationError
from core.clustering.matrix_builder import (
    OpinionMatrix,
    build_opinion_matrix,
    build_vote_rows,
    count_usable_users,
    statement_vote_counts,
)


def test_from_rows_marks_missing_votes_as_nan():
    matrix = OpinionMatrix.from_rows([[1, None], [-1, 0]])

    assert matrix.shape == (2, 2)
    assert np.isnan(matrix.data[0, 1])
    assert matrix.user_ids == ["u0", "u1"]
    assert matrix.statement_ids == ["s0", "s1"]


def test_id_count_mismatch_is_rejected():
    with pytest.raises(ValidationError):
        OpinionMatrix(np.zeros((2, 3)), ["u0"], ["s0", "s1", "s2"])

    with pytest.raises(ValidationError):
        OpinionMatrix(np.zeros((2, 3)), ["u0", "u1"], ["s0"])


def test_invalid_cell_values_are_rejected():
    with pytest.raises(ValidationError):
        OpinionMatrix.from_rows([[1, 2], [0, -1]])


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        OpinionMatrix.from_rows([[0.5]])


def test_build_opinion_matrix_passes_become_null():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "alice", "statement_id": "s2", "value": 0},
        {"user_id": "bob", "statement_id": "s2", "value": -1},
    ]

    matrix = build_opinion_matrix(votes)

    assert matrix.user_ids == ["alice", "bob"]
    assert matrix.statement_ids == ["s1", "s2"]
    assert matrix.data[0, 0] == 1
    assert np.isnan(matrix.data[0, 1])  # pass
    assert np.isnan(matrix.data[1, 0])  # no vote
    assert matrix.data[1, 1] == -1


def test_build_opinion_matrix_keeps_passes_when_asked():
    votes = [{"user_id": "alice", "statement_id": "s1", "value": 0}]

    matrix = build_opinion_matrix(votes, pass_as_null=False)

    assert matrix.data[0, 0] == 0


def test_later_vote_overrides_earlier_one():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "alice", "statement_id": "s1", "value": -1},
    ]

    matrix = build_opinion_matrix(votes)

    assert matrix.data[0, 0] == -1


def test_votes_on_unknown_statements_are_ignored():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "bob", "statement_id": "other", "value": 1},
    ]

    matrix = build_opinion_matrix(votes, statement_ids=["s1"])

    assert matrix.user_ids == ["alice"]
    assert matrix.shape == (1, 1)


def test_invalid_vote_value_is_rejected():
    with pytest.raises(ValidationError):
        build_opinion_matrix([{"user_id": "a", "statement_id": "s", "value": 3}])


def test_count_usable_users_ignores_pass_only_rows():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "bob", "statement_id": "s1", "value": 0},
    ]

    matrix = build_opinion_matrix(votes)

    assert matrix.n_users == 2
    assert count_usable_users(matrix) == 1


def test_build_vote_rows_uses_zero_for_pass_and_missing():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "alice", "statement_id": "s2", "value": 0},
    ]

    rows = build_vote_rows(votes, ["alice", "bob"], ["s1", "s2"])

    np.testing.assert_array_equal(rows, [[1, 0], [0, 0]])


def test_build_vote_rows_can_mark_missing_votes():
    votes = [
        {"user_id": "alice", "statement_id": "s1", "value": 1},
        {"user_id": "alice", "statement_id": "s2", "value": 0},
    ]

    rows = build_vote_rows(votes, ["alice", "bob"], ["s1", "s2"], missing=np.nan)

    assert rows[0, 1] == 0
    assert np.isnan(rows[1]).all()


def test_statement_vote_counts():
    votes = [
        {"user_id": "a", "statement_id": "s1", "value": 1},
        {"user_id": "b", "statement_id": "s1", "value": -1},
        {"user_id": "c", "statement_id": "s1", "value": 0},
        {"user_id": "d", "statement_id": "s1", "value": 1},
    ]

    counts = statement_vote_counts(votes, ["s1", "s2"])

    assert counts["s1"].agree == 2
    assert counts["s1"].disagree == 1
    assert counts["s1"].pass_count == 1
    assert counts["s1"].total == 4
    assert counts["s2"].total == 0
