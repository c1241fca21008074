"""
Tests for pairwise coalition analysis between opinion groups.
"""

import pytest

from core.clustering.coalitions import (
    analyze_coalitions,
    coalitions_above_threshold,
    is_strong_coalition,
    polarization_level,
    strongest_coalition,
)
from core.clustering.exceptions import ValidationError
from core.clustering.schemas import CoalitionAnalysis


# Groups 0 and 1 vote together, group 2 opposes them
STATEMENTS = [
    {0: 1.0, 1: 0.95, 2: 0.0},
    {0: 0.0, 1: 0.05, 2: 1.0},
    {0: 0.9, 1: 1.0, 2: 0.5},  # group 2 neutral
    {0: 1.0, 1: 0.9, 2: 1.0},
]


def test_pairwise_counts():
    analysis = analyze_coalitions(STATEMENTS, 3)

    pairs = {a.group_ids: a for a in analysis.pairwise_alignment}
    assert pairs[(0, 1)].agreement_count == 4
    assert pairs[(0, 1)].alignment_percentage == 100
    assert pairs[(0, 2)].agreement_count == 1
    assert pairs[(0, 2)].disagreement_count == 2
    assert pairs[(0, 2)].neutral_count == 1
    assert pairs[(0, 2)].alignment_percentage == 25


def test_sorted_by_alignment_with_top_three():
    analysis = analyze_coalitions(STATEMENTS, 3)

    percentages = [a.alignment_percentage for a in analysis.pairwise_alignment]
    assert percentages == sorted(percentages, reverse=True)
    assert analysis.strongest_coalitions[0].group_ids == (0, 1)
    assert len(analysis.strongest_coalitions) == 3


def test_default_and_custom_labels():
    default = analyze_coalitions(STATEMENTS, 3)
    custom = analyze_coalitions(STATEMENTS, 3, ["Left", "Centre", "Right"])

    assert default.strongest_coalitions[0].group_labels == ("Group 1", "Group 2")
    assert custom.strongest_coalitions[0].group_labels == ("Left", "Centre")


def test_percentage_scores_are_accepted():
    statements = [{0: 80, 1: 90}, {0: -80, 1: 75}]

    analysis = analyze_coalitions(statements, 2, scale="percentage")

    pair = analysis.pairwise_alignment[0]
    assert pair.agreement_count == 1
    assert pair.disagreement_count == 1
    assert pair.alignment_percentage == 50


def test_small_percentages_are_neutral():
    # Read as percentages, not as normalized scores
    statements = [{0: 1.0, 1: 0.5}, {0: 1.0, 1: 1.0}]

    pair = analyze_coalitions(statements, 2, scale="percentage").pairwise_alignment[0]

    assert pair.neutral_count == 2
    assert pair.agreement_count == 0


def test_unknown_scale():
    with pytest.raises(ValidationError):
        analyze_coalitions(STATEMENTS, 3, scale="ratio")


def test_statements_missing_a_group_are_skipped():
    statements = [{0: 1.0, 1: 1.0}, {0: 1.0}]

    pair = analyze_coalitions(statements, 2).pairwise_alignment[0]

    assert pair.agreement_count == 1
    assert pair.neutral_count == 0
    assert pair.alignment_percentage == 50


def test_helpers():
    analysis = analyze_coalitions(STATEMENTS, 3)

    assert strongest_coalition(analysis).group_ids == (0, 1)
    assert is_strong_coalition(1, 0, analysis)
    assert not is_strong_coalition(0, 2, analysis)
    assert not is_strong_coalition(0, 7, analysis)
    assert [a.group_ids for a in coalitions_above_threshold(analysis)] == [(0, 1)]
    assert len(coalitions_above_threshold(analysis, min_alignment=0)) == 3


def test_polarization_level():
    analysis = analyze_coalitions(STATEMENTS, 3)

    # 4 opposing pair/statement combinations out of 3 pairs x 4 statements
    assert polarization_level(analysis) == round(4 / 12 * 100)


def test_no_pairs():
    analysis = analyze_coalitions(STATEMENTS, 1)

    assert analysis == CoalitionAnalysis()
    assert strongest_coalition(analysis) is None
    assert polarization_level(analysis) == 0
