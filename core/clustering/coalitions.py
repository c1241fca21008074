"""
Coalition analysis between opinion groups.

For every pair of groups, counts the statements on which they line up
(both agree or both disagree beyond the +/-60 threshold), oppose each other,
or where at least one of them is neutral. Pairs that line up often are
natural coalitions, useful for spotting bridges between viewpoints.
"""

import logging

from .classifier import AGREEMENT_THRESHOLD, to_percentage
from .exceptions import ValidationError
from .schemas import CoalitionAnalysis, PairwiseAlignment

logger = logging.getLogger(__name__)

TOP_COALITIONS = 3
STRONG_COALITION_THRESHOLD = 50


SCALES = ("normalized", "percentage")


def _as_percentage(score, scale):
    if scale == "normalized":
        return to_percentage(score)
    return score


def _is_neutral(pct):
    return -AGREEMENT_THRESHOLD <= pct <= AGREEMENT_THRESHOLD


def analyze_coalitions(statements, num_groups, group_labels=None, scale="normalized"):
    """
    Pairwise alignment between all groups.

    Args:
        statements: iterable of {group_id: score} dicts, or classifications
            with a group_agreements mapping
        num_groups: total number of opinion groups
        group_labels: optional labels, defaults to "Group N" (1-indexed)
        scale: "normalized" for agreement scores in [0, 1], "percentage"
            for signed percentages in [-100, 100]

    Returns:
        CoalitionAnalysis sorted by alignment, then agreement count
    """
    if scale not in SCALES:
        raise ValidationError(f"Unknown score scale: {scale!r}", {"scales": SCALES})

    statements = [
        getattr(statement, "group_agreements", statement) for statement in statements
    ]
    labels = group_labels or [f"Group {i + 1}" for i in range(num_groups)]

    alignments = []
    for i in range(num_groups):
        for j in range(i + 1, num_groups):
            agreement_count = disagreement_count = neutral_count = 0

            for scores in statements:
                if i not in scores or j not in scores:
                    continue
                pct_i = _as_percentage(scores[i], scale)
                pct_j = _as_percentage(scores[j], scale)

                if _is_neutral(pct_i) or _is_neutral(pct_j):
                    neutral_count += 1
                elif (pct_i > 0) == (pct_j > 0):
                    agreement_count += 1
                else:
                    disagreement_count += 1

            alignment = (
                round(agreement_count / len(statements) * 100) if statements else 0
            )
            alignments.append(
                PairwiseAlignment(
                    group_ids=(i, j),
                    group_labels=(labels[i], labels[j]),
                    agreement_count=agreement_count,
                    disagreement_count=disagreement_count,
                    neutral_count=neutral_count,
                    alignment_percentage=alignment,
                )
            )

    # sorted() is stable, so equal pairs keep their (i, j) order
    alignments = sorted(
        alignments,
        key=lambda a: (a.alignment_percentage, a.agreement_count),
        reverse=True,
    )
    logger.debug(f"Coalition analysis: {len(alignments)} group pairs")

    return CoalitionAnalysis(
        pairwise_alignment=alignments,
        strongest_coalitions=alignments[:TOP_COALITIONS],
    )


def strongest_coalition(analysis):
    """The best-aligned pair, or None when there are no pairs."""
    if not analysis.strongest_coalitions:
        return None
    return analysis.strongest_coalitions[0]


def is_strong_coalition(group_a, group_b, analysis):
    """True if the two groups line up on more than half the statements."""
    for alignment in analysis.pairwise_alignment:
        if set(alignment.group_ids) == {group_a, group_b}:
            return alignment.alignment_percentage > STRONG_COALITION_THRESHOLD
    return False


def coalitions_above_threshold(analysis, min_alignment=STRONG_COALITION_THRESHOLD):
    return [
        a for a in analysis.pairwise_alignment if a.alignment_percentage >= min_alignment
    ]


def polarization_level(analysis):
    """
    Overall polarization (0-100): share of opposing pair/statement
    combinations among all counted ones.
    """
    pairs = analysis.pairwise_alignment
    if not pairs:
        return 0

    total_disagreements = sum(a.disagreement_count for a in pairs)
    first = pairs[0]
    per_pair = (
        first.agreement_count + first.disagreement_count + first.neutral_count
    ) or 1

    return round(total_disagreements / (len(pairs) * per_pair) * 100)
