"""
Coalition view of statement classification.

Groups are bucketed by their signed agreement percentage (-100 to +100):
above +60 they agree, below -60 they disagree, otherwise they are neutral.
The pattern of buckets names the statement:

- full_consensus: every group agrees, or every group disagrees
- partial_consensus: all groups but one agree (or disagree)
- split_decision: as many agreeing as disagreeing groups
- bridge: moderate overall agreement with at least 2 agreeing groups
- divisive: anything else (fragmented opinion)

Group ids are shown 1-indexed in descriptions ("Groups 1,2 vs Group 3").
"""

import numpy as np
import logging

from .exceptions import InsufficientDataError
from .schemas import CoalitionPattern, StatementClassification

logger = logging.getLogger(__name__)

STRATEGY_NAME = "coalition"

AGREEMENT_THRESHOLD = 60
BRIDGE_RANGE = (40, 70)

TYPE_LABELS = {
    "full_consensus": "Full Consensus",
    "partial_consensus": "Partial Consensus",
    "split_decision": "Split Decision",
    "divisive": "Divisive",
    "bridge": "Bridge",
    "normal": "Normal",
    # statistical view
    "positive_consensus": "Positive Consensus",
    "negative_consensus": "Negative Consensus",
}


def to_percentage(score):
    """Normalized agreement in [0, 1] -> signed percentage in [-100, 100]."""
    return (score - 0.5) * 200


def type_label(classification_type):
    """Human-readable label for a classification type."""
    return TYPE_LABELS.get(
        classification_type, classification_type.replace("_", " ").title()
    )


def format_group_ids(group_ids):
    return ",".join(str(group_id + 1) for group_id in group_ids)


def _partial_description(majority, minority, action):
    noun = "Group" if len(minority) == 1 else "Groups"
    return (
        f"Groups {format_group_ids(majority)} {action} vs "
        f"{noun} {format_group_ids(minority)}"
    )


def bucket_groups(percentages):
    """
    Split groups into agreeing, disagreeing and neutral.

    Args:
        percentages: dict {group_id: signed percentage}

    Returns:
        tuple: (agreeing, disagreeing, neutral) lists of group ids
    """
    agreeing = [g for g, pct in percentages.items() if pct > AGREEMENT_THRESHOLD]
    disagreeing = [g for g, pct in percentages.items() if pct < -AGREEMENT_THRESHOLD]
    neutral = [
        g
        for g, pct in percentages.items()
        if -AGREEMENT_THRESHOLD <= pct <= AGREEMENT_THRESHOLD
    ]
    return agreeing, disagreeing, neutral


def classify_pattern(percentages):
    """
    Classify a statement from signed group percentages.

    Args:
        percentages: dict {group_id: agreement percentage in [-100, 100]}

    Returns:
        tuple: (type, CoalitionPattern)

    Raises:
        InsufficientDataError: no groups
    """
    n_groups = len(percentages)
    if n_groups == 0:
        raise InsufficientDataError("No group agreements provided")

    agreeing, disagreeing, neutral = bucket_groups(percentages)

    if len(agreeing) == n_groups:
        return "full_consensus", CoalitionPattern(
            description="All groups agree", agreeing_groups=agreeing
        )

    if len(disagreeing) == n_groups:
        return "full_consensus", CoalitionPattern(
            description="All groups disagree", disagreeing_groups=disagreeing
        )

    if len(agreeing) == n_groups - 1:
        opposing = disagreeing + neutral
        return "partial_consensus", CoalitionPattern(
            description=_partial_description(agreeing, opposing, "agree"),
            agreeing_groups=agreeing,
            disagreeing_groups=opposing,
        )

    if len(disagreeing) == n_groups - 1:
        opposing = agreeing + neutral
        return "partial_consensus", CoalitionPattern(
            description=_partial_description(disagreeing, opposing, "disagree"),
            agreeing_groups=opposing,
            disagreeing_groups=disagreeing,
        )

    if agreeing and disagreeing and len(agreeing) == len(disagreeing):
        return "split_decision", CoalitionPattern(
            description=(
                f"Groups {format_group_ids(agreeing)} vs "
                f"Groups {format_group_ids(disagreeing)}"
            ),
            agreeing_groups=agreeing,
            disagreeing_groups=disagreeing,
            neutral_groups=neutral,
        )

    mean_magnitude = float(np.mean([abs(pct) for pct in percentages.values()]))
    low, high = BRIDGE_RANGE
    if low <= mean_magnitude <= high and len(agreeing) >= 2 and len(disagreeing) >= 1:
        return "bridge", CoalitionPattern(
            description=f"Connects Groups {format_group_ids(agreeing)}",
            agreeing_groups=agreeing,
            disagreeing_groups=disagreeing,
            neutral_groups=neutral,
        )

    return "divisive", CoalitionPattern(
        description="Fragmented opinion",
        agreeing_groups=agreeing,
        disagreeing_groups=disagreeing,
        neutral_groups=neutral,
    )


def classify_statement(statement_id, group_agreements):
    """
    Coalition classification of one statement.

    Args:
        statement_id: statement identifier
        group_agreements: list of GroupAgreement (normalized scores)

    Returns:
        StatementClassification with a coalition_pattern
    """
    if not group_agreements:
        raise InsufficientDataError(
            "No group agreements provided",
            {"statement_id": statement_id},
        )

    percentages = {g.group_id: g.agreement_percentage for g in group_agreements}
    classification_type, pattern = classify_pattern(percentages)

    scores = np.array([g.agreement_score for g in group_agreements], dtype=float)
    logger.debug(f"Statement {statement_id}: {classification_type} ({pattern.description})")

    return StatementClassification(
        statement_id=statement_id,
        strategy=STRATEGY_NAME,
        type=classification_type,
        group_agreements={g.group_id: g.agreement_score for g in group_agreements},
        average_agreement=float(scores.mean()),
        standard_deviation=float(scores.std()),
        coalition_pattern=pattern,
    )
