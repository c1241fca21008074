"""
Cross-group consensus analysis (statistical view).

Classifies statements by how the opinion groups vote on them: broad
agreement (consensus), sharp disagreement (divisive), or moderate agreement
connecting groups (bridge). Key insight: "We agree more than we think."

Each group's agreement with a statement is normalized to [0, 1]:

    score = ((agree - disagree) / (agree + disagree) + 1) / 2

Thresholds are expressed on the standard deviation of the group scores,
i.e. the square root of their variance. Comparing the raw variance against
these thresholds would classify almost every statement as consensus.

References:
- Polis consensus/divisive statements methodology
- Polis implementation: github.com/compdemocracy/polis
  (math/src/polismath/math/repness.clj)
"""

import numpy as np
import logging

from .exceptions import InsufficientDataError
from .metrics import compute_group_vote_counts
from .schemas import GroupAgreement, StatementClassification

logger = logging.getLogger(__name__)

STRATEGY_NAME = "statistical"

CONSENSUS_STD_THRESHOLD = 0.2  # low variation = consensus
DIVISIVE_STD_THRESHOLD = 0.4  # high variation = divisive
POSITIVE_CONSENSUS_THRESHOLD = 0.8
NEGATIVE_CONSENSUS_THRESHOLD = 0.2
BRIDGE_MIN_GROUPS = 2
BRIDGE_MEAN_RANGE = (0.4, 0.7)
BRIDGE_AGREEMENT_THRESHOLD = 0.5


def normalized_agreement(agree, disagree):
    """
    Agreement in [0, 1] from agree/disagree counts, None if nobody voted.
    """
    total = agree + disagree
    if total == 0:
        return None
    return ((agree - disagree) / total + 1) / 2


def agreement_statistics(scores):
    """
    Mean and standard deviation (population) of agreement scores.

    Returns:
        tuple: (mean, standard_deviation)
    """
    scores = np.asarray(scores, dtype=float)
    if scores.size == 0:
        return 0.0, 0.0
    mean = float(scores.mean())
    variance = float(np.mean((scores - mean) ** 2))
    return mean, float(np.sqrt(variance))


def detect_bridge(group_agreements):
    """
    Detect statements that connect groups.

    A bridge statement has:
    - Moderate mean agreement (0.4-0.7)
    - Moderate standard deviation (0.2-0.4)
    - At least 2 groups agreeing (score > 0.5)

    Args:
        group_agreements: list of GroupAgreement

    Returns:
        dict: {'is_bridge': bool, 'bridge_score': float, 'connects_groups': [ids]}
            bridge_score = fraction of agreeing groups x mean agreement
    """
    if len(group_agreements) < BRIDGE_MIN_GROUPS:
        return {"is_bridge": False}

    mean, std = agreement_statistics([g.agreement_score for g in group_agreements])

    low, high = BRIDGE_MEAN_RANGE
    if mean < low or mean > high:
        return {"is_bridge": False}

    if std < CONSENSUS_STD_THRESHOLD or std > DIVISIVE_STD_THRESHOLD:
        return {"is_bridge": False}

    agreeing_groups = [
        g.group_id
        for g in group_agreements
        if g.agreement_score > BRIDGE_AGREEMENT_THRESHOLD
    ]
    if len(agreeing_groups) < BRIDGE_MIN_GROUPS:
        return {"is_bridge": False}

    bridge_score = (len(agreeing_groups) / len(group_agreements)) * mean

    return {
        "is_bridge": True,
        "bridge_score": bridge_score,
        "connects_groups": agreeing_groups,
    }


def classify_statement(statement_id, group_agreements):
    """
    Classify a statement from its per-group agreement scores.

    Categories are checked in priority order and are mutually exclusive:
    1. positive_consensus: std < 0.2 and mean > 0.8
    2. negative_consensus: std < 0.2 and mean < 0.2
    3. divisive: std > 0.4
    4. bridge: see detect_bridge
    5. normal

    Args:
        statement_id: statement identifier
        group_agreements: list of GroupAgreement (scores in [0, 1])

    Returns:
        StatementClassification

    Raises:
        InsufficientDataError: no group agreements
    """
    if not group_agreements:
        raise InsufficientDataError(
            "No group agreements provided",
            {"statement_id": statement_id},
        )

    mean, std = agreement_statistics([g.agreement_score for g in group_agreements])
    base = {
        "statement_id": statement_id,
        "strategy": STRATEGY_NAME,
        "group_agreements": {
            g.group_id: g.agreement_score for g in group_agreements
        },
        "average_agreement": mean,
        "standard_deviation": std,
    }

    if std < CONSENSUS_STD_THRESHOLD and mean > POSITIVE_CONSENSUS_THRESHOLD:
        return StatementClassification(type="positive_consensus", **base)

    if std < CONSENSUS_STD_THRESHOLD and mean < NEGATIVE_CONSENSUS_THRESHOLD:
        return StatementClassification(type="negative_consensus", **base)

    if std > DIVISIVE_STD_THRESHOLD:
        return StatementClassification(type="divisive", **base)

    bridge = detect_bridge(group_agreements)
    if bridge["is_bridge"]:
        return StatementClassification(
            type="bridge",
            bridge_score=bridge["bridge_score"],
            connects_groups=bridge["connects_groups"],
            **base,
        )

    return StatementClassification(type="normal", **base)


def compute_group_agreements(vote_rows, group_labels, statement_ids):
    """
    Per-group agreement for every statement.

    Groups where nobody agreed or disagreed (all passed or did not vote)
    are skipped for that statement.

    Args:
        vote_rows: numpy array (N_users x N_statements) of -1/0/1
        group_labels: coarse group per user (N_users,)
        statement_ids: list of statement IDs

    Returns:
        dict: {statement_id: [GroupAgreement, ...]} ordered by group id
    """
    counts = compute_group_vote_counts(vote_rows, group_labels, statement_ids)
    agreements = {}

    for statement_id in statement_ids:
        per_statement = []
        for group_id, group_counts in sorted(counts[statement_id].items()):
            score = normalized_agreement(
                group_counts["agree"], group_counts["disagree"]
            )
            if score is None:
                continue
            per_statement.append(
                GroupAgreement(
                    group_id=group_id,
                    agreement_score=score,
                    voter_count=group_counts["agree"] + group_counts["disagree"],
                    agree_count=group_counts["agree"],
                    disagree_count=group_counts["disagree"],
                    pass_count=group_counts["pass"],
                )
            )
        agreements[statement_id] = per_statement

    return agreements


def classify_all_statements(votes, user_group_assignments, statement_ids):
    """
    Classify every statement from raw per-user votes.

    Args:
        votes: dict {user_id: [vote per statement]} with -1/0/1
            (None counts as no vote)
        user_group_assignments: dict {user_id: coarse group id}
        statement_ids: statement IDs matching the vote positions

    Returns:
        list of StatementClassification; statements no group voted on are
        left out
    """
    user_ids = [uid for uid in votes if uid in user_group_assignments]
    vote_rows = np.array(
        [[0 if v is None else v for v in votes[uid]] for uid in user_ids],
        dtype=float,
    ).reshape(len(user_ids), len(statement_ids))
    group_labels = np.array(
        [user_group_assignments[uid] for uid in user_ids], dtype=int
    )

    agreements = compute_group_agreements(vote_rows, group_labels, statement_ids)

    classifications = []
    for statement_id in statement_ids:
        if not agreements[statement_id]:
            logger.debug(f"Statement {statement_id}: no group votes, skipping")
            continue
        classifications.append(
            classify_statement(statement_id, agreements[statement_id])
        )

    logger.info(
        f"Classified {len(classifications)} of {len(statement_ids)} statements"
    )
    return classifications
