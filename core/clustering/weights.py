"""
Statement weights for ordering which statement a voter sees next.

Two modes:
- clustering (20+ users): predictiveness x consensus potential x recency x
  pass rate penalty
- cold_start (fewer users, no groups yet): vote count boost x recency x
  pass rate penalty

Every function here is total: degenerate input yields a neutral value
rather than an exception.
"""

from datetime import datetime, timezone

import numpy as np

from .schemas import WeightComponents

MAX_VARIANCE = 0.25  # groups at 0 and 1
STRONG_OPINION_THRESHOLD = 0.6
BRIDGE_POTENTIAL = 0.7

NEW_STATEMENT_HOURS = 24
NEW_STATEMENT_BOOST = 2.0
RECENCY_HALF_LIFE_DAYS = 7
MIN_RECENCY_BOOST = 0.1

NO_VOTES_PENALTY = 0.5
NEUTRAL_WEIGHT = 0.5
MIN_PASS_RATE_PENALTY = 0.1

FULL_CONSENSUS_TYPES = frozenset(
    {"positive_consensus", "negative_consensus", "full_consensus"}
)


def predictiveness(scores):
    """
    How well a statement separates groups: variance of the group scores
    normalized by the maximum possible variance (0.25).

    Returns:
        float in [0, 1]; 0 for no scores
    """
    scores = np.asarray(list(scores), dtype=float)
    if scores.size == 0:
        return 0.0
    variance = float(np.mean((scores - scores.mean()) ** 2))
    return min(variance / MAX_VARIANCE, 1.0)


def consensus_potential(scores, classification_type):
    """
    Likelihood the statement becomes a consensus point.

    1.0 for consensus types, 0.7 for bridges, otherwise the fraction of groups
    holding a strong opinion (score > 0.6 or < 0.4).
    """
    if classification_type in FULL_CONSENSUS_TYPES:
        return 1.0
    if classification_type == "bridge":
        return BRIDGE_POTENTIAL

    scores = list(scores)
    if not scores:
        return 0.0
    strong = [
        s
        for s in scores
        if s > STRONG_OPINION_THRESHOLD or s < 1 - STRONG_OPINION_THRESHOLD
    ]
    return len(strong) / len(scores)


def recency_boost(created_at, now=None):
    """
    2.0 during the first 24 hours, then halving every 7 days, never below 0.1.

    Naive datetimes are treated as UTC. Statements dated in the future get
    the full boost.
    """
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_hours = (now - created_at).total_seconds() / 3600
    if age_hours < NEW_STATEMENT_HOURS:
        return NEW_STATEMENT_BOOST

    age_days = age_hours / 24
    boost = NEW_STATEMENT_BOOST * 0.5 ** (age_days / RECENCY_HALF_LIFE_DAYS)
    return max(boost, MIN_RECENCY_BOOST)


def pass_rate_penalty(votes):
    """
    Downweight confusing statements: 1.0 with no passes, 0.1 when everyone
    passed, 0.5 while there are no votes at all.

    Args:
        votes: VoteCounts
    """
    total = votes.total
    if total == 0:
        return NO_VOTES_PENALTY
    pass_rate = votes.pass_count / total
    return max(1.0 - pass_rate * 0.9, MIN_PASS_RATE_PENALTY)


def vote_count_boost(vote_count, avg_votes):
    """Favor under-voted statements: clamp(2 - count / avg, 0.5, 1.5)."""
    if avg_votes <= 0:
        return 1.0
    return max(0.5, min(1.5, 2.0 - vote_count / avg_votes))


def clustering_weight(scores, classification_type, created_at, votes, now=None):
    """
    Weight for a statement when opinion groups are available.

    Args:
        scores: normalized group agreement scores
        classification_type: statistical classification type
        created_at: statement creation time
        votes: VoteCounts for the statement

    Returns:
        WeightComponents (mode 'clustering')
    """
    scores = list(scores)
    p = predictiveness(scores)
    c = consensus_potential(scores, classification_type)
    r = recency_boost(created_at, now)
    penalty = pass_rate_penalty(votes)

    return WeightComponents(
        predictiveness=p,
        consensus_potential=c,
        recency_boost=r,
        pass_rate_penalty=penalty,
        combined_weight=p * c * r * penalty,
        mode="clustering",
    )


def unclassified_weight(created_at, now=None):
    """
    Neutral weight for a statement no group has agreed or disagreed with yet,
    such as one added after the last recompute. Every factor is 0.5 except
    recency, which is reported but does not change the combined weight.
    """
    return WeightComponents(
        predictiveness=NEUTRAL_WEIGHT,
        consensus_potential=NEUTRAL_WEIGHT,
        recency_boost=recency_boost(created_at, now),
        pass_rate_penalty=NEUTRAL_WEIGHT,
        combined_weight=NEUTRAL_WEIGHT,
        mode="clustering",
    )


def cold_start_weight(created_at, votes, vote_count, avg_votes, now=None):
    """Weight for a statement before clustering is available."""
    r = recency_boost(created_at, now)
    penalty = pass_rate_penalty(votes)
    boost = vote_count_boost(vote_count, avg_votes)

    return WeightComponents(
        recency_boost=r,
        pass_rate_penalty=penalty,
        vote_count_boost=boost,
        combined_weight=boost * r * penalty,
        mode="cold_start",
    )
