"""
Opinion matrix builder for clustering analysis.

Converts vote records into a dense users x statements matrix suitable for
PCA and clustering operations.

Encoding:
    agree = +1
    pass = 0 (or null, see `pass_as_null`)
    disagree = -1
    no_vote = NaN (null)
"""

from collections import defaultdict
from dataclasses import dataclass, field

import numpy as np
import logging

from .exceptions import ValidationError
from .schemas import VoteCounts, VoteRecord, parse_records

logger = logging.getLogger(__name__)

ALLOWED_VALUES = (-1.0, 0.0, 1.0)


@dataclass
class OpinionMatrix:
    """
    Users x statements vote matrix. NaN marks a missing vote.

    Rows follow `user_ids`, columns follow `statement_ids`; both counts are
    checked on construction.
    """

    data: np.ndarray
    user_ids: list = field(default_factory=list)
    statement_ids: list = field(default_factory=list)

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=float)
        if self.data.ndim != 2:
            raise ValidationError(
                "Opinion matrix must be two-dimensional",
                {"ndim": self.data.ndim},
            )
        n_users, n_statements = self.data.shape
        if len(self.user_ids) != n_users:
            raise ValidationError(
                f"User ID count mismatch: {len(self.user_ids)} IDs vs "
                f"{n_users} rows"
            )
        if len(self.statement_ids) != n_statements:
            raise ValidationError(
                f"Statement ID count mismatch: {len(self.statement_ids)} IDs "
                f"vs {n_statements} columns"
            )
        present = self.data[~np.isnan(self.data)]
        if present.size and not np.isin(present, ALLOWED_VALUES).all():
            raise ValidationError(
                "Opinion matrix cells must be -1, 0, 1 or null"
            )

    @classmethod
    def from_rows(cls, rows, user_ids=None, statement_ids=None):
        """
        Build from nested lists where None marks a missing vote.

        Args:
            rows: list of lists with values -1, 0, 1 or None
            user_ids: row ids (default: "u0", "u1", ...)
            statement_ids: column ids (default: "s0", "s1", ...)
        """
        data = np.array(
            [[np.nan if v is None else v for v in row] for row in rows],
            dtype=float,
        )
        if data.size == 0:
            data = np.empty((len(rows), 0))
        n_users, n_statements = data.shape
        if user_ids is None:
            user_ids = [f"u{i}" for i in range(n_users)]
        if statement_ids is None:
            statement_ids = [f"s{j}" for j in range(n_statements)]
        return cls(data, list(user_ids), list(statement_ids))

    @property
    def shape(self):
        return self.data.shape

    @property
    def n_users(self):
        return self.data.shape[0]

    @property
    def n_statements(self):
        return self.data.shape[1]


def _latest_votes(votes):
    """Collapse repeated (user, statement) votes, keeping the last one."""
    latest = {}
    for vote in parse_records(VoteRecord, votes):
        latest[(vote.user_id, vote.statement_id)] = vote.value
    return latest


def build_opinion_matrix(votes, statement_ids=None, pass_as_null=True):
    """
    Build the opinion matrix (users x statements) from vote records.

    Args:
        votes: iterable of VoteRecord (or dicts with the same keys)
        statement_ids: column order; defaults to every voted statement, sorted.
            Votes on statements outside this list are ignored.
        pass_as_null: store pass votes as null so PCA imputes them with the
            statement mean instead of treating them as a neutral opinion

    Returns:
        OpinionMatrix with users in first-vote order
    """
    latest = _latest_votes(votes)

    if statement_ids is None:
        statement_ids = sorted({sid for _, sid in latest})
    statement_ids = list(statement_ids)
    statement_index = {sid: j for j, sid in enumerate(statement_ids)}

    user_ids = []
    user_index = {}
    for user_id, statement_id in latest:
        if statement_id not in statement_index:
            continue
        if user_id not in user_index:
            user_index[user_id] = len(user_ids)
            user_ids.append(user_id)

    data = np.full((len(user_ids), len(statement_ids)), np.nan)
    for (user_id, statement_id), value in latest.items():
        if statement_id not in statement_index:
            continue
        if value == 0 and pass_as_null:
            continue
        data[user_index[user_id], statement_index[statement_id]] = value

    matrix = OpinionMatrix(data, user_ids, statement_ids)

    if matrix.data.size:
        density = np.count_nonzero(~np.isnan(data)) / data.size * 100
    else:
        density = 0.0
    logger.info(
        f"Built opinion matrix: {matrix.n_users} users x "
        f"{matrix.n_statements} statements ({density:.1f}% density)"
    )
    return matrix


def build_vote_rows(votes, user_ids, statement_ids, missing=0.0):
    """
    Raw vote values per user: +1, -1, 0 for a pass and `missing` where the
    user did not vote.

    This is the shape group aggregation works on: only +1 and -1 count
    towards agreement. Use missing=np.nan to keep passes and absent votes
    apart in the per-group breakdown.

    Returns:
        numpy array (N_users x N_statements)
    """
    latest = _latest_votes(votes)
    user_index = {uid: i for i, uid in enumerate(user_ids)}
    statement_index = {sid: j for j, sid in enumerate(statement_ids)}

    rows = np.full((len(user_ids), len(statement_ids)), missing, dtype=float)
    for (user_id, statement_id), value in latest.items():
        i = user_index.get(user_id)
        j = statement_index.get(statement_id)
        if i is None or j is None:
            continue
        rows[i, j] = value
    return rows


def count_usable_users(matrix):
    """Number of users with at least one non-null vote."""
    if matrix.data.size == 0:
        return 0
    return int(np.count_nonzero((~np.isnan(matrix.data)).any(axis=1)))


def statement_vote_counts(votes, statement_ids=None):
    """
    Count agree / disagree / pass votes per statement.

    Returns:
        dict: {statement_id: VoteCounts}
    """
    counts = defaultdict(lambda: {"agree": 0, "disagree": 0, "pass_count": 0})
    for (_, statement_id), value in _latest_votes(votes).items():
        if value == 1:
            counts[statement_id]["agree"] += 1
        elif value == -1:
            counts[statement_id]["disagree"] += 1
        else:
            counts[statement_id]["pass_count"] += 1

    if statement_ids is None:
        statement_ids = sorted(counts)
    return {sid: VoteCounts(**counts[sid]) for sid in statement_ids}
