from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

BLOC_A_SIZE = 13
BLOC_B_SIZE = 12
# s0-s3: bloc A agrees, bloc B disagrees; s4-s7: the reverse
BLOC_STATEMENTS = [f"s{i}" for i in range(8)]
# Everybody agrees
CONSENSUS_STATEMENTS = ["s8", "s9"]
STATEMENT_IDS = BLOC_STATEMENTS + CONSENSUS_STATEMENTS


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def bloc_vote(bloc, statement_index):
    if statement_index >= 8:
        return 1
    sign = 1 if statement_index < 4 else -1
    return sign if bloc == "a" else -sign


def make_two_bloc_votes():
    votes = []
    users = [("a", f"a{i}") for i in range(BLOC_A_SIZE)]
    users += [("b", f"b{i}") for i in range(BLOC_B_SIZE)]
    for bloc, user_id in users:
        for j, statement_id in enumerate(STATEMENT_IDS):
            votes.append(
                {
                    "user_id": user_id,
                    "statement_id": statement_id,
                    "value": bloc_vote(bloc, j),
                }
            )
    return votes


def make_statements(age=timedelta(days=2)):
    return [
        {"statement_id": sid, "created_at": NOW - age, "text": f"Statement {sid}"}
        for sid in STATEMENT_IDS
    ]


def make_payload():
    """JSON-ready statements and votes, as a task or export would carry them."""
    statements = make_statements()
    for statement in statements:
        statement["created_at"] = statement["created_at"].isoformat()
    return {"statements": statements, "votes": make_two_bloc_votes()}


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def two_bloc_votes():
    """25 voters in two perfectly opposed blocs (13 vs 12), 10 statements."""
    return make_two_bloc_votes()


@pytest.fixture
def statements():
    return make_statements()


@pytest.fixture
def two_cluster_coordinates():
    """40 points in two well separated blobs around (-3, 0) and (3, 0)."""
    np.random.seed(42)
    left = np.random.randn(20, 2) * 0.3 + np.array([-3.0, 0.0])
    right = np.random.randn(20, 2) * 0.3 + np.array([3.0, 0.0])
    return np.vstack([left, right])
