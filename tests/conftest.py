import os
import random
import tempfile

import pytest

# Must be set before `database` is imported anywhere
_db_dir = tempfile.mkdtemp(prefix="badminton-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ.setdefault("SCHEDULER_SEED", "7")

from badminton.models import Player, Settings
from badminton.roster import Roster
from badminton.scheduler import CourtScheduler
from badminton.state import SessionState


def make_players(levels, match_counts=None):
    match_counts = match_counts or [0] * len(levels)
    return [
        Player(id=f"p{i}", name=f"Player {i}", level=level, match_count=count)
        for i, (level, count) in enumerate(zip(levels, match_counts), start=1)
    ]


@pytest.fixture
def make_scheduler():
    def _make(count=8, levels=None, seed=1, **settings):
        levels = levels or ["intermediate"] * count
        state = SessionState(
            id="test",
            roster=Roster(make_players(levels)),
            settings=Settings(**settings),
        )
        return CourtScheduler(state, rng=random.Random(seed))
    return _make


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c
