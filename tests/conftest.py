"""
Shared pytest fixtures for the scoring engine test suite.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from ctf_scoring.config import ConfigStore, ScoringConfig
from ctf_scoring.database import DatabaseManager
from ctf_scoring.models import Challenge, Difficulty

RELEASED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_challenge(**overrides) -> Challenge:
    """Challenge factory; defaults to the hard crypto challenge used in examples."""
    fields = {
        "challenge_id": "rsa-baby",
        "name": "RSA Baby",
        "base_points": 100,
        "difficulty": Difficulty.HARD,
        "category": "crypto",
        "daily": False,
        "released_at": RELEASED_AT,
    }
    fields.update(overrides)
    return Challenge(**fields)


def after_release(**delta) -> datetime:
    return RELEASED_AT + timedelta(**delta)


@pytest.fixture
def scoring_config():
    """Default scoring configuration snapshot."""
    return ScoringConfig()


@pytest.fixture
def config_store(monkeypatch):
    """In-memory configuration store with no environment overrides."""
    for var in (
        "CTF_NAME",
        "DYNAMIC_SCORING",
        "TEAM_SIZE_PENALTY",
        "SPEED_BONUS",
        "FIRST_BLOOD_BONUS",
        "MAX_TEAM_SIZE",
    ):
        monkeypatch.delenv(var, raising=False)
    return ConfigStore(None)


@pytest.fixture
def mock_repository():
    """Solve repository / challenge directory mock with an unsolved challenge."""
    repo = MagicMock()
    repo.count_solves = AsyncMock(return_value=0)
    repo.earliest_solve = AsyncMock(return_value=None)
    repo.get_challenge = AsyncMock(return_value=make_challenge())
    repo.count_eligible_teams = AsyncMock(return_value=10)
    return repo


@pytest_asyncio.fixture
async def db(tmp_path):
    """Initialized SQLite repository in a temporary directory."""
    manager = DatabaseManager(str(tmp_path / "scoring.db"))
    await manager.init_db()
    return manager


@pytest_asyncio.fixture
async def seeded_db(db):
    """Repository with ten eligible teams, one guest team and two challenges."""
    for i in range(10):
        await db.upsert_team(f"team-{i}", f"Team {i}", size=1)
    await db.upsert_team("guest", "guest", size=1, is_guest=True)
    await db.upsert_challenge(make_challenge())
    await db.upsert_challenge(
        make_challenge(
            challenge_id="sqli-basic",
            name="SQLi Basic",
            difficulty=Difficulty.EASY,
            category="web",
        )
    )
    return db
