"""
This file contains shared fixtures for the test suite.
"""

import datetime
import os

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("PYTHONIOENCODING", "utf-8")

from votebot.db.gateway import PersistenceGateway
from votebot.db.models import MediaPlay, MediaVote, User


@pytest.fixture(autouse=True)
def reset_gateway_instance():
    """
    Forget the process-wide gateway between tests to ensure isolation.
    """
    import votebot.db.gateway as gateway_module

    setattr(gateway_module, "_instance", None)
    yield
    setattr(gateway_module, "_instance", None)


@pytest.fixture
def db_path(tmp_path):
    """Path to a database file that does not exist yet."""
    return str(tmp_path / "votebot_test.db")


@pytest_asyncio.fixture
async def gateway(db_path):
    """A connected gateway on a fresh database file."""
    gw = PersistenceGateway(db_path)
    await gw.connect()
    yield gw
    await gw.close()


@pytest.fixture
def make_user():
    def factory(user_id: str = "1001", username: str = "dj_tester") -> User:
        return User(user_id=user_id, username=username)

    return factory


@pytest.fixture
def make_play():
    def factory(
        user_id: str = "1001",
        video_id: str = "dQw4w9WgXcQ",
        title: str = "Never Gonna Give You Up",
        duration: int = 213,
        played_on: datetime.datetime | None = None,
    ) -> MediaPlay:
        return MediaPlay(
            user_id=user_id,
            video_id=video_id,
            title=title,
            duration=duration,
            played_on=played_on or datetime.datetime(2024, 5, 1, 20, 30),
        )

    return factory


@pytest.fixture
def make_vote():
    def factory(user_id: str, play_id: int, vote: int = 1) -> MediaVote:
        return MediaVote(user_id=user_id, play_id=play_id, vote=vote)

    return factory
