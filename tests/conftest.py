"""
Pytest configuration and shared fixtures for SongSplit tests.

This module provides shared fixtures and test configuration including:
- Flask app setup backed by in-memory storage
- Ledger instances seeded with the reference song
- API authentication headers
- Metrics reset between tests
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Set up test environment before any imports
os.environ["SONGSPLIT_API_KEY"] = "test-api-key-12345"
os.environ["SONGSPLIT_REQUIRE_AUTH"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["SONGSPLIT_ADMIN"] = "deployer"
os.environ.pop("SONGSPLIT_CATALOG_FILE", None)


ADMIN = "deployer"


def make_song(song_id=1, contributors=None, title="Test Song"):
    """Build a song; defaults to the 60/40 reference split."""
    from royalty_distributor import Song

    if contributors is None:
        contributors = [("wallet_1", 60), ("wallet_2", 40)]
    return Song(
        song_id=song_id,
        title=title,
        artist=ADMIN,
        ipfs_hash="QmTestHash1234567890123456789012345678901234",
        contributors=contributors,
        created_at=1000,
    )


class FakeClock:
    """Manually driven millisecond clock."""

    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    """Fresh ledger with the reference song registered as id 1."""
    from royalty_distributor import RoyaltyDistributor

    return RoyaltyDistributor(admin=ADMIN, songs=[make_song()], clock=clock)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset the global metrics collector between tests."""
    from monitoring import metrics

    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(scope="function")
def memory_storage():
    from storage import MemoryStorage

    return MemoryStorage()


@pytest.fixture(scope="function")
def flask_app(memory_storage):
    """Create Flask test app with a fresh ledger for each test."""
    from api import create_app

    app = create_app(memory_storage)
    app.config['TESTING'] = True
    return app


@pytest.fixture(scope="function")
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def test_auth_headers():
    """Headers for authenticated requests."""
    return {
        "Content-Type": "application/json",
        "X-API-Key": "test-api-key-12345"
    }
