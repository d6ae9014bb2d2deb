"""
Shared pytest fixtures.

Each test gets its own SQLite file under tmp_path, seeded with the default
roles and claims.
"""

import sys
from pathlib import Path

import pytest

src_path = str((Path(__file__).parent / "src").absolute())
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from warden.auth import JWTHandler, TokenSettings, UserDatabase, UserManager, seed_defaults


TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture
def settings():
    return TokenSettings(secret_key=TEST_SECRET, issuer="warden-test", audience="warden-clients")


@pytest.fixture
def jwt_handler(settings):
    return JWTHandler(settings)


@pytest.fixture
def store(tmp_path):
    return UserDatabase(tmp_path / "users.db")


@pytest.fixture
async def roles(store):
    """Seeded default roles keyed by RoleName."""
    return await seed_defaults(store)


@pytest.fixture
async def manager(store, jwt_handler, roles):
    return UserManager(store, jwt_handler)
