"""
tests/conftest.py -- Shared fixtures for worldkeeper tests.

This module provides:
  - db_url: an isolated SQLite *file* database per test (under tmp_path)
  - credential_store / world_store: both stores pointed at that database
  - tokens: a TokenService with fixed secrets
  - sessions / memberships / coordinates: the three managers
  - alice, bob: registered users with known passwords

Design: a file database, not ':memory:'. Plain ':memory:' is per-connection,
so the two stores (and the worker threads in the concurrency tests) would
each see a blank schema. A file under tmp_path is shared by every connection
and thrown away with the test.

DEBUG is set before any worldkeeper import so a stray get_settings() call
auto-generates secrets instead of raising.

bcrypt runs at 4 rounds here; 12 would make the suite crawl.
"""

from __future__ import annotations

import os
from collections.abc import Generator

os.environ.setdefault("DEBUG", "true")

import pytest

from auth.models import Credential
from auth.session import AuthSessionManager
from auth.store import CredentialStore
from auth.tokens import TokenService
from world.coordinates import CoordinateManager
from world.membership import TenantMembershipManager
from world.store import WorldStore

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"
TEST_BCRYPT_ROUNDS = 4


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'worldkeeper_test.db'}"


@pytest.fixture
def credential_store(db_url: str) -> Generator[CredentialStore, None, None]:
    store = CredentialStore(db_url)
    yield store
    store.close()


@pytest.fixture
def world_store(db_url: str, credential_store: CredentialStore) -> Generator[WorldStore, None, None]:
    store = WorldStore(db_url)
    yield store
    store.close()


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def sessions(credential_store: CredentialStore, tokens: TokenService) -> AuthSessionManager:
    return AuthSessionManager(credential_store, tokens, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def memberships(world_store: WorldStore) -> TenantMembershipManager:
    return TenantMembershipManager(world_store)


@pytest.fixture
def coordinates(world_store: WorldStore) -> CoordinateManager:
    return CoordinateManager(world_store)


@pytest.fixture
def alice(sessions: AuthSessionManager) -> Credential:
    """Registered user alice / password 'correct'."""
    result = sessions.register("alice", "alice@x.com", "correct")
    assert result.ok
    return result.value


@pytest.fixture
def bob(sessions: AuthSessionManager) -> Credential:
    """Registered user bob / password 'hunter22'."""
    result = sessions.register("bob", "bob@x.com", "hunter22")
    assert result.ok
    return result.value
