"""
tests/conftest.py -- Shared test fixtures for GlobalCart Auth.

This module provides:
  - RecordingNotifier: captures outbound messages; can be told to fail
  - store / notifier / accounts: isolated in-memory objects for unit tests
  - make_user(): insert a user with a known password
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route dependencies in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. Each api_client gets its own uniquely named database.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. Rate limits are raised so the
limiter never trips inside the test session.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("FORGOT_PASSWORD_RATE_LIMIT", "1000/minute")
os.environ.setdefault("EMAIL_BACKEND", "console")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.errors import DeliveryError
from auth.lifecycle import AccountService
from auth.models import Role, User
from auth.notifier import Notifier
from auth.passwords import hash_password
from auth.store import UserStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingNotifier(Notifier):
    """Notifier double. Records every send; raises DeliveryError when fail=True.

    The message is recorded before failing so tests can try the token that
    was generated for an undelivered email.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, destination: str, subject: str, body: str) -> None:
        self.sent.append((destination, subject, body))
        if self.fail:
            raise DeliveryError()

    def last_reset_token(self) -> str:
        """Extract the plaintext token from the most recent reset link."""
        _, _, body = self.sent[-1]
        for line in body.splitlines():
            if "/password/reset/" in line:
                return line.strip().rsplit("/", 1)[-1]
        raise AssertionError(f"No reset link in message body: {body!r}")


def make_user(
    store: UserStore,
    email: str = "a@x.com",
    password: str = "secret1",
    role: Role = Role.user,
    name: str = "Ann",
) -> User:
    """Insert a user and return it as read back without its secret."""
    uid = store.create_user(User(name=name, email=email, role=role, hashed_password=hash_password(password)))
    return store.get_by_id(uid)


def run(coro):
    """Drive one AccountService coroutine to completion."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def accounts(store: UserStore, notifier: RecordingNotifier) -> AccountService:
    return AccountService(store, notifier)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and recording notifier into app.state so routes see
    an isolated database and no email leaves the process.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.notifier = notifier
        app.state.accounts = AccountService(user_store, notifier)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, UserStore, RecordingNotifier], None, None]:
    """Yield (client, store, notifier) over the real FastAPI app.

    Function-scoped so each test starts with an empty database and an empty
    cookie jar.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    recorder = RecordingNotifier()

    app.router.lifespan_context = _patch_lifespan(user_store, recorder)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, recorder

    user_store.close()
