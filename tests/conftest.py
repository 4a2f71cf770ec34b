"""
tests/conftest.py -- Shared test fixtures for asset tracker integration tests.

This module provides:
  - CapturingNotifier: records every OTP handed to it instead of mailing it
  - _make_test_stores(): creates isolated in-memory DBs for accounts + assets
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus the capturing notifier
  - rate_limits_on: turns the limiter back on for a single test
  - register_and_verify(): drives the full signup flow and returns a token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth module import:
get_settings() auto-generates SECRET_KEY in dev mode rather than raising,
and the minimum bcrypt cost keeps the suite fast.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import (get_settings() is cached).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from assets.store import AssetStore
from auth.models import OtpPurpose
from auth.notifier import DeliveryError
from auth.service import AuthService
from auth.store import AccountStore

# Auth routes allow 10 requests/minute per IP; the suite makes far more.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Notifier doubles
# ---------------------------------------------------------------------------


class CapturingNotifier:
    """Keeps every code it is asked to send, keyed by address."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, OtpPurpose]] = []
        self.fail = False

    def send_otp(self, address: str, code: str, purpose: OtpPurpose) -> None:
        if self.fail:
            raise DeliveryError("mail API unavailable")
        self.sent.append((address, code, purpose))

    def last_code(self, address: str, purpose: OtpPurpose = OtpPurpose.register) -> str:
        for sent_to, code, sent_purpose in reversed(self.sent):
            if sent_to == address and sent_purpose is purpose:
                return code
        raise AssertionError(f"no {purpose.value} code was sent to {address}")


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, AssetStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'assets').
    """
    accounts_url = f"sqlite:///file:test_accounts_{db_suffix}?mode=memory&cache=shared&uri=true"
    assets_url = f"sqlite:///file:test_assets_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(db_url=accounts_url), AssetStore(db_url=assets_url)


def _patch_lifespan(account_store: AccountStore, asset_store: AssetStore, auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.asset_store = asset_store
        app.state.notifier = auth_service.notifier
        app.state.auth_service = auth_service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def register_and_verify(
    client: TestClient,
    notifier: CapturingNotifier,
    email: str,
    password: str = "pw123456",
    username: str | None = None,
) -> str:
    """Register, redeem the emailed code, and return the access token."""
    body = {"email": email, "password": password}
    if username is not None:
        body["username"] = username
    resp = client.post("/auth/register", json=body)
    assert resp.status_code == 201, f"register failed: {resp.status_code} {resp.text}"
    code = notifier.last_code(email.strip().lower())
    resp = client.post("/auth/verify-otp", json={"email": email, "otp": code})
    assert resp.status_code == 200, f"verify failed: {resp.status_code} {resp.text}"
    return resp.json()["access_token"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def notifier() -> CapturingNotifier:
    return CapturingNotifier()


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    """Unit-test AccountStore on a private :memory: database."""
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, CapturingNotifier], None, None]:
    """Yield (client, notifier) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. Every
    OTP the service sends lands in the notifier, never in a response.
    """
    # One database pair per test module.
    account_store, asset_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    capture = CapturingNotifier()
    service = AuthService(account_store, capture)

    app.router.lifespan_context = _patch_lifespan(account_store, asset_store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, capture

    account_store.close()
    asset_store.close()


@pytest.fixture
def rate_limits_on() -> Generator[None, None, None]:
    """Re-enable the shared limiter for one test, with empty counters on both sides."""
    limiter.reset()
    limiter.enabled = True
    yield
    limiter.enabled = False
    limiter.reset()


@pytest.fixture(scope="module")
def signup(api_client):
    """Return a callable that registers + verifies an email and yields its token."""
    client, capture = api_client

    def _signup(email: str, password: str = "pw123456", username: str | None = None) -> str:
        return register_and_verify(client, capture, email, password=password, username=username)

    return _signup
