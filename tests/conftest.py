from __future__ import annotations

"""Pytest fixtures for the Seat Sync tests.

Supabase is replaced by an in-memory table store and the upstream platform by
an ``httpx.MockTransport`` so the engine and the request pipeline run end-to-end
without network or database round-trips. Every delay is shrunk to zero or a
few milliseconds through :class:`EngineSettings`.
"""

import os
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from jose import jwt as jose_jwt
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("FRONTEND_ORIGIN", "https://dashboard.test")

# Ensure project root on PYTHONPATH so `import seatsync` works when pytest is run
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from seatsync import JWT_SECRET  # noqa: E402
from seatsync.main import create_app, limiter  # noqa: E402, WPS433
from seatsync.services.engine import SeatEngine  # noqa: E402
from seatsync.settings import EngineSettings  # noqa: E402
from seatsync.utils.dependencies import get_supabase_async  # noqa: E402
from tests.supabase_stub import MemorySupabase  # noqa: E402
from tests.upstream_stub import BASE_URL, FakePlatform  # noqa: E402

USER = "user-1"
OTHER_USER = "user-2"
ADMIN_EMAIL = "owner@team.test"


def fast_settings(**overrides: Any) -> EngineSettings:
    values: dict[str, Any] = dict(
        upstream_base_url=BASE_URL,
        backoff_seconds=0,
        refresh_interval_seconds=60,
        stagger_seconds=0,
        refresh_all_pause_seconds=0,
        invite_delete_pause_seconds=0,
        bulk_gap_min_seconds=0,
        bulk_gap_max_seconds=0,
        sweep_pause_seconds=0,
    )
    values.update(overrides)
    return EngineSettings(**values)


def make_token(user_id: str = USER, claim: str = "sub") -> str:
    return jose_jwt.encode({claim: user_id}, JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str = USER) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def seed_account(
    store: MemorySupabase,
    account_id: str = "acc-1",
    *,
    user_id: str = USER,
    admin_email: str = ADMIN_EMAIL,
    allowed_members: list[str] | None = None,
    max_members: int = 7,
    upstream_account_id: str | None = "up-1",
    **extra: Any,
) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    row = {
        "id": account_id,
        "user_id": user_id,
        "name": f"Team {account_id}",
        "admin_email": admin_email,
        "upstream_account_id": upstream_account_id,
        "access_token": f"token-{account_id}",
        "allowed_members": allowed_members or [],
        "max_members": max_members,
        "session_status": "active",
        "last_error": None,
        "last_error_at": None,
        "error_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    row.update(extra)
    store.tables.setdefault("accounts", []).append(row)
    return row


class FakeChannel:
    """Stand-in for a live channel: records events, open until told otherwise."""

    def __init__(self):
        self.is_open = True
        self.events = []

    async def send(self, event):
        self.events.append(event)
        return self.is_open

    def mark_closed(self):
        self.is_open = False


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def store() -> MemorySupabase:
    return MemorySupabase()


@pytest.fixture()
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture()
def settings() -> EngineSettings:
    return fast_settings()


@pytest.fixture()
def engine(store, platform, settings) -> SeatEngine:
    return SeatEngine(store, settings, transport=platform.transport())


@pytest.fixture()
def app(engine, store) -> FastAPI:
    application = create_app(engine)

    async def _store():
        yield store

    application.dependency_overrides[get_supabase_async] = _store
    return application


@pytest.fixture()
def api_client(app) -> TestClient:
    with TestClient(app) as client:
        yield client
