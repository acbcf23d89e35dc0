"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of gangledger.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402

from gangledger.config import LedgerConfig, parse_config  # noqa: E402
from gangledger.database.models import Base  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

GUILD_ID = "1000"

RAW_CONFIG: dict = {
    "community_name": "Test Gangs",
    "bot_prefix": "!",
    "guild_id": GUILD_ID,
    "dashboard_port": 8000,
    "admin_role_id": "42",
    "default_group_id": "sea-kings",
    "groups": [
        {"group_id": "sea-kings", "name": "Sea Kings", "role_id": "501", "channel_id": "901"},
        {"group_id": "thunder", "name": "Thunder Titans", "role_id": "502", "channel_id": "902"},
        {"group_id": "fluffy", "name": "Fluffy Meownsters", "role_id": "503", "channel_id": "903"},
    ],
}


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all GangLedger tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in ``run_db`` and by the
    concurrency tests).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def cfg() -> LedgerConfig:
    return parse_config(RAW_CONFIG)


@pytest.fixture
def seeded_engine(db_engine: Engine, cfg: LedgerConfig) -> Engine:
    """Engine with the three configured gangs already seeded."""
    from gangledger.database.seed import seed_groups

    seed_groups(db_engine, cfg)
    return db_engine


@pytest.fixture
def register(seeded_engine: Engine, cfg: LedgerConfig):
    """Factory: register a member into a gang (default ``sea-kings``)."""
    from gangledger.services.membership_service import register_or_update_member

    def _register(member_id: str, group_id: str = "sea-kings", name: str | None = None):
        group = cfg.get_group(group_id)
        return register_or_update_member(
            seeded_engine,
            guild_id=GUILD_ID,
            member_id=member_id,
            display_name=name or f"user-{member_id}",
            group_id=group_id,
            group_name=group.name if group else group_id,
            categories=cfg.member_categories,
        )

    return _register


@pytest.fixture
def award(seeded_engine: Engine, cfg: LedgerConfig):
    """Factory: award (or deduct) member points in a category."""
    from gangledger.services.ledger_service import award_member_points

    def _award(member_id: str, points: int, category: str = "games", **kwargs):
        return award_member_points(
            seeded_engine,
            guild_id=GUILD_ID,
            member_id=member_id,
            points=points,
            category=category,
            categories=cfg.member_categories,
            **kwargs,
        )

    return _award


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from gangledger.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


@pytest.fixture
def client(seeded_engine: Engine, cfg: LedgerConfig):
    """FastAPI TestClient wired to the seeded in-memory database."""
    from fastapi.testclient import TestClient

    from gangledger.api.deps import get_config, get_engine
    from gangledger.api.main import app

    app.dependency_overrides[get_engine] = lambda: seeded_engine
    app.dependency_overrides[get_config] = lambda: cfg
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
