"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of devkit.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite has no JSONB; render it as TEXT and let SQLAlchemy's JSON
# serializer handle the values.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from devkit.database.models import Badge, Base, User, UserStats  # noqa: E402

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


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all DevKit tables.

    Uses StaticPool so every session (and ``asyncio.to_thread`` worker)
    shares the same in-memory database.
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
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that need real concurrent connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'devkit.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------
def add_user(
    engine: Engine,
    user_id: int,
    *,
    is_admin: bool = False,
    **stats: int,
) -> int:
    """Insert a user; pass counters (``templates_created=5``) to add a stats row."""
    with Session(engine) as session:
        session.add(User(id=user_id, username=f"user{user_id}", is_admin=is_admin))
        if stats:
            session.add(UserStats(user_id=user_id, **stats))
        session.commit()
    return user_id


def add_badge(
    engine: Engine,
    name: str,
    *,
    metric: str = "templatesCreated",
    operator: str = "gte",
    target=5,
    rarity: str = "common",
    points_required: int = 0,
    xp_bonus: int = 0,
    category: str = "creator",
    active: bool = True,
) -> int:
    """Insert a catalog entry directly (bypassing validation) and return its id."""
    with Session(engine) as session:
        badge = Badge(
            name=name,
            description=f"{name} description",
            category=category,
            criteria={"metric": metric, "operator": operator, "target": target},
            points_required=points_required,
            rarity=rarity,
            xp_bonus=xp_bonus,
            active=active,
        )
        session.add(badge)
        session.commit()
        return badge.id


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def make_token(sub: str = "1", username: str = "FixtureUser", *, is_admin: bool = False) -> str:
    """Create a bearer JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from devkit.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    return make_token("99999", "FixtureAdmin", is_admin=True)
