"""
TalentDesk Backend: Test Configuration (conftest.py)
====================================================

Shared pytest fixtures. No test needs PostgreSQL: services receive a mocked
AsyncSession, and API tests override the session and user dependencies.

Fixtures:
    mock_db_session   AsyncMock standing in for AsyncSession
    make_user         factory for transient User rows with a given role
    temp_storage      per-test storage directory
    test_client       httpx AsyncClient over ASGITransport (no server)
    login_as          overrides the current user for API tests
"""

import os
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before anything imports talentdesk.config
_TEST_ROOT = tempfile.mkdtemp(prefix="talentdesk_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_ROOT, "storage")
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["EMAIL_DELIVERY_MODE"] = "log"
os.environ["LOG_LEVEL"] = "WARNING"

from talentdesk.models import User  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def result_of(scalar=None, scalars=None, rows=None):
    """
    Builds what `await db.execute(...)` returns for the common accessors:
    scalar_one_or_none / scalar_one / scalar, scalars().all(), all().
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = list(scalars or [])
    result.all.return_value = list(rows or [])
    return result


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Usage:
        mock_db_session.execute.return_value = result_of(scalar=candidate)
        mock_db_session.execute.side_effect = [result_of(...), result_of(...)]
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def make_user():
    def _make(role: str = "RECRUITER", **overrides) -> User:
        now = datetime.now(timezone.utc)
        values = {
            "id": uuid.uuid4(),
            "email": f"{role.lower()}-{uuid.uuid4().hex[:6]}@talentdesk.test",
            "name": role.capitalize(),
            "role": role,
            "password_hash": "$2b$12$notarealhashnotarealhashnotarealhashnotarealhash0",
            "activated_at": now,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
            "pipeline_assignments": [],
        }
        values.update(overrides)
        return User(**values)

    return _make


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest_asyncio.fixture
async def test_client(mock_db_session):
    """
    HTTPX AsyncClient talking to the app in-process.

    The database dependency yields `mock_db_session`, so a request that
    reaches a service without further setup sees empty results.
    """
    from talentdesk.database import get_db_session
    from talentdesk.main import app

    async def _session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(make_user):
    """
    Makes `get_current_user` return a user of the given role.

        user = login_as("VIEWER")
    """
    from talentdesk.dependencies import get_current_user
    from talentdesk.main import app

    def _login(role: str = "RECRUITER", user: Optional[User] = None) -> User:
        current = user or make_user(role)
        app.dependency_overrides[get_current_user] = lambda: current
        return current

    return _login


@pytest.fixture
def db_result():
    """The `result_of` helper as a fixture, for test modules."""
    return result_of
