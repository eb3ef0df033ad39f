# Group Lunch Order Test Suite - Shared Configuration and Fixtures
#
# This module provides:
# - Environment for the app under test (SQLite file, temp data/upload dirs,
#   eager Celery, a bootstrap admin) set before group_order is imported
# - Async session fixture for service-level tests (own database per test)
# - TestClient fixtures for API tests, anonymous and signed-in

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# =============================================================================
# CONFIGURATION
# =============================================================================

TEST_ROOT = Path(tempfile.mkdtemp(prefix="group_order_tests_"))
TEST_DB = TEST_ROOT / "api.db"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "lunch-admin-pw"

os.environ.update({
    "ENV_MODE": "development",
    "DEBUG": "false",
    "DATABASE_URL": f"sqlite+aiosqlite:///{TEST_DB}",
    "DATA_DIRECTORY": str(TEST_ROOT / "data"),
    "UPLOAD_DIRECTORY": str(TEST_ROOT / "uploads"),
    "CELERY_TASK_ALWAYS_EAGER": "true",
    "SECRET_KEY": "test-secret-key",
    "ADMIN_EMAIL": ADMIN_EMAIL,
    "ADMIN_PASSWORD": ADMIN_PASSWORD,
    "TIMEZONE": "Asia/Taipei",
})

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from group_order import models  # noqa: F401
from group_order.database import Base
from group_order.services.excel_manager import ExcelManager


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def in_one_hour() -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
async def session(tmp_path):
    """Fresh database per test, for calling the services directly."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'service.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as db:
        yield db

    await engine.dispose()


# =============================================================================
# API FIXTURES
# =============================================================================

def reset_api_database() -> None:
    engine = create_engine(f"sqlite:///{TEST_DB}")
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    engine.dispose()


@pytest.fixture
def sync_engine():
    """Direct access to the API database (e.g. to move a deadline into the past)."""
    engine = create_engine(f"sqlite:///{TEST_DB}")
    yield engine
    engine.dispose()


@pytest.fixture
def client():
    reset_api_database()
    ExcelManager.clear_all()

    from group_order.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client) -> dict:
    """Bearer header for the bootstrap admin, taken from the login cookie."""
    from group_order.core.config import get_settings

    response = client.post(
        "/auth/login",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    token = response.cookies[get_settings().session_cookie_name]
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store(client, admin_headers) -> dict:
    response = client.post(
        "/api/stores",
        data={"name": "Golden Bento", "phone": "02-2345-6789"},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def group(client, store) -> dict:
    response = client.post(
        "/api/groups",
        json={"store_id": store["id"], "end_time": in_one_hour(), "name": "Lunch"},
    )
    assert response.status_code == 201, response.text
    return response.json()
