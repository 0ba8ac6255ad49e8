"""Shared test fixtures.

Environment is set before any application module is imported so that
``config`` sees an in-memory database and no external capabilities.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""
os.environ["AI_PROVIDER_ENABLED"] = "false"
os.environ["SENTIMENT_ENABLED"] = "false"
os.environ["ANALYSIS_DELAY_SECONDS"] = "0"

import uuid

import pytest

from database import init_db, get_db_session


@pytest.fixture
async def db_session():
    """Initialize database for testing."""
    await init_db()
    async with get_db_session() as session:
        yield session


@pytest.fixture
def session_id():
    """Fresh session partition so tests never see each other's rows."""
    return f"test_{uuid.uuid4().hex[:8]}"
