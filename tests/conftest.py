"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp row store.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("GOOGLE_SEARCH_API_KEY", "")
os.environ.setdefault("GOOGLE_SEARCH_ENGINE_ID", "")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_planner.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteRowStore backed by a temp file."""
    from src.data.db import SQLiteRowStore
    return SQLiteRowStore(db_path=tmp_db_path, habit_horizon_days=90)


@pytest.fixture
def service(store):
    """ResourceService over the temp store, normalizing times in UTC."""
    from src.core.resource_service import ResourceService
    return ResourceService(store, timezone="UTC")


@pytest.fixture
def dispatcher(service):
    """ToolDispatcher with web search disabled."""
    from src.core.dispatcher import ToolDispatcher
    return ToolDispatcher(service, search_api_key="", search_engine_id="")
