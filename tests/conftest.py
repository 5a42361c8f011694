"""Pytest fixtures: temporary SQLite database, scripted model, HTTP client."""

import os

# Before any jobdesk import: no Auth0, no Redis, a fake provider key.
os.environ["FF_USE_AUTH0"] = "false"
os.environ["FF_USE_REDIS"] = "false"
os.environ["FF_LLM_PROVIDER"] = "gemini"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "warning"

import pytest
from httpx import AsyncClient, ASGITransport

from jobdesk.core.config import get_settings
from jobdesk.core.database import close_db, get_session_factory, init_db
from jobdesk.core.dependencies import get_chat_model
from jobdesk.core.flags import get_flags
from jobdesk.factory import create_app

from scripted import ScriptedModel


@pytest.fixture
async def database(tmp_path, monkeypatch):
    """Fresh SQLite database file per test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'jobdesk.db'}")
    get_settings.cache_clear()
    get_flags.cache_clear()
    await init_db()

    yield

    await close_db()
    get_settings.cache_clear()
    get_flags.cache_clear()


@pytest.fixture
async def db(database):
    """A session on the test database. Commit before another session writes."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def model():
    return ScriptedModel()


@pytest.fixture
async def client(database, model):
    """Async HTTP client on a fresh app, with the scripted model injected."""
    app = create_app()
    app.dependency_overrides[get_chat_model] = lambda: model

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
