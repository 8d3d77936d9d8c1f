"""Shared fixtures: SQLite database per test and a recording job dispatcher."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="casevia-tests-")
os.environ["CASEVIA_DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["CASEVIA_CACHE_ENABLED"] = "false"
os.environ["CASEVIA_WEBHOOK_SECRET"] = "whsec-test"
os.environ["CASEVIA_PUBLIC_BASE_URL"] = ""
os.environ["CASEVIA_RESEND_API_KEY"] = ""

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from helpers import RecordingDispatcher  # noqa: E402

from casevia.core.settings import get_settings  # noqa: E402
from casevia.db.base import dispose_engine, get_session_factory, init_models  # noqa: E402

get_settings.cache_clear()


@pytest_asyncio.fixture(autouse=True)
async def database():
    await init_models(drop=True)
    yield
    await dispose_engine()


@pytest_asyncio.fixture
async def session():
    async with get_session_factory()() as s:
        yield s


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()
