"""Pytest configuration and fixtures."""

import asyncio
import copy
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.client.api import FormApiError
from app.modules.ai.client import Generation
from app.modules.forms.service import ProgressSnapshot
from app.stores.token_store import MemoryTokenStore


# ============================================================================
# Time
# ============================================================================


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_store(clock) -> MemoryTokenStore:
    return MemoryTokenStore(clock=clock)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def mock_session():
    """Mock AsyncSession returning SQLAlchemy-like result objects."""
    session = AsyncMock()

    mock_result = MagicMock()
    mock_scalars = MagicMock()
    mock_scalars.all.return_value = []
    mock_result.scalars.return_value = mock_scalars
    mock_result.scalar_one_or_none.return_value = None
    mock_result.one.return_value = (0, 0, 0)

    session.execute = AsyncMock(return_value=mock_result)
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session


# ============================================================================
# Application
# ============================================================================


class FakeTextClient:
    def __init__(self, text: str = "Improved text", tokens_used: int = 120):
        self.text = text
        self.tokens_used = tokens_used
        self.prompts: list[str] = []

    async def generate(self, prompt: str):
        self.prompts.append(prompt)
        return Generation(text=self.text, tokens_used=self.tokens_used)

    def estimate_cost(self, tokens_used: int) -> float:
        return tokens_used / 1_000_000 * 0.1


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def http_store() -> MemoryTokenStore:
    """Token store on wall-clock time, shared with the app under test."""
    return MemoryTokenStore()


@pytest.fixture
def app(mock_session, http_store, text_client):
    from app.db.postgres import get_db_session
    from app.db.redis import get_token_store
    from app.main import create_app
    from app.modules.ai.client import get_text_client

    application = create_app(use_lifespan=False)

    async def mock_get_session():
        yield mock_session

    application.dependency_overrides[get_db_session] = mock_get_session
    application.dependency_overrides[get_token_store] = lambda: http_store
    application.dependency_overrides[get_text_client] = lambda: text_client
    return application


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Form data
# ============================================================================


@pytest.fixture
def complete_form() -> dict[str, dict[str, Any]]:
    return {
        "step1": {
            "fullName": "Ada Lovelace",
            "email": "ada@example.com",
            "phone": "+44 20 7946 0000",
            "location": "London, UK",
        },
        "step2": {
            "currentPosition": "Engineer",
            "company": "Analytical Engines",
            "yearsOfExperience": 5,
            "keyAchievements": "Published the first algorithm for a machine",
        },
        "step3": {
            "primarySkills": "Mathematics, algorithms",
            "programmingLanguages": "Python",
            "frameworksAndTools": "FastAPI, SQLAlchemy",
        },
        "step4": {
            "motivation": "I want to build machines that compute for everyone.",
            "startDate": "2026-11-01",
        },
    }


class FakeProgressBackend:
    def __init__(self, snapshot: ProgressSnapshot | None = None, save_delay: float = 0):
        self.snapshot = snapshot
        self.save_delay = save_delay
        self.saved: list[tuple[int, dict]] = []
        self.loads = 0
        self.fail = False

    async def load_progress(self) -> ProgressSnapshot | None:
        self.loads += 1
        return self.snapshot

    async def save_progress(self, current_step: int, form_data: dict) -> None:
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        if self.fail:
            raise FormApiError(503, "Service temporarily unavailable")
        self.saved.append((current_step, copy.deepcopy(form_data)))
        self.snapshot = ProgressSnapshot(current_step=current_step, form_data=copy.deepcopy(form_data))


@pytest.fixture
def backend() -> FakeProgressBackend:
    return FakeProgressBackend()


@pytest.fixture
def backend_factory():
    return FakeProgressBackend
