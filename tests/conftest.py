"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite://")
# Increase rate limit for testing
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

from bizfit_api.config import Settings  # noqa: E402
from bizfit_api.content_cache import ContentGate, InMemoryContentCache, SQLContentStore  # noqa: E402
from bizfit_api.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from bizfit_api.models import QuizAnswers  # noqa: E402
from bizfit_api.openai_client import LLMResponse  # noqa: E402


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    """Reset cached settings and the HTTP rate limiter before each test."""
    from bizfit_api.config import get_settings

    get_settings.cache_clear()

    # Reset rate limiter storage
    try:
        from bizfit_api.main import limiter

        if hasattr(limiter, "_storage") and limiter._storage:
            limiter._storage.reset()
    except (ImportError, AttributeError):
        pass

    yield
    get_settings.cache_clear()


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Settings]:
    """Fixture to set test settings."""

    def _mock_settings(**kwargs: str) -> Settings:
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        from bizfit_api.config import get_settings

        get_settings.cache_clear()
        return get_settings()

    return _mock_settings


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def answers() -> QuizAnswers:
    """A quiz submission with every answer at its default."""
    return QuizAnswers()


@pytest.fixture
def driven_answers() -> QuizAnswers:
    """A highly motivated, tech-savvy, risk-tolerant user."""
    return QuizAnswers(
        risk_comfort_level=5,
        self_motivation_level=5,
        tech_skills_rating=5,
        organization_level=4,
        creative_work_enjoyment=4,
        weekly_time_commitment=30,
        upfront_investment=5000,
        success_income_goal=10000,
        first_income_timeline="no-rush",
    )


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


class FakeLLMClient:
    """Stands in for OpenAIClient; replies come from a queue.

    A queued exception is raised instead of returned. When the queue is
    empty the last reply is repeated.
    """

    model = "fake-model"

    def __init__(self, *replies: str | BaseException):
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> LLMResponse:
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, **kwargs})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return LLMResponse(content=reply, tokens_used=42, finish_reason="stop", model=self.model)

    async def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> LLMResponse:
        return await self.complete(messages[0]["content"], messages[-1]["content"], **kwargs)


@pytest.fixture
def make_llm() -> Callable[..., FakeLLMClient]:
    return FakeLLMClient


@pytest.fixture
def memory_gate() -> ContentGate:
    return ContentGate(InMemoryContentCache(ttl_seconds=60, max_entries=100))


@pytest.fixture
def sql_store() -> Iterator[SQLContentStore]:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield SQLContentStore(create_session_factory(engine))
    engine.dispose()
