"""
Test Configuration

Shared fixtures and test utilities.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from autonomy.config import LoopSettings, SafetySettings, Settings
from autonomy.observability.events import EventBus
from autonomy.observability.logging import BufferHandler, LogLevel, StructuredLogger
from autonomy.reasoning.stub_provider import ScriptedReasoningProvider
from autonomy.runtime import create_engine


def make_settings(safety: dict | None = None, **loop) -> Settings:
    """Settings with explicit loop and safety overrides."""
    return Settings(loop=LoopSettings(**loop), safety=SafetySettings(**(safety or {})))


@pytest.fixture
def log_buffer() -> BufferHandler:
    return BufferHandler()


@pytest.fixture
def logger(log_buffer) -> StructuredLogger:
    """Logger capturing records in memory."""
    return StructuredLogger("test", level=LogLevel.DEBUG, handlers=[log_buffer])


@pytest.fixture
def bus(logger) -> EventBus:
    return EventBus(logger=logger)


@pytest.fixture
def provider() -> ScriptedReasoningProvider:
    """Scripted provider; every task is a confident, accepted leaf by default."""
    return ScriptedReasoningProvider()


@pytest.fixture
def make_engine(provider, logger):
    """
    Build an engine around the scripted provider.

    Keyword arguments are loop settings; `safety` takes safety settings.
    """

    def _make(
        *,
        safety: dict | None = None,
        policy_engine=None,
        mode_gate=None,
        metrics=None,
        **loop,
    ):
        return create_engine(
            provider,
            settings=make_settings(safety, **loop),
            policy_engine=policy_engine,
            mode_gate=mode_gate,
            metrics=metrics,
            logger=logger,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
async def app(engine):
    """Create test application around the test engine."""
    from autonomy.api import create_app

    yield create_app(engine=engine, settings=make_settings())


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
