"""
Thinking Monitor - Test Fixtures
=================================

Shared pytest fixtures for all tests.
"""

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from thinking_monitor.api.deps import (
    connection_manager_dependency,
    engine_dependency,
    rate_limiter_dependency,
)
from thinking_monitor.api.main import app
from thinking_monitor.core.monitor.engine import MonitorEngine
from thinking_monitor.core.monitor.websocket_hub import ConnectionManager
from thinking_monitor.core.rate_limiter import RateLimiter


# ==========================================================================
# Engine Fixtures
# ==========================================================================

class FakeClock:
    """Manually advanced wall clock for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock) -> MonitorEngine:
    """Provide a fresh engine with empty stores for each test."""
    return MonitorEngine(clock=clock)


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()


def _override(engine: MonitorEngine, limiter: RateLimiter, manager: ConnectionManager) -> None:
    app.dependency_overrides[engine_dependency] = lambda: engine
    app.dependency_overrides[rate_limiter_dependency] = lambda: limiter
    app.dependency_overrides[connection_manager_dependency] = lambda: manager


# ==========================================================================
# Client Fixtures
# ==========================================================================

@pytest_asyncio.fixture(scope="function")
async def client(
    engine: MonitorEngine,
    limiter: RateLimiter,
    manager: ConnectionManager,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with the engine override.
    """
    _override(engine, limiter, manager)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def ws_client(
    engine: MonitorEngine,
    limiter: RateLimiter,
    manager: ConnectionManager,
) -> Generator[TestClient, None, None]:
    """
    Synchronous client for WebSocket tests.

    Not entered as a context manager, so the lifespan (and its sweep) does
    not run against the global engine.
    """
    _override(engine, limiter, manager)
    yield TestClient(app)
    app.dependency_overrides.clear()


# ==========================================================================
# Event Fixtures
# ==========================================================================

@pytest.fixture
def tool_start_event() -> dict[str, Any]:
    return {
        "type": "tool_start",
        "sessionId": "S1",
        "toolCallId": "T1",
        "toolName": "Read",
        "timestamp": "t0",
        "input": "{}",
    }


@pytest.fixture
def tool_end_event() -> dict[str, Any]:
    return {
        "type": "tool_end",
        "sessionId": "S1",
        "toolCallId": "T1",
        "toolName": "Read",
        "timestamp": "t1",
        "output": "ok",
        "durationMs": 45,
    }


@pytest.fixture
def session_start_event() -> dict[str, Any]:
    return {
        "type": "session_start",
        "sessionId": "S1",
        "timestamp": "2026-01-15T10:00:00Z",
        "workingDirectory": "/home/dev/projects/thinking-monitor",
    }
