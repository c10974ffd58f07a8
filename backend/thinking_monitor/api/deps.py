"""
Thinking Monitor - API Dependencies
====================================

Shared dependencies for FastAPI endpoints. Tests swap these out through
``app.dependency_overrides``.
"""

from typing import Annotated, Optional

from fastapi import Depends

from thinking_monitor.core.monitor.engine import MonitorEngine, get_engine
from thinking_monitor.core.monitor.websocket_hub import ConnectionManager, get_connection_manager
from thinking_monitor.core.rate_limiter import RateLimiter


# ==========================================================================
# Engine & Fan-out
# ==========================================================================

def engine_dependency() -> MonitorEngine:
    return get_engine()


def connection_manager_dependency() -> ConnectionManager:
    return get_connection_manager()


# ==========================================================================
# Rate Limiting
# ==========================================================================

_rate_limiter: Optional[RateLimiter] = None


def rate_limiter_dependency() -> RateLimiter:
    """Get or create the global ingestion rate limiter"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


EngineDep = Annotated[MonitorEngine, Depends(engine_dependency)]
ConnectionManagerDep = Annotated[ConnectionManager, Depends(connection_manager_dependency)]
RateLimiterDep = Annotated[RateLimiter, Depends(rate_limiter_dependency)]
