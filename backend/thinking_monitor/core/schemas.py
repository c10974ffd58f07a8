"""
Thinking Monitor - Pydantic Schemas
====================================

Response schemas for the HTTP surface.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


# ==========================================================================
# Ingestion
# ==========================================================================

class IngestResponse(BaseSchema):
    """Returned for every accepted event."""

    success: bool = True
    type: str


class ValidationErrorResponse(BaseSchema):
    """A rejected event, naming the first offending field."""

    error: str
    field: Optional[str] = None


# ==========================================================================
# Monitor Queries
# ==========================================================================

class AgentNameResponse(BaseSchema):
    agent_id: str
    name: str


class ChainLink(BaseSchema):
    """One task in a dependency chain with its incomplete blockers."""

    task_id: str
    blocked_by: List[str]
    task: Optional[Dict[str, Any]] = None


class DependencyChainResponse(BaseSchema):
    team_id: str
    task_id: str
    blocked: bool
    chain: List[ChainLink]


class MonitorStatusResponse(BaseSchema):
    """Connection and ingestion counters."""

    uptime_seconds: float
    events_received: int
    events_rejected: int
    events_by_type: Dict[str, int]
    subscribers: int
    websocket_connections: int
    last_seq: int
    sessions: int
    tool_calls: int
    pending_tool_calls: int
    subagents: int
    tasks: int
    teams: int
    hook_decisions: int
    plans: int


# ==========================================================================
# Common Response Schemas
# ==========================================================================

class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseSchema):
    """Health check response (liveness only)."""

    status: str
    version: str
    uptime_seconds: float
    timestamp: str
