"""
Thinking Monitor - Wire Events & Validation
============================================

The closed universe of inbound events, one pydantic model per kind,
discriminated on the ``type`` field. ``validate_event`` is the only way
a raw payload becomes a typed event; it is pure and never touches a store.
"""

import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.records import (
    HookDecisionValue,
    HookType,
    SubagentStatus,
    TaskStatus,
)


# ==========================================================================
# Errors
# ==========================================================================

class EventValidationError(ValueError):
    """A payload failed validation; ``field`` names the first offender."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(message)


class UnknownEventKindError(EventValidationError):
    def __init__(self, kind: Any):
        super().__init__("type", f"unknown event kind: {kind}")
        self.kind = kind


class UnknownHookTypeError(EventValidationError):
    def __init__(self, hook_type: Any):
        super().__init__("hook_type", f"unknown hook type: {hook_type}")
        self.hook_type = hook_type


# ==========================================================================
# Event Kinds
# ==========================================================================

class EventKind(str, Enum):
    """Discriminant values accepted on the ingestion endpoint"""
    SESSION_START = "session_start"
    SESSION_STOP = "session_stop"
    THINKING = "thinking"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    HOOK_EXECUTION = "hook_execution"
    AGENT_START = "agent_start"
    AGENT_STOP = "agent_stop"
    SUBAGENT_MAPPING = "subagent_mapping"
    PLAN_UPDATE = "plan_update"
    PLAN_DELETE = "plan_delete"
    TEAM_UPDATE = "team_update"
    TASK_UPDATE = "task_update"
    MESSAGE_SENT = "message_sent"
    TASK_COMPLETED = "task_completed"
    TEAMMATE_IDLE = "teammate_idle"


# ==========================================================================
# Field Types
# ==========================================================================

_ID_RE = re.compile(settings.ID_PATTERN)


def _check_identifier(value: str) -> str:
    if len(value) > settings.MAX_ID_LENGTH:
        raise ValueError(f"must be at most {settings.MAX_ID_LENGTH} characters")
    if not _ID_RE.fullmatch(value):
        raise ValueError("contains characters outside [A-Za-z0-9._-]")
    return value


def _normalize_subagent_status(value: Any) -> Any:
    """Producers report success/failure/cancelled; the store speaks completed/failed."""
    if value is None:
        return SubagentStatus.COMPLETED
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in ("success", "completed"):
            return SubagentStatus.COMPLETED
        if lowered in ("failure", "failed", "cancelled"):
            return SubagentStatus.FAILED
        if lowered == "running":
            return SubagentStatus.RUNNING
    return value


NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
Identifier = Annotated[str, StringConstraints(min_length=1), AfterValidator(_check_identifier)]
AgentStatusField = Annotated[SubagentStatus, BeforeValidator(_normalize_subagent_status)]


class WireModel(BaseModel):
    """Base for inbound models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# ==========================================================================
# Session & Thinking
# ==========================================================================

class SessionStartEvent(WireModel):
    type: Literal["session_start"]
    session_id: Identifier
    timestamp: NonEmptyStr
    working_directory: str


class SessionStopEvent(WireModel):
    type: Literal["session_stop"]
    session_id: Identifier
    timestamp: NonEmptyStr


class ThinkingEvent(WireModel):
    type: Literal["thinking"]
    session_id: Identifier
    timestamp: NonEmptyStr
    content: str
    agent_id: Optional[Identifier] = None


# ==========================================================================
# Tools & Hooks
# ==========================================================================

class ToolStartEvent(WireModel):
    type: Literal["tool_start"]
    session_id: Identifier
    timestamp: NonEmptyStr
    tool_name: NonEmptyStr
    tool_call_id: Identifier
    input: Any = None
    agent_id: Optional[Identifier] = None


class ToolEndEvent(WireModel):
    type: Literal["tool_end"]
    session_id: Identifier
    timestamp: NonEmptyStr
    tool_name: NonEmptyStr
    tool_call_id: Identifier
    output: Any = None
    duration_ms: Optional[float] = Field(default=None, ge=0)
    agent_id: Optional[Identifier] = None


class HookExecutionEvent(WireModel):
    type: Literal["hook_execution"]
    session_id: Identifier
    timestamp: NonEmptyStr
    hook_type: HookType
    decision: HookDecisionValue
    hook_name: NonEmptyStr
    output: str
    tool_name: Optional[str] = None
    tool_call_id: Optional[Identifier] = None
    agent_id: Optional[Identifier] = None


# ==========================================================================
# Subagents
# ==========================================================================

class AgentStartEvent(WireModel):
    type: Literal["agent_start"]
    session_id: Identifier
    timestamp: NonEmptyStr
    agent_id: Identifier
    agent_name: str
    parent_agent_id: Optional[Identifier] = None


class AgentStopEvent(WireModel):
    type: Literal["agent_stop"]
    agent_id: Identifier
    timestamp: NonEmptyStr
    session_id: Optional[Identifier] = None
    status: AgentStatusField = SubagentStatus.COMPLETED


class SubagentMappingInfo(WireModel):
    agent_id: Identifier
    parent_session_id: Identifier
    agent_name: str
    start_time: NonEmptyStr
    status: AgentStatusField
    end_time: Optional[str] = None
    parent_agent_id: Optional[Identifier] = None


class SubagentMappingEvent(WireModel):
    type: Literal["subagent_mapping"]
    timestamp: NonEmptyStr
    mappings: List[SubagentMappingInfo]


# ==========================================================================
# Plans
# ==========================================================================

class PlanUpdateEvent(WireModel):
    type: Literal["plan_update"]
    path: NonEmptyStr
    filename: NonEmptyStr
    content: str
    last_modified: float = Field(ge=0, allow_inf_nan=False)


class PlanDeleteEvent(WireModel):
    type: Literal["plan_delete"]
    path: NonEmptyStr
    filename: NonEmptyStr


# ==========================================================================
# Teams, Tasks & Messages
# ==========================================================================

class TeamMemberInfo(WireModel):
    name: NonEmptyStr
    agent_id: NonEmptyStr
    agent_type: str
    status: str = "active"


class TeamUpdateEvent(WireModel):
    type: Literal["team_update"]
    team_name: NonEmptyStr
    members: List[TeamMemberInfo]
    timestamp: Optional[str] = None


class TaskInfo(WireModel):
    id: NonEmptyStr
    subject: str
    status: TaskStatus
    owner: Optional[str] = None
    active_form: Optional[str] = None
    description: Optional[str] = None
    blocks: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)


class TaskUpdateEvent(WireModel):
    type: Literal["task_update"]
    team_id: NonEmptyStr
    tasks: List[TaskInfo]
    timestamp: Optional[str] = None


class MessageSentEvent(WireModel):
    type: Literal["message_sent"]
    sender: NonEmptyStr
    recipient: NonEmptyStr
    message_type: NonEmptyStr
    timestamp: NonEmptyStr
    summary: str = ""
    content: str = ""


class TaskCompletedEvent(WireModel):
    type: Literal["task_completed"]
    task_id: NonEmptyStr
    task_subject: str
    team_id: NonEmptyStr
    timestamp: NonEmptyStr


class TeammateIdleEvent(WireModel):
    type: Literal["teammate_idle"]
    teammate_name: NonEmptyStr
    timestamp: NonEmptyStr
    team_name: Optional[str] = None


# ==========================================================================
# Closed Union
# ==========================================================================

EVENT_MODELS: Dict[EventKind, Type[WireModel]] = {
    EventKind.SESSION_START: SessionStartEvent,
    EventKind.SESSION_STOP: SessionStopEvent,
    EventKind.THINKING: ThinkingEvent,
    EventKind.TOOL_START: ToolStartEvent,
    EventKind.TOOL_END: ToolEndEvent,
    EventKind.HOOK_EXECUTION: HookExecutionEvent,
    EventKind.AGENT_START: AgentStartEvent,
    EventKind.AGENT_STOP: AgentStopEvent,
    EventKind.SUBAGENT_MAPPING: SubagentMappingEvent,
    EventKind.PLAN_UPDATE: PlanUpdateEvent,
    EventKind.PLAN_DELETE: PlanDeleteEvent,
    EventKind.TEAM_UPDATE: TeamUpdateEvent,
    EventKind.TASK_UPDATE: TaskUpdateEvent,
    EventKind.MESSAGE_SENT: MessageSentEvent,
    EventKind.TASK_COMPLETED: TaskCompletedEvent,
    EventKind.TEAMMATE_IDLE: TeammateIdleEvent,
}


def event_kind(event: WireModel) -> EventKind:
    return EventKind(event.type)  # type: ignore[attr-defined]


# ==========================================================================
# Validation
# ==========================================================================

def _first_error(exc: ValidationError) -> EventValidationError:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "body"

    if error["type"] == "missing":
        return EventValidationError(field, f"{field} is required")

    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return EventValidationError(field, f"{field}: {message}")


def validate_event(raw: Any) -> WireModel:
    """
    Validate a raw payload against the model declared by its ``type``.

    Args:
        raw: Parsed JSON body

    Returns:
        The typed, immutable event

    Raises:
        UnknownEventKindError: ``type`` is not one of ``EventKind``
        EventValidationError: first missing or malformed field
    """
    if not isinstance(raw, dict):
        raise EventValidationError("body", "event must be a JSON object")

    kind = raw.get("type")
    if not isinstance(kind, str) or not kind:
        raise EventValidationError("type", "type is required and must be a string")

    try:
        model = EVENT_MODELS[EventKind(kind)]
    except ValueError:
        raise UnknownEventKindError(kind) from None

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise _first_error(exc) from None
