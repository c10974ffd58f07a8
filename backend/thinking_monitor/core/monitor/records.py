"""
Thinking Monitor - State Records
=================================

Keyed records held by the stores, plus the Change envelope the
publisher fans out. Identifiers are always producer-supplied.
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ==========================================================================
# Status Enums
# ==========================================================================

class ToolCallState(str, Enum):
    """Lifecycle of a tool call"""
    PENDING = "pending"
    COMPLETED = "completed"
    ORPHANED = "orphaned"      # end without start, or start that never ended


class SubagentStatus(str, Enum):
    """Lifecycle of a spawned sub-agent"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    """Task status as reported by the team task files"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MemberRole(str, Enum):
    LEADER = "leader"
    WORKER = "worker"


class HookDecisionValue(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class HookType(str, Enum):
    """Hook types that can report a decision"""
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    SUBAGENT_START = "SubagentStart"
    SUBAGENT_STOP = "SubagentStop"
    SESSION_START = "SessionStart"
    SESSION_STOP = "SessionStop"
    STOP = "Stop"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    TEAMMATE_IDLE = "TeammateIdle"
    TASK_COMPLETED = "TaskCompleted"


# ==========================================================================
# Helpers
# ==========================================================================

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; anything unparseable yields None."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def session_display_name(working_directory: Optional[str], session_id: Optional[str]) -> str:
    """Last path component of the working directory, else a short session id."""
    if working_directory:
        folder = working_directory.rstrip("/").split("/")[-1]
        if folder:
            return folder
    if session_id:
        return session_id[:8]
    return "unknown"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class RecordMixin:
    """Shared to_dict for dataclass records (enums flattened to values)."""

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))  # type: ignore[call-overload]


# ==========================================================================
# Records
# ==========================================================================

@dataclass
class Session(RecordMixin):
    """One tracked unit of work"""
    id: str
    working_directory: str = ""
    started_at: str = ""
    display_name: str = ""
    is_open: bool = True
    stopped_at: Optional[str] = None


@dataclass
class ThinkingEntry(RecordMixin):
    session_id: str
    timestamp: str
    content: str
    agent_id: Optional[str] = None


@dataclass
class ToolCall(RecordMixin):
    """A single tool invocation, keyed by call id"""
    call_id: str
    session_id: Optional[str]
    tool_name: str
    state: ToolCallState = ToolCallState.PENDING
    input: Optional[str] = None
    output: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    duration_ms: Optional[float] = None
    agent_id: Optional[str] = None
    # Wall-clock seconds when the record was last (re)started; drives the sweep
    received_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.pop("received_at", None)
        return data


@dataclass
class HookDecision(RecordMixin):
    hook_type: HookType
    hook_name: str
    decision: HookDecisionValue
    timestamp: str
    session_id: Optional[str] = None
    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    agent_id: Optional[str] = None
    rationale: str = ""


@dataclass
class Subagent(RecordMixin):
    agent_id: str
    parent_session_id: str
    agent_name: str = ""
    start_time: str = ""
    status: SubagentStatus = SubagentStatus.RUNNING
    end_time: Optional[str] = None
    parent_agent_id: Optional[str] = None


@dataclass
class Task(RecordMixin):
    id: str
    subject: str
    status: TaskStatus = TaskStatus.PENDING
    owner: Optional[str] = None
    active_form: Optional[str] = None
    description: Optional[str] = None
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)


@dataclass
class TeamMember(RecordMixin):
    name: str
    agent_id: str
    agent_type: str = ""
    role: MemberRole = MemberRole.WORKER
    status: str = "active"


@dataclass
class Team(RecordMixin):
    name: str
    members: List[TeamMember] = field(default_factory=list)
    updated_at: str = ""


@dataclass
class Message(RecordMixin):
    sender: str
    recipient: str
    message_type: str
    timestamp: str
    summary: str = ""
    content: str = ""


@dataclass
class PlanDocument(RecordMixin):
    path: str
    filename: str
    content: str
    last_modified: float


# ==========================================================================
# Change Envelope
# ==========================================================================

class ChangeKind(str, Enum):
    """Kinds of incremental state change sent to subscribers"""
    SNAPSHOT = "snapshot"

    SESSION_STARTED = "session.started"
    SESSION_STOPPED = "session.stopped"
    SESSION_SEEN = "session.seen"
    THINKING_ADDED = "thinking.added"

    TOOL_CALL_STARTED = "tool_call.started"
    TOOL_CALL_COMPLETED = "tool_call.completed"
    TOOL_CALL_ORPHANED = "tool_call.orphaned"

    HOOK_DECISION_ADDED = "hook.decision_added"

    SUBAGENT_UPSERTED = "subagent.upserted"
    SUBAGENT_STATUS = "subagent.status"

    TASKS_REPLACED = "tasks.replaced"
    TASK_COMPLETED = "tasks.completed"

    TEAM_REPLACED = "team.replaced"
    TEAM_MEMBER_IDLE = "team.member_idle"
    MESSAGE_ADDED = "message.added"

    PLAN_UPDATED = "plan.updated"
    PLAN_DELETED = "plan.deleted"


@dataclass
class Change:
    """One accepted mutation, numbered in application order"""
    kind: ChangeKind
    key: str
    payload: Dict[str, Any] = field(default_factory=dict)
    seq: int = 0
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "key": self.key,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


# Identifier-looking strings (short git-style or full hex ids)
HEX_ID_PATTERN = re.compile(r"^[0-9a-f]{7,}$", re.IGNORECASE)


def looks_like_identifier(value: Optional[str]) -> bool:
    return bool(value) and bool(HEX_ID_PATTERN.match(value))  # type: ignore[arg-type]
