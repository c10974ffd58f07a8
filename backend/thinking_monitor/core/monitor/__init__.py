"""
Thinking Monitor - Monitor Engine
=================================

Validated event ingestion, in-memory stores and the change stream.
"""

from .records import (
    Change,
    ChangeKind,
    HookDecision,
    Message,
    PlanDocument,
    Session,
    Subagent,
    SubagentStatus,
    Task,
    TaskStatus,
    Team,
    TeamMember,
    ThinkingEntry,
    ToolCall,
    ToolCallState,
)
from .events import (
    EventKind,
    EventValidationError,
    UnknownEventKindError,
    UnknownHookTypeError,
    validate_event,
)
from .hook_input import (
    HOOK_TYPES,
    process_hook_input,
    validate_hook_input,
)
from .publisher import (
    ChangePublisher,
    Subscription,
)
from .engine import (
    MonitorEngine,
    get_engine,
)
from .websocket_hub import (
    ConnectionManager,
    get_connection_manager,
    websocket_endpoint,
    WSMessage,
    WSMessageType,
)

__all__ = [
    # Records
    "Change",
    "ChangeKind",
    "HookDecision",
    "Message",
    "PlanDocument",
    "Session",
    "Subagent",
    "SubagentStatus",
    "Task",
    "TaskStatus",
    "Team",
    "TeamMember",
    "ThinkingEntry",
    "ToolCall",
    "ToolCallState",
    # Validation
    "EventKind",
    "EventValidationError",
    "UnknownEventKindError",
    "UnknownHookTypeError",
    "validate_event",
    "HOOK_TYPES",
    "process_hook_input",
    "validate_hook_input",
    # Engine
    "ChangePublisher",
    "Subscription",
    "MonitorEngine",
    "get_engine",
    # WebSocket
    "ConnectionManager",
    "get_connection_manager",
    "websocket_endpoint",
    "WSMessage",
    "WSMessageType",
]
