"""
Thinking Monitor - Hook Payload Processing
===========================================

Validates the snake_case payloads posted by the producing hook scripts
and reshapes them into camelCase wire events for the engine.

Hook types are matched case-sensitively; anything outside ``HOOK_TYPES``
is rejected as an unknown hook type.
"""

from typing import Any, Callable, Dict, Optional

from thinking_monitor.core.monitor.events import EventValidationError, UnknownHookTypeError
from thinking_monitor.core.monitor.records import utc_now_iso


HOOK_TYPES = (
    "PreToolUse",
    "PostToolUse",
    "SubagentStart",
    "SubagentStop",
    "SessionStart",
    "SessionStop",
)

SUBAGENT_STOP_STATUSES = ("success", "failure", "cancelled")


def is_valid_hook_type(value: Any) -> bool:
    return isinstance(value, str) and value in HOOK_TYPES


def _require_string(data: Dict[str, Any], field: str) -> None:
    value = data.get(field)
    if not isinstance(value, str) or not value:
        raise EventValidationError(field, f"{field} is required and must be a string")


def _agent_id(data: Dict[str, Any]) -> Optional[str]:
    return data.get("subagent_id") or data.get("agent_id")


def validate_hook_input(hook_type: str, raw: Any) -> Dict[str, Any]:
    """
    Check the minimal required fields for a hook type.

    Raises:
        UnknownHookTypeError: hook type outside HOOK_TYPES
        EventValidationError: payload missing a required field
    """
    if not is_valid_hook_type(hook_type):
        raise UnknownHookTypeError(hook_type)
    if not isinstance(raw, dict):
        raise EventValidationError("body", "input must be a non-null object")

    if hook_type in ("PreToolUse", "PostToolUse"):
        _require_string(raw, "tool_name")
    elif hook_type in ("SubagentStart", "SubagentStop"):
        if not _agent_id(raw):
            raise EventValidationError("subagent_id", "subagent_id or agent_id is required")
    else:
        _require_string(raw, "session_id")
    return raw


# ==========================================================================
# Converters
# ==========================================================================

def _tool_call_id(data: Dict[str, Any]) -> Optional[str]:
    return data.get("tool_call_id") or data.get("tool_use_id")


def _pre_tool_use(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    return {
        "type": "tool_start",
        "timestamp": timestamp,
        "sessionId": data.get("session_id"),
        "agentId": data.get("agent_id"),
        "toolName": data["tool_name"],
        "toolCallId": _tool_call_id(data),
        "input": data.get("tool_input"),
    }


def _post_tool_use(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    output = data.get("tool_output")
    if output is None:
        output = data.get("result")
    return {
        "type": "tool_end",
        "timestamp": timestamp,
        "sessionId": data.get("session_id"),
        "agentId": data.get("agent_id"),
        "toolName": data["tool_name"],
        "toolCallId": _tool_call_id(data),
        "output": output,
        "durationMs": data.get("duration_ms"),
    }


def _subagent_start(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    return {
        "type": "agent_start",
        "timestamp": timestamp,
        "sessionId": data.get("session_id"),
        "agentId": _agent_id(data),
        "agentName": data.get("agent_name") or data.get("name") or "",
        "parentAgentId": data.get("parent_agent_id"),
    }


def _subagent_stop(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    event = {
        "type": "agent_stop",
        "timestamp": timestamp,
        "sessionId": data.get("session_id"),
        "agentId": _agent_id(data),
    }
    status = data.get("status")
    if status:
        event["status"] = status if status in SUBAGENT_STOP_STATUSES else "failure"
    return event


def _session_start(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    return {
        "type": "session_start",
        "timestamp": timestamp,
        "sessionId": data["session_id"],
        "workingDirectory": data.get("cwd") or "",
    }


def _session_stop(data: Dict[str, Any], timestamp: str) -> Dict[str, Any]:
    return {
        "type": "session_stop",
        "timestamp": timestamp,
        "sessionId": data["session_id"],
    }


_CONVERTERS: Dict[str, Callable[[Dict[str, Any], str], Dict[str, Any]]] = {
    "PreToolUse": _pre_tool_use,
    "PostToolUse": _post_tool_use,
    "SubagentStart": _subagent_start,
    "SubagentStop": _subagent_stop,
    "SessionStart": _session_start,
    "SessionStop": _session_stop,
}


def process_hook_input(hook_type: str, raw: Any, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """
    Convert a hook payload into a wire event stamped with the current time.

    Args:
        hook_type: One of HOOK_TYPES (case-sensitive)
        raw: Parsed JSON body posted by the hook script
        timestamp: Override for the event timestamp

    Returns:
        The wire event dict; absent optional fields are dropped
    """
    data = validate_hook_input(hook_type, raw)
    event = _CONVERTERS[hook_type](data, timestamp or utc_now_iso())
    return {key: value for key, value in event.items() if value is not None}
