"""
Thinking Monitor - Tool Call Tracker
=====================================

Pairs tool_start / tool_end events by call id.

State machine per call id:
    (none)   --start-->  pending
    (none)   --end---->  orphaned        (end arrived first, or start never seen)
    pending  --end---->  completed
    pending  --sweep-->  orphaned        (start never got an end)
    orphaned --start-->  completed       (late start for an early end)
    orphaned --end---->  completed       (late end for a swept start)

Duplicate starts on a pending call overwrite it (last start wins);
duplicate ends and replayed starts on a completed call are dropped.
No record is ever deleted.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.records import (
    ChangeKind,
    ToolCall,
    ToolCallState,
    parse_timestamp,
)

logger = structlog.get_logger()

Transition = Tuple[ChangeKind, ToolCall]


def derive_duration_ms(started_at: Optional[str], ended_at: Optional[str]) -> Optional[float]:
    """End minus start in milliseconds, or None if either side is unusable."""
    start = parse_timestamp(started_at)
    end = parse_timestamp(ended_at)
    if start is None or end is None:
        return None

    duration = (end - start).total_seconds() * 1000
    if duration < 0:
        logger.warning("negative_tool_duration_ignored", started_at=started_at, ended_at=ended_at)
        return None
    return duration


class ToolCallTracker:
    """Keyed store of tool calls (call id -> ToolCall)."""

    def __init__(
        self,
        max_pending: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_pending = max_pending if max_pending is not None else settings.MAX_PENDING_TOOL_CALLS
        self._clock = clock
        self._calls: Dict[str, ToolCall] = {}
        # Insertion-ordered set of pending call ids, oldest first
        self._pending: Dict[str, None] = {}

    # ==========================================================================
    # Transitions
    # ==========================================================================

    def record_start(
        self,
        session_id: str,
        call_id: str,
        tool_name: str,
        input: Optional[str],
        timestamp: str,
        agent_id: Optional[str] = None,
    ) -> List[Transition]:
        """Create (or overwrite) a pending call. Returns the transitions applied."""
        existing = self._calls.get(call_id)

        if existing is not None and existing.state == ToolCallState.COMPLETED:
            logger.debug("tool_start_replay_ignored", call_id=call_id)
            return []

        if existing is not None and existing.state == ToolCallState.ORPHANED and existing.ended_at:
            # The end arrived first; fill in the start side and close it
            existing.session_id = existing.session_id or session_id
            existing.tool_name = existing.tool_name or tool_name
            existing.input = input
            existing.started_at = timestamp
            existing.agent_id = existing.agent_id or agent_id
            if existing.duration_ms is None:
                existing.duration_ms = derive_duration_ms(timestamp, existing.ended_at)
            existing.state = ToolCallState.COMPLETED
            logger.debug("tool_call_reconciled_late_start", call_id=call_id)
            return [(ChangeKind.TOOL_CALL_COMPLETED, existing)]

        transitions: List[Transition] = []
        if existing is not None and existing.state == ToolCallState.PENDING:
            logger.info("duplicate_tool_start", call_id=call_id)
            self._pending.pop(call_id, None)
        else:
            transitions.extend(self._evict_overflow())

        call = ToolCall(
            call_id=call_id,
            session_id=session_id,
            tool_name=tool_name,
            state=ToolCallState.PENDING,
            input=input,
            started_at=timestamp,
            agent_id=agent_id,
            received_at=self._clock(),
        )
        self._calls[call_id] = call
        self._pending[call_id] = None
        transitions.append((ChangeKind.TOOL_CALL_STARTED, call))
        return transitions

    def record_end(
        self,
        call_id: str,
        output: Optional[str],
        timestamp: str,
        duration_ms: Optional[float] = None,
        session_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> List[Transition]:
        """Complete a pending call, or record an orphaned end."""
        existing = self._calls.get(call_id)

        if existing is None:
            call = ToolCall(
                call_id=call_id,
                session_id=session_id,
                tool_name=tool_name or "",
                state=ToolCallState.ORPHANED,
                output=output,
                ended_at=timestamp,
                duration_ms=duration_ms,
                agent_id=agent_id,
                received_at=self._clock(),
            )
            self._calls[call_id] = call
            logger.debug("tool_end_without_start", call_id=call_id)
            return [(ChangeKind.TOOL_CALL_ORPHANED, call)]

        if existing.ended_at is not None:
            logger.debug("tool_end_replay_ignored", call_id=call_id)
            return []

        existing.output = output
        existing.ended_at = timestamp
        existing.tool_name = existing.tool_name or tool_name or ""
        existing.duration_ms = (
            duration_ms if duration_ms is not None
            else derive_duration_ms(existing.started_at, timestamp)
        )
        existing.state = ToolCallState.COMPLETED
        self._pending.pop(call_id, None)
        return [(ChangeKind.TOOL_CALL_COMPLETED, existing)]

    def expire_stale(self, ttl_seconds: Optional[float] = None, now: Optional[float] = None) -> List[Transition]:
        """Transition pending calls older than the TTL to orphaned."""
        ttl = settings.TOOL_CALL_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        current = self._clock() if now is None else now

        transitions: List[Transition] = []
        for call_id in list(self._pending):
            call = self._calls[call_id]
            if current - call.received_at > ttl:
                transitions.append(self._orphan(call_id))
        return transitions

    def _evict_overflow(self) -> List[Transition]:
        transitions: List[Transition] = []
        while self._pending and len(self._pending) >= self.max_pending:
            oldest = next(iter(self._pending))
            logger.warning("pending_tool_call_evicted", call_id=oldest, max_pending=self.max_pending)
            transitions.append(self._orphan(oldest))
        return transitions

    def _orphan(self, call_id: str) -> Transition:
        self._pending.pop(call_id, None)
        call = self._calls[call_id]
        call.state = ToolCallState.ORPHANED
        return (ChangeKind.TOOL_CALL_ORPHANED, call)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get(self, call_id: str) -> Optional[ToolCall]:
        return self._calls.get(call_id)

    def for_session(self, session_id: str) -> List[ToolCall]:
        return [call for call in self._calls.values() if call.session_id == session_id]

    def all(self) -> List[ToolCall]:
        return list(self._calls.values())

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._calls)
