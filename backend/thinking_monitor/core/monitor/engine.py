"""
Thinking Monitor - Ingestion Engine
====================================

Owns every store and is the only component that mutates them.

Each accepted event goes through one serialized apply path:
validate -> sanitise -> mutate the target store(s) -> publish the
resulting changes, all under a single lock, so no two events can
interleave mid-mutation and subscribers see changes in exactly the
order they were applied.
"""

import asyncio
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.events import (
    AgentStartEvent,
    AgentStopEvent,
    EventKind,
    EventValidationError,
    HookExecutionEvent,
    MessageSentEvent,
    PlanDeleteEvent,
    PlanUpdateEvent,
    SessionStartEvent,
    SessionStopEvent,
    SubagentMappingEvent,
    TaskCompletedEvent,
    TaskUpdateEvent,
    TeammateIdleEvent,
    TeamUpdateEvent,
    ThinkingEvent,
    ToolEndEvent,
    ToolStartEvent,
    WireModel,
    event_kind,
    validate_event,
)
from thinking_monitor.core.monitor.hook_input import process_hook_input
from thinking_monitor.core.monitor.hooks import HookDecisionLog
from thinking_monitor.core.monitor.plans import PlanStore
from thinking_monitor.core.monitor.publisher import ChangePublisher, Subscription
from thinking_monitor.core.monitor.records import (
    Change,
    ChangeKind,
    HookDecision,
    Message,
    SubagentStatus,
    Task,
    TeamMember,
    ThinkingEntry,
    utc_now_iso,
)
from thinking_monitor.core.monitor.sessions import SessionRegistry, ThinkingLog
from thinking_monitor.core.monitor.subagents import SubagentTable
from thinking_monitor.core.monitor.tasks import TaskGraphStore
from thinking_monitor.core.monitor.teams import TeamLog, role_for
from thinking_monitor.core.monitor.tool_calls import ToolCallTracker, Transition
from thinking_monitor.core.secrets import redact_secrets
from thinking_monitor.core.serialization import bounded_text, truncate_payload

logger = structlog.get_logger()

Handler = Callable[[Any], List[Change]]


def payload_shape(raw: Any) -> Dict[str, Any]:
    """Type and key names of a payload; safe to log (no values)."""
    if not isinstance(raw, dict):
        return {"kind": type(raw).__name__}
    kind = raw.get("type")
    return {
        "type": kind if isinstance(kind, str) else None,
        "keys": sorted(str(key) for key in raw.keys()),
    }


def sanitize_text(value: Any) -> Optional[str]:
    """Stringify, redact secrets, then truncate an opaque payload."""
    text = bounded_text(value, settings.MAX_BODY_SIZE)
    if text is None:
        return None
    if settings.REDACT_SECRETS:
        text = redact_secrets(text)
    return truncate_payload(text)


class MonitorEngine:
    """
    Dispatch layer over the in-memory stores.

    Example:
        engine = MonitorEngine()
        subscription = engine.subscribe()
        engine.ingest({"type": "session_start", ...})
        snapshot, change = subscription.drain()
    """

    def __init__(
        self,
        max_queue_size: Optional[int] = None,
        max_pending_tool_calls: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.sessions = SessionRegistry()
        self.thinking = ThinkingLog()
        self.tool_calls = ToolCallTracker(max_pending=max_pending_tool_calls, clock=clock)
        self.subagents = SubagentTable()
        self.tasks = TaskGraphStore()
        self.teams = TeamLog()
        self.hooks = HookDecisionLog()
        self.plans = PlanStore()
        self.publisher = ChangePublisher(max_queue_size=max_queue_size)

        self._lock = threading.RLock()
        self.started_at = time.time()
        self.events_received = 0
        self.events_rejected = 0
        self.events_by_type: Dict[str, int] = {}

        self._handlers: Dict[EventKind, Handler] = {
            EventKind.SESSION_START: self._on_session_start,
            EventKind.SESSION_STOP: self._on_session_stop,
            EventKind.THINKING: self._on_thinking,
            EventKind.TOOL_START: self._on_tool_start,
            EventKind.TOOL_END: self._on_tool_end,
            EventKind.HOOK_EXECUTION: self._on_hook_execution,
            EventKind.AGENT_START: self._on_agent_start,
            EventKind.AGENT_STOP: self._on_agent_stop,
            EventKind.SUBAGENT_MAPPING: self._on_subagent_mapping,
            EventKind.PLAN_UPDATE: self._on_plan_update,
            EventKind.PLAN_DELETE: self._on_plan_delete,
            EventKind.TEAM_UPDATE: self._on_team_update,
            EventKind.TASK_UPDATE: self._on_task_update,
            EventKind.MESSAGE_SENT: self._on_message_sent,
            EventKind.TASK_COMPLETED: self._on_task_completed,
            EventKind.TEAMMATE_IDLE: self._on_teammate_idle,
        }
        missing = set(EventKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for event kinds: {sorted(k.value for k in missing)}")

        # Stale tool call sweep
        self._sweep_task: Optional[asyncio.Task] = None
        self._sweep_running = False

    # ==========================================================================
    # Ingestion
    # ==========================================================================

    def ingest(self, raw: Any) -> WireModel:
        """
        Validate and apply one raw event.

        Raises:
            EventValidationError: the event was rejected; no store was touched
        """
        try:
            event = validate_event(raw)
        except EventValidationError as exc:
            with self._lock:
                self.events_rejected += 1
            logger.warning("event_rejected", field=exc.field, reason=exc.message, **payload_shape(raw))
            raise

        self.apply(event)
        return event

    def ingest_hook(self, hook_type: str, raw: Any) -> WireModel:
        """Convert a producer hook payload into its wire event and ingest it."""
        try:
            wire = process_hook_input(hook_type, raw)
        except EventValidationError as exc:
            with self._lock:
                self.events_rejected += 1
            logger.warning("hook_rejected", hook_type=hook_type, field=exc.field, reason=exc.message)
            raise
        return self.ingest(wire)

    def apply(self, event: WireModel) -> List[Change]:
        """Apply a validated event and publish its changes atomically."""
        kind = event_kind(event)
        with self._lock:
            changes = self._handlers[kind](event)
            self.events_received += 1
            self.events_by_type[kind.value] = self.events_by_type.get(kind.value, 0) + 1
            for change in changes:
                self.publisher.publish(change)
        return changes

    # ==========================================================================
    # Handlers
    # ==========================================================================

    @staticmethod
    def _change(kind: ChangeKind, key: str, record: Any) -> Change:
        return Change(kind=kind, key=key, payload=record.to_dict())

    def _touch_session(self, session_id: Optional[str], timestamp: str) -> List[Change]:
        if not session_id:
            return []
        session, created = self.sessions.touch(session_id, timestamp)
        if not created:
            return []
        return [self._change(ChangeKind.SESSION_SEEN, session_id, session)]

    def _tool_changes(self, transitions: List[Transition]) -> List[Change]:
        return [self._change(kind, call.call_id, call) for kind, call in transitions]

    def _on_session_start(self, event: SessionStartEvent) -> List[Change]:
        session = self.sessions.start(
            event.session_id,
            sanitize_text(event.working_directory) or "",
            event.timestamp,
        )
        logger.info("session_started", session_id=session.id, display_name=session.display_name)
        return [self._change(ChangeKind.SESSION_STARTED, session.id, session)]

    def _on_session_stop(self, event: SessionStopEvent) -> List[Change]:
        session = self.sessions.stop(event.session_id, event.timestamp)
        if session is None:
            return []
        logger.info("session_stopped", session_id=session.id)
        return [self._change(ChangeKind.SESSION_STOPPED, session.id, session)]

    def _on_thinking(self, event: ThinkingEvent) -> List[Change]:
        changes = self._touch_session(event.session_id, event.timestamp)
        entry = self.thinking.append(ThinkingEntry(
            session_id=event.session_id,
            timestamp=event.timestamp,
            content=sanitize_text(event.content) or "",
            agent_id=event.agent_id,
        ))
        changes.append(self._change(ChangeKind.THINKING_ADDED, event.session_id, entry))
        return changes

    def _on_tool_start(self, event: ToolStartEvent) -> List[Change]:
        changes = self._touch_session(event.session_id, event.timestamp)
        transitions = self.tool_calls.record_start(
            session_id=event.session_id,
            call_id=event.tool_call_id,
            tool_name=event.tool_name,
            input=sanitize_text(event.input),
            timestamp=event.timestamp,
            agent_id=event.agent_id,
        )
        return changes + self._tool_changes(transitions)

    def _on_tool_end(self, event: ToolEndEvent) -> List[Change]:
        changes = self._touch_session(event.session_id, event.timestamp)
        transitions = self.tool_calls.record_end(
            call_id=event.tool_call_id,
            output=sanitize_text(event.output),
            timestamp=event.timestamp,
            duration_ms=event.duration_ms,
            session_id=event.session_id,
            tool_name=event.tool_name,
            agent_id=event.agent_id,
        )
        return changes + self._tool_changes(transitions)

    def _on_hook_execution(self, event: HookExecutionEvent) -> List[Change]:
        changes = self._touch_session(event.session_id, event.timestamp)
        decision = self.hooks.append(HookDecision(
            hook_type=event.hook_type,
            hook_name=event.hook_name,
            decision=event.decision,
            timestamp=event.timestamp,
            session_id=event.session_id,
            tool_name=event.tool_name,
            call_id=event.tool_call_id,
            agent_id=event.agent_id,
            rationale=sanitize_text(event.output) or "",
        ))
        key = event.tool_call_id or event.session_id
        changes.append(self._change(ChangeKind.HOOK_DECISION_ADDED, key, decision))
        return changes

    def _on_agent_start(self, event: AgentStartEvent) -> List[Change]:
        changes = self._touch_session(event.session_id, event.timestamp)
        agent = self.subagents.upsert_mapping(
            agent_id=event.agent_id,
            parent_session_id=event.session_id,
            agent_name=event.agent_name,
            start_time=event.timestamp,
            status=SubagentStatus.RUNNING,
            parent_agent_id=event.parent_agent_id,
        )
        changes.append(self._change(ChangeKind.SUBAGENT_UPSERTED, agent.agent_id, agent))
        return changes

    def _on_agent_stop(self, event: AgentStopEvent) -> List[Change]:
        agent = self.subagents.mark_status(event.agent_id, event.status, end_time=event.timestamp)
        if agent is None:
            return []
        return [self._change(ChangeKind.SUBAGENT_STATUS, agent.agent_id, agent)]

    def _on_subagent_mapping(self, event: SubagentMappingEvent) -> List[Change]:
        changes = []
        for mapping in event.mappings:
            agent = self.subagents.upsert_mapping(
                agent_id=mapping.agent_id,
                parent_session_id=mapping.parent_session_id,
                agent_name=mapping.agent_name,
                start_time=mapping.start_time,
                status=mapping.status,
                end_time=mapping.end_time,
                parent_agent_id=mapping.parent_agent_id,
            )
            changes.append(self._change(ChangeKind.SUBAGENT_UPSERTED, agent.agent_id, agent))
        return changes

    def _on_plan_update(self, event: PlanUpdateEvent) -> List[Change]:
        plan = self.plans.upsert(event.path, event.filename, event.content, event.last_modified)
        if plan is None:
            return []
        return [self._change(ChangeKind.PLAN_UPDATED, plan.path, plan)]

    def _on_plan_delete(self, event: PlanDeleteEvent) -> List[Change]:
        plan = self.plans.delete(event.path)
        if plan is None:
            logger.debug("plan_delete_for_unknown_path", path=event.path)
            return []
        return [Change(
            kind=ChangeKind.PLAN_DELETED,
            key=event.path,
            payload={"path": event.path, "filename": event.filename},
        )]

    def _on_team_update(self, event: TeamUpdateEvent) -> List[Change]:
        members = [
            TeamMember(
                name=member.name,
                agent_id=member.agent_id,
                agent_type=member.agent_type,
                role=role_for(member.agent_type),
                status=member.status,
            )
            for member in event.members
        ]
        team = self.teams.replace_team(event.team_name, members, event.timestamp or utc_now_iso())
        return [self._change(ChangeKind.TEAM_REPLACED, team.name, team)]

    def _on_task_update(self, event: TaskUpdateEvent) -> List[Change]:
        tasks = self.tasks.replace_tasks(event.team_id, [
            Task(
                id=task.id,
                subject=task.subject,
                status=task.status,
                owner=task.owner,
                active_form=task.active_form,
                description=task.description,
                blocks=list(task.blocks),
                blocked_by=list(task.blocked_by),
            )
            for task in event.tasks
        ])
        return [Change(
            kind=ChangeKind.TASKS_REPLACED,
            key=event.team_id,
            payload={"team_id": event.team_id, "tasks": [task.to_dict() for task in tasks]},
        )]

    def _on_message_sent(self, event: MessageSentEvent) -> List[Change]:
        message = self.teams.append_message(Message(
            sender=event.sender,
            recipient=event.recipient,
            message_type=event.message_type,
            timestamp=event.timestamp,
            summary=sanitize_text(event.summary) or "",
            content=sanitize_text(event.content) or "",
        ))
        return [self._change(ChangeKind.MESSAGE_ADDED, message.sender, message)]

    def _on_task_completed(self, event: TaskCompletedEvent) -> List[Change]:
        task = self.tasks.complete_task(event.team_id, event.task_id)
        if task is None:
            return []
        return [Change(
            kind=ChangeKind.TASK_COMPLETED,
            key=f"{event.team_id}/{task.id}",
            payload={"team_id": event.team_id, "task": task.to_dict()},
        )]

    def _on_teammate_idle(self, event: TeammateIdleEvent) -> List[Change]:
        team = self.teams.mark_member_idle(event.teammate_name, event.team_name)
        if team is None:
            return []
        return [self._change(ChangeKind.TEAM_MEMBER_IDLE, team.name, team)]

    # ==========================================================================
    # Reads
    # ==========================================================================

    def _snapshot_unlocked(self) -> Dict[str, Any]:
        return {
            "seq": self.publisher.last_seq,
            "sessions": [session.to_dict() for session in self.sessions.all()],
            "thinking": [entry.to_dict() for entry in self.thinking.all()],
            "tool_calls": [call.to_dict() for call in self.tool_calls.all()],
            "hook_decisions": [decision.to_dict() for decision in self.hooks.recent()],
            "subagents": [agent.to_dict() for agent in self.subagents.all()],
            "teams": [team.to_dict() for team in self.teams.teams()],
            "tasks": {
                team_id: [task.to_dict() for task in self.tasks.get_tasks(team_id)]
                for team_id in self.tasks.teams()
            },
            "messages": [message.to_dict() for message in self.teams.messages()],
            "plans": [plan.to_dict() for plan in self.plans.all()],
        }

    def snapshot(self) -> Dict[str, Any]:
        """One consistent read of every store."""
        with self._lock:
            return self._snapshot_unlocked()

    def subscribe(self, on_ready: Optional[Callable[[], None]] = None) -> Subscription:
        """Snapshot first, then every change in application order."""
        with self._lock:
            return self.publisher.subscribe(self._snapshot_unlocked, on_ready=on_ready)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.publisher.unsubscribe(subscription)

    def resolve_agent_name(self, agent_id: Optional[str], output: Optional[str] = None) -> str:
        with self._lock:
            return self.subagents.resolve_name(agent_id, output)

    def read(self, reader: Callable[["MonitorEngine"], Any]) -> Any:
        """Run a read-only callable against the stores under the apply lock."""
        with self._lock:
            return reader(self)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self.started_at, 3),
                "events_received": self.events_received,
                "events_rejected": self.events_rejected,
                "events_by_type": dict(self.events_by_type),
                "subscribers": self.publisher.subscriber_count,
                "last_seq": self.publisher.last_seq,
                "sessions": len(self.sessions),
                "tool_calls": len(self.tool_calls),
                "pending_tool_calls": self.tool_calls.pending_count,
                "subagents": len(self.subagents),
                "tasks": len(self.tasks),
                "teams": len(self.teams),
                "hook_decisions": len(self.hooks),
                "plans": len(self.plans),
            }

    # ==========================================================================
    # Stale Tool Call Sweep
    # ==========================================================================

    def expire_stale_tool_calls(
        self,
        ttl_seconds: Optional[float] = None,
        now: Optional[float] = None,
    ) -> List[Change]:
        """Orphan pending calls older than the TTL; never raises for missing data."""
        with self._lock:
            changes = self._tool_changes(self.tool_calls.expire_stale(ttl_seconds, now))
            for change in changes:
                self.publisher.publish(change)
        if changes:
            logger.info("stale_tool_calls_orphaned", count=len(changes))
        return changes

    async def start_sweep(self, interval: Optional[float] = None):
        """Start the periodic stale tool call sweep."""
        if self._sweep_running:
            return

        self._sweep_running = True
        self._sweep_task = asyncio.create_task(
            self._sweep_loop(interval or settings.TOOL_CALL_SWEEP_INTERVAL_SECONDS)
        )
        logger.info("tool_call_sweep_started")

    async def stop_sweep(self):
        """Stop the sweep task."""
        self._sweep_running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("tool_call_sweep_stopped")

    async def _sweep_loop(self, interval: float) -> None:
        while self._sweep_running:
            try:
                await asyncio.sleep(interval)
                self.expire_stale_tool_calls()
            except Exception as e:
                logger.error("tool_call_sweep_error", error=str(e))


# ==========================================================================
# Global Instance
# ==========================================================================

_engine: Optional[MonitorEngine] = None


def get_engine() -> MonitorEngine:
    """Get or create the global engine"""
    global _engine
    if _engine is None:
        _engine = MonitorEngine()
    return _engine
