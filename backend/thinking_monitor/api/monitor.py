"""
Thinking Monitor - Query API
=============================

Read-only REST views over the engine's stores for the dashboard.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from thinking_monitor.api.deps import ConnectionManagerDep, EngineDep
from thinking_monitor.core.monitor.engine import MonitorEngine
from thinking_monitor.core.monitor.records import HookDecision, ToolCall
from thinking_monitor.core.schemas import (
    AgentNameResponse,
    ChainLink,
    DependencyChainResponse,
    MonitorStatusResponse,
)


router = APIRouter(prefix="/monitor", tags=["Monitor"])


# ==========================================================================
# Record Views
# ==========================================================================

def tool_call_view(e: MonitorEngine, call: ToolCall) -> Dict[str, Any]:
    """Tool call record with the sub-agent name resolved through the mapping table."""
    data = call.to_dict()
    data["agent_name"] = e.subagents.resolve_name(call.agent_id) if call.agent_id else ""
    return data


def hook_decision_view(e: MonitorEngine, decision: HookDecision) -> Dict[str, Any]:
    """Hook decision with the sub-agent name; the hook output is the fallback source."""
    data = decision.to_dict()
    data["agent_name"] = (
        e.subagents.resolve_name(decision.agent_id, decision.rationale) if decision.agent_id else ""
    )
    return data


# ==========================================================================
# Snapshot & Status
# ==========================================================================

@router.get("/snapshot", summary="Full snapshot of every store")
async def get_snapshot(engine: EngineDep) -> Dict[str, Any]:
    return engine.snapshot()


@router.get(
    "/status",
    response_model=MonitorStatusResponse,
    summary="Connection and ingestion counters",
)
async def monitor_status(engine: EngineDep, manager: ConnectionManagerDep) -> MonitorStatusResponse:
    return MonitorStatusResponse(
        websocket_connections=len(manager.connections),
        **engine.stats(),
    )


# ==========================================================================
# Sessions
# ==========================================================================

@router.get("/sessions", summary="List tracked sessions")
async def list_sessions(engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [session.to_dict() for session in e.sessions.all()])


@router.get("/sessions/{session_id}", summary="Session details")
async def get_session(session_id: str, engine: EngineDep) -> Dict[str, Any]:
    """Session with its tool calls, sub-agents and hook decisions."""

    def _read(e: MonitorEngine) -> Optional[Dict[str, Any]]:
        session = e.sessions.get(session_id)
        if session is None:
            return None
        return {
            "session": session.to_dict(),
            "tool_calls": [tool_call_view(e, call) for call in e.tool_calls.for_session(session_id)],
            "subagents": [agent.to_dict() for agent in e.subagents.for_session(session_id)],
            "hook_decisions": [hook_decision_view(e, d) for d in e.hooks.for_session(session_id)],
            "thinking_count": len(e.thinking.for_session(session_id)),
        }

    detail = engine.read(_read)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    return detail


@router.get("/sessions/{session_id}/thinking", summary="Thinking entries for a session")
async def get_session_thinking(session_id: str, engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [entry.to_dict() for entry in e.thinking.for_session(session_id)])


# ==========================================================================
# Tool Calls & Hooks
# ==========================================================================

@router.get("/tool-calls/{call_id}", summary="One tool call")
async def get_tool_call(call_id: str, engine: EngineDep) -> Dict[str, Any]:
    def _read(e: MonitorEngine) -> Optional[Dict[str, Any]]:
        call = e.tool_calls.get(call_id)
        return tool_call_view(e, call) if call else None

    call = engine.read(_read)
    if call is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tool call not found: {call_id}",
        )
    return call


@router.get("/hooks", summary="Hook decisions")
async def list_hook_decisions(
    engine: EngineDep,
    call_id: Optional[str] = None,
    limit: int = Query(default=100, ge=0, le=10_000),
) -> List[Dict[str, Any]]:
    """Decisions for one tool call, or the most recent ones overall."""

    def _read(e: MonitorEngine) -> List[Dict[str, Any]]:
        decisions = e.hooks.for_call(call_id) if call_id else e.hooks.recent(limit)
        return [hook_decision_view(e, decision) for decision in decisions]

    return engine.read(_read)


# ==========================================================================
# Agents
# ==========================================================================

@router.get("/agents", summary="List sub-agents")
async def list_agents(engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [agent.to_dict() for agent in e.subagents.all()])


@router.get(
    "/agents/{agent_id}/name",
    response_model=AgentNameResponse,
    summary="Resolve a display name",
)
async def resolve_agent_name(
    agent_id: str,
    engine: EngineDep,
    output: Optional[str] = None,
) -> AgentNameResponse:
    """
    Stored name first, then the text before the first colon of ``output``.

    An empty name means there is nothing displayable.
    """
    return AgentNameResponse(agent_id=agent_id, name=engine.resolve_agent_name(agent_id, output))


# ==========================================================================
# Teams, Tasks & Messages
# ==========================================================================

@router.get("/teams", summary="List teams")
async def list_teams(engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [team.to_dict() for team in e.teams.teams()])


@router.get("/teams/{team_id}/tasks", summary="Current task batch for a team")
async def list_team_tasks(team_id: str, engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [task.to_dict() for task in e.tasks.get_tasks(team_id)])


@router.get(
    "/teams/{team_id}/tasks/{task_id}/chain",
    response_model=DependencyChainResponse,
    summary="Dependency chain of a task",
)
async def get_dependency_chain(team_id: str, task_id: str, engine: EngineDep) -> DependencyChainResponse:
    """Blockers leading to the task, root dependencies first."""

    def _read(e: MonitorEngine) -> Optional[DependencyChainResponse]:
        if e.tasks.get_task(team_id, task_id) is None:
            return None
        links = []
        for link_id, blockers in e.tasks.dependency_chain(team_id, task_id):
            task = e.tasks.get_task(team_id, link_id)
            links.append(ChainLink(
                task_id=link_id,
                blocked_by=blockers,
                task=task.to_dict() if task else None,
            ))
        return DependencyChainResponse(
            team_id=team_id,
            task_id=task_id,
            blocked=e.tasks.is_blocked(team_id, task_id),
            chain=links,
        )

    chain = engine.read(_read)
    if chain is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task not found: {team_id}/{task_id}",
        )
    return chain


@router.get("/messages", summary="Recent inter-agent messages")
async def list_messages(
    engine: EngineDep,
    limit: int = Query(default=100, ge=0, le=10_000),
) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [message.to_dict() for message in e.teams.messages(limit)])


# ==========================================================================
# Plans
# ==========================================================================

@router.get("/plans", summary="Plan documents, newest first")
async def list_plans(engine: EngineDep) -> List[Dict[str, Any]]:
    return engine.read(lambda e: [plan.to_dict() for plan in e.plans.all()])
