"""
Thinking Monitor - Subagent Mapping Table
==========================================

The single authoritative place to resolve an agent id to a human name.

Name resolution is an ordered chain; the first non-empty candidate
that does not look like a raw identifier wins:

1. the name stored in the table for the agent id
2. the text before the first colon of output supplied by the caller
3. "" (no displayable name)
"""

from typing import Callable, Dict, List, Optional, Sequence

import structlog

from thinking_monitor.core.monitor.records import (
    Subagent,
    SubagentStatus,
    looks_like_identifier,
)

logger = structlog.get_logger()

NameResolver = Callable[[Optional[str], Optional[str]], str]


class SubagentTable:
    """Keyed store of sub-agents (agent id -> Subagent)."""

    def __init__(self):
        self._agents: Dict[str, Subagent] = {}
        # parent session id -> agent ids, in registration order
        self._by_session: Dict[str, List[str]] = {}
        self._resolvers: Sequence[NameResolver] = (
            self._name_from_table,
            self._name_from_output,
        )

    # ==========================================================================
    # Mutations
    # ==========================================================================

    def upsert_mapping(
        self,
        agent_id: str,
        parent_session_id: str,
        agent_name: str,
        start_time: str,
        status: SubagentStatus = SubagentStatus.RUNNING,
        end_time: Optional[str] = None,
        parent_agent_id: Optional[str] = None,
    ) -> Subagent:
        """Create or replace the mapping for an agent id (last write wins)."""
        previous = self._agents.get(agent_id)
        if previous is not None:
            logger.debug("subagent_reregistered", agent_id=agent_id, agent_name=agent_name)
            if previous.parent_session_id != parent_session_id:
                self._unlink(agent_id, previous.parent_session_id)
        else:
            logger.info(
                "subagent_registered",
                agent_id=agent_id,
                agent_name=agent_name,
                parent_session_id=parent_session_id,
            )

        agent = Subagent(
            agent_id=agent_id,
            parent_session_id=parent_session_id,
            agent_name=agent_name or "",
            start_time=start_time,
            status=status,
            end_time=end_time,
            parent_agent_id=parent_agent_id,
        )
        self._agents[agent_id] = agent

        children = self._by_session.setdefault(parent_session_id, [])
        if agent_id not in children:
            children.append(agent_id)
        return agent

    def mark_status(
        self,
        agent_id: str,
        status: SubagentStatus,
        end_time: Optional[str] = None,
    ) -> Optional[Subagent]:
        """Update status in place. Unknown agents are a referential gap, not an error."""
        agent = self._agents.get(agent_id)
        if agent is None:
            logger.debug("subagent_status_for_unknown_agent", agent_id=agent_id, status=status.value)
            return None

        agent.status = status
        if status != SubagentStatus.RUNNING:
            agent.end_time = end_time
        return agent

    def _unlink(self, agent_id: str, session_id: str) -> None:
        children = self._by_session.get(session_id)
        if children and agent_id in children:
            children.remove(agent_id)

    # ==========================================================================
    # Name Resolution
    # ==========================================================================

    def _name_from_table(self, agent_id: Optional[str], output: Optional[str]) -> str:
        if not agent_id:
            return ""
        agent = self._agents.get(agent_id)
        return agent.agent_name.strip() if agent else ""

    @staticmethod
    def _name_from_output(agent_id: Optional[str], output: Optional[str]) -> str:
        if not output:
            return ""
        return output.split(":", 1)[0].strip()

    def resolve_name(self, agent_id: Optional[str], output: Optional[str] = None) -> str:
        """
        Resolve a displayable name for an agent.

        Args:
            agent_id: Agent identifier (may be unknown or None)
            output: Free text associated with the event, e.g. "explore: done"

        Returns:
            The first usable name in the chain, or "" if there is none.
            Hex identifiers of 7+ characters are never returned.
        """
        for resolver in self._resolvers:
            candidate = resolver(agent_id, output)
            if candidate and not looks_like_identifier(candidate):
                return candidate
        return ""

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get(self, agent_id: str) -> Optional[Subagent]:
        return self._agents.get(agent_id)

    def for_session(self, session_id: str) -> List[Subagent]:
        return [self._agents[agent_id] for agent_id in self._by_session.get(session_id, [])]

    def all(self) -> List[Subagent]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
