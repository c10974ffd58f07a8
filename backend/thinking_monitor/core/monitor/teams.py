"""
Thinking Monitor - Team & Messaging Log
========================================

Team membership snapshots (replaced wholesale per update) and the
append-only log of inter-agent messages.
"""

from typing import Dict, List, Optional

import structlog

from thinking_monitor.core.monitor.records import MemberRole, Message, Team, TeamMember

logger = structlog.get_logger()


def role_for(agent_type: Optional[str]) -> MemberRole:
    """Team leads are reported with an agent type such as "team-lead"."""
    if agent_type and "lead" in agent_type.lower():
        return MemberRole.LEADER
    return MemberRole.WORKER


class TeamLog:
    """Keyed store of teams (team name -> Team) plus the message log."""

    def __init__(self):
        self._teams: Dict[str, Team] = {}
        self._messages: List[Message] = []

    def replace_team(self, name: str, members: List[TeamMember], timestamp: str = "") -> Team:
        team = Team(name=name, members=list(members), updated_at=timestamp)
        self._teams[name] = team
        return team

    def mark_member_idle(self, member_name: str, team_name: Optional[str] = None) -> Optional[Team]:
        """Set a member's status to idle; returns the team that changed."""
        if team_name:
            team = self._teams.get(team_name)
            candidates = [team] if team else []
        else:
            candidates = list(self._teams.values())

        for team in candidates:
            for member in team.members:
                if member.name == member_name:
                    member.status = "idle"
                    return team

        logger.debug("teammate_idle_for_unknown_member", member=member_name, team=team_name)
        return None

    def append_message(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def get(self, name: str) -> Optional[Team]:
        return self._teams.get(name)

    def teams(self) -> List[Team]:
        return list(self._teams.values())

    def messages(self, limit: Optional[int] = None) -> List[Message]:
        if limit is None:
            return list(self._messages)
        return self._messages[-limit:] if limit > 0 else []

    def __len__(self) -> int:
        return len(self._teams)
