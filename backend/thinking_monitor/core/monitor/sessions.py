"""
Thinking Monitor - Session Registry
====================================

Top-level work sessions keyed by producer session id, plus the
append-only thinking log attached to them. Sessions are closed on
stop and kept for history; nothing here is ever deleted.
"""

from typing import Dict, List, Optional, Tuple

import structlog

from thinking_monitor.core.monitor.records import (
    Session,
    ThinkingEntry,
    session_display_name,
)

logger = structlog.get_logger()


class SessionRegistry:
    """Keyed store of sessions (session id -> Session)."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def start(self, session_id: str, working_directory: str, timestamp: str) -> Session:
        """Open (or re-open) a session from a session_start event."""
        existing = self._sessions.get(session_id)
        if existing and existing.is_open:
            logger.debug("session_restarted", session_id=session_id)

        session = Session(
            id=session_id,
            working_directory=working_directory,
            started_at=existing.started_at if existing and existing.started_at else timestamp,
            display_name=session_display_name(working_directory, session_id),
            is_open=True,
        )
        self._sessions[session_id] = session
        return session

    def stop(self, session_id: str, timestamp: str) -> Optional[Session]:
        """Close a session. A stop for an unknown session is only noted."""
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("session_stop_for_unknown_session", session_id=session_id)
            return None

        session.is_open = False
        session.stopped_at = timestamp
        return session

    def touch(self, session_id: str, timestamp: str) -> Tuple[Session, bool]:
        """
        Make sure a session referenced by another event is tracked.

        Returns the session and whether it was newly registered.
        """
        session = self._sessions.get(session_id)
        if session is not None:
            return session, False

        session = Session(
            id=session_id,
            started_at=timestamp,
            display_name=session_display_name(None, session_id),
        )
        self._sessions[session_id] = session
        return session, True

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def all(self) -> List[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)


class ThinkingLog:
    """Append-only thinking entries grouped by session."""

    def __init__(self):
        self._entries: Dict[str, List[ThinkingEntry]] = {}

    def append(self, entry: ThinkingEntry) -> ThinkingEntry:
        self._entries.setdefault(entry.session_id, []).append(entry)
        return entry

    def for_session(self, session_id: str) -> List[ThinkingEntry]:
        return list(self._entries.get(session_id, []))

    def all(self) -> List[ThinkingEntry]:
        return [entry for entries in self._entries.values() for entry in entries]

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
