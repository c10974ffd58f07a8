"""
Thinking Monitor - Hook Decision Log
=====================================

Append-only audit trail of allow/deny verdicts from policy hooks.
"""

from typing import List, Optional

from thinking_monitor.core.monitor.records import HookDecision


class HookDecisionLog:
    """Records are never updated or removed."""

    def __init__(self):
        self._decisions: List[HookDecision] = []

    def append(self, decision: HookDecision) -> HookDecision:
        self._decisions.append(decision)
        return decision

    def for_call(self, call_id: str) -> List[HookDecision]:
        return [d for d in self._decisions if d.call_id == call_id]

    def for_session(self, session_id: str) -> List[HookDecision]:
        return [d for d in self._decisions if d.session_id == session_id]

    def recent(self, limit: Optional[int] = None) -> List[HookDecision]:
        if limit is None:
            return list(self._decisions)
        return self._decisions[-limit:] if limit > 0 else []

    def __len__(self) -> int:
        return len(self._decisions)
