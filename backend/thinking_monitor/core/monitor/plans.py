"""
Thinking Monitor - Plan Document Store
=======================================

Latest-version-wins plan documents keyed by file path.
"""

from typing import Dict, List, Optional

import structlog

from thinking_monitor.core.monitor.records import PlanDocument

logger = structlog.get_logger()


class PlanStore:

    def __init__(self):
        self._plans: Dict[str, PlanDocument] = {}

    def upsert(self, path: str, filename: str, content: str, last_modified: float) -> Optional[PlanDocument]:
        """
        Store a plan unless an equal-or-newer version is already held.

        Returns the stored document, or None when the update was older
        than what is stored (a replay must never regress content).
        """
        current = self._plans.get(path)
        if current is not None and last_modified < current.last_modified:
            logger.debug(
                "stale_plan_update_ignored",
                path=path,
                stored=current.last_modified,
                received=last_modified,
            )
            return None

        plan = PlanDocument(path=path, filename=filename, content=content, last_modified=last_modified)
        self._plans[path] = plan
        return plan

    def delete(self, path: str) -> Optional[PlanDocument]:
        return self._plans.pop(path, None)

    def get(self, path: str) -> Optional[PlanDocument]:
        return self._plans.get(path)

    def all(self) -> List[PlanDocument]:
        """Most recently modified first."""
        return sorted(self._plans.values(), key=lambda p: p.last_modified, reverse=True)

    def __len__(self) -> int:
        return len(self._plans)
