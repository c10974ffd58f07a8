"""
Thinking Monitor - Task Graph Store
====================================

Shared task lists per team with blocks / blockedBy edges.

Each task_update replaces the team's whole list; a task missing from
the new batch is gone. Edges are a reporting view: one-sided, dangling
and cyclic edges are kept as reported and never rejected.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from thinking_monitor.core.monitor.records import Task, TaskStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class EdgeIssue:
    """An edge that the other endpoint does not confirm"""
    source: str
    target: str
    kind: str  # "dangling" | "one_sided"


class TaskGraphStore:
    """Keyed store of task batches (team id -> task id -> Task)."""

    def __init__(self):
        self._teams: Dict[str, Dict[str, Task]] = {}

    # ==========================================================================
    # Mutations
    # ==========================================================================

    def replace_tasks(self, team_id: str, tasks: List[Task]) -> List[Task]:
        """Atomically replace the team's task list. Later duplicates of an id win."""
        batch: Dict[str, Task] = {}
        for task in tasks:
            batch[task.id] = task

        removed = set(self._teams.get(team_id, {})) - set(batch)
        self._teams[team_id] = batch

        issues = self.edge_issues(team_id)
        if issues:
            logger.debug("task_edges_inconsistent", team_id=team_id, count=len(issues))
        if removed:
            logger.debug("tasks_removed", team_id=team_id, task_ids=sorted(removed))
        return list(batch.values())

    def complete_task(self, team_id: str, task_id: str) -> Optional[Task]:
        """pending/in_progress -> completed on the current batch."""
        task = self._teams.get(team_id, {}).get(task_id)
        if task is None:
            logger.debug("task_completed_for_unknown_task", team_id=team_id, task_id=task_id)
            return None

        task.status = TaskStatus.COMPLETED
        return task

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get_tasks(self, team_id: str) -> List[Task]:
        return list(self._teams.get(team_id, {}).values())

    def get_task(self, team_id: str, task_id: str) -> Optional[Task]:
        return self._teams.get(team_id, {}).get(task_id)

    def teams(self) -> List[str]:
        return list(self._teams)

    def edge_issues(self, team_id: str) -> List[EdgeIssue]:
        """
        Report edges that are not mirrored on the other side.

        ``a.blocks`` containing ``b`` should be matched by ``b.blocked_by``
        containing ``a`` (and vice versa). Missing targets are "dangling".
        """
        lookup = self._teams.get(team_id, {})
        issues: List[EdgeIssue] = []

        for task in lookup.values():
            for target_id in task.blocks:
                target = lookup.get(target_id)
                if target is None:
                    issues.append(EdgeIssue(task.id, target_id, "dangling"))
                elif task.id not in target.blocked_by:
                    issues.append(EdgeIssue(task.id, target_id, "one_sided"))
            for blocker_id in task.blocked_by:
                blocker = lookup.get(blocker_id)
                if blocker is None:
                    issues.append(EdgeIssue(blocker_id, task.id, "dangling"))
                elif task.id not in blocker.blocks:
                    issues.append(EdgeIssue(blocker_id, task.id, "one_sided"))
        return issues

    def blockers_of(self, team_id: str, task_id: str) -> List[str]:
        """
        Direct incomplete blockers of a task.

        Both edge directions count: ``task.blocked_by`` and any task whose
        ``blocks`` lists this one.
        """
        lookup = self._teams.get(team_id, {})
        task = lookup.get(task_id)
        if task is None:
            return []

        candidates = list(task.blocked_by)
        for other in lookup.values():
            if task_id in other.blocks and other.id not in candidates:
                candidates.append(other.id)

        blockers = []
        for blocker_id in candidates:
            blocker = lookup.get(blocker_id)
            if blocker is None or blocker.status != TaskStatus.COMPLETED:
                blockers.append(blocker_id)
        return blockers

    def is_blocked(self, team_id: str, task_id: str) -> bool:
        return bool(self.blockers_of(team_id, task_id))

    def dependency_chain(self, team_id: str, task_id: str) -> List[Tuple[str, List[str]]]:
        """
        Full chain of blockers leading to a task, root dependencies first.

        Cycles are cut at the first revisit; unknown ids appear as leaves.
        """
        chain: List[Tuple[str, List[str]]] = []
        visited = set()

        def _add_to_chain(current_id: str) -> None:
            if current_id in visited:
                return
            visited.add(current_id)

            blockers = self.blockers_of(team_id, current_id)
            for blocker_id in blockers:
                _add_to_chain(blocker_id)
            chain.append((current_id, blockers))

        if self.get_task(team_id, task_id) is not None:
            _add_to_chain(task_id)
        return chain

    def __len__(self) -> int:
        return sum(len(batch) for batch in self._teams.values())
