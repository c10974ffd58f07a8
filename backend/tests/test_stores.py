"""
Thinking Monitor - Store Tests
===============================

Sessions, sub-agents, task graphs, teams, hook decisions and plans.
"""

from thinking_monitor.core.monitor.hooks import HookDecisionLog
from thinking_monitor.core.monitor.plans import PlanStore
from thinking_monitor.core.monitor.records import (
    HookDecision,
    HookDecisionValue,
    HookType,
    MemberRole,
    Message,
    SubagentStatus,
    Task,
    TaskStatus,
    TeamMember,
    session_display_name,
)
from thinking_monitor.core.monitor.sessions import SessionRegistry
from thinking_monitor.core.monitor.subagents import SubagentTable
from thinking_monitor.core.monitor.tasks import TaskGraphStore
from thinking_monitor.core.monitor.teams import TeamLog, role_for


# ==========================================================================
# Sessions
# ==========================================================================

class TestSessionRegistry:
    """Sessions are opened, closed and never deleted."""

    def test_start_and_stop(self):
        """A stopped session is kept but closed."""
        registry = SessionRegistry()
        registry.start("S1", "/home/dev/api-server", "t0")
        registry.stop("S1", "t9")

        session = registry.get("S1")
        assert session.is_open is False
        assert session.stopped_at == "t9"
        assert session.display_name == "api-server"

    def test_stop_unknown_session(self):
        """Stopping an unknown session is a no-op."""
        assert SessionRegistry().stop("nope", "t0") is None

    def test_restart_keeps_original_start(self):
        """Re-opening keeps the first start time."""
        registry = SessionRegistry()
        registry.start("S1", "/a", "t0")
        registry.stop("S1", "t1")
        registry.start("S1", "/b", "t2")

        session = registry.get("S1")
        assert session.started_at == "t0"
        assert session.is_open is True
        assert session.working_directory == "/b"

    def test_touch(self):
        """Sessions referenced by other events are registered once."""
        registry = SessionRegistry()

        _, created = registry.touch("abcdef1234567890", "t0")
        _, created_again = registry.touch("abcdef1234567890", "t1")

        assert created is True
        assert created_again is False
        assert registry.get("abcdef1234567890").display_name == "abcdef12"

    def test_display_name_fallbacks(self):
        """Folder name, then short id, then "unknown"."""
        assert session_display_name("/home/dev/project/", "S1") == "project"
        assert session_display_name(None, "0123456789") == "01234567"
        assert session_display_name("", None) == "unknown"


# ==========================================================================
# Sub-agents
# ==========================================================================

class TestSubagentTable:
    """Mapping table and the name resolution chain."""

    def test_upsert_is_last_write_wins(self):
        """Two starts for one agent id leave one record with the second data."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "explore", "t0")
        table.upsert_mapping("a1", "S2", "planner", "t1")

        assert len(table) == 1
        agent = table.get("a1")
        assert agent.agent_name == "planner"
        assert agent.parent_session_id == "S2"
        assert table.for_session("S1") == []
        assert [a.agent_id for a in table.for_session("S2")] == ["a1"]

    def test_mark_status(self):
        """Status updates record the end time."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "explore", "t0")

        agent = table.mark_status("a1", SubagentStatus.FAILED, end_time="t5")

        assert agent.status == SubagentStatus.FAILED
        assert agent.end_time == "t5"

    def test_mark_status_unknown_agent(self):
        """Unknown agents are a referential gap, not an error."""
        assert SubagentTable().mark_status("ghost", SubagentStatus.COMPLETED) is None

    def test_name_from_table(self):
        """A stored name is returned first."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "code-reviewer", "t0")

        assert table.resolve_name("a1", "other: text") == "code-reviewer"

    def test_empty_name_falls_back_to_output(self):
        """An empty stored name uses the text before the first colon."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "", "t0")

        assert table.resolve_name("a1", "  explore : found 3 files: a, b") == "explore"

    def test_no_output_resolves_empty(self):
        """With nothing stored and no output there is no name."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "", "t0")

        assert table.resolve_name("a1") == ""
        assert table.resolve_name("unknown-agent") == ""

    def test_hex_identifiers_never_returned(self):
        """7+ character hex strings are never names."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "a1b2c3d", "t0")

        assert table.resolve_name("a1") == ""
        assert table.resolve_name("a1", "DEADBEEF01: finished") == ""
        assert table.resolve_name("a1", "abc123: short hex is fine") == "abc123"

    def test_hex_name_falls_through_to_output(self):
        """A hex stored name defers to the output text."""
        table = SubagentTable()
        table.upsert_mapping("a1", "S1", "0123456789abcdef", "t0")

        assert table.resolve_name("a1", "researcher: done") == "researcher"


# ==========================================================================
# Task Graph
# ==========================================================================

def _task(task_id: str, status: TaskStatus = TaskStatus.PENDING, blocks=None, blocked_by=None) -> Task:
    return Task(
        id=task_id,
        subject=f"Task {task_id}",
        status=status,
        blocks=list(blocks or []),
        blocked_by=list(blocked_by or []),
    )


class TestTaskGraphStore:
    """Wholesale replacement and cycle-safe lookups."""

    def test_replacement_not_merge(self):
        """Tasks absent from the new batch are gone."""
        store = TaskGraphStore()
        store.replace_tasks("G", [_task("1", blocked_by=["2"]), _task("2", blocks=["1"])])
        store.replace_tasks("G", [_task("2"), _task("3")])

        assert sorted(t.id for t in store.get_tasks("G")) == ["2", "3"]
        assert store.get_task("G", "1") is None

    def test_teams_are_independent(self):
        """Replacing one team leaves others alone."""
        store = TaskGraphStore()
        store.replace_tasks("G", [_task("1")])
        store.replace_tasks("H", [_task("9")])
        store.replace_tasks("G", [])

        assert store.get_tasks("G") == []
        assert [t.id for t in store.get_tasks("H")] == ["9"]

    def test_inconsistent_edges_are_tolerated(self):
        """One-sided and dangling edges are kept and reported."""
        store = TaskGraphStore()
        store.replace_tasks("G", [_task("1", blocked_by=["2", "missing"]), _task("2")])

        assert store.get_task("G", "1").blocked_by == ["2", "missing"]
        issues = {(i.source, i.target, i.kind) for i in store.edge_issues("G")}
        assert issues == {("2", "1", "one_sided"), ("missing", "1", "dangling")}

    def test_blockers_from_both_directions(self):
        """Either edge direction blocks; completed blockers do not."""
        store = TaskGraphStore()
        store.replace_tasks("G", [
            _task("1", blocked_by=["2"]),
            _task("2"),
            _task("3", blocks=["1"]),
            _task("4", status=TaskStatus.COMPLETED, blocks=["1"]),
        ])

        assert store.blockers_of("G", "1") == ["2", "3"]
        assert store.is_blocked("G", "1") is True
        assert store.is_blocked("G", "2") is False

    def test_cycle_does_not_crash(self):
        """Cyclic edges are representable and lookups terminate."""
        store = TaskGraphStore()
        store.replace_tasks("G", [
            _task("1", blocks=["2"], blocked_by=["3"]),
            _task("2", blocks=["3"], blocked_by=["1"]),
            _task("3", blocks=["1"], blocked_by=["2"]),
        ])

        chain = store.dependency_chain("G", "1")

        assert sorted(task_id for task_id, _ in chain) == ["1", "2", "3"]
        assert chain[-1][0] == "1"

    def test_chain_roots_first(self):
        """The chain lists root dependencies before dependents."""
        store = TaskGraphStore()
        store.replace_tasks("G", [
            _task("1", blocked_by=["2"]),
            _task("2", blocked_by=["3"]),
            _task("3"),
        ])

        assert store.dependency_chain("G", "1") == [("3", []), ("2", ["3"]), ("1", ["2"])]

    def test_complete_task(self):
        """task_completed marks the task in the current batch."""
        store = TaskGraphStore()
        store.replace_tasks("G", [_task("1"), _task("2", blocked_by=["1"])])

        store.complete_task("G", "1")

        assert store.get_task("G", "1").status == TaskStatus.COMPLETED
        assert store.is_blocked("G", "2") is False
        assert store.complete_task("G", "nope") is None


# ==========================================================================
# Teams, Hooks & Plans
# ==========================================================================

class TestTeamLog:

    def test_replace_team_and_roles(self):
        """Membership is replaced wholesale; leads get the leader role."""
        log = TeamLog()
        log.replace_team("alpha", [TeamMember("old", "x1")])
        team = log.replace_team("alpha", [
            TeamMember("lead", "a0", "team-lead", role_for("team-lead")),
            TeamMember("worker", "a1", "general-purpose", role_for("general-purpose")),
        ])

        assert [m.name for m in team.members] == ["lead", "worker"]
        assert team.members[0].role == MemberRole.LEADER
        assert team.members[1].role == MemberRole.WORKER

    def test_member_idle(self):
        """teammate_idle marks the named member."""
        log = TeamLog()
        log.replace_team("alpha", [TeamMember("worker", "a1")])

        team = log.mark_member_idle("worker")

        assert team.name == "alpha"
        assert team.members[0].status == "idle"
        assert log.mark_member_idle("worker", team_name="beta") is None

    def test_messages_append_only(self):
        """Messages are kept in arrival order."""
        log = TeamLog()
        for i in range(3):
            log.append_message(Message("lead", "worker", "message", f"t{i}", summary=str(i)))

        assert [m.summary for m in log.messages()] == ["0", "1", "2"]
        assert [m.summary for m in log.messages(limit=2)] == ["1", "2"]


class TestHookDecisionLog:

    def test_append_and_filter(self):
        """Decisions are appended and filterable by call and session."""
        log = HookDecisionLog()
        log.append(HookDecision(HookType.PRE_TOOL_USE, "guard", HookDecisionValue.DENY, "t0",
                                session_id="S1", call_id="T1"))
        log.append(HookDecision(HookType.PRE_TOOL_USE, "guard", HookDecisionValue.ALLOW, "t1",
                                session_id="S2", call_id="T2"))

        assert len(log) == 2
        assert [d.decision for d in log.for_call("T1")] == [HookDecisionValue.DENY]
        assert [d.call_id for d in log.for_session("S2")] == ["T2"]
        assert len(log.recent(1)) == 1


class TestPlanStore:

    def test_older_update_does_not_regress(self):
        """A replayed older plan leaves the stored content alone."""
        store = PlanStore()
        store.upsert("/plans/a.md", "a.md", "v2", 2000)

        assert store.upsert("/plans/a.md", "a.md", "v1", 1000) is None
        assert store.get("/plans/a.md").content == "v2"

    def test_equal_timestamp_overwrites(self):
        """Same lastModified overwrites."""
        store = PlanStore()
        store.upsert("/plans/a.md", "a.md", "v1", 1000)
        store.upsert("/plans/a.md", "a.md", "v1b", 1000)

        assert store.get("/plans/a.md").content == "v1b"

    def test_delete_and_order(self):
        """Plans list newest first; deletes remove them."""
        store = PlanStore()
        store.upsert("/plans/a.md", "a.md", "a", 1000)
        store.upsert("/plans/b.md", "b.md", "b", 3000)

        assert [p.filename for p in store.all()] == ["b.md", "a.md"]
        store.delete("/plans/b.md")
        assert [p.filename for p in store.all()] == ["a.md"]
