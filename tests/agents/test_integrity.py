"""IntegrityAgent and time-lock tests

Covers:
1. evaluate_time_lock windows
2. severity_for and integrity_score
3. missed actions on active commitments raise deduplicated issues
4. the sweep breaks overdue commitments and scores users
5. issue life-cycle: acknowledge, resolve, dismiss
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from wisdomos.agents import evaluate_time_lock, integrity_score, severity_for
from wisdomos.core.exceptions import ConflictError, UnauthorizedError
from wisdomos.core.models import (
    ActionStatus,
    AgentType,
    CommitmentStatus,
    EventType,
    IntegrityIssue,
    IssueStatus,
    IssueType,
    Severity,
)

T0 = datetime(2025, 3, 10, tzinfo=UTC)


def _issue(severity: Severity, status: IssueStatus = IssueStatus.OPEN) -> IntegrityIssue:
    return IntegrityIssue(
        issue_id=f"i-{severity}-{status}",
        user_id="u1",
        commitment_id="c1",
        issue_type=IssueType.ACTION_MISSED,
        severity=severity,
        status=status,
        created_at=T0,
        updated_at=T0,
    )


@pytest.fixture
def integrity(system):
    return system.agents[AgentType.INTEGRITY]


@pytest_asyncio.fixture
async def active_commitment(system):
    """Auto-spawned commitment (confidence 0.9, so issues are high severity)"""
    entry = await system.agents[AgentType.JOURNAL].ingest("u1", "I will run every morning.")
    [commitment] = await system.agents[AgentType.COMMITMENT].detect(entry.entry_id)
    return commitment


class TestTimeLock:
    @pytest.mark.parametrize(
        ("days", "allowed", "reason"),
        [
            (0, True, "within_grace_period"),
            (7, True, "within_grace_period"),
            (8, True, "within_lock_window"),
            (90, True, "within_lock_window"),
        ],
    )
    def test_allowed(self, days, allowed, reason):
        decision = evaluate_time_lock(T0, T0 + timedelta(days=days))
        assert decision.allowed is allowed
        assert decision.reason == reason
        assert decision.days_difference == days

    def test_rejected_past_lock(self):
        decision = evaluate_time_lock(T0, T0 + timedelta(days=91))
        assert decision.allowed is False
        assert "91 days" in decision.reason

    def test_direction_ignored(self):
        """An entry dated in the future is measured the same way"""
        assert evaluate_time_lock(T0 + timedelta(days=120), T0).allowed is False

    @pytest.mark.parametrize(("days", "allowed"), [(5, True), (120, False)])
    def test_default_windows(self, days, allowed):
        """7-day grace and 90-day lock unless configured otherwise"""
        assert evaluate_time_lock(T0, T0 + timedelta(days=days)).allowed is allowed

    def test_custom_windows(self):
        decision = evaluate_time_lock(T0, T0 + timedelta(days=5), grace_days=1, lock_days=3)
        assert decision.allowed is False


class TestScoring:
    @pytest.mark.parametrize(
        ("confidence", "severity"),
        [
            (0.95, Severity.HIGH),
            (0.9, Severity.HIGH),
            (0.75, Severity.MEDIUM),
            (0.6, Severity.LOW),
        ],
    )
    def test_severity_for(self, confidence, severity):
        assert severity_for(confidence) == severity

    def test_integrity_score(self):
        issues = [
            _issue(Severity.HIGH),
            _issue(Severity.MEDIUM, IssueStatus.ACKNOWLEDGED),
            _issue(Severity.LOW),
            _issue(Severity.HIGH, IssueStatus.RESOLVED),
        ]
        assert integrity_score(issues) == 65

    def test_floor_and_no_commitments(self):
        issues = [_issue(Severity.HIGH) for _ in range(6)]
        assert integrity_score(issues) == 0
        assert integrity_score(issues, has_active_commitments=False) == 100


class TestIssues:
    async def test_missed_action_raises_issue(self, integrity, active_commitment, store_group):
        issue = await integrity.on_action_missed(
            active_commitment.commitment_id, action_id="a1", description="missed"
        )
        assert issue.issue_type == IssueType.ACTION_MISSED
        assert issue.severity == Severity.HIGH
        assert issue.status == IssueStatus.OPEN

        raised = await store_group.event_store.list_events(EventType.INTEGRITY_ISSUE_RAISED)
        assert raised[0].payload["issue_id"] == issue.issue_id

    async def test_deduplicated(self, integrity, active_commitment, store_group):
        first = await integrity.on_action_missed(active_commitment.commitment_id, "a1", "missed")
        second = await integrity.on_action_missed(active_commitment.commitment_id, "a1", "again")
        assert first.issue_id == second.issue_id
        assert len(await store_group.integrity_store.find_by_user("u1")) == 1
        assert len(await store_group.event_store.list_events(EventType.INTEGRITY_ISSUE_RAISED)) == 1

    async def test_failure_for_another_user_ignored(self, integrity, active_commitment):
        issue = await integrity.on_action_missed(
            active_commitment.commitment_id, None, "missed", user_id="intruder"
        )
        assert issue is None

    async def test_inactive_commitment_ignored(self, integrity, system):
        entry = await system.agents[AgentType.JOURNAL].ingest("u1", "I plan to read more.")
        [detected] = await system.agents[AgentType.COMMITMENT].detect(entry.entry_id)
        assert await integrity.on_action_missed(detected.commitment_id, "a1", "missed") is None

    async def test_failed_action_reaction(self, system, active_commitment, store_group):
        """action.failed reaches the agent through the fan-out"""
        commitments = system.agents[AgentType.COMMITMENT]
        action = await commitments.record_action(
            "u1", active_commitment.commitment_id, "Morning run"
        )
        await commitments.update_action("u1", action.action_id, ActionStatus.FAILED)
        await system.orchestrator.run_until_idle()

        [issue] = await store_group.integrity_store.find_by_user("u1")
        assert issue.action_id == action.action_id
        assert "Morning run" in issue.description


class TestSweep:
    async def test_overdue_commitment_broken(
        self, integrity, active_commitment, clock, store_group
    ):
        await store_group.commitment_store.set_target_date(
            active_commitment.commitment_id, clock.now() + timedelta(days=1), clock.now()
        )
        clock.advance(days=2)

        scores = await integrity.sweep("u1")

        assert scores == {"u1": 80}
        stored = await store_group.commitment_store.get_commitment(
            active_commitment.commitment_id
        )
        assert stored.status == CommitmentStatus.BROKEN
        [issue] = await store_group.integrity_store.find_by_user("u1")
        assert issue.issue_type == IssueType.PROMISE_BROKEN
        assert issue.severity == Severity.HIGH

        computed = await store_group.event_store.list_events(EventType.INTEGRITY_SCORE_COMPUTED)
        assert computed[-1].payload["score"] == 80
        assert computed[-1].payload["open_issues"] == 1

    async def test_future_target_untouched(self, integrity, active_commitment, clock, store_group):
        await store_group.commitment_store.set_target_date(
            active_commitment.commitment_id, clock.now() + timedelta(days=30), clock.now()
        )
        assert await integrity.sweep("u1") == {"u1": 100}
        stored = await store_group.commitment_store.get_commitment(
            active_commitment.commitment_id
        )
        assert stored.status == CommitmentStatus.ACTIVE

    async def test_sweep_all_users(self, integrity, active_commitment):
        assert await integrity.sweep() == {"u1": 100}

    async def test_scheduled_sweep_job(self, system, active_commitment, store_group):
        job = await system.run_scheduled_integrity_sweep()
        summary = await system.orchestrator.run_until_idle()
        assert summary.failed == 0
        assert (await system.orchestrator.get_job(job.job_id)).status == "completed"


class TestIssueLifecycle:
    @pytest_asyncio.fixture
    async def issue(self, integrity, active_commitment):
        return await integrity.on_action_missed(active_commitment.commitment_id, "a1", "missed")

    async def test_acknowledge_then_resolve(self, integrity, issue, store_group):
        acknowledged = await integrity.acknowledge_issue("u1", issue.issue_id)
        assert acknowledged.status == IssueStatus.ACKNOWLEDGED
        # acknowledged issues still count
        assert await integrity.sweep("u1") == {"u1": 80}

        resolved = await integrity.resolve_issue("u1", issue.issue_id, "ran twice the next day")
        assert resolved.status == IssueStatus.RESOLVED
        assert resolved.resolution == "ran twice the next day"
        assert resolved.resolved_at is not None
        assert await integrity.sweep("u1") == {"u1": 100}

        events = await store_group.event_store.list_events(EventType.INTEGRITY_ISSUE_RESOLVED)
        assert events[0].payload["status"] == "resolved"

    async def test_acknowledge_twice(self, integrity, issue):
        await integrity.acknowledge_issue("u1", issue.issue_id)
        with pytest.raises(ConflictError):
            await integrity.acknowledge_issue("u1", issue.issue_id)

    async def test_dismiss_closed_issue(self, integrity, issue):
        dismissed = await integrity.dismiss_issue("u1", issue.issue_id, "not relevant")
        assert dismissed.status == IssueStatus.DISMISSED
        with pytest.raises(ConflictError):
            await integrity.resolve_issue("u1", issue.issue_id, "late")

    async def test_other_user(self, integrity, issue):
        with pytest.raises(UnauthorizedError):
            await integrity.acknowledge_issue("u2", issue.issue_id)
