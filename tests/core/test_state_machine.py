"""State machine tests -- job and commitment transitions

Covers:
1. legal job transitions, including the running -> ready retry edge
2. terminal job states have no outgoing transitions
3. commitment life-cycle transitions
"""

import pytest
from wisdomos.core.models import (
    COMMITMENT_TRANSITIONS,
    JOB_TERMINAL_STATES,
    CommitmentStatus,
    JobStatus,
    validate_commitment_transition,
    validate_job_transition,
)


class TestJobTransitions:
    @pytest.mark.parametrize(
        ("src", "dst"),
        [
            (JobStatus.READY, JobStatus.RUNNING),
            (JobStatus.READY, JobStatus.CANCELLED),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.CANCELLED),
            (JobStatus.RUNNING, JobStatus.READY),
        ],
    )
    def test_legal(self, src, dst):
        assert validate_job_transition(src, dst)

    @pytest.mark.parametrize(
        ("src", "dst"),
        [
            (JobStatus.READY, JobStatus.COMPLETED),
            (JobStatus.READY, JobStatus.FAILED),
            (JobStatus.COMPLETED, JobStatus.READY),
            (JobStatus.FAILED, JobStatus.RUNNING),
            (JobStatus.CANCELLED, JobStatus.READY),
        ],
    )
    def test_illegal(self, src, dst):
        assert not validate_job_transition(src, dst)

    def test_terminal_states_are_final(self):
        """No transition leaves a terminal state"""
        for terminal in JOB_TERMINAL_STATES:
            for target in JobStatus:
                assert not validate_job_transition(terminal, target)


class TestCommitmentTransitions:
    def test_happy_path(self):
        assert validate_commitment_transition(CommitmentStatus.DETECTED, CommitmentStatus.CONFIRMED)
        assert validate_commitment_transition(CommitmentStatus.CONFIRMED, CommitmentStatus.ACTIVE)
        assert validate_commitment_transition(CommitmentStatus.ACTIVE, CommitmentStatus.FULFILLED)
        assert validate_commitment_transition(CommitmentStatus.ACTIVE, CommitmentStatus.BROKEN)

    def test_cannot_skip_confirmation(self):
        assert not validate_commitment_transition(
            CommitmentStatus.DETECTED, CommitmentStatus.FULFILLED
        )

    def test_cancel_from_any_open_state(self):
        for status in (
            CommitmentStatus.DETECTED,
            CommitmentStatus.CONFIRMED,
            CommitmentStatus.ACTIVE,
        ):
            assert validate_commitment_transition(status, CommitmentStatus.CANCELLED)

    def test_closed_states_are_final(self):
        for status in (
            CommitmentStatus.FULFILLED,
            CommitmentStatus.BROKEN,
            CommitmentStatus.CANCELLED,
        ):
            assert COMMITMENT_TRANSITIONS[status] == set()
