"""
Tests for the montage lifecycle rules
"""
from types import SimpleNamespace

import pytest

from app.workflow import (
    MONTAGE_STATUSES,
    PRECONDITION_LABELS,
    PRECONDITION_INSTALLER,
    PRECONDITION_SAMPLES,
    WorkflowError,
    available_actions,
    blocking_reasons,
    check_transition,
    next_status,
    progress,
    stage_index,
)


def montage(status="lead", sample_status="none", installer_id=None):
    return SimpleNamespace(status=status, sample_status=sample_status, installer_id=installer_id)


@pytest.mark.unit
class TestStages:
    """Tests for stage ordering"""

    def test_stage_order(self):
        assert MONTAGE_STATUSES[0] == "lead"
        assert MONTAGE_STATUSES[-1] == "completed"
        assert stage_index("before_installation") == 3

    def test_unknown_status(self):
        with pytest.raises(WorkflowError):
            stage_index("archived")

    def test_next_status(self):
        assert next_status("lead") == "before_measurement"
        assert next_status("completed") is None


@pytest.mark.unit
class TestTransitions:
    """Tests for check_transition and blocking_reasons"""

    def test_lead_to_measurement_has_no_preconditions(self):
        assert check_transition(montage(), "before_measurement") == "before_measurement"

    def test_samples_must_be_verified_before_first_payment(self):
        m = montage("before_measurement", sample_status="sent")
        with pytest.raises(WorkflowError) as exc:
            check_transition(m, "before_first_payment")
        assert PRECONDITION_LABELS[PRECONDITION_SAMPLES] in str(exc.value)

    def test_verified_or_absent_samples_pass(self):
        for sample_status in ("none", "verified"):
            m = montage("before_measurement", sample_status=sample_status)
            assert check_transition(m, "before_first_payment") == "before_first_payment"

    def test_installation_requires_installer(self):
        m = montage("before_first_payment")
        with pytest.raises(WorkflowError):
            check_transition(m, "before_installation")

        m.installer_id = 5
        assert check_transition(m, "before_installation") == "before_installation"

    def test_jumping_ahead_collects_every_unmet_precondition(self):
        m = montage("lead", sample_status="requested")
        reasons = blocking_reasons(m, "completed")
        assert reasons == [
            PRECONDITION_LABELS[PRECONDITION_SAMPLES],
            PRECONDITION_LABELS[PRECONDITION_INSTALLER],
        ]

    def test_moving_back_is_always_allowed(self):
        m = montage("before_final_invoice", sample_status="requested")
        assert blocking_reasons(m, "lead") == []
        assert check_transition(m, "before_measurement") == "before_measurement"

    def test_unknown_target_rejected(self):
        with pytest.raises(WorkflowError):
            check_transition(montage(), "")


@pytest.mark.unit
class TestActionsAndProgress:
    """Tests for the workflow buttons and the process map"""

    def test_next_stage_is_disabled_with_reasons(self):
        actions = available_actions(montage("before_first_payment"))
        forward = actions[0]
        assert forward.target == "before_installation"
        assert forward.disabled
        assert forward.reasons == [PRECONDITION_LABELS[PRECONDITION_INSTALLER]]

    def test_rollback_targets_listed_newest_first(self):
        actions = available_actions(montage("before_first_payment"))
        assert [a.target for a in actions[1:]] == ["before_measurement", "lead"]
        assert not any(a.disabled for a in actions[1:])

    def test_completed_has_only_rollbacks(self):
        actions = available_actions(montage("completed", installer_id=1))
        assert len(actions) == len(MONTAGE_STATUSES) - 1
        assert all(a.label.startswith("Cofnij") for a in actions)

    def test_progress_states(self):
        states = [state for _, _, state in progress(montage("before_first_payment"))]
        assert states[:3] == ["done", "done", "current"]
        assert set(states[3:]) == {"todo"}
