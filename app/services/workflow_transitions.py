"""
Workflow state transition rules for leave requests and their approval steps.
"""
import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from app.core.exceptions import InvalidTransitionError
from app.schemas.approval import ApprovalLevel, LevelStatus


class LeaveRequestStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    # Chief Director leave is recorded (reported to OHCS) rather than approved
    RECORDED = "recorded"


VALID_LEAVE_TRANSITIONS: Dict[Tuple[str, str], str] = {
    ("draft", "pending"): "On submit",
    ("pending", "approved"): "All levels approved",
    ("pending", "rejected"): "Any level rejected",
    ("pending", "cancelled"): "Employee/HR cancels",
    ("pending", "recorded"): "Chief Director leave - HR Director approved",
    ("rejected", "pending"): "Resubmission",
    ("approved", "cancelled"): "HR cancels",
}

VALID_STEP_TRANSITIONS: Dict[Tuple[str, str], str] = {
    ("pending", "approved"): "Approver approves",
    ("pending", "rejected"): "Approver rejects",
    ("pending", "delegated"): "Approver delegates",
    ("pending", "skipped"): "Escalation or auto-skip",
    ("delegated", "approved"): "Delegate approves",
    ("delegated", "rejected"): "Delegate rejects",
}


@dataclass(frozen=True)
class TransitionCheck:
    valid: bool
    reason: Optional[str] = None


def _value(status: Union[str, enum.Enum]) -> str:
    return status.value if isinstance(status, enum.Enum) else str(status)


def _check(table: Dict[Tuple[str, str], str], current, new) -> TransitionCheck:
    src, dst = _value(current), _value(new)
    if (src, dst) in table:
        return TransitionCheck(valid=True)
    allowed = ", ".join(to for (frm, to) in table if frm == src) or "none"
    return TransitionCheck(
        valid=False,
        reason=f"Invalid transition from {src} to {dst}. Valid transitions from {src}: {allowed}",
    )


def is_valid_leave_transition(current, new) -> TransitionCheck:
    return _check(VALID_LEAVE_TRANSITIONS, current, new)


def is_valid_step_transition(current, new) -> TransitionCheck:
    return _check(VALID_STEP_TRANSITIONS, current, new)


def validate_workflow_transition(
    current_status,
    new_status,
    current_step_status=None,
    new_step_status=None,
) -> List[str]:
    """
    Validate a leave status change and, optionally, the step change that caused it.
    Returns a list of error messages; empty means valid.
    """
    errors = []
    leave_check = is_valid_leave_transition(current_status, new_status)
    if not leave_check.valid:
        errors.append(leave_check.reason)
    if current_step_status is not None and new_step_status is not None:
        step_check = is_valid_step_transition(current_step_status, new_step_status)
        if not step_check.valid:
            errors.append(step_check.reason)
    return errors


def get_valid_transitions(status, kind: str = "leave") -> List[str]:
    table = VALID_LEAVE_TRANSITIONS if kind == "leave" else VALID_STEP_TRANSITIONS
    src = _value(status)
    return [to for (frm, to) in table if frm == src]


def assert_step_transition(current, new) -> None:
    check = is_valid_step_transition(current, new)
    if not check.valid:
        raise InvalidTransitionError(check.reason, details={"from": _value(current), "to": _value(new)})


def assert_leave_transition(current, new) -> None:
    check = is_valid_leave_transition(current, new)
    if not check.valid:
        raise InvalidTransitionError(check.reason, details={"from": _value(current), "to": _value(new)})


def transition_level(level: ApprovalLevel, new_status: LevelStatus, **changes) -> ApprovalLevel:
    """
    Return a copy of ``level`` moved to ``new_status``.

    The step transition is validated first and the copy is re-validated, so
    delegation fields are dropped whenever the level leaves ``delegated``.
    """
    assert_step_transition(level.status, new_status)
    data = level.model_dump()
    if new_status != LevelStatus.DELEGATED:
        data.update(delegated_to=None, delegated_to_name=None, delegation_date=None)
    data.update(changes)
    data["status"] = new_status
    return ApprovalLevel.model_validate(data)
