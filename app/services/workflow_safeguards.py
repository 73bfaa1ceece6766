"""
Workflow Safeguards.

Prevents unchecked retroactive approvals (decisions made after the leave has
already started) and self-approval, per Internal Audit Agency segregation of
duties requirements.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from app.core.config import settings
from app.schemas.approval import ApproverRole

HIGHER_AUTHORITY_ROLES = {ApproverRole.HR_DIRECTOR.value, ApproverRole.CHIEF_DIRECTOR.value}
RETROACTIVE_AUTHORITY_ROLES = HIGHER_AUTHORITY_ROLES | {ApproverRole.HR_OFFICER.value, ApproverRole.DIRECTOR.value}


@dataclass
class RetroactiveApprovalCheck:
    is_retroactive: bool
    days_past_start: int = 0
    requires_justification: bool = False
    requires_higher_approval: bool = False
    error_message: Optional[str] = None


def check_retroactive_approval(start_date: date, status: str, now: Optional[datetime] = None) -> RetroactiveApprovalCheck:
    """
    Flag approvals made after the leave start date.
    Beyond the configured number of days, HR Director authority is required.
    """
    now = now or datetime.now(timezone.utc)
    start = datetime(start_date.year, start_date.month, start_date.day, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if not (now > start and status != "approved"):
        return RetroactiveApprovalCheck(is_retroactive=False)

    days_past_start = (now - start).days
    requires_higher = days_past_start > settings.workflow.retroactive_higher_approval_days
    if requires_higher:
        message = (
            f"This leave started {days_past_start} days ago. Retroactive approval requires "
            "HR Director authorization and mandatory justification."
        )
    else:
        message = f"This leave started {days_past_start} days ago. Retroactive approval requires mandatory justification."

    return RetroactiveApprovalCheck(
        is_retroactive=True,
        days_past_start=days_past_start,
        requires_justification=True,
        requires_higher_approval=requires_higher,
        error_message=message,
    )


def validate_retroactive_justification(justification: Optional[str], days_past_start: int) -> Optional[str]:
    """Returns an error message, or None when the justification is acceptable."""
    if not justification or not justification.strip():
        return "Justification is required for retroactive approvals"

    min_length = 50 if days_past_start > settings.workflow.retroactive_higher_approval_days else 30
    if len(justification.strip()) < min_length:
        return (
            f"Justification must be at least {min_length} characters for retroactive approvals "
            f"({days_past_start} days past start date)"
        )
    return None


def has_retroactive_approval_authority(user_role: Optional[str], requires_higher_approval: bool) -> bool:
    role = (user_role or "").upper()
    if requires_higher_approval:
        return role in HIGHER_AUTHORITY_ROLES
    return role in RETROACTIVE_AUTHORITY_ROLES


def validate_approver_not_self(requester_staff_id: str, approver_staff_id: str) -> bool:
    return requester_staff_id != approver_staff_id
