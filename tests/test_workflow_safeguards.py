from datetime import date, datetime, timezone

import pytest

from app.services.workflow_safeguards import (
    check_retroactive_approval,
    has_retroactive_approval_authority,
    validate_approver_not_self,
    validate_retroactive_justification,
)

NOW = datetime(2025, 6, 20, 9, 0, tzinfo=timezone.utc)


def test_future_leave_is_not_retroactive():
    assert check_retroactive_approval(date(2025, 6, 25), "pending", NOW).is_retroactive is False


def test_already_approved_leave_is_not_retroactive():
    assert check_retroactive_approval(date(2025, 6, 1), "approved", NOW).is_retroactive is False


def test_same_day_start_is_retroactive_with_zero_days():
    check = check_retroactive_approval(date(2025, 6, 20), "pending", NOW)
    assert check.is_retroactive is True
    assert check.days_past_start == 0
    assert check.requires_higher_approval is False


def test_long_past_start_requires_higher_approval():
    check = check_retroactive_approval(date(2025, 6, 1), "pending", NOW)
    assert check.days_past_start == 19
    assert check.requires_higher_approval is True
    assert "HR Director" in check.error_message


@pytest.mark.parametrize("text,days,ok", [
    (None, 2, False),
    ("   ", 2, False),
    ("x" * 29, 2, False),
    ("x" * 30, 2, True),
    ("x" * 30, 10, False),
    ("x" * 50, 10, True),
])
def test_justification_length(text, days, ok):
    assert (validate_retroactive_justification(text, days) is None) is ok


def test_retroactive_authority():
    assert has_retroactive_approval_authority("HR_OFFICER", False) is True
    assert has_retroactive_approval_authority("SUPERVISOR", False) is False
    assert has_retroactive_approval_authority("HR_OFFICER", True) is False
    assert has_retroactive_approval_authority("hr_director", True) is True


def test_self_approval_is_blocked():
    assert validate_approver_not_self("MFA-001", "MFA-001") is False
    assert validate_approver_not_self("MFA-001", "MFA-002") is True
