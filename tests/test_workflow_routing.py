import pytest

from app.core.config import settings
from app.schemas.approval import ApprovalLevel, ApproverRole, LeaveData
from app.services import workflow_routing as routing
from app.services.approval_workflow import get_required_approval_levels


def roles(template_or_levels):
    levels = getattr(template_or_levels, "levels", template_or_levels)
    return [l.approver_role for l in levels]


def test_hq_directorate_staff_follow_standard_chain():
    staff = routing.StaffOrgInfo(
        staff_id="MFA-100", duty_station="HQ", unit="Accounts Unit",
        directorate=routing.FINANCE_ADMIN, immediate_supervisor_id="MFA-101",
    )
    template = routing.determine_approval_workflow(staff)
    assert template.name == routing.STANDARD_WORKFLOW
    assert roles(template) == [
        ApproverRole.SUPERVISOR, ApproverRole.UNIT_HEAD, ApproverRole.DIRECTOR, ApproverRole.HR_OFFICER,
    ]
    assert template.levels[0].approver_staff_id == "MFA-101"
    assert [l.level for l in template.levels] == [1, 2, 3, 4]


def test_unit_under_chief_director_routes_to_chief_director():
    staff = routing.StaffOrgInfo(staff_id="MFA-102", unit="Legal Unit")
    assert roles(routing.determine_approval_workflow(staff)) == [
        ApproverRole.SUPERVISOR, ApproverRole.UNIT_HEAD, ApproverRole.CHIEF_DIRECTOR, ApproverRole.HR_OFFICER,
    ]


def test_hrmu_staff_get_hr_director_segregation_step():
    staff = routing.StaffOrgInfo(staff_id="MFA-103", unit="Human Resource Management Unit (HRMU)", division="Personnel")
    template = routing.determine_approval_workflow(staff)
    assert template.name == routing.HRMU_WORKFLOW
    assert roles(template) == [
        ApproverRole.SUPERVISOR, ApproverRole.UNIT_HEAD, ApproverRole.DIVISION_HEAD,
        ApproverRole.DIRECTOR, ApproverRole.HR_DIRECTOR, ApproverRole.HR_OFFICER,
    ]


def test_regional_staff_route_through_regional_manager():
    staff = routing.StaffOrgInfo(staff_id="MFA-104", duty_station="Region", directorate="Crops Services")
    template = routing.determine_approval_workflow(staff)
    assert template.name == routing.REGIONAL_WORKFLOW
    assert roles(template) == [
        ApproverRole.SUPERVISOR, ApproverRole.REGIONAL_MANAGER, ApproverRole.DIRECTOR, ApproverRole.HR_OFFICER,
    ]


def test_agency_staff_have_short_chain():
    template = routing.determine_approval_workflow(routing.StaffOrgInfo(staff_id="MFA-105", duty_station="Agency"))
    assert template.name == routing.AGENCY_WORKFLOW
    assert roles(template) == [ApproverRole.SUPERVISOR, ApproverRole.HR_OFFICER]


def test_directors_go_to_hr_director_then_chief_director():
    staff = routing.StaffOrgInfo(staff_id="MFA-106", position="Director, Crops Services")
    template = routing.determine_approval_workflow(staff)
    assert template.name == routing.DIRECTOR_WORKFLOW
    assert roles(template) == [ApproverRole.HR_DIRECTOR, ApproverRole.CHIEF_DIRECTOR]


def test_chief_director_leave_never_self_approves():
    staff = routing.StaffOrgInfo(staff_id="MFA-107", position="Chief Director")
    template = routing.determine_approval_workflow(staff)
    assert template.name == routing.CHIEF_DIRECTOR_WORKFLOW
    assert roles(template) == [ApproverRole.HR_DIRECTOR]


@pytest.mark.parametrize("unit,expected", [
    ("Human Resource Management Unit (HRMU)", True),
    ("hrmu", True),
    ("Accounts Unit", False),
    (None, False),
])
def test_is_hrmu(unit, expected):
    assert routing.is_hrmu(unit) is expected


def test_unit_lookup_helpers():
    assert routing.is_internal_audit_unit("Internal Audit Unit") is True
    assert routing.get_directorate_for_unit("ICT Unit") == routing.PPME_DIRECTORATE
    assert routing.get_directorate_for_unit("Unknown Unit") is None
    assert routing.reports_to_chief_director("Procurement Unit", None) is True
    assert routing.reports_to_chief_director(None, "Crops Services") is False


def test_extended_leave_overlay_sits_before_hr_officer():
    template = routing.apply_policy_overlays(
        routing.determine_approval_workflow(routing.StaffOrgInfo(staff_id="MFA-105", duty_station="Agency"))
    )
    assert roles(template) == [ApproverRole.SUPERVISOR, ApproverRole.DIRECTOR, ApproverRole.HR_OFFICER]
    overlay = template.levels[1]
    assert overlay.required is False
    assert [l.level for l in template.levels] == [1, 2, 3]

    threshold = settings.workflow.extended_leave_director_days
    short = get_required_approval_levels(template.levels, LeaveData(days=threshold, leave_type="Annual"))
    assert roles(short) == [ApproverRole.SUPERVISOR, ApproverRole.HR_OFFICER]
    long = get_required_approval_levels(template.levels, LeaveData(days=threshold + 1, leave_type="Annual"))
    assert roles(long) == [ApproverRole.SUPERVISOR, ApproverRole.DIRECTOR, ApproverRole.HR_OFFICER]


def test_no_overlay_when_chain_has_director():
    base = routing.determine_approval_workflow(routing.StaffOrgInfo(staff_id="MFA-104", duty_station="Region", directorate="Crops Services"))
    assert routing.apply_policy_overlays(base).levels == base.levels


def test_renumber_closes_gaps_and_keeps_cohorts_together():
    levels = [
        ApprovalLevel(level=1, approver_role=ApproverRole.SUPERVISOR),
        ApprovalLevel(level=3, approver_role=ApproverRole.HR_OFFICER, parallel=True),
        ApprovalLevel(level=3, approver_role=ApproverRole.DIRECTOR, parallel=True),
        ApprovalLevel(level=5, approver_role=ApproverRole.HR_DIRECTOR),
    ]
    assert [l.level for l in routing.renumber_levels(levels)] == [1, 2, 2, 3]
