"""
Workflow template selection.

Maps a staff member's place in the MoFAD structure (duty station, directorate,
unit, position) to the approval chain their leave must travel:

- HQ / directorate staff: Supervisor → Unit Head → Director (or Chief Director) → HR Officer
- HRMU staff: the HQ chain with an HR Director segregation step before HR Officer
- Regional / district staff: Supervisor → Regional Manager → Director → HR Officer
- Directors: HR Director → Chief Director
- Chief Director: HR Director only (no self-approval; the leave is recorded)
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from app.core.config import settings
from app.schemas.approval import (
    ApprovalCondition,
    ApprovalLevel,
    ApproverRole,
    ConditionOperator,
    ConditionType,
)

logger = logging.getLogger(__name__)

STANDARD_WORKFLOW = "Standard Staff Leave"
HRMU_WORKFLOW = "HRMU Staff Leave"
REGIONAL_WORKFLOW = "Regional Staff Leave"
AGENCY_WORKFLOW = "Agency Staff Leave"
DIRECTOR_WORKFLOW = "Director Leave"
CHIEF_DIRECTOR_WORKFLOW = "Chief Director Leave"

FINANCE_ADMIN = "Finance & Administration Directorate"
PPME_DIRECTORATE = "Policy, Planning, Monitoring & Evaluation (PPME) Directorate"


@dataclass(frozen=True)
class UnitConfig:
    unit: str
    directorate: Optional[str]  # None: reports to the Chief Director
    special_workflow: Optional[str] = None  # "HRMU" | "AUDIT"


MOFA_UNITS: List[UnitConfig] = [
    # Office of the Minister
    UnitConfig("Ministerial Secretariat", None),
    UnitConfig("Protocol Unit", None),
    UnitConfig("Public Affairs / Communications Unit", None),
    # Office of the Chief Director
    UnitConfig("Policy, Planning, Monitoring & Evaluation (PPME)", None),
    UnitConfig("Internal Audit Unit", None, special_workflow="AUDIT"),
    UnitConfig("Legal Unit", None),
    UnitConfig("Research, Statistics & Information Management (RSIM) Unit", None),
    UnitConfig("Procurement Unit", None),
    # Finance & Administration Directorate
    UnitConfig("Human Resource Management Unit (HRMU)", FINANCE_ADMIN, special_workflow="HRMU"),
    UnitConfig("Accounts Unit", FINANCE_ADMIN),
    UnitConfig("Budget Unit", FINANCE_ADMIN),
    UnitConfig("Stores Unit", FINANCE_ADMIN),
    UnitConfig("Transport & Logistics Unit", FINANCE_ADMIN),
    UnitConfig("Records / Registry Unit", FINANCE_ADMIN),
    # PPME Directorate
    UnitConfig("Policy Analysis Unit", PPME_DIRECTORATE),
    UnitConfig("Monitoring & Evaluation Unit", PPME_DIRECTORATE),
    UnitConfig("Project Coordination Unit", PPME_DIRECTORATE),
    UnitConfig("ICT Unit", PPME_DIRECTORATE),
]


@dataclass
class StaffOrgInfo:
    staff_id: str
    grade: str = ""
    position: str = ""
    duty_station: Optional[str] = None  # HQ | Region | District | Agency
    directorate: Optional[str] = None
    division: Optional[str] = None
    unit: Optional[str] = None
    immediate_supervisor_id: Optional[str] = None


@dataclass
class WorkflowTemplate:
    name: str
    levels: List[ApprovalLevel] = field(default_factory=list)


def get_unit_config(unit: Optional[str]) -> Optional[UnitConfig]:
    if not unit:
        return None
    needle = unit.lower()
    for config in MOFA_UNITS:
        name = config.unit.lower()
        if name == needle or name in needle or needle in name:
            return config
    return None


def reports_to_chief_director(unit: Optional[str], directorate: Optional[str]) -> bool:
    config = get_unit_config(unit)
    if config is not None:
        return config.directorate is None
    return not directorate or not directorate.strip()


def is_hrmu(unit: Optional[str]) -> bool:
    if not unit:
        return False
    config = get_unit_config(unit)
    lowered = unit.lower()
    return (
        (config is not None and config.special_workflow == "HRMU")
        or "human resource management" in lowered
        or "hrmu" in lowered
    )


def is_internal_audit_unit(unit: Optional[str]) -> bool:
    if not unit:
        return False
    config = get_unit_config(unit)
    return (config is not None and config.special_workflow == "AUDIT") or "internal audit" in unit.lower()


def get_directorate_for_unit(unit: Optional[str]) -> Optional[str]:
    config = get_unit_config(unit)
    return config.directorate if config else None


def is_chief_director(staff: StaffOrgInfo) -> bool:
    return "chief director" in staff.position.lower()


def is_senior_staff(staff: StaffOrgInfo) -> bool:
    return "director" in staff.position.lower() or "director" in staff.grade.lower()


class _ChainBuilder:
    def __init__(self):
        self.levels: List[ApprovalLevel] = []

    def add(self, role: ApproverRole, approver_staff_id: Optional[str] = None) -> "_ChainBuilder":
        self.levels.append(ApprovalLevel(
            level=len(self.levels) + 1,
            approver_role=role,
            approver_staff_id=approver_staff_id,
        ))
        return self


def determine_approval_workflow(staff: StaffOrgInfo) -> WorkflowTemplate:
    """
    Build the approval chain for a staff member's leave.
    All generated levels are required, sequential and pending.
    """
    chain = _ChainBuilder()

    if is_chief_director(staff):
        chain.add(ApproverRole.HR_DIRECTOR)
        return WorkflowTemplate(CHIEF_DIRECTOR_WORKFLOW, chain.levels)

    if is_senior_staff(staff):
        chain.add(ApproverRole.HR_DIRECTOR).add(ApproverRole.CHIEF_DIRECTOR)
        return WorkflowTemplate(DIRECTOR_WORKFLOW, chain.levels)

    station = (staff.duty_station or "HQ").strip()

    if station in ("Region", "District"):
        chain.add(ApproverRole.SUPERVISOR, staff.immediate_supervisor_id)
        chain.add(ApproverRole.REGIONAL_MANAGER)
        if staff.directorate:
            chain.add(ApproverRole.DIRECTOR)
        chain.add(ApproverRole.HR_OFFICER)
        return WorkflowTemplate(REGIONAL_WORKFLOW, chain.levels)

    if station == "Agency":
        chain.add(ApproverRole.SUPERVISOR, staff.immediate_supervisor_id)
        chain.add(ApproverRole.HR_OFFICER)
        return WorkflowTemplate(AGENCY_WORKFLOW, chain.levels)

    hrmu = is_hrmu(staff.unit)
    chain.add(ApproverRole.SUPERVISOR, staff.immediate_supervisor_id)
    if staff.unit:
        chain.add(ApproverRole.UNIT_HEAD)
    if staff.division:
        chain.add(ApproverRole.DIVISION_HEAD)
    if reports_to_chief_director(staff.unit, staff.directorate):
        chain.add(ApproverRole.CHIEF_DIRECTOR)
    else:
        chain.add(ApproverRole.DIRECTOR)
    if hrmu:
        # Segregation of duties: HR staff leave needs the HR Director too
        chain.add(ApproverRole.HR_DIRECTOR)
    chain.add(ApproverRole.HR_OFFICER)

    return WorkflowTemplate(HRMU_WORKFLOW if hrmu else STANDARD_WORKFLOW, chain.levels)


def extended_leave_overlay(template: WorkflowTemplate, threshold_days: float) -> Optional[ApprovalLevel]:
    """
    Optional Director review for long leave, inserted ahead of the final HR step.
    Returns None when the chain already has a Director level.
    """
    if any(l.approver_role == ApproverRole.DIRECTOR for l in template.levels):
        return None
    return ApprovalLevel(
        level=1,  # renumbered by apply_policy_overlays
        approver_role=ApproverRole.DIRECTOR,
        required=False,
        conditions=[ApprovalCondition(type=ConditionType.DAYS, operator=ConditionOperator.GT, value=threshold_days)],
    )


def apply_policy_overlays(template: WorkflowTemplate) -> WorkflowTemplate:
    """
    Add configured optional levels to a template. Optional levels are only
    kept later if their conditions hold for the request.
    """
    if not settings.workflow.enable_policy_overlays or template.name == CHIEF_DIRECTOR_WORKFLOW:
        return template

    overlay = extended_leave_overlay(template, settings.workflow.extended_leave_director_days)
    if overlay is None:
        return template

    levels = list(template.levels)
    # Keep the HR Officer as the final step
    insert_at = len(levels) - 1 if levels and levels[-1].approver_role == ApproverRole.HR_OFFICER else len(levels)
    levels.insert(insert_at, overlay)
    renumbered = [lvl.model_copy(update={"level": i + 1}) for i, lvl in enumerate(levels)]
    logger.debug(f"Applied extended-leave overlay to '{template.name}'")
    return WorkflowTemplate(template.name, renumbered)


def renumber_levels(levels: List[ApprovalLevel]) -> List[ApprovalLevel]:
    """Close gaps left by filtered-out optional levels, keeping parallel cohorts together."""
    result = []
    ordinal_map = {}
    for lvl in levels:
        if lvl.level not in ordinal_map:
            ordinal_map[lvl.level] = len(ordinal_map) + 1
        result.append(lvl.model_copy(update={"level": ordinal_map[lvl.level]}))
    return result
