"""
Approval Workflow Engine.

Pure functions over a leave request's approval chain: conditional routing,
parallel approval cohorts, escalation timing, overall status and next-approver
resolution. Nothing here touches the database or sends notifications; callers
persist the results (see app.services.approval_service).

None of these functions raise for odd input. Unknown condition types pass,
missing optional request fields fail, and incomparable values compare false.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.schemas.approval import (
    ApprovalCondition,
    ApprovalLevel,
    ConditionOperator,
    ConditionType,
    EscalationDecision,
    LeaveData,
    LevelStatus,
    OverallStatus,
)

_ACTIONABLE = (LevelStatus.PENDING, LevelStatus.DELEGATED)


def _compare(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
    try:
        if operator == ConditionOperator.GT:
            return actual > expected
        if operator == ConditionOperator.GTE:
            return actual >= expected
        if operator == ConditionOperator.LT:
            return actual < expected
        if operator == ConditionOperator.LTE:
            return actual <= expected
    except TypeError:
        return False
    if operator == ConditionOperator.EQ:
        return actual == expected
    if operator == ConditionOperator.IN:
        return isinstance(expected, list) and actual in expected
    if operator == ConditionOperator.NOT_IN:
        return isinstance(expected, list) and actual not in expected
    return False


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


def _condition_holds(condition: ApprovalCondition, leave_data: LeaveData) -> bool:
    ctype, op, expected = condition.type, condition.operator, condition.value

    if ctype == ConditionType.DAYS:
        return _compare(leave_data.days, op, expected)

    if ctype == ConditionType.LEAVE_TYPE:
        # Only equality and membership make sense for a leave type
        if op == ConditionOperator.EQ:
            return leave_data.leave_type == expected
        if op == ConditionOperator.IN:
            return isinstance(expected, list) and leave_data.leave_type in expected
        return False

    field_by_type = {
        ConditionType.DEPARTMENT: leave_data.department,
        ConditionType.GRADE: leave_data.grade,
        ConditionType.AMOUNT: leave_data.amount,
    }
    if ctype in field_by_type:
        actual = field_by_type[ctype]
        if _is_absent(actual):
            return False
        return _compare(actual, op, expected)

    # No rule for this condition type
    return True


def check_approval_conditions(level: ApprovalLevel, leave_data: LeaveData) -> bool:
    """
    Check whether every activation condition of a level holds for a request.

    Conditions are AND-combined. A level without conditions always applies.
    """
    if not level.conditions:
        return True
    return all(_condition_holds(c, leave_data) for c in level.conditions)


def get_required_approval_levels(levels: List[ApprovalLevel], leave_data: LeaveData) -> List[ApprovalLevel]:
    """
    Reduce a workflow template to the levels that apply to this request.

    Required levels are always kept; optional ones only when their conditions
    hold. Input order is preserved.
    """
    return [
        level for level in levels
        if level.required or check_approval_conditions(level, leave_data)
    ]


def group_parallel_cohorts(levels: List[ApprovalLevel]) -> Dict[str, List[ApprovalLevel]]:
    """Group parallel levels by cohort, keeping first-seen order."""
    cohorts: Dict[str, List[ApprovalLevel]] = {}
    for level in levels:
        if level.parallel:
            cohorts.setdefault(level.cohort_key, []).append(level)
    return cohorts


def are_parallel_approvals_complete(levels: List[ApprovalLevel]) -> bool:
    """
    True only when every parallel cohort is fully approved and every
    sequential level is approved.
    """
    for cohort in group_parallel_cohorts(levels).values():
        if any(l.status == LevelStatus.REJECTED for l in cohort):
            return False
        if not all(l.status == LevelStatus.APPROVED for l in cohort):
            return False

    for level in levels:
        if not level.parallel and level.status != LevelStatus.APPROVED:
            return False

    return True


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hours_between(start: datetime, end: datetime) -> float:
    return (_as_utc(end) - _as_utc(start)).total_seconds() / 3600


def check_escalation(
    level: ApprovalLevel,
    submitted_at: datetime,
    now: Optional[datetime] = None,
) -> EscalationDecision:
    """
    Decide whether a pending level is overdue.

    Rules are checked from the largest threshold down, so only the furthest
    tier that has been reached fires. Applying the decision is up to the caller.
    """
    if not level.escalation_rules or level.status != LevelStatus.PENDING:
        return EscalationDecision(should_escalate=False)

    elapsed = hours_between(submitted_at, now or datetime.now(timezone.utc))

    for rule in sorted(level.escalation_rules, key=lambda r: r.trigger_after_hours, reverse=True):
        if elapsed >= rule.trigger_after_hours:
            return EscalationDecision(
                should_escalate=True,
                escalate_to=rule.escalate_to,
                auto_approve=rule.auto_approve,
                notify=rule.notify,
                trigger_after_hours=rule.trigger_after_hours,
            )

    return EscalationDecision(should_escalate=False)


def calculate_approval_status(levels: List[ApprovalLevel]) -> OverallStatus:
    """Combine level states into the request's overall status."""
    if any(l.status == LevelStatus.REJECTED for l in levels):
        return OverallStatus.REJECTED

    required_levels = [l for l in levels if l.required]
    if not required_levels:
        return OverallStatus.APPROVED

    if all(l.status == LevelStatus.APPROVED for l in required_levels):
        if any(l.parallel for l in levels):
            return OverallStatus.APPROVED if are_parallel_approvals_complete(levels) else OverallStatus.PENDING
        return OverallStatus.APPROVED

    return OverallStatus.PENDING


def get_next_approvers(levels: List[ApprovalLevel]) -> List[ApprovalLevel]:
    """
    Levels that can be acted on right now.

    All undecided parallel levels are actionable together. Otherwise the
    lowest undecided sequential level is returned, provided every earlier
    sequential level is approved.
    """
    candidates = [l for l in levels if l.status in _ACTIONABLE]
    if not candidates:
        return []

    parallel_candidates = [l for l in candidates if l.parallel]
    if parallel_candidates:
        return parallel_candidates

    first = min(candidates, key=lambda l: l.level)
    earlier = [l for l in levels if l.level < first.level and not l.parallel]
    if all(l.status == LevelStatus.APPROVED for l in earlier):
        return [first]

    return []
