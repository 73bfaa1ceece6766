"""
Escalation Engine.

Scheduled job (see POST /api/cron/escalation) that looks at every pending leave
request, asks the pure check_escalation() whether each actionable level is
overdue, and applies the result: auto-approve, reassign, or notify.

Levels without their own rules fall back to a notify-only reminder once they
have been pending for a configured number of working days.

Each tier fires at most once per level; fired tiers are remembered through
the append-only approval history.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import AppException
from app.models.approval_history import ApprovalHistory
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.schemas.approval import (
    ApprovalLevel,
    ApproverRole,
    EscalationDecision,
    HistoryAction,
    LevelStatus,
    dump_levels,
    load_levels,
)
from app.schemas.leave import EscalationRunSummary
from app.services import approval_workflow as workflow
from app.services.approval_service import ApprovalService, final_status_for
from app.services.notification import NotificationService
from app.services.workflow_transitions import assert_leave_transition, transition_level

SYSTEM_ACTOR = "system"


def calculate_working_days(start: date, end: date) -> int:
    """Working days between two dates inclusive, weekends excluded."""
    if end < start:
        return 0
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def _utc_date(value: datetime) -> date:
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(timezone.utc).date()


def default_escalation(submitted_at: datetime, now: datetime) -> Tuple[EscalationDecision, Dict[str, Any]]:
    """
    Default reminder for a level that carries no rules of its own. Pending time
    is counted in working days from the submission date.
    """
    threshold = settings.workflow.escalation_default_working_days
    if not settings.workflow.escalation_default_notify:
        return EscalationDecision(should_escalate=False), {}
    pending_days = calculate_working_days(_utc_date(submitted_at), _utc_date(now))
    if pending_days < threshold:
        return EscalationDecision(should_escalate=False), {}
    decision = EscalationDecision(should_escalate=True, notify=True)
    return decision, {"trigger_working_days": threshold}


def _role_or_none(value: str) -> Optional[ApproverRole]:
    try:
        return ApproverRole(value)
    except ValueError:
        return None


def _same_level(a: ApprovalLevel, b: ApprovalLevel) -> bool:
    return a.level == b.level and a.cohort_key == b.cohort_key and a.approver_role == b.approver_role


class EscalationService(ApprovalService):

    def _already_fired(self, leave_id: int, level_index: int, tier: Dict[str, Any]) -> bool:
        entries = self.db.query(ApprovalHistory).filter(
            ApprovalHistory.leave_request_id == leave_id,
            ApprovalHistory.action == HistoryAction.ESCALATED.value
        ).all()
        for entry in entries:
            details = entry.details or {}
            if details.get("level_index") != level_index:
                continue
            if all(details.get(key) == value for key, value in tier.items()):
                return True
        return False

    def run(self, now: Optional[datetime] = None) -> EscalationRunSummary:
        now = now or datetime.now(timezone.utc)
        summary = EscalationRunSummary()
        pending_ids = [
            row[0] for row in
            self.db.query(LeaveRequest.id).filter(LeaveRequest.status == LeaveStatus.PENDING.value).all()
        ]

        for leave_id in pending_ids:
            try:
                self._escalate_leave(self.get_leave(leave_id), now, summary)
            except AppException as e:
                self.db.rollback()
                summary.errors += 1
                self.log_warning(f"Escalation skipped for leave request {leave_id}: {e.message}")

        self.audit.log_operational_event("escalation_run", "completed", summary.model_dump())
        self.commit()
        self.log_info(
            f"Escalation run: checked={summary.checked} escalated={summary.escalated} "
            f"auto_approved={summary.auto_approved} errors={summary.errors}"
        )
        return summary

    def _check_level(self, level: ApprovalLevel, submitted_at: datetime, now: datetime) -> Tuple[EscalationDecision, Dict[str, Any]]:
        if not level.escalation_rules:
            return default_escalation(submitted_at, now)
        decision = workflow.check_escalation(level, submitted_at, now)
        return decision, {"trigger_after_hours": decision.trigger_after_hours}

    def _escalate_leave(self, leave: LeaveRequest, now: datetime, summary: EscalationRunSummary):
        levels = load_levels(leave.approval_levels)
        actionable = workflow.get_next_approvers(levels)
        due = []
        for index, level in enumerate(levels):
            if not any(level is a for a in actionable):
                continue
            summary.checked += 1
            if level.status != LevelStatus.PENDING:
                continue
            decision, tier = self._check_level(level, leave.submitted_at, now)
            if decision.should_escalate and not self._already_fired(leave.id, index, tier):
                due.append((index, level, decision, tier))

        if not due:
            return

        # A human decision may have landed since the scan; act only on levels still pending
        self.db.refresh(leave)
        if leave.status != LeaveStatus.PENDING.value:
            return
        levels = load_levels(leave.approval_levels)
        actions = []

        for index, scanned, decision, tier in due:
            if index >= len(levels):
                continue
            current = levels[index]
            if current.status != LevelStatus.PENDING or not _same_level(current, scanned):
                continue
            levels[index], action = self._apply(leave, current, decision, tier, now, summary)
            summary.escalated += 1
            actions.append(action)
            self.audit.record_history(
                leave.id, HistoryAction.ESCALATED, SYSTEM_ACTOR, "System",
                level=current.level,
                previous_status=current.status.value,
                new_status=levels[index].status.value,
                metadata={
                    **tier,
                    "level_index": index,
                    "cohort": current.cohort_key,
                    "role": current.approver_role.value,
                    "action": action,
                    "escalate_to": decision.escalate_to,
                }
            )

        if not actions:
            return

        with self._version_guard():
            leave.approval_levels = dump_levels(levels)
            new_status = final_status_for(leave, workflow.calculate_approval_status(levels))
            if new_status != leave.status:
                assert_leave_transition(leave.status, new_status)
                leave.status = new_status
                self._settle_balance(leave, new_status)
                NotificationService.notify_user(
                    self.db, leave.staff_id, "Leave Approved",
                    f"Your {leave.leave_type} request has been approved after escalation.",
                    "success", f"/leaves/{leave.id}"
                )
            elif new_status == LeaveStatus.PENDING.value and "auto_approve" in actions:
                NotificationService.notify_next_approvers(
                    self.db, workflow.get_next_approvers(levels), leave.id,
                    leave.staff_name or leave.staff_id, leave.leave_type
                )
            self.commit()

    def _apply(
        self,
        leave: LeaveRequest,
        level: ApprovalLevel,
        decision: EscalationDecision,
        tier: Dict[str, Any],
        now: datetime,
        summary: EscalationRunSummary
    ):
        if "trigger_working_days" in tier:
            overdue = f"{tier['trigger_working_days']} working days"
        else:
            overdue = f"{decision.trigger_after_hours:g} hours"

        if decision.auto_approve:
            summary.auto_approved += 1
            updated = transition_level(
                level,
                LevelStatus.APPROVED,
                approver_id=SYSTEM_ACTOR,
                approver_name="System (auto-escalation)",
                approval_date=now,
                comments=f"Automatically approved after {overdue} pending",
            )
            return updated, "auto_approve"

        if decision.escalate_to:
            summary.reassigned += 1
            role = _role_or_none(decision.escalate_to)
            if role is not None:
                updated = level.model_copy(update={"approver_role": role, "approver_id": None, "approver_staff_id": None})
            else:
                updated = level.model_copy(update={"approver_id": decision.escalate_to})
            NotificationService.notify_user(
                self.db, leave.staff_id, "Leave Request Escalated",
                f"Your leave request has been escalated to {decision.escalate_to} after {overdue} pending.",
                "escalation", f"/leaves/{leave.id}"
            )
            for recipient in NotificationService.resolve_recipients(self.db, updated):
                NotificationService.notify_user(
                    self.db, recipient, "Leave Approval Escalated",
                    f"{leave.staff_name or leave.staff_id}'s leave request has been escalated to you after {overdue} pending.",
                    "escalation", f"/leaves/{leave.id}"
                )
            return updated, "reassign"

        summary.notified += 1
        for recipient in NotificationService.resolve_recipients(self.db, level):
            NotificationService.notify_user(
                self.db, recipient, "Leave Approval Overdue",
                f"{leave.staff_name or leave.staff_id}'s leave request has been pending at level {level.level} for over {overdue}.",
                "escalation", f"/leaves/{leave.id}"
            )
        return level, "notify"
