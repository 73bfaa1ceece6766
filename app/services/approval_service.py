"""
Leave approval service.

Persists the approval chain of a leave request and applies one decision at a
time under the request's optimistic version lock. The routing, status and
next-approver logic itself lives in the pure approval_workflow module; this
layer loads levels, applies exactly one change, writes history, audit and
notifications, then recomputes who acts next.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ApprovalNotAllowedError,
    ConcurrencyConflictError,
    InsufficientBalanceError,
    NotFoundError,
    WorkflowError,
)
from app.models.approval_history import ApprovalHistory
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.staff import StaffMember
from app.schemas.approval import (
    ApprovalLevel,
    ApproverRole,
    HistoryAction,
    LeaveData,
    LevelStatus,
    OverallStatus,
    dump_levels,
    load_levels,
)
from app.schemas.leave import DecisionRequest, DecisionResult, LeaveRequestCreate
from app.services import approval_workflow as workflow
from app.services import workflow_routing as routing
from app.services import workflow_safeguards as safeguards
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.notification import NotificationService
from app.services.workflow_transitions import assert_leave_transition, transition_level

# Statutory minimums (Labour Act 651 / Public Service standard)
DEFAULT_ENTITLEMENTS = {
    "Annual": 21.0,
    "Sick": 12.0,
    "Maternity": 84.0,
    "Casual": 5.0,
}


def staff_org_info(staff: StaffMember) -> routing.StaffOrgInfo:
    return routing.StaffOrgInfo(
        staff_id=staff.staff_id,
        grade=staff.grade or "",
        position=staff.position or "",
        duty_station=staff.duty_station,
        directorate=staff.directorate,
        division=staff.division,
        unit=staff.unit,
        immediate_supervisor_id=staff.immediate_supervisor_id,
    )


def leave_data_for(staff: StaffMember, leave_type: str, days: float, amount: Optional[float] = None) -> LeaveData:
    return LeaveData(
        days=days,
        leave_type=leave_type,
        department=staff.directorate or staff.unit,
        grade=staff.grade or None,
        amount=amount,
    )


def build_levels_for(staff: StaffMember, leave_data: LeaveData) -> Tuple[routing.WorkflowTemplate, List[ApprovalLevel]]:
    """Select the staff member's template and reduce it to the levels this request needs."""
    template = routing.apply_policy_overlays(routing.determine_approval_workflow(staff_org_info(staff)))
    levels = workflow.get_required_approval_levels(template.levels, leave_data)
    return template, routing.renumber_levels(levels)


def can_act_on(actor: StaffMember, level: ApprovalLevel) -> bool:
    """Whether the actor holds the authority for a level right now."""
    if level.status == LevelStatus.DELEGATED:
        return actor.staff_id == level.delegated_to
    bound = level.approver_id or level.approver_staff_id
    if bound:
        return actor.staff_id == bound
    return actor.role in (level.approver_role.value, ApproverRole.ADMIN.value)


def final_status_for(leave: LeaveRequest, overall: OverallStatus) -> str:
    if overall == OverallStatus.APPROVED and leave.workflow_name == routing.CHIEF_DIRECTOR_WORKFLOW:
        return LeaveStatus.RECORDED.value
    return overall.value


class ApprovalService(BaseService):

    def __init__(self, db: Session, actor_id: Optional[str] = None):
        super().__init__(db, actor_id)
        self.audit = AuditService(db, actor_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_leave(self, leave_id: int) -> LeaveRequest:
        leave = self.db.get(LeaveRequest, leave_id)
        if not leave:
            raise NotFoundError("Leave request", leave_id)
        return leave

    def get_staff(self, staff_id: str) -> StaffMember:
        staff = self.db.query(StaffMember).filter(StaffMember.staff_id == staff_id).first()
        if not staff:
            raise NotFoundError("Staff member", staff_id)
        return staff

    def get_levels(self, leave_id: int) -> List[ApprovalLevel]:
        return load_levels(self.get_leave(leave_id).approval_levels)

    def next_approvers(self, leave_id: int) -> List[ApprovalLevel]:
        leave = self.get_leave(leave_id)
        if leave.status != LeaveStatus.PENDING.value:
            return []
        return workflow.get_next_approvers(load_levels(leave.approval_levels))

    def history(self, leave_id: int) -> List[ApprovalHistory]:
        self.get_leave(leave_id)
        return (
            self.db.query(ApprovalHistory)
            .filter(ApprovalHistory.leave_request_id == leave_id)
            .order_by(ApprovalHistory.id.asc())
            .all()
        )

    def pending_for(self, actor: StaffMember) -> List[Tuple[LeaveRequest, ApprovalLevel]]:
        """Levels across all pending requests that the actor can act on now."""
        items = []
        pending = self.db.query(LeaveRequest).filter(LeaveRequest.status == LeaveStatus.PENDING.value).all()
        for leave in pending:
            if leave.staff_id == actor.staff_id:
                continue
            for level in workflow.get_next_approvers(load_levels(leave.approval_levels)):
                if can_act_on(actor, level):
                    items.append((leave, level))
        return items

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    def get_balance(self, staff_id: str, leave_type: str, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.staff_id == staff_id,
            LeaveBalance.leave_type == leave_type,
            LeaveBalance.year == year
        ).first()

    def ensure_balances(self, staff_id: str, year: int) -> List[LeaveBalance]:
        """Seed statutory default balances for a staff member's year if none exist."""
        balances = self.db.query(LeaveBalance).filter(
            LeaveBalance.staff_id == staff_id,
            LeaveBalance.year == year
        ).all()
        if balances:
            return balances
        for leave_type, total in DEFAULT_ENTITLEMENTS.items():
            bal = LeaveBalance(
                staff_id=staff_id,
                leave_type=leave_type,
                total_days=total,
                used_days=0.0,
                pending_days=0.0,
                remaining_days=total,
                year=year
            )
            self.db.add(bal)
            balances.append(bal)
        self.db.flush()
        return balances

    def _settle_balance(self, leave: LeaveRequest, outcome: str):
        balance = self.get_balance(leave.staff_id, leave.leave_type, leave.start_date.year)
        if not balance:
            self.log_warning(f"No balance record to settle for leave request {leave.id}")
            return
        balance.pending_days = max(0.0, (balance.pending_days or 0.0) - leave.days)
        if outcome in (LeaveStatus.APPROVED.value, LeaveStatus.RECORDED.value):
            balance.used_days = (balance.used_days or 0.0) + leave.days
            balance.remaining_days = (balance.remaining_days or 0.0) - leave.days

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    @contextmanager
    def _version_guard(self):
        try:
            yield
        except StaleDataError:
            self.db.rollback()
            self.log_warning("Optimistic lock conflict on leave request")
            raise ConcurrencyConflictError()

    def submit_leave(self, staff: StaffMember, payload: LeaveRequestCreate) -> LeaveRequest:
        """
        Create a leave request with its filtered approval chain and reserve the days.
        """
        year = payload.start_date.year
        self.ensure_balances(staff.staff_id, year)
        balance = self.get_balance(staff.staff_id, payload.leave_type, year)
        if not balance:
            raise InsufficientBalanceError(f"No leave balance record found for {payload.leave_type}")
        if balance.available_days < payload.days:
            raise InsufficientBalanceError(
                f"Insufficient balance. Requested: {payload.days}, Available: {balance.available_days}",
                details={"requested": payload.days, "available": balance.available_days}
            )

        leave_data = leave_data_for(staff, payload.leave_type, payload.days, payload.amount)
        template, levels = build_levels_for(staff, leave_data)
        if not levels:
            raise WorkflowError("No approval levels apply to this request", error_code="EMPTY_WORKFLOW")

        leave = LeaveRequest(
            staff_id=staff.staff_id,
            staff_name=staff.full_name,
            leave_type=payload.leave_type,
            start_date=payload.start_date,
            end_date=payload.end_date,
            days=payload.days,
            reason=payload.reason,
            status=LeaveStatus.PENDING.value,
            workflow_name=template.name,
            approval_levels=dump_levels(levels),
            submitted_at=datetime.now(timezone.utc)
        )
        self.db.add(leave)
        balance.pending_days = (balance.pending_days or 0.0) + payload.days
        self.db.flush()

        self.audit.record_history(
            leave.id, HistoryAction.SUBMITTED, staff.staff_id, staff.full_name,
            previous_status=LeaveStatus.DRAFT.value, new_status=LeaveStatus.PENDING.value,
            metadata={"workflow": template.name, "levels": [l.approver_role.value for l in levels]}
        )
        self.audit.log_action(
            action="leave_submitted",
            entity_type="leave_request",
            entity_id=leave.id,
            user_id=staff.staff_id,
            user_role=staff.role,
            details={"leave_type": leave.leave_type, "days": leave.days, "workflow": template.name}
        )
        NotificationService.notify_next_approvers(
            self.db, workflow.get_next_approvers(levels), leave.id, staff.full_name, leave.leave_type
        )
        self.commit()
        self.db.refresh(leave)
        self.log_info(f"Leave request {leave.id} submitted via '{template.name}' with {len(levels)} levels")
        return leave

    def _select_level(self, levels: List[ApprovalLevel], actor: StaffMember, ordinal: Optional[int]) -> int:
        """Index of the actionable level the actor is deciding."""
        actionable = workflow.get_next_approvers(levels)
        for index, level in enumerate(levels):
            if not any(level is a for a in actionable):
                continue
            if ordinal is not None and level.level != ordinal:
                continue
            if can_act_on(actor, level):
                return index
        if ordinal is not None and not any(a.level == ordinal for a in actionable):
            raise ApprovalNotAllowedError(f"Level {ordinal} is not awaiting a decision", error_code="LEVEL_NOT_ACTIONABLE")
        raise ApprovalNotAllowedError("You are not an approver for the current stage of this request")

    def _check_retroactive(self, leave: LeaveRequest, actor: StaffMember, decision: DecisionRequest, now: datetime):
        check = safeguards.check_retroactive_approval(leave.start_date, leave.status, now)
        if not check.is_retroactive:
            return None
        error = safeguards.validate_retroactive_justification(decision.justification, check.days_past_start)
        if error:
            raise WorkflowError(error, error_code="JUSTIFICATION_REQUIRED", details={"days_past_start": check.days_past_start})
        if not safeguards.has_retroactive_approval_authority(actor.role, check.requires_higher_approval):
            raise ApprovalNotAllowedError(check.error_message, error_code="RETROACTIVE_AUTHORITY_REQUIRED")
        return check

    def record_decision(
        self,
        leave_id: int,
        actor: StaffMember,
        decision: DecisionRequest,
        now: Optional[datetime] = None
    ) -> DecisionResult:
        """
        Apply one approve/reject decision to the actor's actionable level,
        then recompute the overall status and the next approvers.
        """
        now = now or datetime.now(timezone.utc)
        leave = self.get_leave(leave_id)

        if decision.expected_version is not None and decision.expected_version != leave.version:
            raise ConcurrencyConflictError(
                f"Leave request is at version {leave.version}, not {decision.expected_version}. Reload and try again."
            )
        if leave.status != LeaveStatus.PENDING.value:
            raise WorkflowError("Leave request already processed", error_code="ALREADY_PROCESSED")
        if not safeguards.validate_approver_not_self(leave.staff_id, actor.staff_id):
            raise ApprovalNotAllowedError("You cannot approve your own leave request", error_code="SELF_APPROVAL")

        levels = load_levels(leave.approval_levels)
        index = self._select_level(levels, actor, decision.level)
        current = levels[index]

        retro = self._check_retroactive(leave, actor, decision, now) if decision.approve else None

        new_status = LevelStatus.APPROVED if decision.approve else LevelStatus.REJECTED
        updated = transition_level(
            current,
            new_status,
            approver_id=actor.staff_id,
            approver_name=actor.full_name,
            approval_date=now,
            comments=decision.comments,
        )
        levels[index] = updated

        overall = workflow.calculate_approval_status(levels)
        previous_leave_status = leave.status
        new_leave_status = final_status_for(leave, overall)
        if new_leave_status != previous_leave_status:
            assert_leave_transition(previous_leave_status, new_leave_status)

        before_state = {"status": previous_leave_status, "level": current, "version": leave.version}

        with self._version_guard():
            leave.approval_levels = dump_levels(levels)
            leave.status = new_leave_status
            if new_leave_status != previous_leave_status:
                self._settle_balance(leave, new_leave_status)

            metadata = {"leave_status": new_leave_status, "role": updated.approver_role.value}
            if current.status == LevelStatus.DELEGATED:
                metadata["on_behalf_of"] = current.approver_id or current.approver_staff_id or current.approver_role.value
            if retro is not None:
                metadata.update(retroactive=True, days_past_start=retro.days_past_start, justification=decision.justification)

            self.audit.record_history(
                leave.id,
                HistoryAction.APPROVED if decision.approve else HistoryAction.REJECTED,
                actor.staff_id, actor.full_name,
                level=updated.level,
                comments=decision.comments,
                previous_status=current.status.value,
                new_status=updated.status.value,
                metadata=metadata
            )
            self.audit.log_action(
                action="approve_leave_level" if decision.approve else "reject_leave",
                entity_type="leave_request",
                entity_id=leave.id,
                user_id=actor.staff_id,
                user_role=actor.role,
                details={"level": updated.level, "comments": decision.comments},
                before_state=before_state,
                after_state={"status": new_leave_status, "level": updated}
            )

            next_levels = workflow.get_next_approvers(levels) if new_leave_status == LeaveStatus.PENDING.value else []
            self._notify_after_decision(leave, updated, next_levels)
            self.commit()

        self.db.refresh(leave)
        self.log_info(f"Leave request {leave.id} level {updated.level} {updated.status.value} by {actor.staff_id}; request is {leave.status}")
        return DecisionResult(
            leave_request_id=leave.id,
            leave_status=leave.status,
            level=updated.level,
            level_status=updated.status.value,
            next_approvers=next_levels,
            version=leave.version,
        )

    def _notify_after_decision(self, leave: LeaveRequest, level: ApprovalLevel, next_levels: List[ApprovalLevel]):
        if leave.status in (LeaveStatus.APPROVED.value, LeaveStatus.RECORDED.value):
            NotificationService.notify_user(
                self.db, leave.staff_id, "Leave Approved",
                f"Your {leave.leave_type} request for {leave.days:g} days has been APPROVED.",
                "success", f"/leaves/{leave.id}"
            )
        elif leave.status == LeaveStatus.REJECTED.value:
            NotificationService.notify_user(
                self.db, leave.staff_id, "Leave Rejected",
                f"Your {leave.leave_type} request has been REJECTED at level {level.level}. Reason: {level.comments or 'not given'}",
                "error", f"/leaves/{leave.id}"
            )
        else:
            NotificationService.notify_user(
                self.db, leave.staff_id, "Leave Update",
                f"Your {leave.leave_type} request has been approved at level {level.level} and is pending next approval.",
                "info", f"/leaves/{leave.id}"
            )
            NotificationService.notify_next_approvers(self.db, next_levels, leave.id, leave.staff_name or leave.staff_id, leave.leave_type)

    def cancel_leave(self, leave_id: int, actor: StaffMember, reason: Optional[str] = None) -> LeaveRequest:
        """Cancel a pending request (owner or HR) or an approved one (HR only)."""
        leave = self.get_leave(leave_id)
        is_hr = actor.role in (ApproverRole.HR_OFFICER.value, ApproverRole.HR_DIRECTOR.value, ApproverRole.ADMIN.value)
        if leave.status == LeaveStatus.PENDING.value:
            if actor.staff_id != leave.staff_id and not is_hr:
                raise ApprovalNotAllowedError("Only the requester or HR can cancel this request")
        elif leave.status == LeaveStatus.APPROVED.value:
            if not is_hr:
                raise ApprovalNotAllowedError("Only HR can cancel an approved request")
        assert_leave_transition(leave.status, LeaveStatus.CANCELLED.value)

        previous = leave.status
        balance = self.get_balance(leave.staff_id, leave.leave_type, leave.start_date.year)
        with self._version_guard():
            if balance:
                if previous == LeaveStatus.PENDING.value:
                    balance.pending_days = max(0.0, (balance.pending_days or 0.0) - leave.days)
                else:
                    balance.used_days = max(0.0, (balance.used_days or 0.0) - leave.days)
                    balance.remaining_days = (balance.remaining_days or 0.0) + leave.days
            leave.status = LeaveStatus.CANCELLED.value
            self.audit.record_history(
                leave.id, HistoryAction.CANCELLED, actor.staff_id, actor.full_name,
                comments=reason, previous_status=previous, new_status=leave.status
            )
            self.audit.log_action(
                action="cancel_leave",
                entity_type="leave_request",
                entity_id=leave.id,
                user_id=actor.staff_id,
                user_role=actor.role,
                details={"reason": reason},
                before_state={"status": previous},
                after_state={"status": leave.status}
            )
            self.commit()
        self.db.refresh(leave)
        return leave
