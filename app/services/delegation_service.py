"""
Approval delegation.

A delegation request hands one actionable level of a leave request to another
staff member. Accepting the request is the only path that sets a level's
delegate; the level then moves to ``delegated`` and only the delegate can
decide it.
"""
from datetime import datetime, timezone
from typing import List, Optional

from app.core.exceptions import (
    ApprovalNotAllowedError,
    ConcurrencyConflictError,
    NotFoundError,
    WorkflowError,
)
from app.models.approval_delegation import ApprovalDelegation
from app.models.leave_request import LeaveStatus
from app.models.staff import StaffMember
from app.schemas.approval import DelegationStatus, HistoryAction, LevelStatus, dump_levels, load_levels
from app.schemas.leave import DelegationCreate
from app.services import approval_workflow as workflow
from app.services.approval_service import ApprovalService, can_act_on
from app.services.notification import NotificationService
from app.services.workflow_transitions import transition_level


class DelegationService(ApprovalService):

    def get_delegation(self, delegation_id: int) -> ApprovalDelegation:
        delegation = self.db.get(ApprovalDelegation, delegation_id)
        if not delegation:
            raise NotFoundError("Delegation", delegation_id)
        return delegation

    def list_for(self, staff_id: str, status: Optional[str] = None) -> List[ApprovalDelegation]:
        query = self.db.query(ApprovalDelegation).filter(
            (ApprovalDelegation.from_user_id == staff_id) | (ApprovalDelegation.to_user_id == staff_id)
        )
        if status:
            query = query.filter(ApprovalDelegation.status == status)
        return query.order_by(ApprovalDelegation.requested_at.desc()).all()

    def request_delegation(self, actor: StaffMember, payload: DelegationCreate) -> ApprovalDelegation:
        leave = self.get_leave(payload.leave_request_id)
        if leave.status != LeaveStatus.PENDING.value:
            raise WorkflowError("Only pending leave requests can be delegated", error_code="ALREADY_PROCESSED")
        if payload.to_staff_id == actor.staff_id:
            raise WorkflowError("Cannot delegate to yourself", error_code="SELF_DELEGATION_NOT_ALLOWED")
        if payload.to_staff_id == leave.staff_id:
            raise WorkflowError("Cannot delegate approval to the requester", error_code="SELF_APPROVAL")

        delegate = self.get_staff(payload.to_staff_id)
        if not delegate.active:
            raise WorkflowError("Delegate is not an active staff member", error_code="INACTIVE_DELEGATE")

        actionable = workflow.get_next_approvers(load_levels(leave.approval_levels))
        level = next((l for l in actionable if l.level == payload.level and can_act_on(actor, l)), None)
        if level is None:
            raise ApprovalNotAllowedError("You can only delegate a level that is awaiting your decision")
        if level.status != LevelStatus.PENDING:
            raise WorkflowError("This level has already been delegated", error_code="ALREADY_DELEGATED")

        existing = self.db.query(ApprovalDelegation).filter(
            ApprovalDelegation.leave_request_id == leave.id,
            ApprovalDelegation.level == payload.level,
            ApprovalDelegation.status == DelegationStatus.PENDING.value
        ).first()
        if existing:
            raise WorkflowError("A delegation request for this level is already pending", error_code="OVERLAPPING_DELEGATION")

        delegation = ApprovalDelegation(
            leave_request_id=leave.id,
            level=payload.level,
            from_user_id=actor.staff_id,
            from_user_name=actor.full_name,
            to_user_id=delegate.staff_id,
            to_user_name=delegate.full_name,
            status=DelegationStatus.PENDING.value,
            reason=payload.reason
        )
        self.db.add(delegation)
        self.db.flush()
        self.audit.log_action(
            action="APPROVAL_DELEGATION_CREATED",
            entity_type="approval_delegation",
            entity_id=delegation.id,
            user_id=actor.staff_id,
            user_role=actor.role,
            details={"leave_request_id": leave.id, "level": payload.level, "to": delegate.staff_id}
        )
        NotificationService.notify_user(
            self.db, delegate.staff_id, "Delegation Request",
            f"{actor.full_name} asks you to decide level {payload.level} of {leave.staff_name}'s leave request.",
            "info", f"/delegations/{delegation.id}"
        )
        self.commit()
        self.db.refresh(delegation)
        return delegation

    def respond(self, delegation_id: int, actor: StaffMember, accept: bool, now: Optional[datetime] = None) -> ApprovalDelegation:
        """
        Accept or decline a delegation. Acceptance moves the target level to
        ``delegated`` under the leave request's version lock.
        """
        now = now or datetime.now(timezone.utc)
        delegation = self.get_delegation(delegation_id)
        if delegation.to_user_id != actor.staff_id:
            raise ApprovalNotAllowedError("Only the delegate can respond to this delegation")
        if delegation.status != DelegationStatus.PENDING.value:
            raise WorkflowError("Delegation has already been answered", error_code="ALREADY_PROCESSED")

        leave = self.get_leave(delegation.leave_request_id)
        levels = load_levels(leave.approval_levels)
        index = None
        if accept:
            if leave.status != LeaveStatus.PENDING.value:
                raise WorkflowError("Leave request already processed", error_code="ALREADY_PROCESSED")
            index = next(
                (i for i, l in enumerate(levels) if l.level == delegation.level and l.status == LevelStatus.PENDING),
                None
            )
            if index is None:
                raise ConcurrencyConflictError("The delegated level is no longer pending")

        with self._version_guard():
            delegation.status = DelegationStatus.ACCEPTED.value if accept else DelegationStatus.REJECTED.value
            delegation.responded_at = now

            if accept:
                current = levels[index]
                levels[index] = transition_level(
                    current,
                    LevelStatus.DELEGATED,
                    delegated_to=actor.staff_id,
                    delegated_to_name=actor.full_name,
                    delegation_date=now,
                )
                leave.approval_levels = dump_levels(levels)
                leave.updated_at = now

                self.audit.record_history(
                    leave.id, HistoryAction.DELEGATED, delegation.from_user_id, delegation.from_user_name,
                    level=delegation.level,
                    comments=delegation.reason,
                    previous_status=current.status.value,
                    new_status=LevelStatus.DELEGATED.value,
                    metadata={"delegated_to": actor.staff_id, "delegation_id": delegation.id}
                )

            self.audit.log_action(
                action="APPROVAL_DELEGATION_ACCEPTED" if accept else "APPROVAL_DELEGATION_REJECTED",
                entity_type="approval_delegation",
                entity_id=delegation.id,
                user_id=actor.staff_id,
                user_role=actor.role,
                details={"leave_request_id": leave.id, "level": delegation.level}
            )
            NotificationService.notify_user(
                self.db, delegation.from_user_id,
                "Delegation Accepted" if accept else "Delegation Declined",
                f"{actor.full_name} has {'accepted' if accept else 'declined'} your delegation for level {delegation.level}.",
                "info", f"/leaves/{leave.id}"
            )
            self.commit()

        self.db.refresh(delegation)
        return delegation
