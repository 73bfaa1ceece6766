from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.database import get_db
from app.models.staff import StaffMember
from app.routers.deps import get_current_staff
from app.schemas.approval import ApprovalHistoryEntry, ApprovalLevel
from app.schemas.leave import DecisionRequest, DecisionResult, PendingApprovalItem
from app.services.approval_service import ApprovalService

router = APIRouter(prefix="/approvals", tags=["Approvals"])


@router.get("/pending", response_model=List[PendingApprovalItem])
def list_pending_approvals(
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    """Levels awaiting the current staff member's decision."""
    service = ApprovalService(db, current_staff.staff_id)
    return [
        PendingApprovalItem(
            leave_request_id=leave.id,
            staff_id=leave.staff_id,
            staff_name=leave.staff_name,
            leave_type=leave.leave_type,
            days=leave.days,
            start_date=leave.start_date,
            level=level
        )
        for leave, level in service.pending_for(current_staff)
    ]


@router.post("/{leave_id}/decision", response_model=DecisionResult)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
def decide(
    request: Request,
    leave_id: int,
    payload: DecisionRequest,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    service = ApprovalService(db, current_staff.staff_id)
    return service.record_decision(leave_id, current_staff, payload)


@router.get("/{leave_id}/next", response_model=List[ApprovalLevel])
def next_approvers(
    leave_id: int,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    return ApprovalService(db, current_staff.staff_id).next_approvers(leave_id)


@router.get("/{leave_id}/levels", response_model=List[ApprovalLevel])
def approval_levels(
    leave_id: int,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    return ApprovalService(db, current_staff.staff_id).get_levels(leave_id)


@router.get("/{leave_id}/history", response_model=List[ApprovalHistoryEntry])
def approval_history(
    leave_id: int,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    entries = ApprovalService(db, current_staff.staff_id).history(leave_id)
    return [ApprovalHistoryEntry.model_validate(e) for e in entries]
