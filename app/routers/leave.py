from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.database import get_db
from app.models.leave_request import LeaveRequest
from app.models.staff import StaffMember
from app.routers.deps import get_current_staff
from app.schemas.approval import ApproverRole, load_levels
from app.schemas.leave import CancelRequest, LeaveRequestCreate, LeaveRequestResponse
from app.services.approval_service import ApprovalService, can_act_on

router = APIRouter(prefix="/leaves", tags=["Leave"])

HR_ROLES = (ApproverRole.HR_OFFICER.value, ApproverRole.HR_DIRECTOR.value, ApproverRole.ADMIN.value)


@router.post("", response_model=LeaveRequestResponse, status_code=201)
def submit_leave_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    service = ApprovalService(db, current_staff.staff_id)
    return service.submit_leave(current_staff, payload)


@router.get("", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    staff_id: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    """Own requests by default; HR may list anyone's."""
    target = staff_id or current_staff.staff_id
    if target != current_staff.staff_id and current_staff.role not in HR_ROLES:
        raise AccessDeniedError("You can only list your own leave requests")

    query = db.query(LeaveRequest).filter(LeaveRequest.staff_id == target)
    if status:
        query = query.filter(LeaveRequest.status == status)
    return query.order_by(LeaveRequest.id.desc()).all()


@router.get("/{leave_id}", response_model=LeaveRequestResponse)
def get_leave_request(
    leave_id: int,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    leave = ApprovalService(db, current_staff.staff_id).get_leave(leave_id)
    is_approver = any(can_act_on(current_staff, l) for l in load_levels(leave.approval_levels))
    if leave.staff_id != current_staff.staff_id and current_staff.role not in HR_ROLES and not is_approver:
        raise AccessDeniedError("You cannot view this leave request")
    return leave


@router.post("/{leave_id}/cancel", response_model=LeaveRequestResponse)
def cancel_leave_request(
    leave_id: int,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    service = ApprovalService(db, current_staff.staff_id)
    return service.cancel_leave(leave_id, current_staff, payload.reason)
