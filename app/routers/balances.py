from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.database import get_db
from app.models.staff import StaffMember
from app.routers.deps import get_current_staff
from app.routers.leave import HR_ROLES
from app.schemas.leave import LeaveBalanceResponse
from app.services.approval_service import ApprovalService

router = APIRouter(prefix="/balances", tags=["Leave Balances"])


@router.get("/{staff_id}", response_model=List[LeaveBalanceResponse])
def get_leave_balance(
    staff_id: str,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    if staff_id != current_staff.staff_id and current_staff.role not in HR_ROLES:
        raise AccessDeniedError("You can only view your own leave balance")

    service = ApprovalService(db, current_staff.staff_id)
    service.get_staff(staff_id)
    # Seed statutory defaults the first time a year is viewed
    balances = service.ensure_balances(staff_id, year or date.today().year)
    service.commit()
    return balances
