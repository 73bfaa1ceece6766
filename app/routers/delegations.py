from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.staff import StaffMember
from app.routers.deps import get_current_staff
from app.schemas.approval import DelegationRequestSchema
from app.schemas.leave import DelegationCreate, DelegationRespond
from app.services.delegation_service import DelegationService

router = APIRouter(prefix="/delegations", tags=["Delegations"])


@router.post("", response_model=DelegationRequestSchema, status_code=201)
def request_delegation(
    payload: DelegationCreate,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    return DelegationService(db, current_staff.staff_id).request_delegation(current_staff, payload)


@router.post("/{delegation_id}/respond", response_model=DelegationRequestSchema)
def respond_to_delegation(
    delegation_id: int,
    payload: DelegationRespond,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    return DelegationService(db, current_staff.staff_id).respond(delegation_id, current_staff, payload.accept)


@router.get("", response_model=List[DelegationRequestSchema])
def list_delegations(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    """Delegations the current staff member sent or received."""
    return DelegationService(db, current_staff.staff_id).list_for(current_staff.staff_id, status)
