from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.staff import StaffMember
from app.routers.deps import get_current_staff
from app.schemas.leave import WorkflowPreviewRequest, WorkflowPreviewResponse
from app.services.approval_service import ApprovalService, build_levels_for, leave_data_for

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post("/preview", response_model=WorkflowPreviewResponse)
def preview_workflow(
    payload: WorkflowPreviewRequest,
    db: Session = Depends(get_db),
    current_staff: StaffMember = Depends(get_current_staff)
):
    """Show which chain a request would follow without submitting it."""
    staff = ApprovalService(db, current_staff.staff_id).get_staff(payload.staff_id)
    template, levels = build_levels_for(staff, leave_data_for(staff, payload.leave_type, payload.days, payload.amount))
    return WorkflowPreviewResponse(workflow_name=template.name, template=template.levels, levels=levels)
