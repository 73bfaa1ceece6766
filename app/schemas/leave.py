from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import List, Optional

from app.schemas.approval import ApprovalLevel


class LeaveRequestCreate(BaseModel):
    leave_type: str
    start_date: date
    end_date: date
    days: float = Field(gt=0)
    reason: str = ""
    amount: Optional[float] = None  # e.g. encashment value, used by amount conditions

    @model_validator(mode="after")
    def _check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

class LeaveRequestResponse(BaseModel):
    id: int
    staff_id: str
    staff_name: Optional[str] = None
    leave_type: str
    start_date: date
    end_date: date
    days: float
    reason: Optional[str] = None
    status: str
    workflow_name: Optional[str] = None
    approval_levels: List[ApprovalLevel] = []
    submitted_at: Optional[datetime] = None
    version: int

    model_config = ConfigDict(from_attributes=True)

class DecisionRequest(BaseModel):
    approve: bool
    level: Optional[int] = None  # defaults to the first level the actor can act on
    comments: Optional[str] = None
    justification: Optional[str] = None  # required for retroactive approvals
    expected_version: Optional[int] = None

class DecisionResult(BaseModel):
    leave_request_id: int
    leave_status: str
    level: int
    level_status: str
    next_approvers: List[ApprovalLevel] = []
    version: int

class CancelRequest(BaseModel):
    reason: Optional[str] = None

class PendingApprovalItem(BaseModel):
    leave_request_id: int
    staff_id: str
    staff_name: Optional[str] = None
    leave_type: str
    days: float
    start_date: date
    level: ApprovalLevel

class LeaveBalanceResponse(BaseModel):
    id: int
    staff_id: str
    leave_type: str
    total_days: float
    used_days: float
    pending_days: float
    remaining_days: float
    year: int

    model_config = ConfigDict(from_attributes=True)

class WorkflowPreviewRequest(BaseModel):
    staff_id: str
    leave_type: str
    days: float = Field(gt=0)
    amount: Optional[float] = None

class WorkflowPreviewResponse(BaseModel):
    workflow_name: str
    template: List[ApprovalLevel]
    levels: List[ApprovalLevel]

class DelegationCreate(BaseModel):
    leave_request_id: int
    level: int
    to_staff_id: str
    reason: Optional[str] = None

class DelegationRespond(BaseModel):
    accept: bool

class EscalationRunSummary(BaseModel):
    checked: int = 0
    escalated: int = 0
    auto_approved: int = 0
    reassigned: int = 0
    notified: int = 0
    errors: int = 0

class NotificationResponse(BaseModel):
    id: int
    recipient_id: str
    title: str
    message: str
    type: str
    link: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
