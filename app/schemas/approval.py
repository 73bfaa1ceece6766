"""
Approval workflow domain types.

These pydantic models are the in-memory shape of a leave request's approval
chain. They are stored as JSON on the leave request row and passed to the pure
functions in app.services.approval_workflow.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ApproverRole(str, enum.Enum):
    SUPERVISOR = "SUPERVISOR"
    UNIT_HEAD = "UNIT_HEAD"
    DIVISION_HEAD = "DIVISION_HEAD"
    DIRECTOR = "DIRECTOR"
    REGIONAL_MANAGER = "REGIONAL_MANAGER"
    HR_OFFICER = "HR_OFFICER"
    HR_DIRECTOR = "HR_DIRECTOR"
    CHIEF_DIRECTOR = "CHIEF_DIRECTOR"
    ADMIN = "ADMIN"


class LevelStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"


class OverallStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConditionType(str, enum.Enum):
    DAYS = "days"
    LEAVE_TYPE = "leaveType"
    DEPARTMENT = "department"
    GRADE = "grade"
    AMOUNT = "amount"


class ConditionOperator(str, enum.Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    IN = "in"
    NOT_IN = "notIn"


class HistoryAction(str, enum.Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    ESCALATED = "escalated"
    REMINDER_SENT = "reminder_sent"
    RECALLED = "recalled"
    CANCELLED = "cancelled"


class DelegationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ApprovalCondition(BaseModel):
    """Activation condition for an optional level. Frozen once attached."""
    model_config = ConfigDict(frozen=True)

    type: ConditionType
    operator: ConditionOperator
    value: Union[float, int, str, List[Union[float, int, str]]]


class EscalationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    trigger_after_hours: float = Field(ge=0)
    escalate_to: Optional[str] = None  # staff id or role
    notify: bool = False
    auto_approve: bool = False


class ApprovalLevel(BaseModel):
    """
    One stage of approval for one leave request.

    State-dependent fields are validated against ``status``: delegation fields
    exist only on a delegated level and ``approval_date`` only once decided.
    """
    level: int = Field(ge=1)
    approver_role: ApproverRole
    approver_id: Optional[str] = None
    approver_staff_id: Optional[str] = None
    approver_name: Optional[str] = None
    status: LevelStatus = LevelStatus.PENDING
    approval_date: Optional[datetime] = None
    comments: Optional[str] = None
    delegated_to: Optional[str] = None
    delegated_to_name: Optional[str] = None
    delegation_date: Optional[datetime] = None
    parallel: bool = False
    # Explicit parallel cohort; falls back to the level ordinal when unset
    cohort_id: Optional[str] = None
    required: bool = True
    conditions: List[ApprovalCondition] = Field(default_factory=list)
    escalation_rules: List[EscalationRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_state_fields(self):
        if self.status == LevelStatus.DELEGATED:
            if not self.delegated_to:
                raise ValueError("a delegated level must name its delegate")
        elif self.delegated_to or self.delegation_date:
            raise ValueError(f"delegation fields are only valid on a delegated level, not '{self.status.value}'")
        if self.approval_date and self.status not in (LevelStatus.APPROVED, LevelStatus.REJECTED):
            raise ValueError("approval_date is only valid once a level is decided")
        return self

    @property
    def cohort_key(self) -> str:
        return self.cohort_id if self.cohort_id is not None else f"level:{self.level}"


class LeaveData(BaseModel):
    """Request attributes that optional-level conditions are evaluated against."""
    days: float
    leave_type: str
    department: Optional[str] = None
    grade: Optional[str] = None
    amount: Optional[float] = None


class EscalationDecision(BaseModel):
    should_escalate: bool
    escalate_to: Optional[str] = None
    auto_approve: Optional[bool] = None
    notify: Optional[bool] = None
    trigger_after_hours: Optional[float] = None


class ApprovalHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    leave_request_id: int
    action: HistoryAction
    performed_by: str
    performed_by_name: Optional[str] = None
    performed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: Optional[int] = None
    comments: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias=AliasChoices("details", "metadata"))


class DelegationRequestSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    leave_request_id: int
    level: int
    from_user_id: str
    from_user_name: Optional[str] = None
    to_user_id: str
    to_user_name: Optional[str] = None
    status: DelegationStatus = DelegationStatus.PENDING
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    responded_at: Optional[datetime] = None
    reason: Optional[str] = None


def dump_levels(levels: List[ApprovalLevel]) -> List[Dict[str, Any]]:
    """Serialize levels for JSON column storage."""
    return [lvl.model_dump(mode="json") for lvl in levels]


def load_levels(raw: Optional[List[Dict[str, Any]]]) -> List[ApprovalLevel]:
    return [ApprovalLevel.model_validate(item) for item in (raw or [])]
