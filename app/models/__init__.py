# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    staff, leave_request, leave_balance,
    approval_history, approval_delegation,
    audit_log, notification
)

# Explicit class exports for cleaner imports
from .staff import StaffMember
from .leave_request import LeaveRequest
from .leave_balance import LeaveBalance
from .approval_history import ApprovalHistory
from .approval_delegation import ApprovalDelegation
from .audit_log import AuditLog
from .notification import Notification

__all__ = [
    "StaffMember",
    "LeaveRequest",
    "LeaveBalance",
    "ApprovalHistory",
    "ApprovalDelegation",
    "AuditLog",
    "Notification",
]
