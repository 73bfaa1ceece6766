from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )

class WorkflowError(AppException):
    def __init__(self, message: str, error_code: str = "WORKFLOW_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )

class InvalidTransitionError(WorkflowError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="INVALID_TRANSITION", details=details)

class InsufficientBalanceError(WorkflowError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="INSUFFICIENT_BALANCE", details=details)

class ApprovalNotAllowedError(AppException):
    def __init__(self, message: str, error_code: str = "APPROVAL_NOT_ALLOWED"):
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code
        )

class ConcurrencyConflictError(AppException):
    """Raised when a leave request was modified by someone else since it was read."""
    def __init__(self, message: str = "Leave request was modified concurrently. Reload and try again."):
        super().__init__(
            message=message,
            status_code=409,
            error_code="VERSION_CONFLICT"
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
