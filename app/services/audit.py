from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.services.base import BaseService
from app.models.audit_log import AuditLog
from app.models.approval_history import ApprovalHistory
from app.schemas.approval import HistoryAction


def _sanitize(obj: Any) -> Any:
    # Ensure serialization of nested Pydantic models and enums in details/states
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "value") and hasattr(obj, "name"):
        return obj.value
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[str],
        user_role: Optional[str],
        details: dict,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ):
        """
        Create a centralized audit log entry.
        Strictly append-only. The entry joins the caller's transaction and is
        only flushed here, so it commits or rolls back with the main action.
        """
        try:
            db_log = AuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                user_role=user_role,
                details=_sanitize(details),
                before_state=_sanitize(before_state),
                after_state=_sanitize(after_state)
            )
            self.db.add(db_log)
            self.db.flush()
            return db_log
        except StaleDataError:
            # The flush may carry the caller's versioned update; a lock conflict must reach it
            raise
        except SQLAlchemyError as e:
            # Never break the main app flow because of an audit failure
            self._logger.error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None

    def record_history(
        self,
        leave_request_id: int,
        action: HistoryAction,
        performed_by: str,
        performed_by_name: Optional[str] = None,
        level: Optional[int] = None,
        comments: Optional[str] = None,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> ApprovalHistory:
        """
        Append one approval history entry. History rows are never updated or
        deleted; unlike log_action a failure here propagates and aborts the change.
        """
        entry = ApprovalHistory(
            leave_request_id=leave_request_id,
            action=action.value,
            performed_by=performed_by,
            performed_by_name=performed_by_name,
            level=level,
            comments=comments,
            previous_status=previous_status,
            new_status=new_status,
            details=_sanitize(metadata)
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def log_operational_event(self, event_type: str, status: str, details: dict):
        """
        Specialized logger for operational events (cron runs, escalations).
        """
        return self.log_action(
            action=f"ops_{event_type}",
            entity_type="system",
            entity_id=None,
            user_id="system",
            user_role="system",
            details={**details, "ops_status": status}
        )
