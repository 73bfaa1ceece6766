import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.models.staff import StaffMember
from app.schemas.approval import ApprovalLevel

logger = logging.getLogger(__name__)


class NotificationService:
    @staticmethod
    def create_notification(
        db: Session,
        recipient_id: str,
        title: str,
        message: str,
        type: str = "info",
        link: Optional[str] = None
    ) -> Notification:
        """
        Internal utility for creating in-app notifications.
        Joins the caller's transaction; the caller commits.
        """
        notification = Notification(
            recipient_id=recipient_id,
            title=title,
            message=message,
            type=type,
            link=link
        )
        db.add(notification)
        return notification

    @staticmethod
    def notify_user(
        db: Session,
        recipient_id: str,
        title: str,
        message: str,
        type: str = "info",
        link: Optional[str] = None
    ):
        """
        Standardized notification trigger.
        """
        return NotificationService.create_notification(db, recipient_id, title, message, type, link)

    @staticmethod
    def resolve_recipients(db: Session, level: ApprovalLevel) -> List[str]:
        """
        Staff ids who may act on a level: the delegate, a bound approver,
        or every active holder of the level's role.
        """
        if level.delegated_to:
            return [level.delegated_to]
        bound = level.approver_id or level.approver_staff_id
        if bound:
            return [bound]
        holders = db.query(StaffMember.staff_id).filter(
            StaffMember.role == level.approver_role.value,
            StaffMember.active == True  # noqa: E712
        ).all()
        return [row[0] for row in holders]

    @staticmethod
    def notify_next_approvers(
        db: Session,
        levels: Iterable[ApprovalLevel],
        leave_request_id: int,
        staff_name: str,
        leave_type: str
    ) -> int:
        sent = 0
        for level in levels:
            for recipient in NotificationService.resolve_recipients(db, level):
                NotificationService.notify_user(
                    db,
                    recipient,
                    "Leave Approval Required",
                    f"{staff_name}'s {leave_type} leave request is awaiting your approval (level {level.level}).",
                    "info",
                    f"/leaves/{leave_request_id}"
                )
                sent += 1
        if sent == 0:
            logger.warning(f"No approver found to notify for leave request {leave_request_id}")
        return sent
