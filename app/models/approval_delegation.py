from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from app.database import Base


class ApprovalDelegation(Base):
    """Request to hand one approval level over to another staff member."""
    __tablename__ = "approval_delegations"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    from_user_id = Column(String, nullable=False, index=True)
    from_user_name = Column(String, nullable=True)
    to_user_id = Column(String, nullable=False, index=True)
    to_user_name = Column(String, nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending | accepted | rejected
    reason = Column(Text, nullable=True)
    requested_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)
