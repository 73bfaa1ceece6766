from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.sql import func
from app.database import Base


class ApprovalHistory(Base):
    """Append-only record of every state change on a leave request's approval chain."""
    __tablename__ = "approval_history"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    performed_by = Column(String, nullable=False)
    performed_by_name = Column(String, nullable=True)
    performed_at = Column(DateTime(timezone=True), server_default=func.now())
    level = Column(Integer, nullable=True)
    comments = Column(Text, nullable=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    details = Column(JSON, nullable=True)  # "metadata" is reserved by SQLAlchemy
