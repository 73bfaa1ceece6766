from sqlalchemy import Column, Integer, String, Date, Float, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base
from app.services.workflow_transitions import LeaveRequestStatus

LeaveStatus = LeaveRequestStatus

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(String, index=True, nullable=False)
    staff_name = Column(String, nullable=True)
    leave_type = Column(String, index=True)
    start_date = Column(Date)
    end_date = Column(Date)
    days = Column(Float)
    reason = Column(String)
    status = Column(String, default=LeaveStatus.PENDING.value, index=True)

    workflow_name = Column(String, nullable=True)
    # Serialized ApprovalLevel list (app.schemas.approval)
    approval_levels = Column(JSON, default=list)

    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Optimistic lock: stale writes raise StaleDataError on flush
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
