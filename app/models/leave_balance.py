from sqlalchemy import Column, Integer, String, Float, UniqueConstraint
from app.database import Base

class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (UniqueConstraint("staff_id", "leave_type", "year", name="uq_balance_staff_type_year"),)

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(String, index=True, nullable=False)
    leave_type = Column(String, index=True)  # e.g., "Annual", "Sick", "Maternity"
    total_days = Column(Float, default=0.0)
    used_days = Column(Float, default=0.0)
    pending_days = Column(Float, default=0.0)  # reserved by requests still in approval
    remaining_days = Column(Float, default=0.0)
    year = Column(Integer)

    @property
    def available_days(self) -> float:
        return (self.remaining_days or 0.0) - (self.pending_days or 0.0)
