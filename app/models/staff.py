"""
Staff Member Model.
Carries the organizational placement used to route leave approvals.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(String, unique=True, index=True, nullable=False)  # e.g. "MFA-00123"
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)

    # Approver role (ApproverRole value) or "EMPLOYEE"
    role = Column(String, default="EMPLOYEE", nullable=False, index=True)
    grade = Column(String, default="")
    position = Column(String, default="")

    duty_station = Column(String, nullable=True)  # HQ | Region | District | Agency
    directorate = Column(String, nullable=True)
    division = Column(String, nullable=True)
    unit = Column(String, nullable=True, index=True)
    immediate_supervisor_id = Column(String, nullable=True)  # staff_id of supervisor

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<StaffMember {self.staff_id}: {self.full_name}>"
