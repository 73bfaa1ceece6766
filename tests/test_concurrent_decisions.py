import pytest
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrencyConflictError
from app.database import Base
from app.models.approval_history import ApprovalHistory
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.staff import StaffMember
from app.schemas.approval import LevelStatus, load_levels
from app.schemas.leave import DecisionRequest, LeaveRequestCreate
from app.services.approval_service import ApprovalService
from app.services.audit import AuditService


@pytest.fixture
def shared_db(tmp_path):
    """A file database that several independent sessions can open at once."""
    engine = create_engine(f"sqlite:///{tmp_path / 'leave.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    setup.add_all([
        StaffMember(staff_id="MFA-001", first_name="Ama", last_name="Mensah", role="EMPLOYEE",
                    grade="Senior Agric Officer", position="Agric Officer", duty_station="Agency",
                    immediate_supervisor_id="MFA-002"),
        StaffMember(staff_id="MFA-002", first_name="Kofi", last_name="Owusu", role="SUPERVISOR",
                    grade="Principal Agric Officer", position="Supervisor", duty_station="Agency"),
        StaffMember(staff_id="MFA-003", first_name="Efua", last_name="Boateng", role="HR_OFFICER",
                    grade="HR Officer", position="HR Officer", duty_station="Agency"),
    ])
    setup.commit()
    start = date.today() + timedelta(days=14)
    leave = ApprovalService(setup, "MFA-001").submit_leave(
        setup.query(StaffMember).filter(StaffMember.staff_id == "MFA-001").one(),
        LeaveRequestCreate(leave_type="Annual", start_date=start, end_date=start + timedelta(days=2), days=3)
    )
    leave_id = leave.id
    setup.close()

    yield Session, leave_id

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def _supervisor(session):
    return session.query(StaffMember).filter(StaffMember.staff_id == "MFA-002").one()


def test_decision_on_stale_copy_is_rejected(shared_db):
    """A decision based on an outdated read must not overwrite a committed one."""
    Session, leave_id = shared_db
    first, second = Session(), Session()
    try:
        # Both sessions read version 1
        assert first.get(LeaveRequest, leave_id).version == 1
        assert second.get(LeaveRequest, leave_id).version == 1

        ApprovalService(first, "MFA-002").record_decision(
            leave_id, _supervisor(first), DecisionRequest(approve=True)
        )

        with pytest.raises(ConcurrencyConflictError) as exc:
            ApprovalService(second, "MFA-002").record_decision(
                leave_id, _supervisor(second), DecisionRequest(approve=False, comments="Too busy")
            )
        assert exc.value.status_code == 409
    finally:
        first.close()
        second.close()

    check = Session()
    try:
        leave = check.get(LeaveRequest, leave_id)
        assert leave.version == 2
        assert leave.status == LeaveStatus.PENDING.value
        assert load_levels(leave.approval_levels)[0].status == LevelStatus.APPROVED

        actions = [h.action for h in check.query(ApprovalHistory).filter(
            ApprovalHistory.leave_request_id == leave_id
        ).order_by(ApprovalHistory.id).all()]
        assert actions == ["submitted", "approved"]

        balance = check.query(LeaveBalance).filter(
            LeaveBalance.staff_id == "MFA-001",
            LeaveBalance.leave_type == "Annual"
        ).one()
        assert balance.pending_days == 3
        assert balance.used_days == 0
    finally:
        check.close()


def test_audit_entry_does_not_hide_a_version_conflict(shared_db):
    """An audit flush that carries a stale versioned update still surfaces the conflict."""
    Session, leave_id = shared_db
    first, second = Session(), Session()
    try:
        first.get(LeaveRequest, leave_id)
        stale = second.get(LeaveRequest, leave_id)

        ApprovalService(first, "MFA-002").record_decision(
            leave_id, _supervisor(first), DecisionRequest(approve=True)
        )

        stale.reason = "Edited from an old copy"
        with pytest.raises(StaleDataError):
            AuditService(second, "MFA-001").log_action(
                action="leave_edited",
                entity_type="leave_request",
                entity_id=leave_id,
                user_id="MFA-001",
                user_role="EMPLOYEE",
                details={"field": "reason"}
            )
        second.rollback()
    finally:
        first.close()
        second.close()
