import pytest
import os
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    # Use sessionmaker with the active connection
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()

@pytest.fixture(scope="function")
def make_staff(db_session):
    """Factory for staff members; defaults place them at an agency duty station."""
    from app.models.staff import StaffMember

    def _make_staff(staff_id, role="EMPLOYEE", **fields):
        staff = StaffMember(
            staff_id=staff_id,
            first_name=fields.pop("first_name", "Staff"),
            last_name=fields.pop("last_name", staff_id),
            role=role,
            grade=fields.pop("grade", "Senior Agric Officer"),
            position=fields.pop("position", "Agric Officer"),
            duty_station=fields.pop("duty_station", "Agency"),
            **fields
        )
        db_session.add(staff)
        db_session.commit()
        return staff
    return _make_staff

@pytest.fixture(scope="function")
def staff_team(make_staff):
    """
    An agency employee with a supervisor and HR approvers.
    The employee's chain is Supervisor (bound to MFA-002) then HR Officer.
    """
    return {
        "employee": make_staff("MFA-001", immediate_supervisor_id="MFA-002", first_name="Ama", last_name="Mensah"),
        "supervisor": make_staff("MFA-002", role="SUPERVISOR", first_name="Kofi", last_name="Owusu"),
        "hr_officer": make_staff("MFA-003", role="HR_OFFICER", first_name="Efua", last_name="Boateng"),
        "hr_director": make_staff("MFA-004", role="HR_DIRECTOR", first_name="Yaw", last_name="Asante"),
        "colleague": make_staff("MFA-005", role="SUPERVISOR", first_name="Akosua", last_name="Darko"),
    }

@pytest.fixture(scope="function")
def future_leave():
    """Payload for a short annual leave starting next week."""
    start = date.today() + timedelta(days=7)
    return {
        "leave_type": "Annual",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=4)).isoformat(),
        "days": 5,
        "reason": "Family visit",
    }

@pytest.fixture(scope="function")
def as_staff():
    """Headers identifying the acting staff member."""
    def _as_staff(staff):
        return {"X-Staff-Id": staff.staff_id}
    return _as_staff

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
