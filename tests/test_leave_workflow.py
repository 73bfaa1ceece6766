import pytest
from datetime import date, timedelta
from app.core.config import settings
from app.models.approval_history import ApprovalHistory
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import Notification

def _submit(client, staff, as_staff, payload):
    return client.post("/api/leaves", headers=as_staff(staff), json=payload)

def _decide(client, staff, as_staff, leave_id, approve=True, **extra):
    return client.post(
        f"/api/approvals/{leave_id}/decision",
        headers=as_staff(staff),
        json={"approve": approve, **extra}
    )

def _annual_balance(db_session, staff_id, year):
    return db_session.query(LeaveBalance).filter(
        LeaveBalance.staff_id == staff_id,
        LeaveBalance.leave_type == "Annual",
        LeaveBalance.year == year
    ).first()

def _error_code(response):
    return response.json()["errors"][0]["code"]

def test_submit_leave_builds_agency_chain(client, staff_team, as_staff, future_leave):
    """Submitting creates a pending request with its filtered approval chain."""
    response = _submit(client, staff_team["employee"], as_staff, future_leave)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == LeaveStatus.PENDING.value
    assert data["workflow_name"] == "Agency Staff Leave"
    assert [l["approver_role"] for l in data["approval_levels"]] == ["SUPERVISOR", "HR_OFFICER"]
    assert data["approval_levels"][0]["approver_staff_id"] == "MFA-002"
    assert data["version"] == 1

def test_long_leave_adds_director_review(client, staff_team, as_staff, future_leave):
    start = date.today() + timedelta(days=7)
    payload = {**future_leave, "days": 21, "end_date": (start + timedelta(days=28)).isoformat()}
    response = _submit(client, staff_team["employee"], as_staff, payload)
    assert response.status_code == 201
    roles = [l["approver_role"] for l in response.json()["approval_levels"]]
    assert roles == ["SUPERVISOR", "DIRECTOR", "HR_OFFICER"]

def test_submit_reserves_pending_days(client, db_session, staff_team, as_staff, future_leave):
    _submit(client, staff_team["employee"], as_staff, future_leave)
    balance = _annual_balance(db_session, "MFA-001", date.fromisoformat(future_leave["start_date"]).year)
    assert balance.total_days == 21
    assert balance.pending_days == 5
    assert balance.available_days == 16

def test_insufficient_balance_is_rejected(client, staff_team, as_staff, future_leave):
    response = _submit(client, staff_team["employee"], as_staff, {**future_leave, "leave_type": "Casual", "days": 6})
    assert response.status_code == 400
    assert _error_code(response) == "INSUFFICIENT_BALANCE"

def test_end_before_start_fails_validation(client, staff_team, as_staff, future_leave):
    payload = {**future_leave, "end_date": future_leave["start_date"], "start_date": future_leave["end_date"]}
    response = _submit(client, staff_team["employee"], as_staff, payload)
    assert response.status_code == 422
    assert response.json()["success"] is False

def test_missing_staff_header_is_unauthorized(client, future_leave):
    response = client.post("/api/leaves", json=future_leave)
    assert response.status_code == 401
    assert _error_code(response) == "AUTH_FAILED"

def test_full_approval_chain(client, db_session, staff_team, as_staff, future_leave):
    """Supervisor then HR Officer approve; the balance moves from pending to used."""
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]

    pending = client.get("/api/approvals/pending", headers=as_staff(staff_team["supervisor"])).json()
    assert [item["leave_request_id"] for item in pending] == [leave_id]

    first = _decide(client, staff_team["supervisor"], as_staff, leave_id, comments="Enjoy")
    assert first.status_code == 200
    assert first.json()["leave_status"] == "pending"
    assert first.json()["level_status"] == "approved"
    assert [l["approver_role"] for l in first.json()["next_approvers"]] == ["HR_OFFICER"]

    final = _decide(client, staff_team["hr_officer"], as_staff, leave_id)
    assert final.status_code == 200
    assert final.json()["leave_status"] == LeaveStatus.APPROVED.value
    assert final.json()["next_approvers"] == []
    assert final.json()["version"] == 3

    balance = _annual_balance(db_session, "MFA-001", date.fromisoformat(future_leave["start_date"]).year)
    assert balance.pending_days == 0
    assert balance.used_days == 5
    assert balance.remaining_days == 16

    approved_note = db_session.query(Notification).filter(
        Notification.recipient_id == "MFA-001",
        Notification.title == "Leave Approved"
    ).count()
    assert approved_note == 1

def test_hr_cannot_act_before_supervisor(client, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]
    response = _decide(client, staff_team["hr_officer"], as_staff, leave_id)
    assert response.status_code == 403
    assert _error_code(response) == "APPROVAL_NOT_ALLOWED"

    response = _decide(client, staff_team["hr_officer"], as_staff, leave_id, level=2)
    assert response.status_code == 403
    assert _error_code(response) == "LEVEL_NOT_ACTIONABLE"

def test_requester_cannot_approve_own_leave(client, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]
    response = _decide(client, staff_team["employee"], as_staff, leave_id)
    assert response.status_code == 403
    assert _error_code(response) == "SELF_APPROVAL"

def test_rejection_ends_the_workflow(client, db_session, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]
    response = _decide(client, staff_team["supervisor"], as_staff, leave_id, approve=False, comments="Peak season")
    assert response.json()["leave_status"] == LeaveStatus.REJECTED.value

    assert client.get(f"/api/approvals/{leave_id}/next", headers=as_staff(staff_team["hr_officer"])).json() == []
    again = _decide(client, staff_team["hr_officer"], as_staff, leave_id)
    assert again.status_code == 400
    assert _error_code(again) == "ALREADY_PROCESSED"

    balance = _annual_balance(db_session, "MFA-001", date.fromisoformat(future_leave["start_date"]).year)
    assert balance.pending_days == 0
    assert balance.used_days == 0

def test_stale_version_is_a_conflict(client, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]
    _decide(client, staff_team["supervisor"], as_staff, leave_id, expected_version=1)
    response = _decide(client, staff_team["hr_officer"], as_staff, leave_id, expected_version=1)
    assert response.status_code == 409
    assert _error_code(response) == "VERSION_CONFLICT"

def test_retroactive_approval_needs_justification_and_authority(client, staff_team, as_staff, future_leave):
    start = date.today() - timedelta(days=2)
    payload = {**future_leave, "start_date": start.isoformat(), "end_date": (start + timedelta(days=4)).isoformat()}
    leave_id = _submit(client, staff_team["employee"], as_staff, payload).json()["id"]

    response = _decide(client, staff_team["supervisor"], as_staff, leave_id)
    assert response.status_code == 400
    assert _error_code(response) == "JUSTIFICATION_REQUIRED"

    justification = "Approver was on field assignment without network access"
    response = _decide(client, staff_team["supervisor"], as_staff, leave_id, justification=justification)
    assert response.status_code == 403
    assert _error_code(response) == "RETROACTIVE_AUTHORITY_REQUIRED"

    # Rejecting never needs a justification
    response = _decide(client, staff_team["supervisor"], as_staff, leave_id, approve=False)
    assert response.status_code == 200

def test_history_records_each_step(client, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]
    _decide(client, staff_team["supervisor"], as_staff, leave_id, comments="OK")

    history = client.get(f"/api/approvals/{leave_id}/history", headers=as_staff(staff_team["employee"])).json()
    assert [h["action"] for h in history] == ["submitted", "approved"]
    assert history[0]["metadata"]["workflow"] == "Agency Staff Leave"
    assert history[1]["level"] == 1
    assert history[1]["previous_status"] == "pending"
    assert history[1]["new_status"] == "approved"
    assert history[1]["performed_by"] == "MFA-002"

def test_cancel_pending_leave_releases_days(client, db_session, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]

    denied = client.post(f"/api/leaves/{leave_id}/cancel", headers=as_staff(staff_team["colleague"]), json={})
    assert denied.status_code == 403

    response = client.post(f"/api/leaves/{leave_id}/cancel", headers=as_staff(staff_team["employee"]), json={"reason": "Plans changed"})
    assert response.status_code == 200
    assert response.json()["status"] == LeaveStatus.CANCELLED.value

    balance = _annual_balance(db_session, "MFA-001", date.fromisoformat(future_leave["start_date"]).year)
    assert balance.pending_days == 0

    again = client.post(f"/api/leaves/{leave_id}/cancel", headers=as_staff(staff_team["employee"]), json={})
    assert again.status_code == 400
    assert _error_code(again) == "INVALID_TRANSITION"

def test_leave_visibility(client, staff_team, as_staff, future_leave):
    leave_id = _submit(client, staff_team["employee"], as_staff, future_leave).json()["id"]

    own = client.get("/api/leaves", headers=as_staff(staff_team["employee"]))
    assert [l["id"] for l in own.json()] == [leave_id]

    assert client.get("/api/leaves?staff_id=MFA-001", headers=as_staff(staff_team["colleague"])).status_code == 403
    assert client.get("/api/leaves?staff_id=MFA-001", headers=as_staff(staff_team["hr_officer"])).status_code == 200

    assert client.get(f"/api/leaves/{leave_id}", headers=as_staff(staff_team["supervisor"])).status_code == 200
    assert client.get(f"/api/leaves/{leave_id}", headers=as_staff(staff_team["colleague"])).status_code == 403
    assert client.get("/api/leaves/9999", headers=as_staff(staff_team["hr_officer"])).status_code == 404

def test_balance_endpoint_seeds_defaults(client, staff_team, as_staff):
    response = client.get("/api/balances/MFA-001", headers=as_staff(staff_team["employee"]))
    assert response.status_code == 200
    by_type = {b["leave_type"]: b for b in response.json()}
    assert by_type["Annual"]["total_days"] == 21
    assert by_type["Maternity"]["remaining_days"] == 84

    assert client.get("/api/balances/MFA-001", headers=as_staff(staff_team["colleague"])).status_code == 403

def test_workflow_preview(client, staff_team, as_staff):
    response = client.post(
        "/api/workflows/preview",
        headers=as_staff(staff_team["hr_officer"]),
        json={"staff_id": "MFA-001", "leave_type": "Annual", "days": 25}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["workflow_name"] == "Agency Staff Leave"
    assert [l["approver_role"] for l in data["levels"]] == ["SUPERVISOR", "DIRECTOR", "HR_OFFICER"]
    assert len(data["template"]) == 3

def test_cron_requires_secret(client, staff_team, as_staff):
    assert client.post("/api/cron/escalation").status_code == 401
    assert client.post("/api/cron/escalation", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = client.post("/api/cron/escalation", headers={"Authorization": f"Bearer {settings.cron_secret}"})
    assert response.status_code == 200
    assert response.json()["errors"] == 0
