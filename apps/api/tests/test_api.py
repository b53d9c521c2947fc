"""
API tests: intake → background triage → proposal → selection → approval.

Coverage:
- Auth (401), CSRF (403) and role checks
- Org / ownership scoping of cases (404)
- Full scheduling flow over HTTP, auto-approved and deferred
"""

import uuid

import httpx

from fixdesk.db.enums import CaseStatus, JobType
from fixdesk.db.models import Appointment, Job
from fixdesk.services import ai_provider
from fixdesk.worker import process_pending_jobs


def _slots_json(windows) -> list[dict]:
    return [
        {"start_time": w.start_time.isoformat(), "end_time": w.end_time.isoformat()}
        for w in windows
    ]


async def _report_and_triage(tenant_client, db, **overrides) -> str:
    body = {
        "title": "Kitchen sink leaking",
        "description": "Water drips from the pipe under the kitchen sink.",
        "category": "Plumbing",
        "priority": "high",
        **overrides,
    }
    response = await tenant_client.post("/cases", json=body)
    assert response.status_code == 201
    await process_pending_jobs(db)
    return response.json()["id"]


async def _propose(contractor_client, case_id, windows, cost="250") -> dict:
    response = await contractor_client.post(
        f"/cases/{case_id}/proposals",
        json={"slots": _slots_json(windows), "estimated_cost": cost},
    )
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Basics
# =============================================================================

async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


async def test_unauthenticated_request(client):
    response = await client.get(f"/cases/{uuid.uuid4()}")
    assert response.status_code == 401


async def test_mutation_requires_csrf_header(no_csrf_tenant_client):
    response = await no_csrf_tenant_client.post(
        "/cases", json={"title": "Leak", "description": "Drip"}
    )
    assert response.status_code == 403
    assert "CSRF" in response.json()["detail"]


# =============================================================================
# Intake
# =============================================================================

async def test_create_case_queues_triage(tenant_client, db, tenant_user):
    response = await tenant_client.post(
        "/cases",
        json={
            "title": "  Heater broken ",
            "description": "No heat in the bedroom",
            "priority": "critical",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == CaseStatus.NEW.value
    assert data["triage_status"] == "pending"
    (job,) = db.query(Job).filter(Job.job_type == JobType.CASE_TRIAGE.value).all()
    assert job.payload == {"case_id": data["id"], "requested_by": str(tenant_user.id)}

    detail = (await tenant_client.get(f"/cases/{data['id']}")).json()
    assert detail["title"] == "Heater broken"
    assert detail["urgency"] == "Urgent"
    assert [e["event_type"] for e in detail["events"]] == ["created"]


async def test_create_case_validates_input(tenant_client):
    response = await tenant_client.post("/cases", json={"title": "", "description": "x"})
    assert response.status_code == 422


async def test_triage_result_is_visible_on_case(tenant_client, db, plumber):
    case_id = await _report_and_triage(tenant_client, db)

    detail = (await tenant_client.get(f"/cases/{case_id}")).json()

    assert detail["assigned_provider_id"] == str(plumber.id)
    assert detail["status"] == CaseStatus.NEW.value
    assert detail["triage_status"] == "completed"
    assert detail["classification"]["category"] == "Plumbing"
    assert detail["ai_suggested_time"] is not None


async def test_unreachable_classifier_falls_back(tenant_client, db, plumber, monkeypatch):
    attempts = []
    real_client = httpx.AsyncClient

    def refuse(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url.host)
        raise httpx.ConnectError("connection refused", request=request)

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(refuse)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(ai_provider.settings, "AI_PROVIDER", "openai")
    monkeypatch.setattr(ai_provider.settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(ai_provider.httpx, "AsyncClient", client_factory)

    case_id = await _report_and_triage(tenant_client, db)

    detail = (await tenant_client.get(f"/cases/{case_id}")).json()
    assert attempts == ["api.openai.com"]
    assert detail["triage_status"] == "completed"
    assert detail["classification"]["is_fallback"] is True
    assert detail["status"] in {CaseStatus.NEW.value, CaseStatus.IN_REVIEW.value}
    assert detail["assigned_provider_id"] == str(plumber.id)


async def test_other_tenant_cannot_see_case(tenant_client, other_tenant_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await other_tenant_client.get(f"/cases/{case_id}")

    assert response.status_code == 404


async def test_owner_can_see_any_case(tenant_client, owner_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await owner_client.get(f"/cases/{case_id}")

    assert response.status_code == 200


async def test_guidance_falls_back_without_ai(tenant_client, db, plumber):
    case_id = await _report_and_triage(tenant_client, db)

    response = await tenant_client.get(f"/cases/{case_id}/guidance")

    assert response.status_code == 200
    data = response.json()
    assert data["case_id"] == case_id
    assert data["cost"]["is_fallback"] is True
    assert data["duration"]["estimated_minutes"] > 0


# =============================================================================
# Lifecycle and re-triage
# =============================================================================

async def test_tenant_can_cancel_own_case(tenant_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await tenant_client.post(
        f"/cases/{case_id}/status", json={"status": "Cancelled", "reason": "Fixed it myself"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == CaseStatus.CANCELLED.value


async def test_tenant_cannot_hold_case(tenant_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await tenant_client.post(f"/cases/{case_id}/status", json={"status": "On Hold"})

    assert response.status_code == 403


async def test_invalid_transition_is_conflict(tenant_client, owner_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await owner_client.post(f"/cases/{case_id}/status", json={"status": "Completed"})

    assert response.status_code == 409


async def test_owner_can_request_retriage(tenant_client, owner_client, db):
    case_id = await _report_and_triage(tenant_client, db)

    response = await owner_client.post(f"/cases/{case_id}/triage")

    assert response.status_code == 202
    assert response.json()["triage_status"] == "pending"
    assert (await tenant_client.post(f"/cases/{case_id}/triage")).status_code == 403


async def test_retriage_of_closed_case_is_conflict(tenant_client, owner_client, db):
    case_id = await _report_and_triage(tenant_client, db)
    await tenant_client.post(f"/cases/{case_id}/status", json={"status": "Cancelled"})

    response = await owner_client.post(f"/cases/{case_id}/triage")

    assert response.status_code == 409


# =============================================================================
# Proposals and selection
# =============================================================================

async def test_only_the_provider_can_propose(tenant_client, db, plumber, windows):
    case_id = await _report_and_triage(tenant_client, db)

    response = await tenant_client.post(
        f"/cases/{case_id}/proposals", json={"slots": _slots_json(windows)}
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Only the provider can propose times"


async def test_invalid_proposal_is_bad_request(tenant_client, contractor_client, db, plumber, windows):
    case_id = await _report_and_triage(tenant_client, db)

    response = await contractor_client.post(
        f"/cases/{case_id}/proposals", json={"slots": _slots_json(windows[:2])}
    )

    assert response.status_code == 400
    assert "Exactly 3" in response.json()["detail"]


async def test_full_flow_auto_approves(
    tenant_client, contractor_client, owner_client, db, plumber, windows
):
    case_id = await _report_and_triage(tenant_client, db)
    proposal = await _propose(contractor_client, case_id, windows)
    assert [s["slot_number"] for s in proposal["slots"]] == [1, 2, 3]

    listed = (await tenant_client.get(f"/cases/{case_id}/proposals")).json()
    assert [p["id"] for p in listed] == [proposal["id"]]

    policy = await owner_client.put(
        "/policies/active",
        json={
            "involvement_mode": "balanced",
            "cost_threshold": "300",
            "preferred_start_hour": 8,
            "preferred_end_hour": 18,
            "timezone": "UTC",
        },
    )
    assert policy.status_code == 200

    response = await tenant_client.post(
        f"/proposals/slots/{proposal['slots'][0]['id']}/select"
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["auto_approved"] is True
    assert data["message"] == "Appointment confirmed"
    appointment = db.query(Appointment).filter(Appointment.id == uuid.UUID(data["appointment_id"])).one()
    assert appointment.status == "Confirmed"

    detail = (await tenant_client.get(f"/cases/{case_id}")).json()
    assert detail["status"] == CaseStatus.SCHEDULED.value

    appointments = (await contractor_client.get(f"/cases/{case_id}/appointments")).json()
    assert [a["id"] for a in appointments] == [data["appointment_id"]]
    assert appointments[0]["external_event_id"] is None


async def test_deferred_selection_is_approved_by_owner(
    tenant_client, contractor_client, owner_client, db, plumber, windows
):
    case_id = await _report_and_triage(tenant_client, db)
    proposal = await _propose(contractor_client, case_id, windows, cost="400")

    response = await tenant_client.post(
        f"/proposals/slots/{proposal['slots'][1]['id']}/select"
    )
    data = response.json()
    assert response.status_code == 200
    assert data["auto_approved"] is False
    assert data["appointment_id"] is None
    assert data["message"] == "Selection recorded; awaiting landlord approval"
    assert data["reason"] == "Manual approval required: No approval policy configured"

    forbidden = await tenant_client.post(f"/proposals/{proposal['id']}/approve")
    assert forbidden.status_code == 403

    approved = await owner_client.post(
        f"/proposals/{proposal['id']}/approve", json={"reason": "Fine by me"}
    )
    assert approved.status_code == 200
    assert approved.json()["message"] == "Appointment approved"
    assert approved.json()["reason"] == "Fine by me"


async def test_decline_over_http(tenant_client, contractor_client, owner_client, db, plumber, windows):
    case_id = await _report_and_triage(tenant_client, db)
    proposal = await _propose(contractor_client, case_id, windows)
    await tenant_client.post(f"/proposals/slots/{proposal['slots'][0]['id']}/select")

    response = await owner_client.post(f"/proposals/{proposal['id']}/decline")

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    again = await owner_client.post(f"/proposals/{proposal['id']}/decline")
    assert again.status_code == 409


async def test_second_selection_is_conflict(tenant_client, contractor_client, db, plumber, windows):
    case_id = await _report_and_triage(tenant_client, db)
    proposal = await _propose(contractor_client, case_id, windows)
    await tenant_client.post(f"/proposals/slots/{proposal['slots'][0]['id']}/select")

    response = await tenant_client.post(f"/proposals/slots/{proposal['slots'][1]['id']}/select")

    assert response.status_code == 409


async def test_contractor_cannot_select(tenant_client, contractor_client, db, plumber, windows):
    case_id = await _report_and_triage(tenant_client, db)
    proposal = await _propose(contractor_client, case_id, windows)

    response = await contractor_client.post(
        f"/proposals/slots/{proposal['slots'][0]['id']}/select"
    )

    assert response.status_code == 403


async def test_unknown_slot(tenant_client):
    response = await tenant_client.post(f"/proposals/slots/{uuid.uuid4()}/select")
    assert response.status_code == 404


# =============================================================================
# Policies
# =============================================================================

async def test_no_active_policy(owner_client):
    response = await owner_client.get("/policies/active")
    assert response.status_code == 200
    assert response.json() is None


async def test_tenant_cannot_set_policy(tenant_client):
    response = await tenant_client.put("/policies/active", json={"involvement_mode": "hands-off"})
    assert response.status_code == 403


async def test_unknown_trusted_provider_is_bad_request(owner_client):
    response = await owner_client.put(
        "/policies/active", json={"trusted_provider_ids": [str(uuid.uuid4())]}
    )
    assert response.status_code == 400


async def test_invalid_mode_is_rejected(owner_client):
    response = await owner_client.put("/policies/active", json={"involvement_mode": "yolo"})
    assert response.status_code == 422
