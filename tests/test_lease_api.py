"""
Sweetlease - Lease API Tests
End-to-end through the FastAPI app with generated PDFs and a fake model.
"""

import json
from io import BytesIO

import pytest
from fastapi import HTTPException, UploadFile
from httpx import AsyncClient

from app.core.security import ensure_user
from app.routers.lease import _read_upload
from app.services.lease.errors import AI_UNAVAILABLE_MESSAGE, ModelError
from app.services.lease.models import LeaseRecord
from app.services.lease.repository import SqlLeaseRepository

from conftest import MOCK_LEASE_RESPONSE, auth_headers


def _upload(pdf: bytes, name: str = "lease.pdf") -> dict:
    return {"file": (name, BytesIO(pdf), "application/pdf")}


async def _analyze(client: AsyncClient, pdf: bytes) -> dict:
    response = await client.post("/api/lease/analyze", files=_upload(pdf))
    assert response.status_code == 200
    return response.json()


# =============================================================================
# Health and auth
# =============================================================================

@pytest.mark.anyio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "ai_configured": True}


@pytest.mark.anyio
async def test_requires_authentication(client: AsyncClient):
    response = await client.get("/api/lease/state")
    assert response.status_code == 401


@pytest.mark.anyio
async def test_unknown_session_rejected(client: AsyncClient):
    response = await client.get("/api/lease/state", headers={"Authorization": "Bearer not-a-session"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_raw_user_id_is_not_a_credential(client: AsyncClient, test_user):
    as_bearer = await client.get("/api/lease/state", headers={"Authorization": f"Bearer {test_user.uid}"})
    as_header = await client.get("/api/lease/state", headers={"X-User-ID": test_user.uid})
    assert as_bearer.status_code == 401
    assert as_header.status_code == 401


@pytest.mark.anyio
async def test_proxy_header_when_trusted(client: AsyncClient, settings, monkeypatch, test_user):
    monkeypatch.setattr(settings, "trust_proxy_user_header", True)

    known = await client.get("/api/lease/state", headers={"X-User-ID": test_user.uid})
    unknown = await client.get("/api/lease/state", headers={"X-User-ID": "never-registered"})

    assert known.status_code == 200
    assert unknown.status_code == 401


@pytest.mark.anyio
async def test_session_cookie_identity(client: AsyncClient, test_user):
    token = (await auth_headers(test_user.uid))["Authorization"].split(" ", 1)[1]
    response = await client.get("/api/lease/state", headers={"Cookie": f"sweetlease_session={token}"})
    assert response.status_code == 200
    assert response.json()["state"] == "idle"
    assert response.headers["Cache-Control"] == "private, no-store"


@pytest.mark.anyio
async def test_open_and_close_session(client: AsyncClient, settings, monkeypatch, test_user):
    monkeypatch.setattr(settings, "trust_proxy_user_header", True)
    opened = await client.post("/api/lease/session", headers={"X-User-ID": test_user.uid})
    assert opened.status_code == 200
    token = opened.json()["token"]
    assert "sweetlease_session=" in opened.headers["set-cookie"]
    assert "httponly" in opened.headers["set-cookie"].lower()

    bearer = {"Authorization": f"Bearer {token}"}
    assert (await client.get("/api/lease/state", headers=bearer)).status_code == 200

    closed = await client.delete("/api/lease/session", headers=bearer)
    assert closed.json() == {"revoked": True}
    assert (await client.get("/api/lease/state", headers=bearer)).status_code == 401


# =============================================================================
# Analysis
# =============================================================================

@pytest.mark.anyio
async def test_analyze_lease(authenticated_client: AsyncClient, lease_pdf):
    data = await _analyze(authenticated_client, lease_pdf)

    assert data["state"] == "results"
    assert data["fileName"] == "lease.pdf"
    assert data["error"] is None
    lease = data["lease"]
    assert lease["parties"]["tenant"] == "Innovate Solutions Ltd."
    assert lease["rent"]["amount"] == "£4,500.00"
    assert 95.0 <= lease["ocrConfidence"] <= 99.0

    state = (await authenticated_client.get("/api/lease/state")).json()
    assert state["state"] == "results"


@pytest.mark.anyio
async def test_upload_over_results_conflicts(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)

    response = await authenticated_client.post("/api/lease/analyze", files=_upload(lease_pdf))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "invalid_state"


@pytest.mark.anyio
async def test_not_a_pdf_fails_the_run(authenticated_client: AsyncClient):
    response = await authenticated_client.post(
        "/api/lease/analyze",
        files={"file": ("notes.txt", BytesIO(b"hello"), "text/plain")},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "failed"
    assert data["error"].startswith("Failed to process lease.")
    assert data["lease"] is None


@pytest.mark.anyio
async def test_model_outage_fails_the_run(authenticated_client: AsyncClient, fake_model, lease_pdf):
    fake_model.error = ModelError("Gemini API error: 503", status_code=503)
    data = await _analyze(authenticated_client, lease_pdf)
    assert data["state"] == "failed"
    assert data["error"] == f"Failed to process lease. {AI_UNAVAILABLE_MESSAGE}"


@pytest.mark.anyio
async def test_upload_too_large(authenticated_client: AsyncClient, settings, monkeypatch, lease_pdf):
    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    response = await authenticated_client.post("/api/lease/analyze", files=_upload(lease_pdf))
    assert response.status_code == 413


@pytest.mark.anyio
async def test_upload_read_stops_at_limit_without_declared_size(settings, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_size_mb", 1)
    limit = settings.max_upload_bytes

    small = UploadFile(file=BytesIO(b"x" * limit), filename="ok.pdf")
    assert len(await _read_upload(small, settings)) == limit

    big = UploadFile(file=BytesIO(b"x" * (limit + 1)), filename="big.pdf")
    assert big.size is None
    with pytest.raises(HTTPException) as exc_info:
        await _read_upload(big, settings)
    assert exc_info.value.status_code == 413


@pytest.mark.anyio
async def test_quota_exceeded(authenticated_client: AsyncClient, test_user, lease_pdf):
    repository = SqlLeaseRepository()
    record = LeaseRecord.model_validate(MOCK_LEASE_RESPONSE)
    for index in range(3):
        await repository.save(record, "text", f"lease-{index}.pdf", test_user.uid)

    response = await authenticated_client.post("/api/lease/analyze", files=_upload(lease_pdf))

    assert response.status_code == 402
    error = response.json()["error"]
    assert error["code"] == "quota_exceeded"
    assert error["limit"] == 3
    state = (await authenticated_client.get("/api/lease/state")).json()
    assert state["state"] == "idle"


@pytest.mark.anyio
async def test_reset(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)
    response = await authenticated_client.post("/api/lease/reset")
    assert response.json()["state"] == "idle"
    assert response.json()["lease"] is None


# =============================================================================
# Q&A
# =============================================================================

@pytest.mark.anyio
async def test_ask_requires_results(authenticated_client: AsyncClient):
    response = await authenticated_client.post("/api/lease/ask", json={"question": "What is the rent?"})
    assert response.status_code == 409


@pytest.mark.anyio
async def test_ask_and_chat_history(authenticated_client: AsyncClient, fake_model, lease_response, lease_pdf):
    fake_model.responses = [json.dumps(lease_response), "The rent is £4,500.00 per month."]
    await _analyze(authenticated_client, lease_pdf)

    response = await authenticated_client.post("/api/lease/ask", json={"question": "What is the rent?"})

    assert response.status_code == 200
    data = response.json()
    assert data["reply"] == {"role": "model", "text": "The rent is £4,500.00 per month."}
    assert [turn["role"] for turn in data["turns"]] == ["user", "model"]

    chat = (await authenticated_client.get("/api/lease/chat")).json()
    assert chat["turns"] == data["turns"]


@pytest.mark.anyio
async def test_blank_question_rejected(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)
    response = await authenticated_client.post("/api/lease/ask", json={"question": "   "})
    assert response.status_code == 422


# =============================================================================
# Profile
# =============================================================================

@pytest.mark.anyio
async def test_save_list_and_load(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)

    saved = await authenticated_client.post("/api/lease/save")
    assert saved.status_code == 200
    analysis_id = saved.json()["id"]
    again = await authenticated_client.post("/api/lease/save")
    assert again.json()["id"] == analysis_id

    listing = (await authenticated_client.get("/api/lease/saved")).json()
    assert listing["total"] == 1
    assert listing["profile"]["initials"] == "JA"
    assert listing["profile"]["email"] == "jane.doe@example.com"
    assert listing["analyses"][0]["id"] == analysis_id
    assert listing["analyses"][0]["fileName"] == "lease.pdf"

    await authenticated_client.post("/api/lease/reset")
    loaded = await authenticated_client.post(f"/api/lease/saved/{analysis_id}/load")
    assert loaded.status_code == 200
    assert loaded.json()["state"] == "results"
    assert loaded.json()["savedId"] == analysis_id


@pytest.mark.anyio
async def test_load_missing_analysis(authenticated_client: AsyncClient):
    response = await authenticated_client.post("/api/lease/saved/does-not-exist/load")
    assert response.status_code == 404


# =============================================================================
# Tools
# =============================================================================

@pytest.mark.anyio
async def test_search(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)

    response = await authenticated_client.get("/api/lease/search", params={"q": "coffee", "highlight": "true"})

    data = response.json()
    assert data["total"] == 1
    assert data["matches"][0]["page"] == 2
    assert "<mark>coffee</mark>" in data["highlighted"]


@pytest.mark.anyio
async def test_reminder_download(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)

    response = await authenticated_client.post("/api/lease/reminder", json={"index": 0, "offset": "1m"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    assert 'filename="reminder_last_day_to_serve_break_notice.ics"' in response.headers["content-disposition"]
    assert "BEGIN:VCALENDAR" in response.text
    assert "DTSTART;VALUE=DATE:20261231" in response.text


@pytest.mark.anyio
async def test_reminder_invalid_offset(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)
    response = await authenticated_client.post("/api/lease/reminder", json={"index": 0, "offset": "5d"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_reminder"


@pytest.mark.anyio
async def test_summary_pdf(authenticated_client: AsyncClient, lease_pdf):
    await _analyze(authenticated_client, lease_pdf)

    response = await authenticated_client.get("/api/lease/summary.pdf")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "sweetlease_summary.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


# =============================================================================
# Admin
# =============================================================================

@pytest.mark.anyio
async def test_tier_update_requires_admin(authenticated_client: AsyncClient, test_user):
    response = await authenticated_client.post(
        f"/api/lease/admin/users/{test_user.uid}/tier", json={"subscription_tier": "pro"}
    )
    assert response.status_code == 403


@pytest.mark.anyio
async def test_admin_upgrade_lifts_quota(client: AsyncClient, test_user, lease_pdf):
    admin = await ensure_user("admin-01", "admin@example.com", role="admin")
    repository = SqlLeaseRepository()
    record = LeaseRecord.model_validate(MOCK_LEASE_RESPONSE)
    for index in range(3):
        await repository.save(record, "text", f"lease-{index}.pdf", test_user.uid)

    response = await client.post(
        f"/api/lease/admin/users/{test_user.uid}/tier",
        json={"subscription_tier": "pro"},
        headers=await auth_headers(admin.uid),
    )
    assert response.status_code == 200

    analyzed = await client.post(
        "/api/lease/analyze", files=_upload(lease_pdf), headers=await auth_headers(test_user.uid)
    )
    assert analyzed.status_code == 200
    assert analyzed.json()["state"] == "results"


@pytest.mark.anyio
async def test_admin_tier_update_unknown_user(client: AsyncClient):
    admin = await ensure_user("admin-01", "admin@example.com", role="admin")
    response = await client.post(
        "/api/lease/admin/users/nobody/tier",
        json={"subscription_tier": "pro"},
        headers=await auth_headers(admin.uid),
    )
    assert response.status_code == 404
