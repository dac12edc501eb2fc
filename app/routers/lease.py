"""
Lease Analysis Router
Upload a lease PDF, inspect the structured result, ask grounded questions,
save analyses to the profile and export reminders and summaries.

Each user has one orchestrator held in memory; run state does not survive a
restart, saved analyses do.
"""

import asyncio
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Cookie, Depends, File, HTTPException, Query, Response, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from app.core.config import Settings, get_settings
from app.core.security import (
    SESSION_COOKIE,
    create_session,
    get_user_store,
    invalidate_session,
    require_role,
    require_user,
    sanitize_filename,
    security_bearer,
    session_token,
)
from app.services.lease.models import RawDocument, UserIdentity
from app.services.lease.orchestrator import (
    AnalysisOrchestrator,
    OrchestratorRegistry,
    get_orchestrator_registry,
)
from app.services.lease.summary_pdf import SUMMARY_FILENAME, render_summary_pdf
from app.services.lease.text_search import find_matches, highlight

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_BYTES = 1024 * 1024


# =============================================================================
# Schemas
# =============================================================================

class QuestionRequest(BaseModel):
    """Question about the current lease."""
    question: str = Field(..., max_length=2000)


class ReminderRequest(BaseModel):
    """Reminder for one critical date of the current lease."""
    index: int = Field(..., ge=0, description="Position in criticalDates")
    offset: str = Field("1m", description="1w, 2w, 1m, 3m or 6m before the date")


class TierUpdate(BaseModel):
    """Subscription change applied after checkout."""
    subscription_tier: Literal["free", "pro"]


class SavedResponse(BaseModel):
    id: str


# =============================================================================
# Dependencies
# =============================================================================

async def get_orchestrator(
    user: UserIdentity = Depends(require_user),
    registry: OrchestratorRegistry = Depends(get_orchestrator_registry),
) -> AnalysisOrchestrator:
    """The caller's orchestrator, created on first use."""
    return registry.get(user)


def _state_payload(orchestrator: AnalysisOrchestrator) -> dict:
    payload = orchestrator.state.to_dict()
    payload["savedId"] = orchestrator.saved_id
    return payload


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    """Read the upload in chunks, stopping as soon as it passes the size limit."""
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"File exceeds the {settings.max_upload_size_mb} MB upload limit",
    )
    limit = settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise too_large

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise too_large
        chunks.append(chunk)
    return b"".join(chunks)


# =============================================================================
# Run lifecycle
# =============================================================================

@router.get("/state")
async def get_state(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Current run state with the lease record when results are shown."""
    return _state_payload(orchestrator)


@router.post("/analyze")
async def analyze_lease(
    file: UploadFile = File(...),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """
    Extract and analyze an uploaded lease PDF.

    Returns the final state; extraction or model failures come back as a
    200 with state "failed" and a readable error.
    """
    content = await _read_upload(file, settings)

    document = RawDocument(
        filename=sanitize_filename(file.filename or "") or "lease.pdf",
        content=content,
        content_type=file.content_type,
    )
    await orchestrator.upload(document)
    return _state_payload(orchestrator)


@router.post("/reset")
async def reset_run(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Discard the current results or failure and go back to idle."""
    orchestrator.reset()
    return _state_payload(orchestrator)


# =============================================================================
# Q&A
# =============================================================================

@router.post("/ask")
async def ask_question(
    body: QuestionRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Ask a question answered only from the current lease text."""
    chat = orchestrator.open_chat()
    reply = await chat.ask(body.question)
    return {"reply": reply.to_dict(), "turns": chat.to_list()}


@router.get("/chat")
async def get_chat(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    chat = orchestrator.chat
    return {"turns": chat.to_list() if chat else []}


# =============================================================================
# Profile
# =============================================================================

@router.post("/save", response_model=SavedResponse)
async def save_analysis(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Persist the current results to the caller's profile."""
    return SavedResponse(id=await orchestrator.save())


@router.get("/saved")
async def list_saved(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """Profile page: the account and its saved analyses, newest first."""
    saved = await orchestrator.persistence.list_by_owner(orchestrator.user.uid)
    return {
        "profile": orchestrator.user.to_dict(),
        "analyses": [item.to_dict() for item in saved],
        "total": len(saved),
        "subscriptionTier": orchestrator.user.subscription_tier,
    }


@router.post("/saved/{analysis_id}/load")
async def load_saved(
    analysis_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Show a saved analysis again without re-running the model."""
    saved = await orchestrator.persistence.get(analysis_id, orchestrator.user.uid)
    if saved is None:
        raise HTTPException(status_code=404, detail="Saved analysis not found")
    orchestrator.load_saved(saved)
    return _state_payload(orchestrator)


# =============================================================================
# Tools on the current results
# =============================================================================

@router.get("/search")
async def search_text(
    q: str = Query(..., min_length=1, max_length=200),
    with_highlight: bool = Query(False, alias="highlight"),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Find a term in the lease text; page numbers are 1-based."""
    full_text = orchestrator.current_text()
    matches = find_matches(full_text, q)
    result = {"query": q, "total": len(matches), "matches": [m.to_dict() for m in matches]}
    if with_highlight:
        result["highlighted"] = highlight(full_text, q)
    return result


@router.post("/reminder")
async def download_reminder(
    body: ReminderRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Calendar file for a reminder ahead of one critical date."""
    invite = orchestrator.reminder(body.index, body.offset)
    return Response(
        content=invite.content,
        media_type=invite.media_type,
        headers={"Content-Disposition": f'attachment; filename="{invite.filename}"'},
    )


@router.get("/summary.pdf")
async def download_summary(orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)):
    """PDF summary of the current lease record."""
    record = orchestrator.current_record()
    pdf = await asyncio.to_thread(render_summary_pdf, record, orchestrator.state.file_name)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{SUMMARY_FILENAME}"'},
    )


# =============================================================================
# Sessions
# =============================================================================

@router.post("/session")
async def open_session(
    response: Response,
    user: UserIdentity = Depends(require_user),
    settings: Settings = Depends(get_settings),
):
    """
    Issue a session token for an authenticated caller.

    Typically called once after the auth proxy has identified the user; the
    token is returned in the body and as an HttpOnly cookie.
    """
    token = await create_session(user.uid)
    max_age = settings.session_ttl_hours * 3600
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=not settings.debug,
    )
    return {"token": token, "expiresIn": max_age}


@router.delete("/session")
async def close_session(
    response: Response,
    sweetlease_session: Optional[str] = Cookie(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
):
    """Sign out: revoke the presented session token."""
    token = session_token(credentials, sweetlease_session)
    revoked = await invalidate_session(token) if token else False
    response.delete_cookie(SESSION_COOKIE)
    return {"revoked": revoked}


# =============================================================================
# Admin
# =============================================================================

@router.post("/admin/users/{uid}/tier")
async def set_subscription_tier(
    uid: str,
    body: TierUpdate,
    admin: UserIdentity = Depends(require_role("admin")),
):
    """Apply a subscription change reported by the billing provider."""
    try:
        await get_user_store().set_tier(uid, body.subscription_tier)
    except LookupError:
        raise HTTPException(status_code=404, detail="User not found") from None
    logger.info("Admin %s set %s to %s", admin.uid, uid, body.subscription_tier)
    return {"uid": uid, "subscriptionTier": body.subscription_tier}
