"""
Lease Analysis Pipeline
=======================

Turns an uploaded lease PDF into a structured LeaseRecord and supports
grounded follow-up questions and critical-date reminders.

Components:
- LeaseTextExtractor: PDF bytes -> page-ordered text with confidence
- LeaseAnalyzer: text -> LeaseRecord via a schema-constrained model call
- LeaseQuestionResponder / ChatSession: answers grounded in the lease text
- build_reminder: one all-day iCalendar event ahead of a critical date
- AnalysisOrchestrator: per-user run state machine

Usage:
    from app.services.lease import get_orchestrator_registry, RawDocument

    orchestrator = get_orchestrator_registry().get(user)
    state = await orchestrator.upload(RawDocument("lease.pdf", pdf_bytes))
"""

from .analyzer import LEASE_RESPONSE_SCHEMA, LeaseAnalyzer
from .chat import ChatSession
from .errors import (
    EmptyInputError,
    ExtractionError,
    InvalidReminderError,
    LeaseAnalysisError,
    ModelError,
    QuotaExceededError,
    RunInProgressError,
    RunStateError,
    SchemaViolationError,
)
from .gemini_client import GeminiClient, GenerativeModel, get_gemini_client
from .models import (
    AnalysisRunState,
    ChatRole,
    ConversationTurn,
    CriticalDate,
    CriticalDateCategory,
    ExtractedText,
    LeaseRecord,
    RawDocument,
    RunPhase,
    SavedAnalysis,
    UserIdentity,
)
from .orchestrator import AnalysisOrchestrator, OrchestratorRegistry, get_orchestrator_registry
from .reminders import ReminderInvite, ReminderOffset, build_reminder
from .repository import LeaseRepository, SqlLeaseRepository, UserStore
from .responder import LeaseQuestionResponder
from .summary_pdf import render_summary_pdf
from .text_extractor import LeaseTextExtractor, get_text_extractor
from .text_search import find_matches, highlight

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisRunState",
    "ChatRole",
    "ChatSession",
    "ConversationTurn",
    "CriticalDate",
    "CriticalDateCategory",
    "EmptyInputError",
    "ExtractedText",
    "ExtractionError",
    "GeminiClient",
    "GenerativeModel",
    "InvalidReminderError",
    "LEASE_RESPONSE_SCHEMA",
    "LeaseAnalysisError",
    "LeaseAnalyzer",
    "LeaseQuestionResponder",
    "LeaseRecord",
    "LeaseRepository",
    "LeaseTextExtractor",
    "ModelError",
    "OrchestratorRegistry",
    "QuotaExceededError",
    "RawDocument",
    "ReminderInvite",
    "ReminderOffset",
    "RunInProgressError",
    "RunPhase",
    "RunStateError",
    "SavedAnalysis",
    "SchemaViolationError",
    "SqlLeaseRepository",
    "UserIdentity",
    "UserStore",
    "build_reminder",
    "find_matches",
    "get_gemini_client",
    "get_orchestrator_registry",
    "get_text_extractor",
    "highlight",
    "render_summary_pdf",
]
