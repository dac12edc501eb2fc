"""
Sweetlease - Analysis Orchestrator
Drives one user's analysis run through its states:

    Idle -> Extracting -> Analyzing -> Results(record)
                 \\             \\
                  +-------------+--> Failed(reason)

    Failed | Results --reset--> Idle
    Idle | Results --load_saved--> Results

Guard errors (run already in progress, quota reached) are raised before any
transition. Component errors never escape upload(); they become Failed.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Optional, TypeVar

from app.core.config import get_settings
from app.services.lease.analyzer import LeaseAnalyzer
from app.services.lease.chat import ChatSession
from app.services.lease.errors import (
    InvalidReminderError,
    LeaseAnalysisError,
    ModelError,
    QuotaExceededError,
    RunInProgressError,
    RunStateError,
)
from app.services.lease.gemini_client import get_gemini_client
from app.services.lease.models import (
    AnalysisRunState,
    LeaseRecord,
    RawDocument,
    RunPhase,
    SavedAnalysis,
    UserIdentity,
)
from app.services.lease.reminders import ReminderInvite, ReminderOffset, build_reminder
from app.services.lease.repository import LeaseRepository, SqlLeaseRepository
from app.services.lease.responder import LeaseQuestionResponder
from app.services.lease.text_extractor import LeaseTextExtractor, get_text_extractor

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILURE_PREFIX = "Failed to process lease."


class AnalysisOrchestrator:
    """
    Per-user analysis state machine.

    One run at a time: a second upload while a run is starting, extracting
    or analyzing is rejected, not queued. Results and Failed need a reset
    before the next upload.
    """

    def __init__(
        self,
        extractor: LeaseTextExtractor,
        analyzer: LeaseAnalyzer,
        persistence: LeaseRepository,
        user: UserIdentity,
        responder: Optional[LeaseQuestionResponder] = None,
        timeout: Optional[float] = None,
        free_tier_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.extractor = extractor
        self.analyzer = analyzer
        self.persistence = persistence
        self.user = user
        self._responder = responder
        self._timeout = timeout if timeout is not None else settings.ai_timeout_seconds
        self._free_tier_limit = (
            free_tier_limit if free_tier_limit is not None else settings.free_tier_limit
        )

        self._state = AnalysisRunState.idle()
        self._claimed = False
        self._full_text: Optional[str] = None
        self._saved_id: Optional[str] = None
        self._chat: Optional[ChatSession] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> AnalysisRunState:
        return self._state

    @property
    def full_text(self) -> Optional[str]:
        """Text behind the current results, None outside Results."""
        return self._full_text if self._state.phase == RunPhase.RESULTS else None

    @property
    def saved_id(self) -> Optional[str]:
        return self._saved_id

    @property
    def chat(self) -> Optional[ChatSession]:
        return self._chat

    @property
    def is_busy(self) -> bool:
        """True from the moment an upload is accepted until it settles."""
        return self._claimed or self._state.is_running

    def _reject_if_busy(self) -> None:
        if self.is_busy:
            phase = self._state.phase
            raise RunInProgressError(phase.value if phase != RunPhase.IDLE else "starting")

    def _transition(self, new_state: AnalysisRunState) -> None:
        logger.info(
            "Run %s: %s -> %s%s",
            self.user.uid,
            self._state.phase.value,
            new_state.phase.value,
            f" ({new_state.error})" if new_state.error else "",
        )
        self._state = new_state

    def _clear_run(self) -> None:
        self._full_text = None
        self._saved_id = None
        self._chat = None

    def current_record(self) -> LeaseRecord:
        if self._state.phase != RunPhase.RESULTS or self._state.record is None:
            raise RunStateError(
                f"No results available in state {self._state.phase.value}",
                user_message="Analyze or load a lease first.",
            )
        return self._state.record

    def current_text(self) -> str:
        """Full text behind the current results."""
        self.current_record()
        return self._full_text or ""

    # =========================================================================
    # Events
    # =========================================================================

    async def upload(self, document: RawDocument) -> AnalysisRunState:
        """
        Run extraction and analysis for an uploaded lease.

        Returns the final state (Results or Failed).

        Raises:
            RunInProgressError: another upload is starting or running
            RunStateError: results or a failure are shown; reset first
            QuotaExceededError: free tier already holds free_tier_limit records
        """
        self._reject_if_busy()
        if self._state.phase != RunPhase.IDLE:
            raise RunStateError(
                f"Cannot accept an upload while {self._state.phase.value}",
                user_message="Start a new analysis before uploading another lease.",
            )

        # Claimed before the first await; the state itself stays Idle until
        # the quota check passes.
        self._claimed = True
        try:
            await self._check_quota()
            return await self._run(document)
        finally:
            self._claimed = False

    async def _run(self, document: RawDocument) -> AnalysisRunState:
        file_name = document.filename
        try:
            self._transition(AnalysisRunState.extracting(file_name))
            extracted = await self._with_timeout(self.extractor.extract(document), "Text extraction")

            self._transition(AnalysisRunState.analyzing(file_name))
            record = await self._with_timeout(self.analyzer.analyze(extracted.full_text), "Lease analysis")
        except LeaseAnalysisError as e:
            logger.warning("Run %s failed on %s: %s", self.user.uid, file_name, e.message)
            return self._fail(e.user_message, file_name)
        except Exception:
            logger.exception("Unexpected failure processing %s", file_name)
            return self._fail("An unexpected error occurred.", file_name)

        self._clear_run()
        self._full_text = extracted.full_text
        self._transition(
            AnalysisRunState.results(record.with_confidence(extracted.overall_confidence), file_name)
        )
        return self._state

    def reset(self) -> AnalysisRunState:
        """Failed | Results -> Idle. No-op from Idle."""
        self._reject_if_busy()
        if self._state.phase != RunPhase.IDLE:
            self._clear_run()
            self._transition(AnalysisRunState.idle())
        return self._state

    def load_saved(self, saved: SavedAnalysis) -> AnalysisRunState:
        """Show a saved analysis without extracting or analyzing again."""
        self._reject_if_busy()
        if self._state.phase not in (RunPhase.IDLE, RunPhase.RESULTS):
            raise RunStateError(
                f"Cannot load a saved analysis while {self._state.phase.value}",
                user_message="Reset the current analysis before loading a saved one.",
            )
        self._clear_run()
        self._full_text = saved.full_text
        self._saved_id = saved.id
        self._transition(AnalysisRunState.results(saved.lease_data, saved.file_name))
        return self._state

    async def save(self) -> str:
        """Persist the current results; saving the same run twice returns the first id."""
        record = self.current_record()
        if self._saved_id:
            return self._saved_id

        self._saved_id = await self.persistence.save(
            record,
            self._full_text or "",
            self._state.file_name or "lease.pdf",
            self.user.uid,
        )
        return self._saved_id

    def open_chat(self) -> ChatSession:
        """Chat bound to the current results' text; one session per run."""
        self.current_record()
        if self._chat is None:
            self._chat = ChatSession(self._full_text or "", self._responder or LeaseQuestionResponder())
        return self._chat

    def reminder(self, index: int, offset: str) -> ReminderInvite:
        """Calendar reminder for critical_dates[index] of the current record."""
        record = self.current_record()
        if index < 0 or index >= len(record.critical_dates):
            raise InvalidReminderError(
                f"Critical date index {index} out of range (0-{len(record.critical_dates) - 1})"
            )
        item = record.critical_dates[index]
        return build_reminder(item.date, item.description, ReminderOffset.parse(offset))

    # =========================================================================
    # Internals
    # =========================================================================

    async def _check_quota(self) -> None:
        if self.user.is_pro:
            return
        current = await self.persistence.count_by_owner(self.user.uid)
        if current >= self._free_tier_limit:
            logger.info("Quota reached for %s (%d/%d)", self.user.uid, current, self._free_tier_limit)
            raise QuotaExceededError(self._free_tier_limit, current)

    async def _with_timeout(self, awaitable: Awaitable[T], stage: str) -> T:
        if not self._timeout:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ModelError(f"{stage} timed out after {self._timeout:.0f}s") from e

    def _fail(self, detail: str, file_name: str) -> AnalysisRunState:
        self._clear_run()
        self._transition(AnalysisRunState.failed(f"{FAILURE_PREFIX} {detail}", file_name))
        return self._state


class OrchestratorRegistry:
    """
    In-memory orchestrator per user id, least recently used first out.

    At most max_sessions orchestrators are kept; an orchestrator with an
    upload in flight is never evicted, so the cap can be exceeded while
    every entry is busy.
    """

    def __init__(
        self,
        factory: Callable[[UserIdentity], AnalysisOrchestrator],
        max_sessions: Optional[int] = None,
    ):
        self._factory = factory
        self._max_sessions = (
            max_sessions if max_sessions is not None else get_settings().max_active_sessions
        )
        self._orchestrators: OrderedDict[str, AnalysisOrchestrator] = OrderedDict()

    def get(self, user: UserIdentity) -> AnalysisOrchestrator:
        orchestrator = self._orchestrators.get(user.uid)
        if orchestrator is None:
            orchestrator = self._factory(user)
            self._orchestrators[user.uid] = orchestrator
            logger.debug("Created orchestrator for %s", user.uid)
            self._evict()
        else:
            # Tier may change between requests (billing upgrade)
            orchestrator.user = user
            self._orchestrators.move_to_end(user.uid)
        return orchestrator

    def discard(self, uid: str) -> None:
        self._orchestrators.pop(uid, None)

    def _evict(self) -> None:
        # The newest entry is the one being handed out
        for uid in list(self._orchestrators)[:-1]:
            if len(self._orchestrators) <= self._max_sessions:
                return
            if self._orchestrators[uid].is_busy:
                continue
            self.discard(uid)
            logger.info("Evicted analysis session for %s", uid)

    def clear(self) -> None:
        self._orchestrators.clear()

    def __len__(self) -> int:
        return len(self._orchestrators)


def build_orchestrator(user: UserIdentity) -> AnalysisOrchestrator:
    """Default wiring: shared extractor, Gemini-backed analyzer and responder, SQL storage."""
    model = get_gemini_client()
    return AnalysisOrchestrator(
        extractor=get_text_extractor(),
        analyzer=LeaseAnalyzer(model),
        persistence=SqlLeaseRepository(),
        user=user,
        responder=LeaseQuestionResponder(model),
    )


# Singleton instance
_registry: Optional[OrchestratorRegistry] = None


def get_orchestrator_registry() -> OrchestratorRegistry:
    """Get or create the orchestrator registry."""
    global _registry
    if _registry is None:
        _registry = OrchestratorRegistry(build_orchestrator)
    return _registry
