"""
Lease Analysis Data Models
==========================

Structured lease record (pydantic, camelCase on the wire), extraction
output, chat turns, run state and the collaborator-facing identity types.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# DATE HANDLING
# ============================================================================

LEASE_DATE_FORMATS = ("%d %B %Y", "%d %b %Y", "%Y-%m-%d")


def parse_lease_date(text: str) -> date:
    """
    Parse a lease date in "DD Month YYYY" form.

    Full and abbreviated month names are accepted ("01 January 2024",
    "29 Sep 2026"), as is ISO "YYYY-MM-DD".

    Raises:
        ValueError: if the text matches none of the accepted formats
    """
    cleaned = " ".join((text or "").replace(",", " ").split())
    # "Sept" is a common abbreviation strptime does not know
    cleaned = cleaned.replace(" Sept ", " Sep ")
    for fmt in LEASE_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date {text!r}; expected 'DD Month YYYY'")


# ============================================================================
# STRUCTURED LEASE RECORD
# ============================================================================

class CriticalDateCategory(str, Enum):
    """Closed set of critical-date categories."""
    RENT = "Rent"
    NOTICE = "Notice"
    COMPLIANCE = "Compliance"
    OTHER = "Other"


CATEGORY_LABELS = {
    CriticalDateCategory.RENT: "Rent Payment",
    CriticalDateCategory.NOTICE: "Notice Period",
    CriticalDateCategory.COMPLIANCE: "Compliance",
    CriticalDateCategory.OTHER: "General",
}


class _LeaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Parties(_LeaseModel):
    tenant: str
    landlord: str


class LeaseDates(_LeaseModel):
    commencement_date: str
    term: str
    expiration_date: str


class RentTerms(_LeaseModel):
    amount: str
    frequency: str
    next_due_date: str


class Clauses(_LeaseModel):
    break_clause: str
    permitted_use: str


class CriticalDate(_LeaseModel):
    date: str
    description: str
    category: CriticalDateCategory

    def parsed_date(self) -> Optional[date]:
        try:
            return parse_lease_date(self.date)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self.category]


class LeaseRecord(_LeaseModel):
    """
    Structured lease analysis.

    Every field is required when validating model output. ocr_confidence is
    attached afterwards by the orchestrator, never by the analyzer.
    """
    summary: str
    parties: Parties
    dates: LeaseDates
    rent: RentTerms
    clauses: Clauses
    critical_dates: list[CriticalDate]
    ocr_confidence: Optional[float] = Field(default=None, ge=0, le=100)

    def with_confidence(self, confidence: float) -> "LeaseRecord":
        """Return a copy carrying the extraction confidence."""
        return self.model_copy(update={"ocr_confidence": confidence})

    def to_wire(self) -> dict:
        """camelCase dict, the shape stored and returned by the API."""
        return self.model_dump(mode="json", by_alias=True)

    def sorted_critical_dates(self) -> list[CriticalDate]:
        """Critical dates in calendar order; unparseable dates go last."""
        return sorted(
            self.critical_dates,
            key=lambda item: (item.parsed_date() is None, item.parsed_date() or date.max),
        )

    def critical_dates_by_category(self) -> dict[CriticalDateCategory, list[CriticalDate]]:
        """Group critical dates for display, in category order."""
        groups: dict[CriticalDateCategory, list[CriticalDate]] = {
            category: [] for category in CriticalDateCategory
        }
        for item in self.sorted_critical_dates():
            groups[item.category].append(item)
        return {category: items for category, items in groups.items() if items}


# ============================================================================
# EXTRACTION
# ============================================================================

@dataclass(frozen=True)
class RawDocument:
    """Uploaded file. Consumed once by the text extractor."""
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


def mean_confidence(page_confidences: list[float]) -> float:
    if not page_confidences:
        return 0.0
    return sum(page_confidences) / len(page_confidences)


@dataclass(frozen=True)
class ExtractedText:
    """
    Page-ordered document text with confidence estimates (0-100).

    overall_confidence is the arithmetic mean of page_confidences, 0 when
    there are no pages.
    """
    full_text: str
    page_confidences: tuple[float, ...]
    overall_confidence: float

    @classmethod
    def from_pages(cls, full_text: str, page_confidences: list[float]) -> "ExtractedText":
        return cls(
            full_text=full_text,
            page_confidences=tuple(page_confidences),
            overall_confidence=mean_confidence(page_confidences),
        )

    @property
    def page_count(self) -> int:
        return len(self.page_confidences)


# ============================================================================
# CHAT
# ============================================================================

class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"
    ERROR = "error"


@dataclass(frozen=True)
class ConversationTurn:
    role: ChatRole
    text: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "text": self.text}


# ============================================================================
# RUN STATE
# ============================================================================

class RunPhase(str, Enum):
    """Analysis run states."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    RESULTS = "results"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisRunState:
    """
    Tagged run state: Idle | Extracting | Analyzing | Results(record) | Failed(reason).

    record is set only for RESULTS, error only for FAILED.
    """
    phase: RunPhase
    record: Optional[LeaseRecord] = None
    error: Optional[str] = None
    file_name: Optional[str] = None

    @classmethod
    def idle(cls) -> "AnalysisRunState":
        return cls(RunPhase.IDLE)

    @classmethod
    def extracting(cls, file_name: str) -> "AnalysisRunState":
        return cls(RunPhase.EXTRACTING, file_name=file_name)

    @classmethod
    def analyzing(cls, file_name: str) -> "AnalysisRunState":
        return cls(RunPhase.ANALYZING, file_name=file_name)

    @classmethod
    def results(cls, record: LeaseRecord, file_name: str) -> "AnalysisRunState":
        return cls(RunPhase.RESULTS, record=record, file_name=file_name)

    @classmethod
    def failed(cls, reason: str, file_name: Optional[str] = None) -> "AnalysisRunState":
        return cls(RunPhase.FAILED, error=reason, file_name=file_name)

    @property
    def is_running(self) -> bool:
        return self.phase in (RunPhase.EXTRACTING, RunPhase.ANALYZING)

    def to_dict(self) -> dict:
        return {
            "state": self.phase.value,
            "fileName": self.file_name,
            "error": self.error,
            "lease": self.record.to_wire() if self.record else None,
        }


# ============================================================================
# COLLABORATOR TYPES
# ============================================================================

@dataclass(frozen=True)
class UserIdentity:
    """Current user as provided by the authentication collaborator."""
    uid: str
    email: str
    role: str = "user"
    subscription_tier: str = "free"

    @property
    def initials(self) -> str:
        local = self.email.split("@", 1)[0]
        return local[:2].upper()

    @property
    def is_pro(self) -> bool:
        return self.subscription_tier == "pro"

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "initials": self.initials,
            "role": self.role,
            "subscriptionTier": self.subscription_tier,
        }


@dataclass
class SavedAnalysis:
    """A persisted analysis, owned by the storage collaborator."""
    id: str
    user_id: str
    file_name: str
    lease_data: LeaseRecord
    full_text: str
    created_at: Optional[datetime] = None

    def to_dict(self, include_text: bool = False) -> dict:
        data = {
            "id": self.id,
            "userId": self.user_id,
            "fileName": self.file_name,
            "leaseData": self.lease_data.to_wire(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_text:
            data["fullText"] = self.full_text
        return data
