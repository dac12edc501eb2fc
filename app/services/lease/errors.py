"""
Lease analysis error taxonomy.

Component errors are caught by the orchestrator and turned into a Failed run
state; guard errors (quota, run already in progress) are raised before any
state transition and mapped to HTTP responses by app.core.errors.
"""

from typing import Any, Optional


AI_UNAVAILABLE_MESSAGE = "The AI service is currently unavailable. Please try again later."


class LeaseAnalysisError(Exception):
    """Base class for every lease pipeline failure."""

    code = "lease_analysis_error"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        """Human-readable text safe to show in the UI."""
        return self._user_message or self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "type": self.__class__.__name__,
            "message": self.user_message,
        }


class ExtractionError(LeaseAnalysisError):
    """Document unreadable, not a PDF, encrypted, or text-empty."""

    code = "extraction_failed"


class EmptyInputError(LeaseAnalysisError):
    """Blank text or question; raised before any network call."""

    code = "empty_input"


class ModelError(LeaseAnalysisError):
    """Transport, auth, timeout or non-2xx response from the model endpoint."""

    code = "model_unavailable"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, user_message=AI_UNAVAILABLE_MESSAGE)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class SchemaViolationError(LeaseAnalysisError):
    """Model output failed JSON, shape, enum or date validation."""

    code = "schema_violation"

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(
            message,
            user_message="The AI response did not match the expected lease format.",
        )
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.details
        return data


class QuotaExceededError(LeaseAnalysisError):
    """Account tier limit reached; the run never starts."""

    code = "quota_exceeded"

    def __init__(self, limit: int, current: int):
        super().__init__(
            f"Free tier limit reached ({current}/{limit} saved analyses)",
            user_message=(
                f"You have reached the free plan limit of {limit} saved leases. "
                "Upgrade to Pro to analyze more."
            ),
        )
        self.limit = limit
        self.current = current

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"limit": self.limit, "current": self.current})
        return data


class RunStateError(LeaseAnalysisError):
    """Event not allowed in the current run state."""

    code = "invalid_state"


class RunInProgressError(RunStateError):
    """An upload is already starting, extracting or analyzing."""

    code = "run_in_progress"

    def __init__(self, state: str):
        super().__init__(
            f"Cannot accept an upload while {state}",
            user_message="An analysis is already running. Please wait for it to finish.",
        )
        self.state = state


class InvalidReminderError(LeaseAnalysisError, ValueError):
    """Reminder date or offset could not be interpreted."""

    code = "invalid_reminder"
