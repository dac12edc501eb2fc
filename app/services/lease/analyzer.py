"""
Sweetlease - Schema-Constrained Lease Analyzer
Sends extracted lease text to the generative model together with a fixed
response schema and validates the reply into a LeaseRecord.

Malformed output is rejected, never patched: reminder arithmetic and
critical-date ordering depend on the exact shape and on parseable dates.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from app.services.lease.errors import EmptyInputError, SchemaViolationError
from app.services.lease.gemini_client import GenerativeModel, get_gemini_client
from app.services.lease.models import CriticalDateCategory, LeaseRecord, parse_lease_date

logger = logging.getLogger(__name__)


def _string(description: str) -> dict:
    return {"type": "STRING", "description": description}


def _object(properties: dict, description: Optional[str] = None) -> dict:
    schema = {
        "type": "OBJECT",
        "properties": properties,
        "required": list(properties),
        "propertyOrdering": list(properties),
    }
    if description:
        schema["description"] = description
    return schema


LEASE_RESPONSE_SCHEMA = _object({
    "summary": _string("A concise, one-paragraph summary of the lease agreement."),
    "parties": _object({
        "tenant": _string("Full legal name of Tenant."),
        "landlord": _string("Full legal name of Landlord."),
    }),
    "dates": _object({
        "commencementDate": _string("Start date in 'DD Month YYYY' format (e.g., '01 Jan 2024')."),
        "term": _string("Total duration of the lease (e.g., '5 years')."),
        "expirationDate": _string("End date in 'DD Month YYYY' format (e.g., '31 Dec 2029')."),
    }),
    "rent": _object({
        "amount": _string("Rent amount with currency symbol (e.g., '£5,000')."),
        "frequency": _string("How often rent is paid (e.g., 'Per Calendar Month')."),
        "nextDueDate": _string("Next rent due date in 'DD Month YYYY' format."),
    }),
    "clauses": _object({
        "breakClause": _string("Summarize the break clause. If none, state 'No break clause found'."),
        "permittedUse": _string("Describe the permitted use of the property."),
    }),
    "criticalDates": {
        "type": "ARRAY",
        "description": "A list of critical dates from the lease.",
        "items": _object({
            "date": _string("Date in 'DD Month YYYY' format (e.g., '29 Sep 2026')."),
            "description": _string("What the date is for (e.g., 'Rent review date')."),
            "category": {
                "type": "STRING",
                "enum": [category.value for category in CriticalDateCategory],
                "description": "The type of event.",
            },
        }),
    },
})


ANALYSIS_PROMPT = (
    "Analyze this property lease agreement and extract key information. "
    "Ensure all dates are formatted as 'DD Month YYYY'. "
    "Every field in the response schema must be present; use an empty string "
    "when the lease does not state a value, and 'No break clause found' when "
    "there is no break clause.\n\n"
    "LEASE TEXT:\n{lease_text}"
)


class LeaseAnalyzer:
    """
    Schema-constrained lease analysis.

    No retry is built in; wrap calls in your own retry policy if needed.
    """

    def __init__(self, model: Optional[GenerativeModel] = None):
        self._model = model or get_gemini_client()

    async def analyze(self, full_text: str) -> LeaseRecord:
        """
        Analyze lease text into a LeaseRecord (ocr_confidence left unset).

        Raises:
            EmptyInputError: blank text, raised before any model call
            ModelError: transport or auth failure from the model endpoint
            SchemaViolationError: reply is not valid JSON of the lease shape
        """
        if not full_text or not full_text.strip():
            raise EmptyInputError(
                "Cannot analyze an empty lease document. Text extraction might have failed."
            )

        prompt = ANALYSIS_PROMPT.format(lease_text=full_text)
        raw = await self._model.generate(prompt, response_schema=LEASE_RESPONSE_SCHEMA)
        record = self.parse_response(raw)
        logger.info(
            "Lease analyzed: %d critical dates, tenant=%r",
            len(record.critical_dates),
            record.parties.tenant,
        )
        return record

    @staticmethod
    def parse_response(raw: str) -> LeaseRecord:
        """
        Validate raw model output against the lease shape.

        Raises:
            SchemaViolationError: malformed JSON, missing keys, wrong types,
                unknown category, or an unparseable critical date
        """
        try:
            record = LeaseRecord.model_validate_json(raw)
        except ValidationError as e:
            details = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            logger.warning("Model output failed lease schema: %s", details[:5])
            raise SchemaViolationError(
                f"Model output does not match the lease schema ({len(details)} errors)",
                details=details,
            ) from e

        bad_dates = []
        for index, item in enumerate(record.critical_dates):
            try:
                parse_lease_date(item.date)
            except ValueError:
                bad_dates.append({"loc": f"criticalDates.{index}.date", "msg": f"unparseable date {item.date!r}"})
        if bad_dates:
            logger.warning("Model output has unparseable critical dates: %s", bad_dates)
            raise SchemaViolationError(
                "Critical dates must be formatted as 'DD Month YYYY'",
                details=bad_dates,
            )

        if record.ocr_confidence is not None:
            record = record.model_copy(update={"ocr_confidence": None})
        return record
