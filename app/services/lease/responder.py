"""
Sweetlease - Grounded Q&A Responder
Answers questions strictly from the uploaded lease text.

Grounding is a prompt-level contract: the model is told to answer only from
the text and to say when the answer is not there. It cannot be verified
here and is best-effort. Each call is stateless and resends the whole
document, so cost and latency grow with document length.
"""

import logging
from typing import Optional

from app.services.lease.errors import EmptyInputError
from app.services.lease.gemini_client import GenerativeModel, get_gemini_client

logger = logging.getLogger(__name__)


QA_PROMPT = """You are a helpful legal assistant. Answer the user's question based ONLY
on the provided lease text. When you mention a date, format it as
'DD Month YYYY'. If the answer is not in the text, state that clearly.
Keep answers concise.

LEASE TEXT:
---
{lease_text}
---

USER'S QUESTION:
"{question}"
"""


class LeaseQuestionResponder:
    """Document-grounded question answering."""

    def __init__(self, model: Optional[GenerativeModel] = None):
        self._model = model or get_gemini_client()

    async def answer(self, full_text: str, question: str) -> str:
        """
        Answer a question using only the lease text.

        Raises:
            EmptyInputError: blank text or question, before any model call
            ModelError: transport or auth failure
        """
        if not full_text or not full_text.strip() or not question or not question.strip():
            raise EmptyInputError("Lease text and question cannot be empty.")

        prompt = QA_PROMPT.format(lease_text=full_text, question=question.strip())
        answer = await self._model.generate(prompt)
        logger.debug("Answered question (%d chars) with %d chars", len(question), len(answer))
        return answer.strip()
