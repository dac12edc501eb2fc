"""
Sweetlease - Lease Chat Session
Append-only conversation over one lease's text. Never persisted.
"""

import logging

from app.services.lease.errors import EmptyInputError, LeaseAnalysisError, RunStateError
from app.services.lease.models import ChatRole, ConversationTurn
from app.services.lease.responder import LeaseQuestionResponder

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Sorry, I couldn't get an answer."


class ChatSession:
    """
    Conversation scoped to one record's full text.

    Only one question may be outstanding at a time; failures are recorded
    as error turns instead of being raised.
    """

    def __init__(self, full_text: str, responder: LeaseQuestionResponder):
        self.full_text = full_text
        self._responder = responder
        self._turns: list[ConversationTurn] = []
        self._answering = False

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def is_answering(self) -> bool:
        return self._answering

    async def ask(self, question: str) -> ConversationTurn:
        """
        Ask a question and append the user turn plus the reply turn.

        Returns the reply turn (role model or error).

        Raises:
            EmptyInputError: blank question; nothing is appended
            RunStateError: another question is still being answered
        """
        question = (question or "").strip()
        if not question:
            raise EmptyInputError("Question cannot be empty.")
        if self._answering:
            raise RunStateError(
                "A question is already being answered",
                user_message="Please wait for the current answer before asking again.",
            )

        self._turns.append(ConversationTurn(ChatRole.USER, question))
        self._answering = True
        try:
            answer = await self._responder.answer(self.full_text, question)
            reply = ConversationTurn(ChatRole.MODEL, answer)
        except LeaseAnalysisError as e:
            logger.warning("Q&A failed: %s", e.message)
            reply = ConversationTurn(ChatRole.ERROR, f"{ERROR_PREFIX} {e.user_message}")
        except Exception:
            logger.exception("Unexpected Q&A failure")
            reply = ConversationTurn(ChatRole.ERROR, f"{ERROR_PREFIX} An unexpected error occurred.")
        finally:
            self._answering = False

        self._turns.append(reply)
        return reply

    def to_list(self) -> list[dict]:
        return [turn.to_dict() for turn in self._turns]
