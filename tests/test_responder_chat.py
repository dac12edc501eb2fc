"""
Sweetlease - Q&A and Chat Tests
"""

import asyncio

import httpx
import pytest

from app.services.lease.chat import ChatSession
from app.services.lease.errors import (
    AI_UNAVAILABLE_MESSAGE,
    EmptyInputError,
    ModelError,
    RunStateError,
)
from app.services.lease.gemini_client import GeminiClient
from app.services.lease.models import ChatRole
from app.services.lease.responder import LeaseQuestionResponder

from conftest import FakeModel


@pytest.mark.anyio
async def test_answer_is_grounded_in_lease_text(sample_lease_text):
    model = FakeModel(["  The monthly rent is GBP 4,500.00.  "])
    answer = await LeaseQuestionResponder(model).answer(sample_lease_text, "What is the rent?")

    assert answer == "The monthly rent is GBP 4,500.00."
    prompt = model.calls[0]["contents"]
    assert sample_lease_text in prompt
    assert "What is the rent?" in prompt
    assert "ONLY" in prompt
    assert model.calls[0]["response_schema"] is None


@pytest.mark.anyio
@pytest.mark.parametrize("text,question", [("", "Rent?"), ("Lease text", "  "), ("  ", "")])
async def test_blank_inputs_rejected_without_model_call(text, question):
    model = FakeModel(["unused"])
    with pytest.raises(EmptyInputError):
        await LeaseQuestionResponder(model).answer(text, question)
    assert model.calls == []


@pytest.mark.anyio
async def test_chat_appends_user_and_model_turns(sample_lease_text):
    model = FakeModel(["01 August 2024.", "31 July 2029."])
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(model))

    await chat.ask("When does the lease start?")
    reply = await chat.ask("When does it end?")

    assert reply.role is ChatRole.MODEL
    assert [turn.role for turn in chat.turns] == [
        ChatRole.USER, ChatRole.MODEL, ChatRole.USER, ChatRole.MODEL,
    ]
    assert chat.to_list()[1] == {"role": "model", "text": "01 August 2024."}


@pytest.mark.anyio
async def test_chat_failure_becomes_error_turn(sample_lease_text):
    model = FakeModel(error=ModelError("Gemini API error: 503", status_code=503))
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(model))

    reply = await chat.ask("What is the rent?")

    assert reply.role is ChatRole.ERROR
    assert reply.text == f"Sorry, I couldn't get an answer. {AI_UNAVAILABLE_MESSAGE}"
    assert len(chat.turns) == 2
    assert chat.is_answering is False


@pytest.mark.anyio
async def test_blank_question_appends_nothing(sample_lease_text):
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(FakeModel(["x"])))
    with pytest.raises(EmptyInputError):
        await chat.ask("   ")
    assert chat.turns == ()


class BlockingModel:
    """Holds every answer until release is set."""

    def __init__(self, answer: str):
        self.answer = answer
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = 0

    async def generate(self, contents: str, response_schema=None) -> str:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return self.answer


@pytest.mark.anyio
async def test_one_question_at_a_time(sample_lease_text):
    model = BlockingModel("GBP 4,500.00 per month.")
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(model))

    first = asyncio.create_task(chat.ask("What is the rent?"))
    await model.started.wait()
    assert chat.is_answering

    with pytest.raises(RunStateError):
        await chat.ask("When does the lease end?")

    model.release.set()
    reply = await first

    assert reply.text == "GBP 4,500.00 per month."
    assert model.calls == 1
    assert [turn.text for turn in chat.turns] == ["What is the rent?", "GBP 4,500.00 per month."]
    assert chat.is_answering is False


@pytest.mark.anyio
async def test_malformed_model_reply_becomes_error_turn(sample_lease_text):
    def handler(request):
        return httpx.Response(200, json=[{"candidates": []}])

    client = GeminiClient(api_key="k-123", transport=httpx.MockTransport(handler))
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(client))

    reply = await chat.ask("What is the rent?")

    assert reply.role is ChatRole.ERROR
    assert [turn.role for turn in chat.turns] == [ChatRole.USER, ChatRole.ERROR]
    assert chat.is_answering is False


@pytest.mark.anyio
async def test_unexpected_failure_becomes_error_turn(sample_lease_text):
    chat = ChatSession(sample_lease_text, LeaseQuestionResponder(FakeModel(error=AttributeError("boom"))))

    reply = await chat.ask("What is the rent?")

    assert reply.text == "Sorry, I couldn't get an answer. An unexpected error occurred."
    assert len(chat.turns) == 2
