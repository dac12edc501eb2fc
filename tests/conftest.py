"""
Sweetlease - Shared Test Fixtures
Provides fixtures for the database, users, generated PDFs and a fake model.
"""

import io
import json
import os
import textwrap
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Configure test environment BEFORE importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_sweetlease.db"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["AI_TIMEOUT_SECONDS"] = "5"
os.environ["LOG_FILE"] = ""
os.environ["FREE_TIER_LIMIT"] = "3"

from app.main import app  # noqa: E402
from app.core.config import get_settings  # noqa: E402
from app.services.lease.analyzer import LeaseAnalyzer  # noqa: E402
from app.services.lease.models import UserIdentity  # noqa: E402
from app.services.lease.orchestrator import (  # noqa: E402
    AnalysisOrchestrator,
    OrchestratorRegistry,
    get_orchestrator_registry,
)
from app.services.lease.repository import SqlLeaseRepository  # noqa: E402
from app.services.lease.responder import LeaseQuestionResponder  # noqa: E402
from app.services.lease.text_extractor import LeaseTextExtractor  # noqa: E402


TEST_USER_ID = "user-jane-01"
TEST_USER_EMAIL = "jane.doe@example.com"


MOCK_LEASE_TEXT = """COMMERCIAL LEASE AGREEMENT
This Lease Agreement is dated June 15, 2024, by and between Landlord, PropertyCorp Plc, and Tenant, Innovate Solutions Ltd.
1. PREMISES. Ground floor retail unit located at 123 High Street, London, SW1A 0AA.
2. TERM. The lease term will begin on August 1, 2024 and will terminate on July 31, 2029.
3. LEASE PAYMENTS. Tenant shall pay monthly installments of GBP 4,500.00, payable in advance on the first day of each month.
4. PERMITTED USE. Operation of a high-end coffee shop and for no other purpose.
5. BREAK CLAUSE. Tenant may terminate on the third anniversary with six months' prior written notice. The last day for serving this notice is January 31, 2027.
6. RENT REVIEW. The rent shall be reviewed on the third anniversary of the Commencement Date.
7. COMPLIANCE. Health and safety compliance checks to be completed by September 1, 2024."""


MOCK_LEASE_RESPONSE = {
    "summary": "A five-year commercial lease of a retail unit at 123 High Street, London, for use as a coffee shop.",
    "parties": {"tenant": "Innovate Solutions Ltd.", "landlord": "PropertyCorp Plc"},
    "dates": {
        "commencementDate": "01 August 2024",
        "term": "5 years",
        "expirationDate": "31 July 2029",
    },
    "rent": {
        "amount": "£4,500.00",
        "frequency": "Per Calendar Month",
        "nextDueDate": "01 September 2024",
    },
    "clauses": {
        "breakClause": "Tenant break on the third anniversary with six months' notice.",
        "permittedUse": "High-end coffee shop.",
    },
    "criticalDates": [
        {"date": "31 January 2027", "description": "Last day to serve break notice", "category": "Notice"},
        {"date": "01 September 2024", "description": "Health and safety checks due", "category": "Compliance"},
        {"date": "01 August 2027", "description": "Rent review date", "category": "Rent"},
    ],
}


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture
async def db():
    """Create database tables for the test and drop them afterwards."""
    from app.core.database import Base, close_db, get_engine
    from app.models import models  # noqa: F401 - registers tables

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()


@pytest.fixture
async def test_user(db) -> UserIdentity:
    """A registered free-tier user."""
    from app.core.security import ensure_user
    return await ensure_user(TEST_USER_ID, TEST_USER_EMAIL)


# =============================================================================
# Fakes
# =============================================================================

class FakeModel:
    """
    Stand-in for GeminiClient.

    Returns queued responses in order (the last one repeats) or raises the
    configured error. Every call is recorded.
    """

    def __init__(self, responses: Optional[list] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[dict] = []

    async def generate(self, contents: str, response_schema: Optional[dict] = None) -> str:
        self.calls.append({"contents": contents, "response_schema": response_schema})
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@pytest.fixture
def lease_response() -> dict:
    return json.loads(json.dumps(MOCK_LEASE_RESPONSE))


@pytest.fixture
def fake_model(lease_response) -> FakeModel:
    """Answers every call with the mock lease JSON."""
    return FakeModel([json.dumps(lease_response)])


@pytest.fixture
def sample_lease_text() -> str:
    return MOCK_LEASE_TEXT


# =============================================================================
# PDF Fixtures
# =============================================================================

def build_pdf(pages: list[str]) -> bytes:
    """Text-layer PDF with one page per entry; an empty entry is a blank page."""
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    for page_text in pages:
        pdf.setFont("Helvetica", 10)
        y = 800
        for raw_line in page_text.splitlines():
            for line in textwrap.wrap(raw_line, 90):
                pdf.drawString(50, y, line)
                y -= 14
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def lease_pdf() -> bytes:
    lines = MOCK_LEASE_TEXT.splitlines()
    return build_pdf(["\n".join(lines[:4]), "\n".join(lines[4:])])


# =============================================================================
# Orchestrator / API Fixtures
# =============================================================================

@pytest.fixture
def registry(fake_model) -> OrchestratorRegistry:
    """Registry wired to the fake model and the test database."""
    def factory(user: UserIdentity) -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            extractor=LeaseTextExtractor(),
            analyzer=LeaseAnalyzer(fake_model),
            persistence=SqlLeaseRepository(),
            user=user,
            responder=LeaseQuestionResponder(fake_model),
        )
    return OrchestratorRegistry(factory)


@pytest.fixture
async def client(db, registry) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous async test client."""
    app.dependency_overrides[get_orchestrator_registry] = lambda: registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def auth_headers(uid: str) -> dict:
    """Bearer header carrying a fresh session for a registered user."""
    from app.core.security import create_session
    return {"Authorization": f"Bearer {await create_session(uid)}"}


@pytest.fixture
async def authenticated_client(client, test_user) -> AsyncGenerator[AsyncClient, None]:
    """Client that identifies as the registered test user."""
    client.headers.update(await auth_headers(test_user.uid))
    yield client


@pytest.fixture(autouse=True)
def cleanup_test_db():
    """Remove the test database file after each test."""
    yield
    for db_file in ["test_sweetlease.db", "test_sweetlease.db-shm", "test_sweetlease.db-wal"]:
        if os.path.exists(db_file):
            try:
                os.remove(db_file)
            except PermissionError:
                pass
