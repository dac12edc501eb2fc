"""
Sweetlease - Lease Persistence
Storage collaborator for saved analyses and the account lookups the quota
guard needs. The orchestrator only sees the LeaseRepository protocol.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, select

from app.core.database import get_db_session
from app.core.utc import to_utc, utc_now
from app.models.models import LeaseAnalysisRecord, User, UserSession
from app.services.lease.models import LeaseRecord, SavedAnalysis, UserIdentity

logger = logging.getLogger(__name__)


class LeaseRepository(Protocol):
    """Persistence interface consumed by the orchestrator and the API."""

    async def save(self, record: LeaseRecord, full_text: str, file_name: str, owner_id: str) -> str:
        ...

    async def list_by_owner(self, owner_id: str) -> list[SavedAnalysis]:
        ...

    async def get(self, analysis_id: str, owner_id: str) -> Optional[SavedAnalysis]:
        ...

    async def count_by_owner(self, owner_id: str) -> int:
        ...


def _to_saved(row: LeaseAnalysisRecord) -> SavedAnalysis:
    return SavedAnalysis(
        id=row.id,
        user_id=row.user_id,
        file_name=row.file_name,
        lease_data=LeaseRecord.model_validate(row.lease_data),
        full_text=row.full_text,
        created_at=row.created_at,
    )


class SqlLeaseRepository:
    """SQLAlchemy-backed saved analyses."""

    async def save(self, record: LeaseRecord, full_text: str, file_name: str, owner_id: str) -> str:
        analysis_id = str(uuid.uuid4())
        async with get_db_session() as db:
            db.add(LeaseAnalysisRecord(
                id=analysis_id,
                user_id=owner_id,
                file_name=file_name,
                lease_data=record.to_wire(),
                full_text=full_text,
            ))
        logger.info("Saved analysis %s (%s) for user %s", analysis_id, file_name, owner_id)
        return analysis_id

    async def list_by_owner(self, owner_id: str) -> list[SavedAnalysis]:
        async with get_db_session() as db:
            result = await db.execute(
                select(LeaseAnalysisRecord)
                .where(LeaseAnalysisRecord.user_id == owner_id)
                .order_by(LeaseAnalysisRecord.created_at.desc())
            )
            return [_to_saved(row) for row in result.scalars().all()]

    async def get(self, analysis_id: str, owner_id: str) -> Optional[SavedAnalysis]:
        async with get_db_session() as db:
            row = await db.get(LeaseAnalysisRecord, analysis_id)
            if row is None or row.user_id != owner_id:
                return None
            return _to_saved(row)

    async def count_by_owner(self, owner_id: str) -> int:
        async with get_db_session() as db:
            result = await db.execute(
                select(func.count())
                .select_from(LeaseAnalysisRecord)
                .where(LeaseAnalysisRecord.user_id == owner_id)
            )
            return int(result.scalar_one())


class UserStore:
    """Account lookups for the authentication collaborator."""

    @staticmethod
    def _identity(user: User) -> UserIdentity:
        return UserIdentity(
            uid=user.id,
            email=user.email,
            role=user.role,
            subscription_tier=user.subscription_tier,
        )

    async def get(self, uid: str) -> Optional[UserIdentity]:
        async with get_db_session() as db:
            user = await db.get(User, uid)
            return self._identity(user) if user else None

    async def ensure(
        self, uid: str, email: str, subscription_tier: str = "free", role: str = "user"
    ) -> UserIdentity:
        """Create the account on first sight; existing accounts are returned unchanged."""
        async with get_db_session() as db:
            user = await db.get(User, uid)
            if user is None:
                user = User(id=uid, email=email, role=role, subscription_tier=subscription_tier)
                db.add(user)
                logger.info("Registered user %s", uid)
            return self._identity(user)

    async def set_tier(self, uid: str, subscription_tier: str) -> None:
        """Move an account between the free and pro tiers."""
        async with get_db_session() as db:
            user = await db.get(User, uid)
            if user is None:
                raise LookupError(f"Unknown user {uid}")
            user.subscription_tier = subscription_tier
        logger.info("User %s moved to %s tier", uid, subscription_tier)

    # =========================================================================
    # API sessions
    # =========================================================================

    async def create_session(self, uid: str, token_hash: str, expires_at: datetime) -> None:
        async with get_db_session() as db:
            if await db.get(User, uid) is None:
                raise LookupError(f"Unknown user {uid}")
            db.add(UserSession(token_hash=token_hash, user_id=uid, expires_at=expires_at))
        logger.info("Opened session for user %s", uid)

    async def get_by_session(self, token_hash: str) -> Optional[UserIdentity]:
        """Owner of a live session; expired sessions are removed on sight."""
        async with get_db_session() as db:
            session = await db.get(UserSession, token_hash)
            if session is None:
                return None
            if to_utc(session.expires_at) <= utc_now():
                await db.delete(session)
                return None
            user = await db.get(User, session.user_id)
            return self._identity(user) if user else None

    async def delete_session(self, token_hash: str) -> bool:
        async with get_db_session() as db:
            session = await db.get(UserSession, token_hash)
            if session is None:
                return False
            await db.delete(session)
            return True
