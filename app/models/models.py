"""
Sweetlease Database Models
SQLAlchemy ORM models for accounts and saved lease analyses.

All datetime columns use DateTime(timezone=True) for proper UTC handling.
Use utc_now() from app.core.utc for all timestamp defaults.
"""

import enum
from datetime import datetime
from sqlalchemy import JSON, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.core.utc import utc_now


# Type alias for timezone-aware DateTime columns
DateTimeTZ = DateTime(timezone=True)


# =============================================================================
# Enums
# =============================================================================

class SubscriptionTier(str, enum.Enum):
    """Subscription tiers. Billing webhooks flip users from free to pro."""
    free = "free"
    pro = "pro"


class AccountRole(str, enum.Enum):
    user = "user"
    admin = "admin"


# =============================================================================
# User Model
# =============================================================================

class User(Base):
    """
    Account record.

    Authentication itself is handled upstream; this row carries the identity
    fields the analysis pipeline reads (role and subscription tier).
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    role: Mapped[str] = mapped_column(String(20), default=AccountRole.user.value)
    subscription_tier: Mapped[str] = mapped_column(String(20), default=SubscriptionTier.free.value)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    analyses: Mapped[list["LeaseAnalysisRecord"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


# =============================================================================
# Saved Lease Analysis
# =============================================================================

class LeaseAnalysisRecord(Base):
    """
    A saved lease analysis.

    lease_data holds the structured record in its camelCase wire shape;
    full_text is retained so the Q&A chat works on reopened analyses.
    """
    __tablename__ = "lease_analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"), index=True)

    file_name: Mapped[str] = mapped_column(String(255))
    lease_data: Mapped[dict] = mapped_column(JSON)
    full_text: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, index=True)

    user: Mapped["User"] = relationship(back_populates="analyses")


# =============================================================================
# API Sessions
# =============================================================================

class UserSession(Base):
    """
    Bearer session for API clients.

    Only the SHA-256 hash of the token is stored; the token itself is shown
    once, when the session is created.
    """
    __tablename__ = "user_sessions"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTimeTZ)
