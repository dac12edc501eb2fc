"""
Sweetlease - Security Module
Resolves the caller to a registered account.

Identity sources (priority order):
1. Authorization: Bearer <session token>
2. sweetlease_session cookie (same token)
3. X-User-ID header, only when TRUST_PROXY_USER_HEADER is set and the
   service sits behind an auth proxy that sets it

Session tokens are random, stored only as SHA-256 hashes and expire after
SESSION_TTL_HOURS. Sign-up and sign-in themselves happen outside this
service.
"""

import hashlib
import logging
import re as _re
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import Settings, get_settings
from app.core.utc import utc_now
from app.services.lease.models import UserIdentity
from app.services.lease.repository import UserStore

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"
SESSION_COOKIE = "sweetlease_session"

_USER_ID_PATTERN = _re.compile(r"^[A-Za-z0-9_.@:-]{1,128}$")


# =============================================================================
# User Store
# =============================================================================

_user_store: Optional[UserStore] = None


def get_user_store() -> UserStore:
    """Get or create the user store instance."""
    global _user_store
    if _user_store is None:
        _user_store = UserStore()
    return _user_store


async def ensure_user(
    uid: str, email: str, subscription_tier: str = "free", role: str = "user"
) -> UserIdentity:
    """Register an account on first sight (first-login hook, tests)."""
    if not _USER_ID_PATTERN.match(uid or ""):
        raise ValueError(f"Invalid user id {uid!r}")
    return await get_user_store().ensure(uid, email, subscription_tier, role)


# =============================================================================
# Sessions
# =============================================================================

def generate_token() -> str:
    """Generate a secure session token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 hash a token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


async def create_session(uid: str) -> str:
    """
    Open a session for a registered account and return its token.

    Raises:
        LookupError: unknown account
    """
    token = generate_token()
    expires_at = utc_now() + timedelta(hours=get_settings().session_ttl_hours)
    await get_user_store().create_session(uid, hash_token(token), expires_at)
    return token


async def invalidate_session(token: str) -> bool:
    return await get_user_store().delete_session(hash_token(token))


# =============================================================================
# Input Sanitization
# =============================================================================

def sanitize_filename(filename: str) -> str:
    """
    Sanitize an uploaded filename for display and storage.
    Keeps only the last path component, drops control and reserved characters.
    """
    if not filename:
        return ""

    filename = str(filename).replace("\\", "/").split("/")[-1]
    filename = _re.sub(r"[\x00-\x1f\x7f]", "", filename)
    filename = _re.sub(r'[<>:"|?*]', "", filename)
    return filename[:255]


# =============================================================================
# Authentication Dependencies
# =============================================================================

security_bearer = HTTPBearer(auto_error=False)


def session_token(
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_token: Optional[str],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return cookie_token or None


async def get_current_user(
    request: Request,
    sweetlease_session: Optional[str] = Cookie(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    settings: Settings = Depends(get_settings),
) -> Optional[UserIdentity]:
    """Current account, or None when the caller is anonymous or unknown."""
    token = session_token(credentials, sweetlease_session)
    if token:
        user = await get_user_store().get_by_session(hash_token(token))
        if user is None:
            logger.info("Rejected unknown or expired session token")
        return user

    if not settings.trust_proxy_user_header:
        return None

    uid = request.headers.get(USER_ID_HEADER)
    if not uid or not _USER_ID_PATTERN.match(uid):
        return None
    user = await get_user_store().get(uid)
    if user is None:
        logger.info("Rejected unknown proxy user id %s", uid)
    return user


async def require_user(
    user: Optional[UserIdentity] = Depends(get_current_user),
) -> UserIdentity:
    """Require an authenticated, registered account."""
    if user:
        return user

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": "auth_required",
            "message": "Please sign in to analyze leases.",
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_role(*roles: str):
    """
    Dependency factory: require specific role(s).

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(user: UserIdentity = Depends(require_role("admin"))):
            ...
    """
    async def check_role(user: UserIdentity = Depends(require_user)) -> UserIdentity:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires one of these roles: {list(roles)}",
            )
        return user

    return check_role
