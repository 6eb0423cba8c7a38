import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from supabase import Client

from app.core.config import settings
from app.core.database import get_db
from app.services.auth import ANONYMOUS, CAP_ADMIN, CAP_WRITE, SessionContext, resolve_session
from app.services.upvotes import UpvoteToggle
from app.services.vision import VisionClient

# This tells FastAPI to look for the "Authorization: Bearer <token>" header.
# auto_error=False: anonymous visitors may still read the feed.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/verify-otp/", auto_error=False)


def get_session(token: Optional[str] = Depends(oauth2_scheme), db: Client = Depends(get_db)) -> SessionContext:
    """
    Resolves the caller once per request. No token means an anonymous session
    and no call to Supabase at all.
    """
    if not token:
        return ANONYMOUS
    try:
        return resolve_session(db, token)
    except Exception as e:
        logging.error(f"Token validation failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials. Please log in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def ensure_signed_in(session: SessionContext, action: str) -> str:
    """Reject before any backend call when there is no identity. Returns the user id."""
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Please sign in to {action}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not session.can(CAP_WRITE):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Your account is not allowed to {action}")
    return str(session.user_id)


def require_admin(session: SessionContext = Depends(get_session)) -> SessionContext:
    ensure_signed_in(session, "access the admin dashboard")
    if not session.can(CAP_ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return session


def get_vision_client() -> VisionClient:
    return VisionClient()


@lru_cache()
def get_upvote_toggle() -> UpvoteToggle:
    return UpvoteToggle(allow_removal=settings.ALLOW_UPVOTE_REMOVAL)
