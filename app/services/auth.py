import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, cast

from supabase import Client

from app.core.config import settings

CAP_WRITE = "write"
CAP_ADMIN = "admin"


@dataclass(frozen=True)
class SessionContext:
    """Identity of the caller, resolved once per request and passed explicitly."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    capabilities: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


ANONYMOUS = SessionContext()


def build_session(user_id: str, email: Optional[str]) -> SessionContext:
    caps = {CAP_WRITE}
    if email and email.lower() in settings.admin_emails():
        caps.add(CAP_ADMIN)
    return SessionContext(user_id=user_id, email=email, capabilities=frozenset(caps))


def resolve_session(db: Client, token: str) -> SessionContext:
    """Asks Supabase Auth who owns the token. Raises ValueError when it is not valid."""
    auth_response = db.auth.get_user(token)
    if not auth_response or not auth_response.user:
        raise ValueError("Invalid or expired token")
    user = auth_response.user
    return build_session(str(user.id), getattr(user, "email", None))


def send_otp_email(db: Client, email: str) -> None:
    """Requests Supabase to send a 6-digit OTP to the user's email."""
    try:
        # Cast to Any to satisfy strict TypedDict requirements
        payload = cast(Any, {"email": email})
        db.auth.sign_in_with_otp(payload)
    except Exception as e:
        logging.error(f"Supabase Auth Error (send_otp): {str(e)}")
        raise RuntimeError("Failed to send OTP.")


def verify_otp_code(db: Client, email: str, otp: str):
    """
    Verifies the OTP with Supabase.
    Returns (access_token, user_id) if successful.
    """
    last_error = None

    # Supabase OTP types change depending on account age and SDK versions.
    for otp_type in ["email", "signup", "magiclink"]:
        try:
            payload = cast(Any, {"email": email, "token": otp, "type": otp_type})
            res = db.auth.verify_otp(payload)

            if res.session and res.session.access_token:
                return res.session.access_token, str(res.user.id) if res.user else None
        except Exception as e:
            last_error = e

    logging.error(f"Supabase Auth Error (verify_otp exhausted): {str(last_error)}")
    raise ValueError("Invalid or expired OTP.")
