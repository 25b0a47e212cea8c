"""Bearer token helpers for user-scoped endpoints.

Two token kinds are accepted: access tokens minted by the hosted auth
provider (audience ``authenticated``, identity in ``sub``/``email``/
``user_metadata``) and session tokens minted locally by
``create_session_token``. Both are HS256-signed with ``JWT_SECRET``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "sponsoru_session"


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a signed session token payload for API authentication."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24)
    expires_at = now + timedelta(hours=max(ttl_hours, 1))
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if email:
        claims["email"] = email
    if name:
        claims["user_metadata"] = {"full_name": name}

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def _audience_matches(payload: Dict[str, Any]) -> bool:
    audience = payload.get("aud")
    if isinstance(audience, str):
        audience = [audience]
    return settings.AUTH_PROVIDER_AUDIENCE in (audience or [])


def decode_session_token(token: str) -> Dict[str, Any]:
    """Decode and validate a session or hosted-auth access token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    token_type = str(payload.get("type", "")).strip()
    if token_type != SESSION_TOKEN_TYPE and not _audience_matches(payload):
        raise ValueError("Invalid session token type.")

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Session token missing subject.")

    return payload


def display_name_from_claims(payload: Dict[str, Any]) -> Optional[str]:
    """Pick the display name the auth provider stored for the user, if any."""
    metadata = payload.get("user_metadata") or {}
    if not isinstance(metadata, dict):
        return None
    name = str(metadata.get("full_name") or metadata.get("name") or "").strip()
    return name or None
