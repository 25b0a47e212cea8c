"""Authentication dependencies for API user scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.connectors.types import SUPPORTED_PLATFORMS
from services.session_token import decode_session_token, display_name_from_claims


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or "there"


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from a Bearer session or hosted-auth token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(
        user_id=str(payload.get("sub", "")),
        email=str(payload.get("email", "") or "") or None,
        name=display_name_from_claims(payload),
    )


def ensure_supported_platform(platform: str) -> str:
    """Normalize a platform path segment and reject unknown platforms."""
    key = (platform or "").strip().lower()
    if key not in SUPPORTED_PLATFORMS:
        raise HTTPException(status_code=404, detail=f"Unsupported platform: {platform}")
    return key
