"""Single-use CSRF state for the connect/callback round trip."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.oauth_state import OAuthState
from services.social_accounts import as_utc


logger = logging.getLogger(__name__)


class OAuthStateError(ValueError):
    """Raised when a callback presents an unknown, expired or mismatched state."""


@dataclass(frozen=True)
class ConsumedState:
    user_id: str
    platform: str
    redirect_uri: str


async def issue_state(db: AsyncSession, user_id: str, platform: str, redirect_uri: str) -> str:
    now = datetime.now(timezone.utc)
    await db.execute(delete(OAuthState).where(OAuthState.expires_at <= now))

    state = secrets.token_urlsafe(32)
    db.add(
        OAuthState(
            state=state,
            user_id=user_id,
            platform=platform,
            redirect_uri=redirect_uri,
            created_at=now,
            expires_at=now + timedelta(seconds=settings.OAUTH_STATE_TTL_SECONDS),
        )
    )
    await db.flush()
    return state


async def consume_state(db: AsyncSession, state: Optional[str], platform: str) -> ConsumedState:
    """Validate and delete a state row. A state can be consumed once."""
    if not state:
        raise OAuthStateError("Missing OAuth state. Please restart the connection.")

    result = await db.execute(select(OAuthState).where(OAuthState.state == state))
    row = result.scalar_one_or_none()
    if not row:
        logger.warning("Unknown or already used OAuth state for %s", platform)
        raise OAuthStateError("Invalid or already used OAuth state. Please restart the connection.")

    consumed = ConsumedState(user_id=row.user_id, platform=row.platform, redirect_uri=row.redirect_uri)
    expires_at = as_utc(row.expires_at)
    await db.delete(row)
    await db.flush()

    if row.platform != platform:
        raise OAuthStateError("OAuth state was issued for a different platform.")
    if expires_at is not None and expires_at <= datetime.now(timezone.utc):
        raise OAuthStateError("OAuth state has expired. Please restart the connection.")
    return consumed
