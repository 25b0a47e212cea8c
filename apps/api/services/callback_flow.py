"""Provider redirect handling for the connect flow.

The callback moves through ``loading`` to exactly one terminal state,
``success`` or ``error``. The provider code exchange is bounded by ``OAUTH_CALLBACK_TIMEOUT_SECONDS``
so a silent provider cannot leave the user waiting; storing the connection
happens after it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import PROVIDER_TITLES, settings
from services.connectors.providers import get_connector_provider
from services.connectors.types import (
    ProviderConfigError,
    ProviderRequestError,
    TokenExchangeError,
    TokenSet,
)
from services.oauth_state import OAuthStateError, consume_state
from services.social_accounts import upsert_social_account


logger = logging.getLogger(__name__)

SUCCESS_REDIRECT = "/profile"


class CallbackStatus(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CallbackOutcome:
    status: CallbackStatus
    message: str
    platform: str
    redirect_to: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        return payload


def _error(platform: str, message: str) -> CallbackOutcome:
    return CallbackOutcome(status=CallbackStatus.ERROR, message=message, platform=platform)


async def _store_connection(db: AsyncSession, platform: str, user_id: str, tokens: TokenSet) -> CallbackOutcome:
    try:
        await upsert_social_account(db, user_id, platform, tokens)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Failed to store %s connection for user %s", platform, user_id)
        return _error(platform, str(getattr(exc, "orig", None) or exc))

    return CallbackOutcome(
        status=CallbackStatus.SUCCESS,
        message=f"{PROVIDER_TITLES[platform]} account connected successfully!",
        platform=platform,
        redirect_to=SUCCESS_REDIRECT,
    )


async def complete_connect_callback(
    db: AsyncSession,
    platform: str,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> CallbackOutcome:
    title = PROVIDER_TITLES[platform]

    if error:
        return _error(platform, f"{title} authorization failed: {error}")
    if not code:
        return _error(platform, f"No authorization code received from {title}")

    try:
        consumed = await consume_state(db, state, platform)
    except OAuthStateError as exc:
        await db.commit()
        return _error(platform, str(exc))
    await db.commit()

    timeout = settings.OAUTH_CALLBACK_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
    provider = get_connector_provider(platform)
    try:
        result = await asyncio.wait_for(provider.exchange_code(code, consumed.redirect_uri), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s callback timed out after %ss", title, timeout)
        return _error(platform, f"Connecting {title} timed out. Please try again.")
    except ProviderConfigError as exc:
        return _error(platform, str(exc))
    except ProviderRequestError as exc:
        return _error(platform, f"Could not complete {title} connection: {exc}")

    if isinstance(result, TokenExchangeError):
        return _error(platform, result.message)
    # Stored outside the timeout
    return await _store_connection(db, platform, consumed.user_id, result.tokens)
