"""
Connected social accounts: listing, disconnecting and live statistics.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_supported_platform, get_auth_context
from services.connectors import StatsUnavailableError
from services.social_accounts import as_utc, delete_social_account, list_social_accounts
from services.stats import AccountNotConnectedError, fetch_account_stats

router = APIRouter()
logger = logging.getLogger(__name__)


class SocialAccountResponse(BaseModel):
    platform: str
    platform_user_id: str
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_expired: bool = False
    has_refresh_token: bool = False
    updated_at: Optional[datetime] = None


class SocialAccountListResponse(BaseModel):
    accounts: List[SocialAccountResponse]


@router.get("/", response_model=SocialAccountListResponse)
async def list_accounts(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """List connected accounts. Tokens are never returned."""
    now = datetime.now(timezone.utc)
    accounts = await list_social_accounts(db, auth.user_id)
    return SocialAccountListResponse(
        accounts=[
            SocialAccountResponse(
                platform=account.platform,
                platform_user_id=account.platform_user_id,
                scope=account.scope,
                expires_at=as_utc(account.expires_at),
                token_expired=bool(account.expires_at and as_utc(account.expires_at) <= now),
                has_refresh_token=bool(account.refresh_token),
                updated_at=as_utc(account.updated_at),
            )
            for account in accounts
        ]
    )


@router.delete("/{platform}")
async def disconnect_account(
    platform: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Disconnect a platform by deleting its stored tokens."""
    platform = ensure_supported_platform(platform)
    deleted = await delete_social_account(db, auth.user_id, platform)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"{platform} account is not connected")
    await db.commit()
    logger.info("User %s disconnected %s", auth.user_id, platform)
    return {"platform": platform, "disconnected": True}


@router.get("/{platform}/stats")
async def get_account_stats(
    platform: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Fetch live statistics for a connected account in the uniform shape."""
    platform = ensure_supported_platform(platform)
    try:
        stats = await fetch_account_stats(db, auth.user_id, platform)
    except AccountNotConnectedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StatsUnavailableError as exc:
        return JSONResponse(
            status_code=502,
            content={
                "error": "stats_unavailable",
                "connection_cleared": True,
                "message": str(exc),
            },
        )
    return asdict(stats)
