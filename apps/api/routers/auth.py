"""
Authentication router: sign-in callback, current user, profile editing and the
connect/callback round trip for each social platform.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_supported_platform, get_auth_context
from services.callback_flow import CallbackStatus, SUCCESS_REDIRECT, complete_connect_callback
from services.connectors import ProviderConfigError, connector_capabilities, default_redirect_uri, get_connector_provider
from services.oauth_state import issue_state
from services.session_token import create_session_token
from services.social_accounts import (
    ensure_user,
    get_or_create_profile,
    list_social_accounts,
    update_profile,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class SignInResponse(BaseModel):
    status: str
    message: str
    user_id: str
    email: Optional[str] = None
    redirect_to: str
    session_token: str
    session_expires_at: int


class CurrentUserResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    connected_platforms: List[str] = []
    connector_capabilities: Dict[str, bool] = {}


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None
    updated_at: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None


class ConnectResponse(BaseModel):
    platform: str
    authorization_url: str
    state: str
    redirect_uri: str


@router.get("/callback", response_model=SignInResponse)
async def sign_in_callback(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Complete sign-in with the hosted auth provider.

    Mirrors the identity into the local users table and mints a session token
    for subsequent API calls.
    """
    user = await ensure_user(db, auth.user_id, email=auth.email, name=auth.name)
    await db.commit()

    session = create_session_token(user.id, email=user.email, name=user.name)
    logger.info("User %s signed in", user.id)
    return SignInResponse(
        status=CallbackStatus.SUCCESS.value,
        message=f"Welcome, {auth.display_name}!",
        user_id=user.id,
        email=user.email,
        redirect_to=SUCCESS_REDIRECT,
        session_token=session["token"],
        session_expires_at=session["expires_at"],
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current user and connected platforms."""
    user = await ensure_user(db, auth.user_id, email=auth.email, name=auth.name)
    accounts = await list_social_accounts(db, user.id)
    await db.commit()

    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        connected_platforms=[account.platform for account in accounts],
        connector_capabilities=connector_capabilities(),
    )


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the user's profile, creating an empty one on first view."""
    user = await ensure_user(db, auth.user_id, email=auth.email, name=auth.name)
    profile = await get_or_create_profile(db, user.id)
    await db.commit()
    return ProfileResponse(
        id=profile.id,
        email=user.email,
        username=profile.username,
        full_name=profile.full_name,
        bio=profile.bio,
        updated_at=profile.updated_at,
    )


@router.put("/profile", response_model=ProfileResponse)
async def put_profile(
    request: ProfileUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Replace the editable profile fields. Blank values are stored as null."""
    user = await ensure_user(db, auth.user_id, email=auth.email, name=auth.name)
    profile = await update_profile(
        db,
        user.id,
        username=request.username,
        full_name=request.full_name,
        bio=request.bio,
    )
    await db.commit()
    return ProfileResponse(
        id=profile.id,
        email=user.email,
        username=profile.username,
        full_name=profile.full_name,
        bio=profile.bio,
        updated_at=profile.updated_at,
    )


@router.get("/{platform}/connect", response_model=ConnectResponse)
async def connect_platform(
    platform: str,
    redirect_uri: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Build the provider authorization URL with a fresh single-use state."""
    platform = ensure_supported_platform(platform)
    provider = get_connector_provider(platform)
    if not provider.configured:
        raise HTTPException(
            status_code=503,
            detail={
                "platform": platform,
                "message": f"{provider.title} OAuth connector is not configured.",
            },
        )

    redirect_uri = redirect_uri or default_redirect_uri(platform)
    await ensure_user(db, auth.user_id, email=auth.email, name=auth.name)
    state = await issue_state(db, auth.user_id, platform, redirect_uri)
    try:
        authorization_url = provider.build_authorization_url(redirect_uri, state)
    except ProviderConfigError as exc:
        await db.rollback()
        raise HTTPException(status_code=503, detail={"platform": platform, "message": str(exc)}) from exc
    await db.commit()

    return ConnectResponse(
        platform=platform,
        authorization_url=authorization_url,
        state=state,
        redirect_uri=redirect_uri,
    )


@router.get("/{platform}/callback")
async def platform_callback(
    platform: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Receive the provider redirect and connect the account.

    The user is identified by the state issued at connect time, so no bearer
    token is needed here.
    """
    platform = ensure_supported_platform(platform)
    outcome = await complete_connect_callback(db, platform, code=code, state=state, error=error)
    status_code = 200 if outcome.status is CallbackStatus.SUCCESS else 400
    return JSONResponse(status_code=status_code, content=outcome.to_response())
