"""Persistence helpers for connected social accounts and creator profiles."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.profile import Profile
from models.social_account import SocialAccount
from models.user import User
from services.connectors.types import TokenSet
from services.crypto import decrypt_optional, decrypt_token, encrypt_optional, encrypt_token


logger = logging.getLogger(__name__)

UNKNOWN_PLATFORM_USER_ID = "unknown"


@dataclass(frozen=True)
class StoredTokens:
    """Decrypted view of a SocialAccount row."""

    platform: str
    platform_user_id: str
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    scope: Optional[str]

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expires_at_from(expires_in: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    if expires_in is None:
        return None
    return (now or datetime.now(timezone.utc)) + timedelta(seconds=int(expires_in))


async def ensure_user(
    db: AsyncSession,
    user_id: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> User:
    """Create the local user row on first sight, refreshing email and name afterwards."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        user = User(id=user_id, email=email, name=name)
        db.add(user)
        await db.flush()
        logger.info("Created local user %s", user_id)
        return user

    if email and user.email != email:
        user.email = email
    if name and user.name != name:
        user.name = name
    return user


async def get_social_account(db: AsyncSession, user_id: str, platform: str) -> Optional[SocialAccount]:
    result = await db.execute(
        select(SocialAccount).where(
            SocialAccount.user_id == user_id,
            SocialAccount.platform == platform,
        )
    )
    return result.scalar_one_or_none()


async def list_social_accounts(db: AsyncSession, user_id: str) -> List[SocialAccount]:
    result = await db.execute(
        select(SocialAccount)
        .where(SocialAccount.user_id == user_id)
        .order_by(SocialAccount.platform)
    )
    return list(result.scalars().all())


async def upsert_social_account(
    db: AsyncSession,
    user_id: str,
    platform: str,
    tokens: TokenSet,
    platform_user_id: Optional[str] = None,
) -> SocialAccount:
    """
    Insert or replace the (user, platform) connection.

    Repeating the same call leaves exactly one row with the latest tokens.
    The caller commits.
    """
    account = await get_social_account(db, user_id, platform)
    resolved_id = platform_user_id or tokens.platform_user_id
    values = {
        "access_token": encrypt_token(tokens.access_token),
        "refresh_token": encrypt_optional(tokens.refresh_token),
        "expires_at": expires_at_from(tokens.expires_in),
        "scope": tokens.scope,
    }

    if account:
        for key, value in values.items():
            setattr(account, key, value)
        if resolved_id:
            account.platform_user_id = resolved_id
        account.updated_at = datetime.now(timezone.utc)
    else:
        now = datetime.now(timezone.utc)
        account = SocialAccount(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            platform=platform,
            platform_user_id=resolved_id or UNKNOWN_PLATFORM_USER_ID,
            **values,
        )
        db.add(account)

    await db.flush()
    return account


async def apply_refreshed_tokens(db: AsyncSession, account: SocialAccount, tokens: TokenSet) -> None:
    """Write refreshed tokens back, keeping the stored refresh token when none was issued."""
    account.access_token = encrypt_token(tokens.access_token)
    if tokens.refresh_token:
        account.refresh_token = encrypt_token(tokens.refresh_token)
    if tokens.expires_in is not None:
        account.expires_at = expires_at_from(tokens.expires_in)
    if tokens.scope:
        account.scope = tokens.scope
    account.updated_at = datetime.now(timezone.utc)
    await db.flush()


def read_tokens(account: SocialAccount) -> StoredTokens:
    return StoredTokens(
        platform=account.platform,
        platform_user_id=account.platform_user_id or UNKNOWN_PLATFORM_USER_ID,
        access_token=decrypt_token(account.access_token),
        refresh_token=decrypt_optional(account.refresh_token),
        expires_at=as_utc(account.expires_at),
        scope=account.scope,
    )


async def delete_social_account(db: AsyncSession, user_id: str, platform: str) -> bool:
    account = await get_social_account(db, user_id, platform)
    if not account:
        return False
    await db.delete(account)
    await db.flush()
    return True


async def get_or_create_profile(db: AsyncSession, user_id: str) -> Profile:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if not profile:
        profile = Profile(id=user_id, updated_at=datetime.now(timezone.utc))
        db.add(profile)
        await db.flush()
    return profile


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def update_profile(
    db: AsyncSession,
    user_id: str,
    username: Optional[str] = None,
    full_name: Optional[str] = None,
    bio: Optional[str] = None,
) -> Profile:
    profile = await get_or_create_profile(db, user_id)
    profile.username = _blank_to_none(username)
    profile.full_name = _blank_to_none(full_name)
    profile.bio = _blank_to_none(bio)
    profile.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return profile
