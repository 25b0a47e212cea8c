"""
Account statistics for connected platforms.

Each fetcher maps the provider's field names into ``AccountStats``. A YouTube or
TikTok token past its stored expiry is refreshed before the call, and one the
provider rejects gets exactly one refresh-and-retry. Refreshed tokens are
written back to the SocialAccount row. Any irrecoverable failure deletes
the stored connection so the user is asked to reconnect.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import PROVIDER_TITLES
from ingestion.instagram import InstagramClient
from ingestion.tiktok import TikTokClient
from ingestion.youtube import create_youtube_client_with_oauth
from services.connectors import transport
from services.connectors.providers import get_connector_provider
from services.connectors.types import (
    AccountStats,
    ProviderConfigError,
    ProviderRequestError,
    StatsUnavailableError,
    TokenExchangeOk,
    TokenExpiredError,
)
from services.crypto import TokenDecryptionError
from services.social_accounts import (
    apply_refreshed_tokens,
    get_social_account,
    read_tokens,
)


logger = logging.getLogger(__name__)

# Platforms whose stats fetch retries once with a refreshed token on 401.
REFRESHABLE_PLATFORMS = ("youtube", "tiktok")

Fetcher = Callable[[str], Awaitable[Optional[AccountStats]]]


class AccountNotConnectedError(LookupError):
    """Raised when stats are requested for a platform the user has not connected."""


def _youtube_stats_sync(access_token: str) -> Optional[AccountStats]:
    client = create_youtube_client_with_oauth(access_token)
    channel = client.get_my_channel_info()
    if not channel:
        return None

    video_ids = []
    if channel.get("uploads_playlist_id"):
        video_ids = client.get_recent_video_ids(channel["uploads_playlist_id"])
    details = client.get_video_details(video_ids) if video_ids else {}

    recent = list(details.values())
    recent_views = sum(v["view_count"] for v in recent)
    recent_likes = sum(v["like_count"] for v in recent)
    recent_comments = sum(v["comment_count"] for v in recent)
    count = len(recent)

    engagement_rate = (recent_likes + recent_comments) / recent_views * 100 if recent_views > 0 else 0.0
    average_views = recent_views / count if count else 0.0

    return AccountStats(
        platform="youtube",
        platform_user_id=channel.get("id"),
        display_name=channel.get("title", ""),
        username=channel.get("custom_url", ""),
        followers=channel.get("subscriber_count", 0),
        following=None,
        post_count=channel.get("video_count", 0),
        total_views=channel.get("view_count", 0),
        total_likes=recent_likes,
        average_views=average_views,
        engagement_rate=engagement_rate,
        avatar_url=channel.get("thumbnail_url") or None,
        extra={
            "recent_video_count": count,
            "estimated_monthly_views": int(recent_views * 30 / count) if count else 0,
        },
    )


async def fetch_youtube_stats(access_token: str) -> Optional[AccountStats]:
    # googleapiclient is blocking
    return await asyncio.to_thread(_youtube_stats_sync, access_token)


async def fetch_instagram_stats(access_token: str) -> Optional[AccountStats]:
    async with transport.build_client() as http:
        analytics = await InstagramClient(access_token, http).calculate_analytics()
    if not analytics:
        return None

    account = analytics["account"]
    recent_media = analytics["recent_media"]
    total_likes = sum(m.get("like_count", 0) for m in recent_media)
    impressions = [m.get("impressions", 0) for m in recent_media]

    return AccountStats(
        platform="instagram",
        platform_user_id=account.get("id"),
        display_name=account.get("name") or account.get("username") or "",
        username=account.get("username") or "",
        followers=account.get("followers_count"),
        following=account.get("follows_count"),
        post_count=account.get("media_count") or 0,
        total_views=sum(impressions),
        total_likes=total_likes,
        average_views=sum(impressions) / len(impressions) if impressions else 0.0,
        engagement_rate=analytics["engagement_rate"],
        avatar_url=account.get("profile_picture_url"),
        extra={
            "account_type": account.get("account_type"),
            "average_likes": analytics["average_likes"],
            "average_comments": analytics["average_comments"],
            "insights": analytics["insights"],
        },
    )


async def fetch_tiktok_stats(access_token: str) -> Optional[AccountStats]:
    async with transport.build_client() as http:
        analytics = await TikTokClient(access_token, http).calculate_analytics()
    if not analytics:
        return None

    user = analytics["user"]
    return AccountStats(
        platform="tiktok",
        platform_user_id=user.get("open_id"),
        display_name=user.get("display_name") or "",
        username=user.get("username") or "",
        followers=user["follower_count"],
        following=user["following_count"],
        post_count=user["video_count"],
        total_views=sum(v.get("view_count", 0) for v in analytics["recent_videos"]),
        total_likes=user["likes_count"],
        average_views=analytics["average_views"],
        engagement_rate=analytics["engagement_rate"],
        avatar_url=user.get("avatar_url"),
        extra={
            "average_likes": analytics["average_likes"],
            "average_comments": analytics["average_comments"],
            "average_shares": analytics["average_shares"],
            "is_verified": user.get("is_verified", False),
        },
    )


_FETCHERS: Dict[str, Fetcher] = {
    "youtube": fetch_youtube_stats,
    "instagram": fetch_instagram_stats,
    "tiktok": fetch_tiktok_stats,
}


def get_stats_fetcher(platform: str) -> Fetcher:
    try:
        return _FETCHERS[platform]
    except KeyError as exc:
        raise ValueError(f"Unsupported platform: {platform}") from exc


async def _refresh_access_token(db: AsyncSession, account: Any, refresh_token: Optional[str]) -> Optional[str]:
    if not refresh_token:
        return None
    provider = get_connector_provider(account.platform)
    try:
        result = await provider.refresh(refresh_token)
    except (ProviderConfigError, ProviderRequestError) as exc:
        logger.warning("Token refresh for %s failed: %s", account.platform, exc)
        return None

    if not isinstance(result, TokenExchangeOk):
        logger.warning("Token refresh for %s rejected: %s", account.platform, result.provider_error)
        return None

    await apply_refreshed_tokens(db, account, result.tokens)
    await db.commit()
    logger.info("Refreshed %s token for user %s", account.platform, account.user_id)
    return result.tokens.access_token


async def _clear_connection(db: AsyncSession, account: Any, reason: str) -> StatsUnavailableError:
    title = PROVIDER_TITLES[account.platform]
    logger.warning("Clearing %s connection for user %s: %s", account.platform, account.user_id, reason)
    await db.delete(account)
    await db.commit()
    return StatsUnavailableError(f"Could not load {title} stats ({reason}). Please reconnect your account.")


async def fetch_account_stats(db: AsyncSession, user_id: str, platform: str) -> AccountStats:
    """
    Fetch the uniform stats for one connected account.

    Raises:
        AccountNotConnectedError: no stored connection; no network call is made
        StatsUnavailableError: the fetch failed and the connection was cleared
    """
    fetcher = get_stats_fetcher(platform)
    account = await get_social_account(db, user_id, platform)
    if not account:
        raise AccountNotConnectedError(f"{PROVIDER_TITLES[platform]} account is not connected")

    try:
        tokens = read_tokens(account)
    except TokenDecryptionError:
        raise await _clear_connection(db, account, "stored token unreadable")

    refreshable = platform in REFRESHABLE_PLATFORMS
    access_token = tokens.access_token
    refreshed = False
    if tokens.expired and refreshable:
        access_token = await _refresh_access_token(db, account, tokens.refresh_token)
        if not access_token:
            raise await _clear_connection(db, account, "access token expired and refresh failed")
        refreshed = True

    try:
        stats = await fetcher(access_token)
    except TokenExpiredError:
        if not refreshable:
            raise await _clear_connection(db, account, "access token expired")
        if refreshed:
            raise await _clear_connection(db, account, "refreshed token was rejected")

        access_token = await _refresh_access_token(db, account, tokens.refresh_token)
        if not access_token:
            raise await _clear_connection(db, account, "access token expired and refresh failed")
        try:
            stats = await fetcher(access_token)
        except TokenExpiredError:
            raise await _clear_connection(db, account, "refreshed token was rejected")

    if stats is None:
        raise await _clear_connection(db, account, "provider returned no data")

    if not stats.platform_user_id:
        stats.platform_user_id = tokens.platform_user_id
    return stats
