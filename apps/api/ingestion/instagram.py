"""
Instagram Graph / Basic Display client for account statistics.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from services.connectors.types import TokenExpiredError


logger = logging.getLogger(__name__)

# Graph API error code for an expired or revoked token
_EXPIRED_TOKEN_CODE = 190


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class InstagramClient:
    """Reads account and media statistics for a connected Instagram account."""

    base_url = "https://graph.instagram.com"
    facebook_graph_url = "https://graph.facebook.com/v18.0"

    def __init__(self, access_token: str, http_client: httpx.AsyncClient):
        self.access_token = access_token
        self.http = http_client

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        query = dict(params or {})
        query["access_token"] = self.access_token
        try:
            response = await self.http.get(url, params=query)
        except httpx.HTTPError as exc:
            logger.warning("Instagram request to %s failed: %s", url, exc)
            return None

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        error = payload.get("error") if isinstance(payload, dict) else None
        if response.status_code == 401 or (isinstance(error, dict) and error.get("code") == _EXPIRED_TOKEN_CODE):
            raise TokenExpiredError("Instagram access token expired")
        if not response.is_success:
            logger.info("Instagram request to %s answered %s", url, response.status_code)
            return None
        return payload if isinstance(payload, dict) else None

    async def get_business_account_id(self) -> Optional[str]:
        # Basic Display tokens are rejected by Facebook Graph (code 190); that
        # only means there is no business account to read.
        try:
            data = await self._get(
                f"{self.facebook_graph_url}/me/accounts",
                {"fields": "instagram_business_account"},
            )
        except TokenExpiredError:
            logger.info("Facebook Graph refused the token; using Basic Display")
            return None
        pages = (data or {}).get("data") or []
        if not pages:
            return None
        account = (pages[0] or {}).get("instagram_business_account") or {}
        return account.get("id")

    async def get_account_stats(self) -> Optional[Dict[str, Any]]:
        """
        Business accounts expose follower counts; personal accounts fall back
        to the Basic Display fields, where followers are unavailable (None).
        """
        account_id = await self.get_business_account_id()
        if account_id:
            stats = await self._get(
                f"{self.base_url}/{account_id}",
                {
                    "fields": "account_type,media_count,followers_count,follows_count,"
                              "name,username,profile_picture_url,website,biography",
                },
            )
            if stats:
                return {
                    "id": account_id,
                    "followers_count": _to_int(stats.get("followers_count")) or 0,
                    "follows_count": _to_int(stats.get("follows_count")) or 0,
                    "media_count": _to_int(stats.get("media_count")) or 0,
                    "account_type": stats.get("account_type") or "BUSINESS",
                    "username": stats.get("username") or "",
                    "name": stats.get("name") or "",
                    "profile_picture_url": stats.get("profile_picture_url"),
                    "website": stats.get("website"),
                    "biography": stats.get("biography"),
                }

        logger.info("Instagram business account unavailable, trying basic display")
        basic = await self._get(
            f"{self.base_url}/me",
            {"fields": "id,username,account_type,media_count"},
        )
        if not basic:
            return None

        return {
            "id": basic.get("id"),
            "followers_count": None,
            "follows_count": None,
            "media_count": _to_int(basic.get("media_count")) or 0,
            "account_type": basic.get("account_type") or "PERSONAL",
            "username": basic.get("username") or "",
            "name": basic.get("username") or "",
            "profile_picture_url": None,
            "website": None,
            "biography": None,
        }

    async def _media_insights(self, media: Dict[str, Any]) -> Dict[str, Any]:
        insights = await self._get(
            f"{self.base_url}/{media['id']}/insights",
            {"metric": "likes,comments,impressions,reach,saved"},
        )
        values: Dict[str, int] = {}
        for insight in (insights or {}).get("data") or []:
            points = insight.get("values") or [{}]
            values[insight.get("name")] = _to_int(points[0].get("value")) or 0

        return {
            **media,
            "like_count": values.get("likes", 0),
            "comment_count": values.get("comments", 0),
            "impressions": values.get("impressions", 0),
            "reach": values.get("reach", 0),
            "saved": values.get("saved", 0),
        }

    async def get_recent_media(self, account_id: Optional[str], limit: int = 20) -> List[Dict[str, Any]]:
        """Recent media with per-item insights fetched concurrently."""
        if not account_id:
            return []

        media = await self._get(
            f"{self.base_url}/{account_id}/media",
            {"fields": "id,media_type,media_url,permalink,timestamp,caption", "limit": limit},
        )
        items = [item for item in (media or {}).get("data") or [] if item.get("id")]
        if not items:
            return []
        return list(await asyncio.gather(*(self._media_insights(item) for item in items)))

    async def get_account_insights(self, account_id: Optional[str]) -> Dict[str, int]:
        """Seven-day totals for the account-level insight metrics."""
        totals = {"impressions": 0, "reach": 0, "profile_views": 0, "website_clicks": 0}
        if not account_id:
            return totals

        until = datetime.now(timezone.utc).date()
        since = until - timedelta(days=7)
        data = await self._get(
            f"{self.base_url}/{account_id}/insights",
            {
                "metric": "impressions,reach,profile_views,website_clicks",
                "period": "day",
                "since": since.isoformat(),
                "until": until.isoformat(),
            },
        )
        for insight in (data or {}).get("data") or []:
            name = insight.get("name")
            totals[name] = sum(_to_int(v.get("value")) or 0 for v in insight.get("values") or [])
        return totals

    async def calculate_analytics(self) -> Optional[Dict[str, Any]]:
        account = await self.get_account_stats()
        if not account:
            return None

        business = account.get("followers_count") is not None
        account_id = account.get("id") if business else None
        recent_media = await self.get_recent_media(account_id)

        followers = account.get("followers_count") or 0
        count = len(recent_media)
        average_likes = sum(m.get("like_count", 0) for m in recent_media) / count if count else 0.0
        average_comments = sum(m.get("comment_count", 0) for m in recent_media) / count if count else 0.0
        engagement_rate = (average_likes + average_comments) / followers * 100 if followers > 0 else 0.0

        return {
            "account": account,
            "followers_count": account.get("followers_count"),
            "media_count": account.get("media_count", 0),
            "average_likes": average_likes,
            "average_comments": average_comments,
            "engagement_rate": engagement_rate,
            "recent_media": recent_media,
            "insights": await self.get_account_insights(account_id),
        }
