"""
TikTok Display API v2 client for user and video statistics.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from services.connectors.types import TokenExpiredError


logger = logging.getLogger(__name__)

USER_FIELDS = (
    "open_id,union_id,display_name,username,bio_description,avatar_url,is_verified,"
    "follower_count,following_count,likes_count,video_count"
)
VIDEO_LIST_FIELDS = "id,title,create_time,cover_image_url,share_url,duration,height,width"
VIDEO_QUERY_FIELDS = "id,view_count,like_count,comment_count,share_count"
MAX_VIDEO_PAGE = 20


def _api_error(payload: Dict[str, Any]) -> Optional[str]:
    """Return the API error code, or None when the call succeeded."""
    error = payload.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        return None if code in (None, "", "ok") else str(code)
    legacy = payload.get("error_code")
    if legacy not in (None, 0, "0"):
        return str(legacy)
    return None


class TikTokClient:
    """Reads profile and video statistics for a connected TikTok account."""

    base_url = "https://open.tiktokapis.com"

    def __init__(self, access_token: str, http_client: httpx.AsyncClient):
        self.access_token = access_token
        self.http = http_client

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _call(
        self,
        method: str,
        path: str,
        params: Dict[str, Any],
        body: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        try:
            response = await self.http.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=body,
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("TikTok request to %s failed: %s", path, exc)
            return None

        if response.status_code == 401:
            raise TokenExpiredError("TikTok access token expired")

        try:
            payload = response.json()
        except ValueError:
            logger.warning("TikTok %s answered a non-JSON body", path)
            return None

        error_code = _api_error(payload) if isinstance(payload, dict) else "invalid_body"
        if error_code == "access_token_invalid":
            raise TokenExpiredError("TikTok access token expired")
        if not response.is_success or error_code:
            logger.warning("TikTok API error on %s: status=%s error=%s", path, response.status_code, error_code)
            return None
        return payload.get("data") or {}

    async def get_user_info(self) -> Optional[Dict[str, Any]]:
        data = await self._call("GET", "/v2/user/info/", {"fields": USER_FIELDS})
        user = (data or {}).get("user")
        if not user:
            return None

        return {
            "open_id": user.get("open_id"),
            "follower_count": int(user.get("follower_count") or 0),
            "following_count": int(user.get("following_count") or 0),
            "likes_count": int(user.get("likes_count") or 0),
            "video_count": int(user.get("video_count") or 0),
            "display_name": user.get("display_name") or "",
            "username": user.get("username") or "",
            "avatar_url": user.get("avatar_url"),
            "bio": user.get("bio_description"),
            "is_verified": bool(user.get("is_verified")),
        }

    async def get_video_analytics(self, video_id: str) -> Dict[str, int]:
        data = await self._call(
            "POST",
            "/v2/video/query/",
            {"fields": VIDEO_QUERY_FIELDS},
            {"filters": {"video_ids": [video_id]}},
        )
        videos = (data or {}).get("videos") or []
        if not videos:
            return {}

        video = videos[0]
        return {
            "view_count": int(video.get("view_count") or 0),
            "like_count": int(video.get("like_count") or 0),
            "comment_count": int(video.get("comment_count") or 0),
            "share_count": int(video.get("share_count") or 0),
        }

    async def get_video_list(self, max_count: int = MAX_VIDEO_PAGE) -> List[Dict[str, Any]]:
        """Recent videos, each enriched with its analytics concurrently."""
        data = await self._call(
            "POST",
            "/v2/video/list/",
            {"fields": VIDEO_LIST_FIELDS},
            {"max_count": min(max_count, MAX_VIDEO_PAGE)},
        )
        videos = [video for video in (data or {}).get("videos") or [] if video.get("id")]
        analytics = await asyncio.gather(*(self.get_video_analytics(str(v["id"])) for v in videos))
        return [{**video, **stats} for video, stats in zip(videos, analytics)]

    async def calculate_analytics(self) -> Optional[Dict[str, Any]]:
        user = await self.get_user_info()
        if not user:
            return None

        recent_videos = await self.get_video_list()
        count = len(recent_videos)
        with_views = [v for v in recent_videos if v.get("view_count", 0) > 0]

        average_views = sum(v["view_count"] for v in with_views) / len(with_views) if with_views else 0.0
        average_likes = sum(v.get("like_count", 0) for v in recent_videos) / count if count else 0.0
        average_comments = sum(v.get("comment_count", 0) for v in recent_videos) / count if count else 0.0
        average_shares = sum(v.get("share_count", 0) for v in recent_videos) / count if count else 0.0

        followers = user["follower_count"]
        engagements = average_likes + average_comments + average_shares
        engagement_rate = engagements / followers * 100 if followers > 0 else 0.0

        return {
            "user": user,
            "follower_count": followers,
            "video_count": user["video_count"],
            "total_likes": user["likes_count"],
            "average_views": average_views,
            "average_likes": average_likes,
            "average_comments": average_comments,
            "average_shares": average_shares,
            "engagement_rate": engagement_rate,
            "recent_videos": recent_videos[:10],
        }
