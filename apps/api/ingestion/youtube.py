"""
YouTube Data API client for fetching the connected channel's statistics.
"""

import logging
from typing import Optional, List, Dict, Any

from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from services.connectors.types import TokenExpiredError


logger = logging.getLogger(__name__)


def _raise_if_unauthorized(error: HttpError) -> None:
    status = getattr(getattr(error, "resp", None), "status", None)
    if status is not None and int(status) == 401:
        raise TokenExpiredError("YouTube access token expired") from error


class YouTubeClient:
    """Client for interacting with YouTube Data API v3."""

    def __init__(self, credentials: Any):
        """
        Initialize YouTube client.

        Args:
            credentials: OAuth2 credentials for the connected account
        """
        self.youtube = build("youtube", "v3", credentials=credentials, cache_discovery=False)

    def get_my_channel_info(self) -> Optional[Dict[str, Any]]:
        """
        Get authenticated user's channel metadata.

        Requires OAuth credentials with youtube.readonly scope.

        Raises:
            TokenExpiredError: when YouTube answers 401
        """
        try:
            response = self.youtube.channels().list(
                part="snippet,statistics,contentDetails",
                mine=True
            ).execute()
        except RefreshError as e:
            raise TokenExpiredError("YouTube access token expired") from e
        except HttpError as e:
            _raise_if_unauthorized(e)
            logger.error("Error fetching authenticated channel: %s", e)
            return None

        if not response.get("items"):
            logger.info("No YouTube channel found for the authenticated user")
            return None

        item = response["items"][0]
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})

        return {
            "id": item["id"],
            "title": snippet.get("title", ""),
            "description": snippet.get("description", ""),
            "custom_url": snippet.get("customUrl", ""),
            "published_at": snippet.get("publishedAt", ""),
            "thumbnail_url": snippet.get("thumbnails", {}).get("high", {}).get("url", ""),
            "subscriber_count": int(stats.get("subscriberCount", 0)),
            "video_count": int(stats.get("videoCount", 0)),
            "view_count": int(stats.get("viewCount", 0)),
            "uploads_playlist_id": item.get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads"),
        }

    def get_recent_video_ids(self, uploads_playlist_id: str, max_results: int = 20) -> List[str]:
        """Return ids of the most recent uploads, newest first."""
        video_ids: List[str] = []
        next_page_token = None

        try:
            while len(video_ids) < max_results:
                response = self.youtube.playlistItems().list(
                    part="contentDetails",
                    playlistId=uploads_playlist_id,
                    maxResults=min(50, max_results - len(video_ids)),
                    pageToken=next_page_token
                ).execute()

                for item in response.get("items", []):
                    video_id = item.get("contentDetails", {}).get("videoId")
                    if video_id:
                        video_ids.append(video_id)

                next_page_token = response.get("nextPageToken")
                if not next_page_token:
                    break
        except HttpError as e:
            _raise_if_unauthorized(e)
            logger.warning("Error fetching uploads for playlist %s: %s", uploads_playlist_id, e)

        return video_ids[:max_results]

    def get_video_details(self, video_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """
        Get stats for videos.

        Args:
            video_ids: List of video IDs (batched 50 per call)

        Returns:
            Dict mapping video_id to: title, published_at, view_count,
                                      like_count, comment_count
        """
        result = {}

        for i in range(0, len(video_ids), 50):
            batch = video_ids[i:i+50]

            try:
                response = self.youtube.videos().list(
                    part="statistics,snippet",
                    id=",".join(batch)
                ).execute()
            except HttpError as e:
                _raise_if_unauthorized(e)
                logger.warning("Error fetching video details: %s", e)
                continue

            for item in response.get("items", []):
                stats = item.get("statistics", {})
                snippet = item.get("snippet", {})
                result[item["id"]] = {
                    "title": snippet.get("title", ""),
                    "published_at": snippet.get("publishedAt", ""),
                    "view_count": int(stats.get("viewCount", 0)),
                    "like_count": int(stats.get("likeCount", 0)),
                    "comment_count": int(stats.get("commentCount", 0)),
                }

        return result


def create_youtube_client_with_oauth(access_token: str) -> YouTubeClient:
    """Create a YouTube client using OAuth credentials."""
    from google.oauth2.credentials import Credentials
    credentials = Credentials(token=access_token)
    return YouTubeClient(credentials=credentials)
