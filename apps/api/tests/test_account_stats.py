from unittest.mock import MagicMock, patch

import httpx
import pytest
from sqlalchemy.future import select

from ingestion.youtube import YouTubeClient
from models.social_account import SocialAccount
from services.connectors.types import TokenExpiredError, TokenSet
from services.crypto import decrypt_token
from services.social_accounts import upsert_social_account


USER_INFO = {
    "data": {
        "user": {
            "open_id": "tt-open",
            "display_name": "Casey",
            "username": "casey",
            "avatar_url": "https://cdn.example.com/a.jpg",
            "follower_count": 2000,
            "following_count": 150,
            "likes_count": 90000,
            "video_count": 42,
        }
    },
    "error": {"code": "ok", "message": ""},
}


async def _connect(session_maker, platform, access_token="stored-access", refresh_token="stored-refresh", expires_in=3600):
    async with session_maker() as session:
        await upsert_social_account(
            session,
            "creator-1",
            platform,
            TokenSet(access_token=access_token, refresh_token=refresh_token, expires_in=expires_in),
        )
        await session.commit()


def _tiktok_handler(valid_token="stored-access", refresh_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v2/oauth/token/":
            if refresh_status != 200:
                return httpx.Response(refresh_status, json={"error": "invalid_grant", "error_description": "revoked"})
            return httpx.Response(200, json={"access_token": "refreshed-access", "refresh_token": "refreshed-refresh", "expires_in": 86400})

        if request.headers["authorization"] != f"Bearer {valid_token}":
            return httpx.Response(401, json={"error": {"code": "access_token_invalid", "message": "expired"}})
        if path == "/v2/user/info/":
            return httpx.Response(200, json=USER_INFO)
        if path == "/v2/video/list/":
            return httpx.Response(200, json={"data": {"videos": [{"id": "v1"}, {"id": "v2"}]}, "error": {"code": "ok"}})
        if path == "/v2/video/query/":
            return httpx.Response(
                200,
                json={
                    "data": {"videos": [{"id": "v", "view_count": 1000, "like_count": 80, "comment_count": 15, "share_count": 5}]},
                    "error": {"code": "ok"},
                },
            )
        return httpx.Response(404)

    return handler


@pytest.mark.asyncio
async def test_stats_for_unconnected_platform_make_no_network_call(api_client, auth_headers, mock_provider):
    seen = mock_provider(lambda request: httpx.Response(500))

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)
    assert response.status_code == 404
    assert seen == []


@pytest.mark.asyncio
async def test_disconnect_then_stats_refused_locally(api_client, auth_headers, session_maker, mock_provider):
    await _connect(session_maker, "instagram")
    seen = mock_provider(lambda request: httpx.Response(500))

    response = await api_client.delete("/accounts/instagram", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"platform": "instagram", "disconnected": True}

    response = await api_client.get("/accounts/instagram/stats", headers=auth_headers)
    assert response.status_code == 404
    assert seen == []

    response = await api_client.delete("/accounts/instagram", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_tiktok_stats_uniform_shape(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "tiktok")
    mock_provider(_tiktok_handler())

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)
    assert response.status_code == 200
    stats = response.json()
    assert stats["platform"] == "tiktok"
    assert stats["platform_user_id"] == "tt-open"
    assert stats["followers"] == 2000
    assert stats["following"] == 150
    assert stats["post_count"] == 42
    assert stats["total_likes"] == 90000
    assert stats["average_views"] == pytest.approx(1000)
    # (80 + 15 + 5) / 2000 * 100
    assert stats["engagement_rate"] == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_tiktok_expired_token_refreshes_once_and_persists(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "tiktok", access_token="expired-access")
    seen = mock_provider(_tiktok_handler(valid_token="refreshed-access"))

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["followers"] == 2000
    assert sum(1 for r in seen if r.url.path == "/v2/oauth/token/") == 1

    async with session_maker() as session:
        account = (await session.execute(select(SocialAccount))).scalar_one()
        assert decrypt_token(account.access_token) == "refreshed-access"
        assert decrypt_token(account.refresh_token) == "refreshed-refresh"


@pytest.mark.asyncio
async def test_failed_refresh_clears_connection(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "tiktok", access_token="expired-access")
    mock_provider(_tiktok_handler(valid_token="never", refresh_status=400))

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)
    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "stats_unavailable"
    assert body["connection_cleared"] is True

    async with session_maker() as session:
        assert (await session.execute(select(SocialAccount))).scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_instagram_expired_token_is_not_retried(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "instagram")
    seen = mock_provider(
        lambda request: httpx.Response(400, json={"error": {"message": "Session has expired", "type": "OAuthException", "code": 190}})
    )

    response = await api_client.get("/accounts/instagram/stats", headers=auth_headers)
    assert response.status_code == 502
    assert len(seen) == 1
    assert "refresh_access_token" not in str(seen[0].url)


@pytest.mark.asyncio
async def test_instagram_business_stats(api_client, auth_headers, session_maker, mock_provider):
    await _connect(session_maker, "instagram")

    def handler(request):
        path = request.url.path
        if path == "/v18.0/me/accounts":
            return httpx.Response(200, json={"data": [{"instagram_business_account": {"id": "ig-biz"}}]})
        if path == "/ig-biz":
            return httpx.Response(
                200,
                json={"followers_count": 1000, "follows_count": 10, "media_count": 3, "username": "casey", "name": "Casey"},
            )
        if path == "/ig-biz/media":
            return httpx.Response(200, json={"data": [{"id": "m1"}, {"id": "m2"}]})
        if path.endswith("/insights") and path.startswith("/m"):
            return httpx.Response(
                200,
                json={"data": [
                    {"name": "likes", "values": [{"value": 40}]},
                    {"name": "comments", "values": [{"value": 10}]},
                    {"name": "impressions", "values": [{"value": 500}]},
                ]},
            )
        if path == "/ig-biz/insights":
            return httpx.Response(200, json={"data": [{"name": "reach", "values": [{"value": 5}, {"value": 7}]}]})
        return httpx.Response(404, json={})

    mock_provider(handler)

    response = await api_client.get("/accounts/instagram/stats", headers=auth_headers)
    assert response.status_code == 200
    stats = response.json()
    assert stats["followers"] == 1000
    assert stats["username"] == "casey"
    assert stats["total_views"] == 1000
    # (40 + 10) / 1000 * 100
    assert stats["engagement_rate"] == pytest.approx(5.0)
    assert stats["extra"]["insights"]["reach"] == 12


@pytest.mark.asyncio
async def test_youtube_stats_through_google_client(api_client, auth_headers, session_maker, provider_credentials):
    await _connect(session_maker, "youtube")
    client = MagicMock(spec=YouTubeClient)
    client.get_my_channel_info.return_value = {
        "id": "UC123",
        "title": "Casey Codes",
        "custom_url": "@caseycodes",
        "thumbnail_url": "https://yt.example.com/t.jpg",
        "subscriber_count": 50000,
        "video_count": 120,
        "view_count": 3_000_000,
        "uploads_playlist_id": "UU123",
    }
    client.get_recent_video_ids.return_value = ["a", "b"]
    client.get_video_details.return_value = {
        "a": {"view_count": 6000, "like_count": 300, "comment_count": 30},
        "b": {"view_count": 4000, "like_count": 150, "comment_count": 20},
    }

    with patch("services.stats.create_youtube_client_with_oauth", return_value=client) as factory:
        response = await api_client.get("/accounts/youtube/stats", headers=auth_headers)

    factory.assert_called_once_with("stored-access")
    assert response.status_code == 200
    stats = response.json()
    assert stats["followers"] == 50000
    assert stats["average_views"] == pytest.approx(5000)
    # (450 + 50) / 10000 * 100
    assert stats["engagement_rate"] == pytest.approx(5.0)
    assert stats["extra"]["estimated_monthly_views"] == 150000


@pytest.mark.asyncio
async def test_youtube_expired_token_retries_with_refreshed_token(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "youtube", access_token="expired-access")
    mock_provider(lambda request: httpx.Response(200, json={"access_token": "refreshed-access", "expires_in": 3599}))

    expired = MagicMock(spec=YouTubeClient)
    expired.get_my_channel_info.side_effect = TokenExpiredError("expired")
    fresh = MagicMock(spec=YouTubeClient)
    fresh.get_my_channel_info.return_value = {"id": "UC123", "title": "Casey", "subscriber_count": 10, "video_count": 0, "view_count": 0}

    with patch("services.stats.create_youtube_client_with_oauth", side_effect=[expired, fresh]) as factory:
        response = await api_client.get("/accounts/youtube/stats", headers=auth_headers)

    assert response.status_code == 200
    assert [call.args[0] for call in factory.call_args_list] == ["expired-access", "refreshed-access"]

    async with session_maker() as session:
        account = (await session.execute(select(SocialAccount))).scalar_one()
        assert decrypt_token(account.access_token) == "refreshed-access"
        # Google does not rotate refresh tokens on refresh
        assert decrypt_token(account.refresh_token) == "stored-refresh"


@pytest.mark.asyncio
async def test_unreadable_stored_token_clears_connection(api_client, auth_headers, session_maker, mock_provider):
    await _connect(session_maker, "tiktok")
    async with session_maker() as session:
        account = (await session.execute(select(SocialAccount))).scalar_one()
        account.access_token = "not-a-fernet-token"
        await session.commit()
    seen = mock_provider(_tiktok_handler())

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["connection_cleared"] is True
    assert seen == []
    async with session_maker() as session:
        assert (await session.execute(select(SocialAccount))).scalars().all() == []


@pytest.mark.asyncio
async def test_token_past_expiry_is_refreshed_before_fetch(api_client, auth_headers, session_maker, provider_credentials, mock_provider):
    await _connect(session_maker, "tiktok", access_token="stale-access", expires_in=-60)
    seen = mock_provider(_tiktok_handler(valid_token="refreshed-access"))

    response = await api_client.get("/accounts/tiktok/stats", headers=auth_headers)
    assert response.status_code == 200
    assert seen[0].url.path == "/v2/oauth/token/"
    assert all(r.headers.get("authorization") != "Bearer stale-access" for r in seen)

    async with session_maker() as session:
        account = (await session.execute(select(SocialAccount))).scalar_one()
        assert decrypt_token(account.access_token) == "refreshed-access"
