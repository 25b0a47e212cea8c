from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlalchemy.future import select

from config import settings
from models.user import User
from services.session_token import decode_session_token


def _hosted_auth_token(sub, email=None, full_name=None, audience="authenticated"):
    claims = {
        "sub": sub,
        "aud": audience,
        "role": "authenticated",
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    if email:
        claims["email"] = email
    if full_name:
        claims["user_metadata"] = {"full_name": full_name}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.mark.asyncio
async def test_sign_in_callback_creates_user_and_welcomes_by_name(api_client, session_maker):
    token = _hosted_auth_token("new-user", "new@example.com", "Robin Rivera")

    response = await api_client.get("/auth/callback", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "success"
    assert payload["message"] == "Welcome, Robin Rivera!"
    assert payload["redirect_to"] == "/profile"
    assert decode_session_token(payload["session_token"])["sub"] == "new-user"

    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.id == "new-user"))).scalar_one()
        assert user.email == "new@example.com"
        assert user.name == "Robin Rivera"


@pytest.mark.asyncio
async def test_sign_in_callback_falls_back_to_email(api_client):
    token = _hosted_auth_token("email-only", "only@example.com")

    response = await api_client.get("/auth/callback", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["message"] == "Welcome, only@example.com!"


@pytest.mark.asyncio
async def test_tokens_for_other_audiences_are_rejected(api_client):
    token = _hosted_auth_token("someone", audience="service_role")

    response = await api_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_bearer_token(api_client):
    response = await api_client.get("/auth/me")
    assert response.status_code == 401

    response = await api_client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_lists_connections_and_capabilities(api_client, auth_headers, provider_credentials):
    response = await api_client.get("/auth/me", headers=auth_headers)
    assert response.status_code == 200
    payload = response.json()
    assert payload["user_id"] == "creator-1"
    assert payload["connected_platforms"] == []
    assert payload["connector_capabilities"] == {
        "youtube_oauth_available": True,
        "instagram_oauth_available": True,
        "tiktok_oauth_available": True,
    }


@pytest.mark.asyncio
async def test_profile_created_lazily_then_updated(api_client, auth_headers):
    response = await api_client.get("/auth/profile", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == "creator-1"
    assert response.json()["username"] is None

    response = await api_client.put(
        "/auth/profile",
        json={"username": "casey", "full_name": "  Casey Creator ", "bio": ""},
        headers=auth_headers,
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["username"] == "casey"
    assert payload["full_name"] == "Casey Creator"
    assert payload["bio"] is None

    response = await api_client.get("/auth/profile", headers=auth_headers)
    assert response.json()["username"] == "casey"
