import httpx
import pytest

from config import settings


TIKTOK_SECRET = "s3cr3t" + "x" * 34
DIAGNOSTIC_PATHS = [
    "/api/tiktok/validate-app",
    "/api/tiktok-app-status",
    "/api/tiktok-debug-live",
    "/api/test-tiktok-env",
    "/api/debug-env",
    "/api/check-db-schema",
]


@pytest.fixture
def diagnostics_enabled(monkeypatch, provider_credentials):
    monkeypatch.setattr(settings, "ENABLE_DIAGNOSTIC_ENDPOINTS", True)
    monkeypatch.setattr(settings, "TIKTOK_CLIENT_SECRET", TIKTOK_SECRET)


@pytest.mark.asyncio
@pytest.mark.parametrize("path", DIAGNOSTIC_PATHS)
async def test_diagnostics_hidden_unless_enabled(api_client, monkeypatch, path):
    monkeypatch.setattr(settings, "ENABLE_DIAGNOSTIC_ENDPOINTS", False)
    response = await api_client.get(path)
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("path", DIAGNOSTIC_PATHS)
async def test_diagnostics_never_echo_secrets(api_client, diagnostics_enabled, mock_provider, path):
    mock_provider(lambda request: httpx.Response(400, json={"error": "invalid_grant", "error_description": "bad code"}))

    response = await api_client.get(path)
    assert response.status_code == 200
    body = response.text
    for secret in (TIKTOK_SECRET, TIKTOK_SECRET[:8], "yt-client-secret", "ig-app-secret"):
        assert secret not in body


@pytest.mark.asyncio
async def test_debug_env_reports_presence_and_length(api_client, diagnostics_enabled):
    response = await api_client.get("/api/debug-env")
    environment = response.json()["environment"]
    assert environment["TIKTOK_CLIENT_SECRET"] == {"present": True, "length": 40}
    assert environment["YOUTUBE_CLIENT_ID"] == {"present": True, "length": len("yt-client-id")}


@pytest.mark.asyncio
async def test_validate_app_ready_when_probe_returns_invalid_grant(api_client, diagnostics_enabled, mock_provider):
    seen = mock_provider(lambda request: httpx.Response(400, json={"error": "invalid_grant", "error_description": "bad code"}))

    payload = (await api_client.get("/api/tiktok/validate-app")).json()
    assert payload["status"] == "READY"
    assert payload["api_connectivity"]["reachable"] is True
    assert payload["api_connectivity"]["credentials_accepted"] is True
    assert payload["environment"]["client_secret"]["valid"] is True
    assert str(seen[0].url) == "https://open.tiktokapis.com/v2/oauth/token/"


@pytest.mark.asyncio
async def test_debug_live_flags_invalid_client(api_client, diagnostics_enabled, mock_provider):
    mock_provider(lambda request: httpx.Response(200, json={"error": "invalid_client", "error_description": "wrong"}))

    payload = (await api_client.get("/api/tiktok-debug-live")).json()
    assert payload["status"] == "NEEDS_ATTENTION"
    assert any("invalid_client" in issue for issue in payload["diagnostics"]["issues"])


@pytest.mark.asyncio
async def test_validate_app_reports_unreachable_api(api_client, diagnostics_enabled, mock_provider):
    def unreachable(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    mock_provider(unreachable)

    payload = (await api_client.get("/api/tiktok/validate-app")).json()
    assert payload["status"] == "ISSUES_FOUND"
    assert payload["api_connectivity"]["reachable"] is False
    assert "Cannot reach TikTok API" in payload["issues"]


@pytest.mark.asyncio
async def test_check_db_schema_reports_table(api_client, diagnostics_enabled):
    payload = (await api_client.get("/api/check-db-schema")).json()
    assert payload["table_exists"] is True
    assert payload["table_accessible"] is True
    assert payload["missing_columns"] == []
