"""Per-platform OAuth adapters.

Each provider builds its authorization URL, exchanges authorization codes and
refreshes tokens against its own token endpoint, and normalizes whatever shape
the provider answers with into a ``TokenExchangeOk``/``TokenExchangeError``.
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode

import httpx

from config import PROVIDER_TITLES, provider_credentials, require_provider_credentials, settings
from services.connectors import transport
from services.connectors.types import (
    PlatformKey,
    ProviderErrorKind,
    ProviderRequestError,
    SUPPORTED_PLATFORMS,
    TokenExchangeError,
    TokenExchangeOk,
    TokenExchangeResult,
    TokenSet,
)


logger = logging.getLogger(__name__)

_KIND_BY_CODE = {
    "invalid_client": ProviderErrorKind.INVALID_CLIENT,
    "unauthorized_client": ProviderErrorKind.INVALID_CLIENT,
    "invalid_grant": ProviderErrorKind.INVALID_GRANT,
    "redirect_uri_mismatch": ProviderErrorKind.REDIRECT_URI_MISMATCH,
    "access_denied": ProviderErrorKind.ACCESS_DENIED,
}


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def locate_token_payload(payload: Any) -> Optional[Dict[str, Any]]:
    """Find the mapping carrying ``access_token``: top level, ``data``, then ``result``."""
    if not isinstance(payload, dict):
        return None
    for candidate in (payload, payload.get("data"), payload.get("result")):
        if isinstance(candidate, dict) and candidate.get("access_token"):
            return candidate
    return None


def locate_provider_error(payload: Any) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(error_code, description)`` from the many error shapes providers use."""
    if not isinstance(payload, dict):
        return None, None

    candidates = [payload]
    for key in ("data", "result"):
        if isinstance(payload.get(key), dict):
            candidates.append(payload[key])

    for candidate in candidates:
        error = candidate.get("error")
        if isinstance(error, dict):
            code = error.get("code") or error.get("type")
            message = error.get("message") or error.get("error_user_msg")
            if code in (None, "", "ok", 0):
                continue
            return str(code), message
        if error:
            description = candidate.get("error_description") or candidate.get("message")
            return str(error), description
        # Instagram Basic Display style
        if candidate.get("error_type"):
            return str(candidate["error_type"]), candidate.get("error_message")
    return None, None


def classify_provider_error(code: Optional[str], description: Optional[str]) -> ProviderErrorKind:
    kind = _KIND_BY_CODE.get((code or "").strip().lower())
    if kind:
        return kind
    text = (description or "").lower()
    if "redirect_uri" in text or "redirect uri" in text:
        return ProviderErrorKind.REDIRECT_URI_MISMATCH
    if "authorization code" in text or "code has been used" in text or "code has expired" in text:
        return ProviderErrorKind.INVALID_GRANT
    return ProviderErrorKind.UNKNOWN


def parse_provider_body(response: httpx.Response, title: str) -> Any:
    """Parse a provider body as JSON, falling back to form-urlencoded."""
    try:
        return response.json()
    except ValueError:
        text = response.text.strip()
        if text and "=" in text and not text.startswith("<"):
            parsed = dict(parse_qsl(text, keep_blank_values=True))
            if parsed:
                return parsed
        raise ProviderRequestError(f"Invalid response from {title} API", details=response.text)


class BaseConnectorProvider(ABC):
    platform: PlatformKey
    authorize_url: str
    token_url: str
    scopes: List[str]
    scope_separator: str = " "
    client_id_param: str = "client_id"
    default_token_type: str = "Bearer"
    developer_console_url: str
    extra_authorize_params: Dict[str, str] = {}
    token_request_headers: Dict[str, str] = {}

    @property
    def title(self) -> str:
        return PROVIDER_TITLES[self.platform]

    @property
    def configured(self) -> bool:
        client_id, client_secret = provider_credentials(self.platform)
        return bool(client_id and client_secret)

    # ---- Connect initiator ----

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        client_id, _ = require_provider_credentials(self.platform)
        params = {
            self.client_id_param: client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope_separator.join(self.scopes),
            "response_type": "code",
            "state": state,
            **self.extra_authorize_params,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    # ---- Token exchanger ----

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenExchangeResult:
        client_id, client_secret = require_provider_credentials(self.platform)
        form = {
            self.client_id_param: client_id,
            "client_secret": client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        logger.info(
            "%s token exchange: code_length=%s redirect_uri=%s",
            self.title,
            len(code or ""),
            redirect_uri,
        )
        return await self._post_token_request(form)

    async def refresh(self, token: str) -> TokenExchangeResult:
        client_id, client_secret = require_provider_credentials(self.platform)
        form = {
            self.client_id_param: client_id,
            "client_secret": client_secret,
            "refresh_token": token,
            "grant_type": "refresh_token",
        }
        return await self._post_token_request(form)

    async def _post_token_request(self, form: Dict[str, str]) -> TokenExchangeResult:
        headers = {"Content-Type": "application/x-www-form-urlencoded", **self.token_request_headers}
        try:
            async with transport.build_client() as client:
                response = await client.post(self.token_url, data=form, headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("%s token endpoint unreachable: %s", self.title, exc)
            raise ProviderRequestError(f"Could not reach {self.title} token endpoint", details=str(exc), network=True) from exc

        payload = parse_provider_body(response, self.title)
        return self.normalize_token_response(response.status_code, payload)

    def normalize_token_response(self, status_code: int, payload: Any) -> TokenExchangeResult:
        """Turn a raw token endpoint answer into a tagged result."""
        token_payload = locate_token_payload(payload)
        if 200 <= status_code < 300 and token_payload:
            return TokenExchangeOk(tokens=self._token_set(token_payload, payload))

        error_code, description = locate_provider_error(payload)
        if 200 <= status_code < 300 and not error_code:
            logger.error("%s token response had no access token", self.title)
            return TokenExchangeError(
                kind=ProviderErrorKind.UNKNOWN,
                message="No access token in response",
                provider_error=None,
                status_code=500,
                details=payload,
            )

        kind = classify_provider_error(error_code, description)
        logger.warning(
            "%s rejected token request: status=%s error=%s kind=%s",
            self.title,
            status_code,
            error_code,
            kind.value,
        )
        message, suggestions = self.error_guidance(kind)
        if kind is ProviderErrorKind.UNKNOWN:
            message = description or error_code or "Token exchange failed"
        return TokenExchangeError(
            kind=kind,
            message=message,
            provider_error=error_code,
            status_code=400,
            details=payload,
            suggestions=suggestions,
        )

    def _token_set(self, token_payload: Dict[str, Any], raw: Any) -> TokenSet:
        platform_user_id = token_payload.get("open_id") or token_payload.get("user_id")
        scope = token_payload.get("scope")
        if isinstance(scope, list):
            scope = self.scope_separator.join(str(s) for s in scope)
        return TokenSet(
            access_token=str(token_payload["access_token"]),
            refresh_token=token_payload.get("refresh_token") or None,
            expires_in=_as_int(token_payload.get("expires_in")),
            scope=scope or None,
            token_type=token_payload.get("token_type") or self.default_token_type,
            platform_user_id=str(platform_user_id) if platform_user_id else None,
        )

    def error_guidance(self, kind: ProviderErrorKind) -> Tuple[str, List[str]]:
        title = self.title
        console = self.developer_console_url
        if kind is ProviderErrorKind.INVALID_CLIENT:
            return (
                f"{title} rejected the app credentials. Verify the client credentials in the "
                f"{title} developer console ({console}) and make sure the app is approved.",
                [
                    f"Verify {title} app credentials in the developer console",
                    "Ensure the login product is enabled for the app",
                    "Check that the app is approved for production use",
                    "Verify the redirect URI exactly matches the registered URI",
                ],
            )
        if kind is ProviderErrorKind.INVALID_GRANT:
            return (
                f"The {title} authorization code has expired or was already used. "
                "Please reconnect your account.",
                [
                    "Authorization codes expire after about 10 minutes",
                    "Each code can only be exchanged once",
                    "Ensure the redirect URI matches the one used for authorization",
                ],
            )
        if kind is ProviderErrorKind.REDIRECT_URI_MISMATCH:
            return (
                f"The redirect URI does not match the one registered for the {title} app.",
                [f"Register the exact callback URL in the {title} developer console ({console})"],
            )
        if kind is ProviderErrorKind.ACCESS_DENIED:
            return (
                f"{title} access was denied. The account owner declined consent or the app "
                "is not approved for the requested scopes.",
                [f"Check the app review status in the {title} developer console ({console})"],
            )
        return "Token exchange failed", []


class YouTubeConnectorProvider(BaseConnectorProvider):
    platform: PlatformKey = "youtube"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    scopes = [
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/yt-analytics.readonly",
    ]
    developer_console_url = "https://console.cloud.google.com/apis/credentials"
    extra_authorize_params = {"access_type": "offline", "prompt": "consent"}


class InstagramConnectorProvider(BaseConnectorProvider):
    platform: PlatformKey = "instagram"
    authorize_url = "https://api.instagram.com/oauth/authorize"
    token_url = "https://api.instagram.com/oauth/access_token"
    long_lived_token_url = "https://graph.instagram.com/access_token"
    refresh_url = "https://graph.instagram.com/refresh_access_token"
    scopes = ["user_profile", "user_media"]
    scope_separator = ","
    default_token_type = "bearer"
    developer_console_url = "https://developers.facebook.com/apps"
    short_lived_expires_in = 3600

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenExchangeResult:
        result = await super().exchange_code(code, redirect_uri)
        if not isinstance(result, TokenExchangeOk):
            return result

        short_lived = result.tokens
        _, client_secret = require_provider_credentials(self.platform)
        long_lived = await self._get_token(
            self.long_lived_token_url,
            {
                "grant_type": "ig_exchange_token",
                "client_secret": client_secret,
                "access_token": short_lived.access_token,
            },
            soft=True,
        )
        if isinstance(long_lived, TokenExchangeOk):
            logger.info("Instagram long-lived token exchange successful")
            tokens = long_lived.tokens
            return TokenExchangeOk(
                tokens=TokenSet(
                    access_token=tokens.access_token,
                    expires_in=tokens.expires_in,
                    token_type=tokens.token_type,
                    scope=short_lived.scope,
                    platform_user_id=short_lived.platform_user_id,
                )
            )

        logger.warning("Instagram long-lived token exchange failed, returning short-lived token")
        return TokenExchangeOk(
            tokens=TokenSet(
                access_token=short_lived.access_token,
                expires_in=short_lived.expires_in or self.short_lived_expires_in,
                token_type=short_lived.token_type,
                scope=short_lived.scope,
                platform_user_id=short_lived.platform_user_id,
            )
        )

    async def refresh(self, token: str) -> TokenExchangeResult:
        """Extend a long-lived token. Instagram refreshes with the access token itself."""
        return await self._get_token(
            self.refresh_url,
            {"grant_type": "ig_refresh_token", "access_token": token},
        )

    async def _get_token(self, url: str, params: Dict[str, str], soft: bool = False) -> Optional[TokenExchangeResult]:
        try:
            async with transport.build_client() as client:
                response = await client.get(url, params=params)
            payload = parse_provider_body(response, self.title)
        except (httpx.HTTPError, ProviderRequestError) as exc:
            if soft:
                logger.warning("Instagram token call to %s failed: %s", url, exc)
                return None
            if isinstance(exc, ProviderRequestError):
                raise
            logger.exception("Instagram token endpoint unreachable: %s", exc)
            raise ProviderRequestError("Could not reach Instagram token endpoint", details=str(exc), network=True) from exc
        return self.normalize_token_response(response.status_code, payload)


class TikTokConnectorProvider(BaseConnectorProvider):
    platform: PlatformKey = "tiktok"
    authorize_url = "https://www.tiktok.com/v2/auth/authorize/"
    token_url = "https://open.tiktokapis.com/v2/oauth/token/"
    scopes = [
        "user.info.basic",
        "user.info.profile",
        "user.info.stats",
        "video.list",
    ]
    scope_separator = ","
    client_id_param = "client_key"
    developer_console_url = "https://developers.tiktok.com/apps"
    token_request_headers = {"Cache-Control": "no-cache"}


_PROVIDERS = {
    "youtube": YouTubeConnectorProvider,
    "instagram": InstagramConnectorProvider,
    "tiktok": TikTokConnectorProvider,
}


def default_redirect_uri(platform: PlatformKey) -> str:
    """Frontend callback page registered with each provider."""
    return f"{settings.APP_BASE_URL.rstrip('/')}/auth/{platform}/callback"


def connector_capabilities() -> Dict[str, bool]:
    return {f"{platform}_oauth_available": get_connector_provider(platform).configured for platform in SUPPORTED_PLATFORMS}


def get_connector_provider(platform: PlatformKey) -> BaseConnectorProvider:
    try:
        return _PROVIDERS[platform]()
    except KeyError as exc:
        raise ValueError(f"Unsupported platform: {platform}") from exc
