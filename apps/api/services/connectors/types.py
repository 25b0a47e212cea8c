"""Connector provider contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from config import ProviderConfigError


PlatformKey = Literal["youtube", "instagram", "tiktok"]
SUPPORTED_PLATFORMS = ("youtube", "instagram", "tiktok")


class ProviderRequestError(RuntimeError):
    """Raised when a provider cannot be reached or answers with an unparseable body."""

    def __init__(self, message: str, details: Any = None, network: bool = False) -> None:
        super().__init__(message)
        self.details = details
        self.network = network


class ProviderErrorKind(str, Enum):
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    REDIRECT_URI_MISMATCH = "redirect_uri_mismatch"
    ACCESS_DENIED = "access_denied"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"
    platform_user_id: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token:
            payload["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            payload["expires_in"] = self.expires_in
        if self.scope:
            payload["scope"] = self.scope
        if self.platform_user_id:
            payload["platform_user_id"] = self.platform_user_id
        return payload


@dataclass(frozen=True)
class TokenExchangeOk:
    tokens: TokenSet
    ok: Literal[True] = True


@dataclass(frozen=True)
class TokenExchangeError:
    kind: ProviderErrorKind
    message: str
    provider_error: Optional[str]
    status_code: int
    details: Any = None
    suggestions: List[str] = field(default_factory=list)
    ok: Literal[False] = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_kind": self.kind.value,
            "provider_error": self.provider_error,
            "suggestions": list(self.suggestions),
            "details": self.details,
        }


TokenExchangeResult = Union[TokenExchangeOk, TokenExchangeError]


@dataclass(frozen=True)
class ConnectorStartResult:
    platform: PlatformKey
    authorization_url: str
    state: str
    redirect_uri: str


class TokenExpiredError(RuntimeError):
    """Raised by stats clients when the provider answers 401."""


class StatsUnavailableError(RuntimeError):
    """Raised when stats cannot be fetched even after the allowed refresh."""


@dataclass
class AccountStats:
    """Uniform display shape for a connected account's statistics."""

    platform: PlatformKey
    platform_user_id: Optional[str] = None
    display_name: str = ""
    username: str = ""
    followers: Optional[int] = None
    following: Optional[int] = None
    post_count: int = 0
    total_views: int = 0
    total_likes: int = 0
    average_views: float = 0.0
    engagement_rate: float = 0.0
    avatar_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "AccountStats",
    "ConnectorStartResult",
    "PlatformKey",
    "ProviderConfigError",
    "ProviderErrorKind",
    "ProviderRequestError",
    "StatsUnavailableError",
    "SUPPORTED_PLATFORMS",
    "TokenExchangeError",
    "TokenExchangeOk",
    "TokenExchangeResult",
    "TokenExpiredError",
    "TokenSet",
]
