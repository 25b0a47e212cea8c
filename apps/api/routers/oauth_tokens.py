"""
Token exchange and refresh endpoints, one parameterized route per operation
for every supported platform.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from routers.auth_scope import ensure_supported_platform
from routers.rate_limit import rate_limit
from services.connectors import (
    ProviderConfigError,
    ProviderRequestError,
    TokenExchangeOk,
    TokenExchangeResult,
    get_connector_provider,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class ExchangeTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    redirect_uri: Optional[str] = Field(default=None, alias="redirectUri")


class RefreshTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    access_token: Optional[str] = Field(default=None, alias="accessToken")


def _result_response(result: TokenExchangeResult) -> JSONResponse:
    if isinstance(result, TokenExchangeOk):
        return JSONResponse(status_code=200, content=result.tokens.to_response())
    return JSONResponse(status_code=result.status_code, content=result.to_response())


def _request_error_response(exc: ProviderRequestError) -> JSONResponse:
    if exc.network:
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": exc.details})
    return JSONResponse(status_code=500, content={"error": str(exc), "details": exc.details})


@router.post(
    "/{platform}/exchange-token",
    dependencies=[Depends(rate_limit("token_exchange", limit=30, window_seconds=60))],
)
async def exchange_token(platform: str, request: Optional[ExchangeTokenRequest] = None):
    """
    Exchange an authorization code for tokens.

    Nothing is persisted here; the caller stores the returned tokens.
    """
    platform = ensure_supported_platform(platform)
    request = request or ExchangeTokenRequest()
    if not request.code or not request.redirect_uri:
        return JSONResponse(status_code=400, content={"error": "Missing required parameters"})

    provider = get_connector_provider(platform)
    try:
        result = await provider.exchange_code(request.code, request.redirect_uri)
    except ProviderConfigError as exc:
        logger.error("%s token exchange attempted without credentials", provider.title)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    except ProviderRequestError as exc:
        return _request_error_response(exc)

    return _result_response(result)


@router.post(
    "/{platform}/refresh-token",
    dependencies=[Depends(rate_limit("token_refresh", limit=30, window_seconds=60))],
)
async def refresh_token(platform: str, request: Optional[RefreshTokenRequest] = None):
    """Refresh tokens. Instagram extends its long-lived access token instead."""
    platform = ensure_supported_platform(platform)
    request = request or RefreshTokenRequest()
    if platform == "instagram":
        token = request.access_token
        if not token:
            return JSONResponse(status_code=400, content={"error": "Access token is required"})
    else:
        token = request.refresh_token
        if not token:
            return JSONResponse(status_code=400, content={"error": "Missing refresh token"})

    provider = get_connector_provider(platform)
    try:
        result = await provider.refresh(token)
    except ProviderConfigError as exc:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    except ProviderRequestError as exc:
        return _request_error_response(exc)

    return _result_response(result)
