"""Public connector provider utilities."""

from services.connectors.providers import (
    BaseConnectorProvider,
    connector_capabilities,
    default_redirect_uri,
    get_connector_provider,
)
from services.connectors.types import (
    AccountStats,
    ConnectorStartResult,
    PlatformKey,
    ProviderConfigError,
    ProviderErrorKind,
    ProviderRequestError,
    StatsUnavailableError,
    SUPPORTED_PLATFORMS,
    TokenExchangeError,
    TokenExchangeOk,
    TokenExchangeResult,
    TokenExpiredError,
    TokenSet,
)

__all__ = [
    "AccountStats",
    "BaseConnectorProvider",
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
    "connector_capabilities",
    "default_redirect_uri",
    "get_connector_provider",
]
