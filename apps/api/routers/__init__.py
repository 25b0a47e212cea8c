"""Routers package."""

from . import (
    health,
    auth,
    oauth_tokens,
    accounts,
    rates,
    diagnostics,
)
