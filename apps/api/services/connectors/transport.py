"""Outbound HTTP client construction for provider calls."""

import httpx

from config import settings


def build_client() -> httpx.AsyncClient:
    """Return a fresh async client; callers own it via ``async with``."""
    return httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
