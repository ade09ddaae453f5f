"""Helpers for creating HTTP clients for the image job service."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from adstudio.core.config import Settings


@asynccontextmanager
async def async_http_client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    """Yield an `httpx.AsyncClient` configured from settings and ensure cleanup."""

    client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.image_request_timeout, connect=10.0),
        follow_redirects=True,
    )
    try:
        yield client
    finally:
        await client.aclose()


__all__ = ["async_http_client"]
