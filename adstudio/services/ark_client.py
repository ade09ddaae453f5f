"""Helpers for creating Ark runtime clients."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from volcenginesdkarkruntime import AsyncArk

from adstudio.core.config import Settings


@asynccontextmanager
async def async_ark_client(settings: Settings) -> AsyncIterator[Optional[AsyncArk]]:
    """Yield an `AsyncArk` client configured from settings and ensure cleanup.

    Yields ``None`` when no Ark credentials are configured so callers can fall
    back to their static behaviour without a network round-trip.
    """

    if not settings.ark_configured:
        yield None
        return

    client = AsyncArk(
        api_key=settings.ark_api_key,
        ak=settings.ark_ak,
        sk=settings.ark_sk,
        base_url=settings.ark_base_url,
        timeout=settings.ark_request_timeout,
    )
    try:
        yield client
    finally:
        await client.close()


def image_part(data_uri: str) -> dict:
    """Build an inline image content part for a multimodal chat message."""

    return {"type": "image_url", "image_url": {"url": data_uri}}


def text_part(text: str) -> dict:
    return {"type": "text", "text": text}


def first_choice_text(response: object) -> str:
    """Return the stripped text of the first chat choice, or an empty string."""

    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    content = getattr(choices[0].message, "content", None)
    return (content or "").strip()


__all__ = ["async_ark_client", "first_choice_text", "image_part", "text_part"]
