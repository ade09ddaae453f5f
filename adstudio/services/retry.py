"""Bounded retry helper for Ark runtime calls."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from adstudio.core.config import Settings
from adstudio.services.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def execute_with_retries(
    task: Callable[[], Awaitable[T]],
    *,
    settings: Settings,
    operation: str,
    request_id: str | None = None,
) -> T:
    """Run ``task`` with a per-call timeout, retrying with linear backoff.

    Raises `TransportError` chained to the last failure once attempts run out.
    """

    attempts = settings.ark_retry_attempts
    backoff = settings.ark_retry_backoff_seconds
    last_error: Exception | None = None

    for attempt in range(attempts + 1):
        try:
            return await asyncio.wait_for(task(), timeout=settings.ark_request_timeout)
        except Exception as exc:
            last_error = exc
            if attempt == attempts:
                break

            wait_seconds = backoff * (attempt + 1)
            logger.warning(
                "Ark %s attempt %s failed, retrying",
                operation,
                attempt + 1,
                extra={
                    "request_id": request_id,
                    "operation": operation,
                    "retry_after_s": wait_seconds,
                },
                exc_info=exc,
            )
            if wait_seconds > 0:
                await asyncio.sleep(wait_seconds)

    error_message = f"Ark {operation} call failed"
    if request_id:
        error_message = f"{error_message} (request_id={request_id})"
    raise TransportError(error_message) from last_error


__all__ = ["execute_with_retries"]
