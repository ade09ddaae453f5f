"""Image API credential selection and pooling.

Several rate-limited API keys can be configured. `credential_slot_for_index`
partitions variation indices over the key slots (first four on slot 1, next three
on slot 2, the rest on slot 3). `CredentialPool` builds on that preference but
hands out keys only while they have in-flight capacity and request budget left
in the current window, so a busy key spills work over to an idle one. Every
request sent with a key (the submission and every status poll) is charged
through `charge`, which waits for the window to reopen once the budget is spent.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Mapping, Optional, Sequence

from adstudio.core.config import Settings
from adstudio.services.rate_limit import RateConfig, RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_SLOT_SIZES: tuple[int, ...] = (4, 3)


@dataclass(frozen=True, slots=True)
class ApiCredential:
    slot: int
    token: str

    @property
    def label(self) -> str:
        return f"key-{self.slot}"


def credential_slot_for_index(
    index: int, slot_sizes: Sequence[int] = DEFAULT_SLOT_SIZES
) -> int:
    """Map a variation index to a 1-based credential slot."""

    boundary = 0
    for slot, size in enumerate(slot_sizes, start=1):
        boundary += size
        if index < boundary:
            return slot
    return len(slot_sizes) + 1


def select_credential(
    index: int,
    slots: Mapping[int, Optional[str]],
    default: Optional[str] = None,
    slot_sizes: Sequence[int] = DEFAULT_SLOT_SIZES,
) -> str:
    """Return the token for ``index``; unconfigured slots use ``default``."""

    return slots.get(credential_slot_for_index(index, slot_sizes)) or default or ""


class CredentialPool:
    """Hand out credentials with per-key concurrency and request-window limits."""

    def __init__(
        self,
        credentials: Sequence[ApiCredential],
        *,
        slots: Mapping[int, Optional[str]] | None = None,
        default: Optional[str] = None,
        max_in_flight: int = 1,
        rate_config: RateConfig | None = None,
        retry_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not credentials:
            raise ValueError("CredentialPool requires at least one credential")
        self._credentials: List[ApiCredential] = list(credentials)
        self._slots = dict(slots or {})
        self._default = default
        self._max_in_flight = max(1, max_in_flight)
        self._limiter = RateLimiter(rate_config, clock=clock) if rate_config else None
        self._retry_interval = retry_interval
        self._in_flight: dict[str, int] = {c.token: 0 for c in self._credentials}
        self._condition = asyncio.Condition()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialPool":
        slots = settings.image_credential_slots
        default = settings.default_image_credential
        credentials: List[ApiCredential] = []
        seen: set[str] = set()
        for slot in sorted(slots):
            token = slots[slot] or default
            if not token or token in seen:
                continue
            seen.add(token)
            credentials.append(ApiCredential(slot=slot, token=token))
        if not credentials:
            # Downstream calls report the missing key as an auth failure.
            credentials.append(ApiCredential(slot=1, token=""))
        return cls(
            credentials,
            slots=slots,
            default=default,
            max_in_flight=settings.credential_max_in_flight,
            rate_config=RateConfig(
                window_seconds=settings.credential_rate_window_seconds,
                max_requests=settings.credential_rate_max_requests,
            ),
        )

    @property
    def credentials(self) -> List[ApiCredential]:
        return list(self._credentials)

    def in_flight(self, credential: ApiCredential) -> int:
        return self._in_flight.get(credential.token, 0)

    async def acquire(self, hint: int | None = None) -> ApiCredential:
        """Wait for a credential with capacity, preferring the one ``hint`` maps to."""

        async with self._condition:
            while True:
                credential = self._try_take(hint)
                if credential is not None:
                    return credential
                try:
                    await asyncio.wait_for(self._condition.wait(), timeout=self._next_wait())
                except asyncio.TimeoutError:
                    pass

    async def release(self, credential: ApiCredential) -> None:
        async with self._condition:
            current = self._in_flight.get(credential.token, 0)
            self._in_flight[credential.token] = max(0, current - 1)
            self._condition.notify_all()

    @asynccontextmanager
    async def lease(self, hint: int | None = None) -> AsyncIterator[ApiCredential]:
        credential = await self.acquire(hint)
        try:
            yield credential
        finally:
            await self.release(credential)

    async def charge(self, credential: ApiCredential) -> None:
        """Spend one request from ``credential``'s window, waiting if it is used up."""

        if self._limiter is None:
            return
        while not self._limiter.allow(credential.token):
            wait_seconds = self._limiter.retry_after(credential.token)
            logger.info(
                "Credential request budget spent, waiting for next window",
                extra={"credential": credential.label, "retry_after_s": wait_seconds},
            )
            await asyncio.sleep(max(wait_seconds, 0.01))

    def _try_take(self, hint: int | None) -> ApiCredential | None:
        for credential in self._candidates(hint):
            if self._in_flight[credential.token] >= self._max_in_flight:
                continue
            if self._limiter and self._limiter.retry_after(credential.token) > 0:
                continue
            self._in_flight[credential.token] += 1
            logger.debug(
                "Credential acquired",
                extra={
                    "credential": credential.label,
                    "unit_index": hint,
                    "in_flight": self._in_flight[credential.token],
                },
            )
            return credential
        return None

    def _next_wait(self) -> float:
        """Sleep until the earliest request window reopens, at most ``retry_interval``."""

        if self._limiter is None:
            return self._retry_interval
        waits = [
            self._limiter.retry_after(c.token)
            for c in self._credentials
            if self._in_flight[c.token] < self._max_in_flight
        ]
        blocked = [w for w in waits if w > 0]
        if not blocked:
            return self._retry_interval
        return min(self._retry_interval, max(0.01, min(blocked)))

    def _candidates(self, hint: int | None) -> List[ApiCredential]:
        if hint is None:
            return list(self._credentials)
        preferred_token = select_credential(hint, self._slots, self._default)
        preferred = [c for c in self._credentials if c.token == preferred_token]
        return preferred + [c for c in self._credentials if c.token != preferred_token]


__all__ = [
    "ApiCredential",
    "CredentialPool",
    "DEFAULT_SLOT_SIZES",
    "credential_slot_for_index",
    "select_credential",
]
