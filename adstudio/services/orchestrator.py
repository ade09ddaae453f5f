"""Bounded worker pool driving creative units through their pipeline."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationUnit:
    """One requested creative variation and its progress through the pipeline."""

    index: int
    credential: Optional[str] = None
    style: Optional[str] = None
    composition: Optional[str] = None
    prompt: Optional[str] = None
    image: Optional[bytes] = None
    caption: Optional[str] = None
    failure: Optional[str] = None
    image_path: Optional[Path] = None
    caption_path: Optional[Path] = None
    duration_ms: Optional[float] = None

    @property
    def image_filename(self) -> str:
        return f"creative-{self.index + 1}.jpg"

    @property
    def caption_filename(self) -> str:
        return f"creative-{self.index + 1}.txt"

    @property
    def succeeded(self) -> bool:
        return (
            self.failure is None
            and self.image_path is not None
            and self.caption_path is not None
        )


UnitHandler = Callable[[GenerationUnit], Awaitable[None]]


class CreativeOrchestrator:
    """Run independent units concurrently with a fixed number of workers."""

    def __init__(self, *, concurrency: int, request_id: str | None = None) -> None:
        self._concurrency = max(1, concurrency)
        self._request_id = request_id

    async def run(
        self, units: Sequence[GenerationUnit], handler: UnitHandler
    ) -> List[GenerationUnit]:
        """Process every unit and return the ones that succeeded, ordered by index."""

        queue: asyncio.Queue[GenerationUnit] = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        worker_count = min(self._concurrency, len(units))
        workers = [
            asyncio.create_task(self._worker(worker_id, queue, handler))
            for worker_id in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()

        return sorted((u for u in units if u.succeeded), key=lambda u: u.index)

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue[GenerationUnit],
        handler: UnitHandler,
    ) -> None:
        while True:
            try:
                unit = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._run_unit(worker_id, unit, handler)

    async def _run_unit(
        self, worker_id: int, unit: GenerationUnit, handler: UnitHandler
    ) -> None:
        started = time.perf_counter()
        logger.info(
            "Starting creative unit",
            extra={
                "request_id": self._request_id,
                "unit_index": unit.index,
                "worker_id": worker_id,
            },
        )
        try:
            await handler(unit)
        except Exception as exc:
            unit.failure = str(exc) or exc.__class__.__name__
            logger.warning(
                "Creative unit failed",
                extra={
                    "request_id": self._request_id,
                    "unit_index": unit.index,
                    "worker_id": worker_id,
                    "error_type": exc.__class__.__name__,
                },
                exc_info=exc,
            )
        else:
            logger.info(
                "Creative unit completed",
                extra={
                    "request_id": self._request_id,
                    "unit_index": unit.index,
                    "worker_id": worker_id,
                    "credential": unit.credential,
                },
            )
        finally:
            unit.duration_ms = (time.perf_counter() - started) * 1000


__all__ = ["CreativeOrchestrator", "GenerationUnit", "UnitHandler"]
