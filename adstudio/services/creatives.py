"""Business workflow for generating downloadable ad creative packs."""
from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List
from uuid import uuid4

from adstudio.core.config import Settings
from adstudio.services.archive import build_zip_archive
from adstudio.services.ark_client import async_ark_client
from adstudio.services.captions import CaptionGenerator
from adstudio.services.context import BrandContext, UploadedImage, resolve_brand_context
from adstudio.services.credentials import CredentialPool
from adstudio.services.errors import AllUnitsFailedError, UploadValidationError
from adstudio.services.http_client import async_http_client
from adstudio.services.jobs import ImageJobClient
from adstudio.services.orchestrator import CreativeOrchestrator, GenerationUnit
from adstudio.services.postprocess import normalize_creative_image
from adstudio.services.prompts import PromptBuilder
from adstudio.services.vision import VisionDescriber

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CreativeArchive:
    """ZIP payload handed back to the HTTP layer."""

    request_id: str
    filename: str
    data: bytes
    creative_count: int
    failed_indices: List[int] = field(default_factory=list)


class CreativeService:
    """Coordinate brand detection, image jobs, captions and packaging."""

    def __init__(
        self,
        settings: Settings,
        *,
        credential_pool: CredentialPool | None = None,
    ) -> None:
        self._settings = settings
        self._pool = credential_pool or CredentialPool.from_settings(settings)

    async def generate_creatives(
        self,
        *,
        logo: UploadedImage | None,
        product: UploadedImage | None,
        brand_name: str | None = None,
        product_name: str | None = None,
    ) -> CreativeArchive:
        request_id = uuid4().hex
        logo, product = self._validate_inputs(logo=logo, product=product)
        count = self._settings.creative_variation_count
        started_at = time.perf_counter()

        logger.info(
            "Starting creative generation",
            extra={"request_id": request_id, "count": count},
        )

        async with async_ark_client(self._settings) as ark, async_http_client(
            self._settings
        ) as http:
            extraction = await VisionDescriber(self._settings, ark).describe(
                logo, product, request_id=request_id
            )
            context = resolve_brand_context(extraction, brand_name, product_name)
            logger.info(
                "Using brand context",
                extra={
                    "request_id": request_id,
                    "brand_context": context.description,
                    "brand_resolved": context.brand_resolved,
                    "product_resolved": context.product_resolved,
                },
            )

            staging_dir = Path(
                tempfile.mkdtemp(prefix="creatives-", dir=self._settings.creative_temp_dir)
            )
            units = [GenerationUnit(index=i) for i in range(count)]
            try:
                pipeline = _UnitPipeline(
                    settings=self._settings,
                    pool=self._pool,
                    prompts=PromptBuilder(self._settings, ark),
                    jobs=ImageJobClient(self._settings, http),
                    captions=CaptionGenerator(self._settings, ark),
                    context=context,
                    product=product,
                    staging_dir=staging_dir,
                    request_id=request_id,
                )
                orchestrator = CreativeOrchestrator(
                    concurrency=self._settings.creative_worker_concurrency,
                    request_id=request_id,
                )
                survivors = await orchestrator.run(units, pipeline.run)

                if not survivors:
                    logger.error(
                        "Creative generation failed for every unit",
                        extra={"request_id": request_id, "count": count},
                    )
                    raise AllUnitsFailedError(
                        f"Failed to generate any creatives (request_id={request_id})"
                    )

                entries = []
                for unit in survivors:
                    entries.append((unit.image_filename, unit.image_path))
                    entries.append((unit.caption_filename, unit.caption_path))
                data = await asyncio.to_thread(
                    build_zip_archive,
                    entries,
                    compresslevel=self._settings.archive_compresslevel,
                )
            finally:
                await asyncio.to_thread(_cleanup_staging, staging_dir, request_id)

        failed = [unit.index for unit in units if not unit.succeeded]
        if failed:
            logger.warning(
                "Creative generation completed with partial failures",
                extra={
                    "request_id": request_id,
                    "failed_units": failed,
                    "failures": {u.index: u.failure for u in units if u.failure},
                },
            )
        logger.info(
            "Creative generation completed",
            extra={
                "request_id": request_id,
                "creative_count": len(survivors),
                "failed_count": len(failed),
                "duration_ms": (time.perf_counter() - started_at) * 1000,
            },
        )
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        return CreativeArchive(
            request_id=request_id,
            filename=f"ad-creatives-{timestamp}.zip",
            data=data,
            creative_count=len(survivors),
            failed_indices=failed,
        )

    def _validate_inputs(
        self, *, logo: UploadedImage | None, product: UploadedImage | None
    ) -> tuple[UploadedImage, UploadedImage]:
        if logo is None or product is None:
            raise UploadValidationError("Both logo and product images are required")
        for image in (logo, product):
            if not image.data:
                raise UploadValidationError(f"Image {image.filename} is empty")
        return logo, product


@dataclass
class _UnitPipeline:
    """Per-unit stages: credential, prompt, image job, post-process, caption, stage."""

    settings: Settings
    pool: CredentialPool
    prompts: PromptBuilder
    jobs: ImageJobClient
    captions: CaptionGenerator
    context: BrandContext
    product: UploadedImage
    staging_dir: Path
    request_id: str

    async def run(self, unit: GenerationUnit) -> None:
        async with self.pool.lease(unit.index) as credential:
            unit.credential = credential.label
            built = await self.prompts.build(
                unit.index, self.context, self.product, request_id=self.request_id
            )
            unit.prompt = built.text
            unit.style = built.style
            unit.composition = built.composition
            raw = await self.jobs.generate(
                prompt=built.text,
                image=self.product,
                credential=credential,
                request_id=self.request_id,
                unit_index=unit.index,
                throttle=lambda: self.pool.charge(credential),
            )

        unit.image = await asyncio.to_thread(
            normalize_creative_image,
            raw,
            size=self.settings.canvas_size,
            quality=self.settings.jpeg_quality,
        )
        unit.caption = await self.captions.generate(
            built.text, unit.index, self.context, request_id=self.request_id
        )
        await asyncio.to_thread(self._stage, unit)

    def _stage(self, unit: GenerationUnit) -> None:
        image_path = self.staging_dir / unit.image_filename
        caption_path = self.staging_dir / unit.caption_filename
        image_path.write_bytes(unit.image or b"")
        caption_path.write_text(unit.caption or "", encoding="utf-8")
        unit.image_path = image_path
        unit.caption_path = caption_path


def _cleanup_staging(staging_dir: Path, request_id: str) -> None:
    """Best-effort removal of staged files; failures are logged, never raised."""

    try:
        children = list(staging_dir.iterdir())
    except OSError:
        children = []
    for child in children:
        try:
            child.unlink()
        except OSError:
            logger.warning(
                "Error cleaning up staged file",
                extra={"request_id": request_id, "path": str(child)},
                exc_info=True,
            )
    try:
        staging_dir.rmdir()
    except OSError:
        logger.warning(
            "Error removing staging directory",
            extra={"request_id": request_id, "path": str(staging_dir)},
            exc_info=True,
        )


__all__ = ["CreativeArchive", "CreativeService"]
