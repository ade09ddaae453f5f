"""Ad creative generation endpoints."""
from __future__ import annotations

import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from adstudio.core.config import ConfigReport, Settings, get_settings, validate_settings
from adstudio.deps import get_creative_service
from adstudio.schemas.creatives import ErrorResponse
from adstudio.services.context import UploadedImage
from adstudio.services.creatives import CreativeService
from adstudio.services.errors import (
    AllUnitsFailedError,
    CreativeError,
    UploadValidationError,
)

router = APIRouter(prefix="/creatives", tags=["creatives"])


@router.post(
    "",
    response_class=Response,
    summary="Generate a ZIP of ad creatives from a logo and a product photo",
    responses={
        200: {"content": {"application/zip": {}}},
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def generate_creatives(
    logo: Optional[UploadFile] = File(default=None, description="Brand logo image"),
    product: Optional[UploadFile] = File(default=None, description="Product photo"),
    brand_name: Optional[str] = Form(
        default=None, description="Brand name used when it cannot be detected"
    ),
    product_name: Optional[str] = Form(
        default=None, description="Product name used when it cannot be detected"
    ),
    settings: Settings = Depends(get_settings),
    service: CreativeService = Depends(get_creative_service),
) -> Response:
    """Return image + caption pairs packaged as a ZIP download."""

    logo_image = await _to_uploaded_image(logo, settings=settings)
    product_image = await _to_uploaded_image(product, settings=settings)

    try:
        archive = await service.generate_creatives(
            logo=logo_image,
            product=product_image,
            brand_name=brand_name,
            product_name=product_name,
        )
    except UploadValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AllUnitsFailedError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except CreativeError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(
            status_code=500, detail=f"Could not prepare creative workspace: {exc}"
        ) from exc

    return Response(
        content=archive.data,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{archive.filename}"',
            "X-Creative-Count": str(archive.creative_count),
            "X-Request-Id": archive.request_id,
        },
    )


@router.get("/config", response_model=ConfigReport, summary="Configuration check result")
async def configuration_report(
    request: Request, settings: Settings = Depends(get_settings)
) -> ConfigReport:
    report = getattr(request.app.state, "config_report", None)
    if report is None:
        report = validate_settings(settings)
    return report


UPLOAD_READ_CHUNK_SIZE = 64 * 1024  # 64 KiB per chunk


async def _to_uploaded_image(
    file: UploadFile | None, *, settings: Settings
) -> UploadedImage | None:
    if file is None:
        return None

    content_type = _resolve_content_type(file)
    if content_type and not any(
        content_type.startswith(prefix)
        for prefix in settings.creative_allowed_mime_prefixes
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File {file.filename or 'uploaded-image'} is not a supported image format",
        )

    data = await _read_upload_bytes(file, limit=settings.creative_upload_max_bytes)
    return UploadedImage(
        filename=file.filename or "uploaded-image",
        content_type=content_type,
        data=data,
    )


def _resolve_content_type(file: UploadFile) -> str | None:
    if file.content_type:
        return file.content_type
    guessed_type, _ = mimetypes.guess_type(file.filename or "")
    return guessed_type


async def _read_upload_bytes(file: UploadFile, *, limit: int) -> bytes:
    total = 0
    chunks: list[bytes] = []
    try:
        while True:
            remaining = limit - total
            if remaining <= 0:
                # One more byte tells us whether the upload is exactly at the limit.
                if await file.read(1):
                    raise _payload_too_large(limit)
                break

            chunk = await file.read(min(UPLOAD_READ_CHUNK_SIZE, remaining))
            if not chunk:
                break

            total += len(chunk)
            chunks.append(chunk)
    finally:
        await file.close()

    return b"".join(chunks)


def _payload_too_large(limit: int) -> HTTPException:
    size_mb = limit / (1024 * 1024)
    if size_mb.is_integer():
        size_label = f"{int(size_mb)}MB"
    else:
        size_label = f"{size_mb:.1f}MB"
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"Each image must be smaller than {size_label}",
    )
