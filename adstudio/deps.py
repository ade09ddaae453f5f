"""FastAPI dependency helpers."""
from __future__ import annotations

from fastapi import Depends

from adstudio.core.config import Settings, get_settings
from adstudio.services.creatives import CreativeService


def get_creative_service(
    settings: Settings = Depends(get_settings),
) -> CreativeService:
    """Provide a creative service instance per request."""

    return CreativeService(settings)
