"""API route registrations."""
from fastapi import APIRouter

from adstudio.api.routes import creatives


api_router = APIRouter()
api_router.include_router(creatives.router)

__all__ = ["api_router"]
