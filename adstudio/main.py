"""FastAPI application entrypoint for the ad creative studio backend."""
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from adstudio.api.routes import api_router
from adstudio.core.config import get_settings, validate_settings

logger = logging.getLogger(__name__)

_ISSUE_LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Respect a settings override installed by tests
    settings_override = app.dependency_overrides.get(get_settings)
    settings = settings_override() if callable(settings_override) else get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    report = validate_settings(settings)
    app.state.config_report = report
    for issue in report.issues:
        logger.log(
            _ISSUE_LOG_LEVELS[issue.level],
            "Configuration check: %s",
            issue.message,
            extra={"component": issue.component},
        )
    yield


app = FastAPI(title="Ad Creative Studio API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Creative-Count", "X-Request-Id"],
)

app.include_router(api_router, prefix="/api")


class HealthResponse(BaseModel):
    status: str = "ok"


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    """Return service health information for monitoring and load-balancers."""
    return HealthResponse()


@app.middleware("http")
async def request_log_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "%s %s -> %s",
        request.method,
        request.url.path,
        response.status_code,
        extra={"http_request_id": request_id, "duration_ms": elapsed_ms},
    )
    # Keep a request id already set by the route (creative generation).
    if "X-Request-Id" not in response.headers:
        response.headers["X-Request-Id"] = request_id
    return response
