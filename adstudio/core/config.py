"""Application-wide settings and startup configuration checks."""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NEGATIVE_PROMPT = (
    "blurry, distorted, low quality, duplicate, watermark, text overlay, ugly, bad anatomy"
)


class Settings(BaseSettings):
    """Global application configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Image-edit job service (wavespeed behind the Hugging Face router)
    hf_api_key: Optional[str] = Field(default=None, env="HF_API_KEY")
    hf_api_key1: Optional[str] = Field(default=None, env="HF_API_KEY1")
    hf_api_key2: Optional[str] = Field(default=None, env="HF_API_KEY2")
    hf_api_key3: Optional[str] = Field(default=None, env="HF_API_KEY3")
    hf_router_base_url: str = Field(
        default="https://router.huggingface.co", env="HF_ROUTER_BASE_URL"
    )
    image_edit_path: str = Field(
        default="/wavespeed/api/v3/wavespeed-ai/flux-2-dev/edit", env="IMAGE_EDIT_PATH"
    )
    image_result_path: str = Field(
        default="/wavespeed/api/v3/predictions/{job_id}/result",
        env="IMAGE_RESULT_PATH",
    )
    image_negative_prompt: str = Field(
        default=DEFAULT_NEGATIVE_PROMPT, env="IMAGE_NEGATIVE_PROMPT"
    )
    image_request_timeout: float = Field(default=60.0, env="IMAGE_REQUEST_TIMEOUT")
    job_poll_interval_seconds: float = Field(
        default=2.0, env="JOB_POLL_INTERVAL_SECONDS"
    )
    job_poll_max_attempts: int = Field(default=60, env="JOB_POLL_MAX_ATTEMPTS")

    # Ark runtime (vision description, prompt synthesis, captions)
    ark_api_key: Optional[str] = Field(default=None, env="ARK_API_KEY")
    ark_ak: Optional[str] = Field(default=None, env="ARK_AK")
    ark_sk: Optional[str] = Field(default=None, env="ARK_SK")
    ark_base_url: str = Field(
        default="https://ark.cn-beijing.volces.com/api/v3", env="ARK_BASE_URL"
    )
    ark_vision_model: str = Field(
        default="ep-20240620000000-vision", env="ARK_VISION_MODEL"
    )
    ark_caption_model: str = Field(
        default="ep-20240620000000-caption", env="ARK_CAPTION_MODEL"
    )
    ark_request_timeout: float = Field(default=120.0, env="ARK_REQUEST_TIMEOUT")
    ark_retry_attempts: int = Field(default=2, env="ARK_RETRY_ATTEMPTS")
    ark_retry_backoff_seconds: float = Field(
        default=1.5, env="ARK_RETRY_BACKOFF_SECONDS"
    )
    prompt_max_tokens: int = Field(default=400, env="PROMPT_MAX_TOKENS")
    caption_temperature: float = Field(default=0.8, env="CAPTION_TEMPERATURE")
    caption_max_tokens: int = Field(default=200, env="CAPTION_MAX_TOKENS")

    # Orchestration
    creative_variation_count: int = Field(default=10, env="CREATIVE_VARIATION_COUNT")
    creative_worker_concurrency: int = Field(
        default=3, env="CREATIVE_WORKER_CONCURRENCY"
    )
    credential_max_in_flight: int = Field(default=2, env="CREDENTIAL_MAX_IN_FLIGHT")
    credential_rate_window_seconds: int = Field(
        default=60, env="CREDENTIAL_RATE_WINDOW_SECONDS"
    )
    credential_rate_max_requests: int = Field(
        default=60, env="CREDENTIAL_RATE_MAX_REQUESTS"
    )

    # Output
    canvas_size: int = Field(default=1024, env="CANVAS_SIZE")
    jpeg_quality: int = Field(default=90, env="JPEG_QUALITY")
    archive_compresslevel: int = Field(default=9, env="ARCHIVE_COMPRESSLEVEL")
    creative_temp_dir: Optional[str] = Field(default=None, env="CREATIVE_TEMP_DIR")

    # Uploads
    creative_allowed_mime_prefixes: tuple[str, ...] = Field(
        default=("image/",), env="CREATIVE_ALLOWED_MIME_PREFIXES"
    )
    creative_upload_max_bytes: int = Field(
        default=10 * 1024 * 1024, env="CREATIVE_UPLOAD_MAX_BYTES"
    )

    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    @property
    def ark_configured(self) -> bool:
        return bool(self.ark_api_key or (self.ark_ak and self.ark_sk))

    @property
    def image_credential_slots(self) -> dict[int, Optional[str]]:
        """Slot number -> dedicated image API key (may be unset)."""

        return {1: self.hf_api_key1, 2: self.hf_api_key2, 3: self.hf_api_key3}

    @property
    def default_image_credential(self) -> Optional[str]:
        """Single-key fallback used when a slot has no dedicated key."""

        return self.hf_api_key or self.hf_api_key1 or None


class ConfigIssue(BaseModel):
    component: str
    level: Literal["info", "warning", "error"]
    message: str


class ConfigReport(BaseModel):
    """Result of the one-off configuration check run at process start."""

    ok: bool
    issues: List[ConfigIssue] = Field(default_factory=list)
    image_credential_slots: List[int] = Field(default_factory=list)
    vision_enabled: bool = False
    captions_enabled: bool = False


def validate_settings(settings: Settings) -> ConfigReport:
    """Inspect settings once and describe what will work and what will degrade."""

    issues: List[ConfigIssue] = []
    configured_slots = [
        slot for slot, key in settings.image_credential_slots.items() if key
    ]

    if not configured_slots and not settings.hf_api_key:
        issues.append(
            ConfigIssue(
                component="image_jobs",
                level="error",
                message="No image API key configured. Set HF_API_KEY or HF_API_KEY1..3.",
            )
        )
    elif configured_slots and len(configured_slots) < len(settings.image_credential_slots):
        issues.append(
            ConfigIssue(
                component="image_jobs",
                level="info",
                message=(
                    "Image API key slots without a dedicated key fall back to the "
                    "default key."
                ),
            )
        )
    elif not configured_slots:
        issues.append(
            ConfigIssue(
                component="image_jobs",
                level="info",
                message="Single image API key mode (HF_API_KEY).",
            )
        )

    if not settings.ark_configured:
        issues.append(
            ConfigIssue(
                component="ark",
                level="warning",
                message=(
                    "Missing Ark credentials. Brand detection, scene prompts and "
                    "captions use static fallbacks."
                ),
            )
        )

    for name in (
        "creative_variation_count",
        "creative_worker_concurrency",
        "credential_max_in_flight",
        "job_poll_max_attempts",
        "canvas_size",
    ):
        if getattr(settings, name) <= 0:
            issues.append(
                ConfigIssue(
                    component="settings",
                    level="error",
                    message=f"{name} must be greater than 0",
                )
            )
    if settings.job_poll_interval_seconds < 0:
        issues.append(
            ConfigIssue(
                component="settings",
                level="error",
                message="job_poll_interval_seconds must not be negative",
            )
        )

    return ConfigReport(
        ok=not any(issue.level == "error" for issue in issues),
        issues=issues,
        image_credential_slots=configured_slots,
        vision_enabled=settings.ark_configured,
        captions_enabled=settings.ark_configured,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = [
    "ConfigIssue",
    "ConfigReport",
    "Settings",
    "get_settings",
    "validate_settings",
]
