"""Submit image-edit jobs and poll them to completion.

The image service is asynchronous: a submission either returns the edited image
inline or a job id that has to be polled until the job reports success or
failure. While polling, 404/401 (job not registered yet) and 5xx responses are
treated as "not ready"; any other error fails the job immediately so a broken
request does not burn the whole timeout budget.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List

import httpx

from adstudio.core.config import Settings
from adstudio.services.context import UploadedImage
from adstudio.services.credentials import ApiCredential
from adstudio.services.errors import (
    AuthError,
    JobFailedError,
    JobTimeoutError,
    QuotaError,
    TransportError,
)

logger = logging.getLogger(__name__)

Throttle = Callable[[], Awaitable[None]]

SUCCESS_STATUSES = frozenset({"completed", "succeeded"})
FAILURE_STATUSES = frozenset({"failed", "error"})
TRANSIENT_POLL_STATUS_CODES = frozenset({401, 404})


class JobState(str, enum.Enum):
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class RemoteJob:
    """One outstanding job on the image service."""

    job_id: str
    status: str = "created"
    outputs: List[Any] = field(default_factory=list)
    error: str | None = None
    state: JobState = JobState.POLLING
    attempts: int = 0

    @property
    def is_succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def is_failed(self) -> bool:
        return self.status in FAILURE_STATUSES

    def update(self, payload: dict) -> None:
        """Apply a status payload (``{"data": {...}}`` or a flat object)."""

        data = payload.get("data")
        if not isinstance(data, dict):
            data = {}
        status = data.get("status") or payload.get("status")
        self.status = str(status).lower() if status else self.status
        outputs = data.get("outputs") or payload.get("outputs") or []
        self.outputs = list(outputs) if isinstance(outputs, list) else []
        error = data.get("error") or payload.get("error")
        self.error = str(error) if error else None


class ImageJobClient:
    """Drive one image edit from submission to final image bytes."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._http = http
        self._sleep = sleep
        self._base_url = settings.hf_router_base_url.rstrip("/")

    async def generate(
        self,
        *,
        prompt: str,
        image: UploadedImage,
        credential: ApiCredential,
        request_id: str | None = None,
        unit_index: int | None = None,
        throttle: Throttle | None = None,
    ) -> bytes:
        """Submit one edit and return the final image bytes.

        ``throttle`` is awaited before every request sent with ``credential``.
        """

        if not credential.token:
            raise AuthError("No image API key configured. Set HF_API_KEY or HF_API_KEY1..3.")

        log_extra = {
            "request_id": request_id,
            "unit_index": unit_index,
            "credential": credential.label,
        }
        headers = {"Authorization": f"Bearer {credential.token}"}
        throttle = throttle or _unthrottled
        await throttle()
        response = await self._submit(prompt=prompt, image=image, headers=headers)

        if response.headers.get("content-type", "").startswith("image/"):
            logger.info("Image returned inline on submission", extra=log_extra)
            return response.content

        payload = _json_payload(response, context="Image edit submission")
        data = payload.get("data")
        if isinstance(data, dict) and data.get("id"):
            job = RemoteJob(
                job_id=str(data["id"]), status=str(data.get("status") or "created")
            )
            logger.info(
                "Image job created, polling for result",
                extra={**log_extra, "job_id": job.job_id},
            )
            return await self._poll(
                job, headers=headers, log_extra=log_extra, throttle=throttle
            )

        if isinstance(data, dict):
            outputs = data.get("outputs")
            if isinstance(outputs, list) and outputs and outputs[0]:
                logger.info("Image returned inline on submission", extra=log_extra)
                return await self._resolve_output(outputs[0], job_id=None)

        raise TransportError(
            f"Unexpected response format from image edit service: {str(payload)[:500]}"
        )

    async def _submit(
        self, *, prompt: str, image: UploadedImage, headers: dict[str, str]
    ) -> httpx.Response:
        body = {
            "images": [image.to_data_uri()],
            "prompt": prompt,
            "parameters": {"negative_prompt": self._settings.image_negative_prompt},
        }
        try:
            response = await self._http.post(
                f"{self._base_url}{self._settings.image_edit_path}",
                json=body,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise _submission_error(exc.response) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Image edit request failed: {exc}") from exc
        return response

    async def _poll(
        self,
        job: RemoteJob,
        *,
        headers: dict[str, str],
        log_extra: dict[str, Any],
        throttle: Throttle,
    ) -> bytes:
        url = self._base_url + self._settings.image_result_path.format(job_id=job.job_id)
        max_attempts = self._settings.job_poll_max_attempts
        extra = {**log_extra, "job_id": job.job_id}

        for attempt in range(1, max_attempts + 1):
            await self._sleep(self._settings.job_poll_interval_seconds)
            job.attempts = attempt
            await throttle()

            try:
                response = await self._http.get(url, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                code = exc.response.status_code
                if code in TRANSIENT_POLL_STATUS_CODES or code >= 500:
                    logger.debug(
                        "Result not ready yet (%s), continuing to poll",
                        code,
                        extra={**extra, "attempt": attempt},
                    )
                    continue
                job.state = JobState.FAILED
                raise TransportError(
                    f"Polling image job {job.job_id} failed ({code}): {_error_detail(exc.response)}",
                    status_code=code,
                ) from exc
            except httpx.RequestError as exc:
                job.state = JobState.FAILED
                raise TransportError(
                    f"Polling image job {job.job_id} failed: {exc}"
                ) from exc

            job.update(_json_payload(response, context=f"Image job {job.job_id} status"))
            logger.debug(
                "Poll attempt %s/%s, status: %s",
                attempt,
                max_attempts,
                job.status,
                extra={**extra, "attempt": attempt},
            )

            if job.is_succeeded:
                if not job.outputs:
                    job.state = JobState.FAILED
                    raise JobFailedError(
                        "Job completed but outputs array is empty", job_id=job.job_id
                    )
                job.state = JobState.SUCCEEDED
                logger.info(
                    "Image job succeeded", extra={**extra, "attempt": attempt}
                )
                return await self._resolve_output(job.outputs[0], job_id=job.job_id)

            if job.is_failed:
                job.state = JobState.FAILED
                raise JobFailedError(
                    f"Image generation job failed: {job.error or 'Job failed'}",
                    job_id=job.job_id,
                )

        job.state = JobState.TIMED_OUT
        raise JobTimeoutError(
            f"Image generation timed out: job {job.job_id} did not complete "
            f"after {max_attempts} polls",
            job_id=job.job_id,
        )

    async def _resolve_output(self, output: Any, *, job_id: str | None) -> bytes:
        if isinstance(output, str) and output.startswith(("http://", "https://")):
            try:
                response = await self._http.get(output)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise TransportError(
                    f"Fetching generated image failed ({exc.response.status_code})",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.RequestError as exc:
                raise TransportError(f"Fetching generated image failed: {exc}") from exc
            return response.content

        if isinstance(output, str) and output.startswith("data:"):
            _, _, encoded = output.partition(",")
            try:
                return base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise JobFailedError(
                    "Generated image payload is not valid base64", job_id=job_id
                ) from exc

        raise JobFailedError(
            f"Unexpected image format in outputs: {type(output).__name__}", job_id=job_id
        )


async def _unthrottled() -> None:
    return None


def _json_payload(response: httpx.Response, *, context: str) -> dict:
    try:
        payload = response.json()
    except ValueError as exc:
        raise TransportError(f"{context} returned malformed JSON") from exc
    if not isinstance(payload, dict):
        raise TransportError(f"{context} returned an unexpected payload")
    return payload


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            if payload.get(key):
                return str(payload[key])
    return str(payload)[:200]


def _submission_error(response: httpx.Response) -> TransportError:
    code = response.status_code
    detail = _error_detail(response)
    if code in (401, 403):
        return AuthError(f"Image edit rejected the API key ({code}): {detail}", status_code=code)
    if code == 402:
        return QuotaError(
            "Payment required: the image provider needs account credits. "
            f"{detail}",
            status_code=code,
        )
    if code == 429:
        return QuotaError(
            f"Image API quota exceeded. Please check your API key limits. {detail}",
            status_code=code,
        )
    return TransportError(f"Image edit failed ({code}): {detail}", status_code=code)


__all__ = [
    "FAILURE_STATUSES",
    "ImageJobClient",
    "JobState",
    "RemoteJob",
    "SUCCESS_STATUSES",
    "TRANSIENT_POLL_STATUS_CODES",
    "Throttle",
]
