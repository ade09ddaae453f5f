"""Tests for the image job submitter and poller."""
from __future__ import annotations

import asyncio
import base64
import json
from typing import Callable, Iterable

import httpx
import pytest

from adstudio.core.config import Settings
from adstudio.services.context import UploadedImage
from adstudio.services.credentials import ApiCredential, CredentialPool
from adstudio.services.errors import (
    AuthError,
    JobFailedError,
    JobTimeoutError,
    QuotaError,
    TransportError,
)
from adstudio.services.jobs import ImageJobClient, RemoteJob, Throttle
from adstudio.services.rate_limit import RateConfig

pytestmark = pytest.mark.anyio

IMAGE = b"\x89PNG-generated-bytes"
DATA_URI = "data:image/png;base64," + base64.b64encode(IMAGE).decode("ascii")
CREDENTIAL = ApiCredential(slot=1, token="hf-test")
PRODUCT = UploadedImage(filename="product.jpg", content_type="image/jpeg", data=b"product")


def _status(status: str, **data: object) -> httpx.Response:
    return httpx.Response(200, json={"code": 200, "data": {"status": status, **data}})


class _Service:
    """Scripted image job service behind an `httpx.MockTransport`."""

    def __init__(
        self,
        polls: Iterable[httpx.Response] = (),
        submit: httpx.Response | None = None,
    ) -> None:
        self._polls = iter(polls)
        self._submit = submit or httpx.Response(
            200, json={"code": 200, "data": {"id": "job-1", "status": "created"}}
        )
        self.submissions: list[httpx.Request] = []
        self.poll_count = 0
        self.fetches: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.submissions.append(request)
            return self._submit
        if request.url.path.endswith("/predictions/job-1/result"):
            self.poll_count += 1
            return next(self._polls)
        self.fetches.append(str(request.url))
        return httpx.Response(200, content=IMAGE, headers={"content-type": "image/png"})


class _Sleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


async def _run(
    service: Callable[[httpx.Request], httpx.Response],
    *,
    credential: ApiCredential = CREDENTIAL,
    sleep: _Sleep | None = None,
    throttle: Throttle | None = None,
    **overrides: object,
) -> bytes:
    settings = Settings(
        hf_api_key="hf-test",
        job_poll_interval_seconds=2.0,
        job_poll_max_attempts=60,
        **overrides,
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(service)) as http:
        client = ImageJobClient(settings, http, sleep=sleep or _Sleep())
        return await client.generate(
            prompt="a prompt", image=PRODUCT, credential=credential, throttle=throttle
        )


async def test_poll_continues_through_not_found_and_succeeds() -> None:
    service = _Service(
        polls=[
            _status("processing"),
            _status("processing"),
            httpx.Response(404, json={"error": "not found"}),
            _status("succeeded", outputs=[DATA_URI]),
        ]
    )
    sleep = _Sleep()

    result = await _run(service, sleep=sleep)

    assert result == IMAGE
    assert service.poll_count == 4
    assert sleep.calls == [2.0, 2.0, 2.0, 2.0]


async def test_poll_times_out_after_attempt_ceiling() -> None:
    service = _Service(polls=[_status("processing") for _ in range(60)])

    with pytest.raises(JobTimeoutError) as excinfo:
        await _run(service)

    assert service.poll_count == 60
    assert excinfo.value.job_id == "job-1"
    assert not isinstance(excinfo.value, JobFailedError)


async def test_poll_reports_service_failure_message() -> None:
    service = _Service(polls=[_status("processing"), _status("failed", error="NSFW content")])

    with pytest.raises(JobFailedError, match="NSFW content"):
        await _run(service)

    assert service.poll_count == 2


async def test_poll_fails_fast_on_non_retryable_client_error() -> None:
    service = _Service(
        polls=[httpx.Response(400, json={"message": "bad job id"})]
        + [_status("processing") for _ in range(59)]
    )

    with pytest.raises(TransportError, match="bad job id") as excinfo:
        await _run(service)

    assert service.poll_count == 1
    assert excinfo.value.status_code == 400


async def test_poll_retries_server_errors_and_unauthorized() -> None:
    service = _Service(
        polls=[
            httpx.Response(503),
            httpx.Response(401),
            _status("queued"),
            _status("completed", outputs=["https://cdn.example.com/out.png"]),
        ]
    )

    result = await _run(service)

    assert result == IMAGE
    assert service.fetches == ["https://cdn.example.com/out.png"]


async def test_poll_malformed_json_fails_immediately() -> None:
    service = _Service(polls=[httpx.Response(200, content=b"<html>oops</html>")])

    with pytest.raises(TransportError, match="malformed JSON"):
        await _run(service)


async def test_completed_job_without_outputs_fails() -> None:
    service = _Service(polls=[_status("completed", outputs=[])])

    with pytest.raises(JobFailedError, match="outputs array is empty"):
        await _run(service)

    assert service.poll_count == 1


async def test_submission_with_inline_output_skips_polling() -> None:
    service = _Service(
        submit=httpx.Response(200, json={"code": 200, "data": {"outputs": [DATA_URI]}})
    )

    result = await _run(service)

    assert result == IMAGE
    assert service.poll_count == 0


async def test_submission_with_raw_image_body() -> None:
    service = _Service(
        submit=httpx.Response(200, content=IMAGE, headers={"content-type": "image/png"})
    )

    assert await _run(service) == IMAGE


async def test_submission_payload_and_auth_header() -> None:
    service = _Service(polls=[_status("succeeded", outputs=[DATA_URI])])

    await _run(service, image_negative_prompt="blurry")

    request = service.submissions[0]
    body = json.loads(request.content)
    assert request.headers["Authorization"] == "Bearer hf-test"
    assert request.url.path == "/wavespeed/api/v3/wavespeed-ai/flux-2-dev/edit"
    assert body["prompt"] == "a prompt"
    assert body["images"] == ["data:image/jpeg;base64," + base64.b64encode(b"product").decode()]
    assert body["parameters"] == {"negative_prompt": "blurry"}


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(429, QuotaError), (402, QuotaError), (401, AuthError), (500, TransportError)],
)
async def test_submission_errors_are_classified(
    status_code: int, error_type: type[Exception]
) -> None:
    service = _Service(submit=httpx.Response(status_code, json={"error": "nope"}))

    with pytest.raises(error_type):
        await _run(service)

    assert service.poll_count == 0


async def test_missing_credential_raises_auth_error_without_request() -> None:
    service = _Service()

    with pytest.raises(AuthError):
        await _run(service, credential=ApiCredential(slot=1, token=""))

    assert service.submissions == []


async def test_unexpected_submission_format() -> None:
    service = _Service(submit=httpx.Response(200, json={"code": 200, "data": {}}))

    with pytest.raises(TransportError, match="Unexpected response format"):
        await _run(service)


def test_remote_job_reads_flat_and_nested_payloads() -> None:
    job = RemoteJob(job_id="job-1")

    job.update({"data": {"status": "processing"}})
    assert job.status == "processing"
    assert not job.is_succeeded and not job.is_failed

    job.update({"status": "SUCCEEDED", "outputs": ["x"]})
    assert job.is_succeeded
    assert job.outputs == ["x"]

    job.update({"data": {"status": "error", "error": "boom"}})
    assert job.is_failed
    assert job.error == "boom"


async def test_submission_and_every_poll_are_throttled() -> None:
    service = _Service(
        polls=[
            _status("processing"),
            httpx.Response(404),
            _status("succeeded", outputs=["https://cdn.example.com/out.png"]),
        ]
    )
    charged: list[int] = []

    async def throttle() -> None:
        charged.append(service.poll_count)

    await _run(service, throttle=throttle)

    # One charge before the submission and one before each poll; the CDN fetch is free.
    assert charged == [0, 0, 1, 2]
    assert service.fetches == ["https://cdn.example.com/out.png"]


async def test_polls_spend_the_credential_request_budget() -> None:
    credential = ApiCredential(slot=1, token="hf-test")
    pool = CredentialPool(
        [credential],
        max_in_flight=5,
        rate_config=RateConfig(window_seconds=60, max_requests=4),
        retry_interval=0.01,
    )
    service = _Service(
        polls=[
            _status("processing"),
            _status("processing"),
            _status("completed", outputs=[DATA_URI]),
        ]
    )

    async with pool.lease(0) as leased:
        result = await _run(service, credential=leased, throttle=lambda: pool.charge(leased))

    assert result == IMAGE
    # Submission plus three polls used the whole budget of four requests.
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pool.acquire(0), timeout=0.05)
