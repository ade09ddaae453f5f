"""Tests for credential selection and the credential pool."""
from __future__ import annotations

import asyncio

import pytest

from adstudio.core.config import Settings
from adstudio.services.credentials import (
    ApiCredential,
    CredentialPool,
    credential_slot_for_index,
    select_credential,
)
from adstudio.services.rate_limit import RateConfig


def test_slot_mapping_partitions_indices() -> None:
    slots = [credential_slot_for_index(i) for i in range(12)]

    assert slots[:4] == [1, 1, 1, 1]
    assert slots[4:7] == [2, 2, 2]
    assert slots[7:] == [3, 3, 3, 3, 3]
    # Pure: asking again gives the same answer.
    assert [credential_slot_for_index(i) for i in range(12)] == slots


def test_select_credential_falls_back_to_default_for_unconfigured_slot() -> None:
    slots = {1: "key-one", 2: None, 3: "key-three"}

    assert select_credential(0, slots, "fallback") == "key-one"
    assert select_credential(5, slots, "fallback") == "fallback"
    assert select_credential(9, slots, "fallback") == "key-three"
    assert select_credential(5, {1: None, 2: None, 3: None}, None) == ""


def test_pool_from_settings_collapses_shared_default_key() -> None:
    pool = CredentialPool.from_settings(Settings(hf_api_key="shared"))

    assert [c.token for c in pool.credentials] == ["shared"]


def test_pool_from_settings_uses_every_dedicated_key() -> None:
    pool = CredentialPool.from_settings(
        Settings(hf_api_key1="k1", hf_api_key2="k2", hf_api_key3="k3")
    )

    assert [(c.slot, c.token) for c in pool.credentials] == [(1, "k1"), (2, "k2"), (3, "k3")]


def test_pool_from_settings_without_keys_holds_empty_credential() -> None:
    pool = CredentialPool.from_settings(
        Settings(hf_api_key=None, hf_api_key1=None, hf_api_key2=None, hf_api_key3=None)
    )

    assert [c.token for c in pool.credentials] == [""]


def _pool(max_in_flight: int = 1, rate_config: RateConfig | None = None) -> CredentialPool:
    credentials = [ApiCredential(slot=1, token="k1"), ApiCredential(slot=2, token="k2"), ApiCredential(slot=3, token="k3")]
    return CredentialPool(
        credentials,
        slots={1: "k1", 2: "k2", 3: "k3"},
        max_in_flight=max_in_flight,
        rate_config=rate_config,
        retry_interval=0.01,
    )


@pytest.mark.anyio
async def test_pool_prefers_slot_for_index() -> None:
    pool = _pool()

    assert (await pool.acquire(0)).token == "k1"
    assert (await pool.acquire(5)).token == "k2"
    assert (await pool.acquire(8)).token == "k3"


@pytest.mark.anyio
async def test_pool_spills_over_when_preferred_key_is_busy() -> None:
    pool = _pool(max_in_flight=1)

    first = await pool.acquire(0)
    second = await pool.acquire(1)

    assert first.token == "k1"
    assert second.token != "k1"
    assert pool.in_flight(first) == 1


@pytest.mark.anyio
async def test_pool_waits_for_release() -> None:
    credential = ApiCredential(slot=1, token="only")
    pool = CredentialPool([credential], max_in_flight=1, retry_interval=0.01)

    held = await pool.acquire()
    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0.03)
    assert not waiter.done()

    await pool.release(held)
    acquired = await asyncio.wait_for(waiter, timeout=1)
    assert acquired == credential


class _Clock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


def _windowed_pool(max_requests: int, clock: _Clock | None = None) -> CredentialPool:
    return CredentialPool(
        [ApiCredential(slot=1, token="only")],
        max_in_flight=5,
        rate_config=RateConfig(window_seconds=60, max_requests=max_requests),
        retry_interval=0.01,
        clock=clock or _Clock(),
    )


@pytest.mark.anyio
async def test_leasing_alone_does_not_spend_request_budget() -> None:
    pool = _windowed_pool(max_requests=1)

    for _ in range(3):
        async with pool.lease(0) as credential:
            assert credential.token == "only"


@pytest.mark.anyio
async def test_charged_requests_block_new_leases_until_window_reopens() -> None:
    clock = _Clock()
    pool = _windowed_pool(max_requests=2, clock=clock)

    async with pool.lease(0) as credential:
        await pool.charge(credential)
        await pool.charge(credential)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pool.acquire(0), timeout=0.05)

    clock.now += 61
    assert (await asyncio.wait_for(pool.acquire(0), timeout=1)).token == "only"


@pytest.mark.anyio
async def test_charge_waits_once_budget_is_spent() -> None:
    clock = _Clock()
    pool = _windowed_pool(max_requests=2, clock=clock)
    credential = pool.credentials[0]

    await pool.charge(credential)
    await pool.charge(credential)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pool.charge(credential), timeout=0.05)

    clock.now += 61
    await asyncio.wait_for(pool.charge(credential), timeout=1)


@pytest.mark.anyio
async def test_lease_releases_on_error() -> None:
    pool = _pool()

    with pytest.raises(RuntimeError):
        async with pool.lease(0) as credential:
            raise RuntimeError("boom")

    assert pool.in_flight(credential) == 0
