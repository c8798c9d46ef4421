from __future__ import annotations

import asyncio

import pytest

from tests.conftest import FakeClock
from transfer_indexer.providers.throttle import RequestThrottle


@pytest.mark.asyncio
async def test_first_request_is_not_delayed(fake_clock: FakeClock):
    throttle = RequestThrottle(2.0, clock=fake_clock, sleep=fake_clock.sleep)

    async with throttle.slot():
        pass

    assert fake_clock.slept == []


@pytest.mark.asyncio
async def test_requests_are_spaced_by_cooldown(fake_clock: FakeClock):
    throttle = RequestThrottle(2.0, clock=fake_clock, sleep=fake_clock.sleep)

    async with throttle.slot():
        fake_clock.now += 0.5
    async with throttle.slot():
        pass

    # Cooldown counts from the end of the previous request.
    assert fake_clock.slept == [2.0]


@pytest.mark.asyncio
async def test_no_wait_once_cooldown_has_elapsed(fake_clock: FakeClock):
    throttle = RequestThrottle(1.0, clock=fake_clock, sleep=fake_clock.sleep)

    async with throttle.slot():
        pass
    fake_clock.now += 5
    async with throttle.slot():
        pass

    assert fake_clock.slept == []


@pytest.mark.asyncio
async def test_defer_extends_wait(fake_clock: FakeClock):
    throttle = RequestThrottle(1.0, clock=fake_clock, sleep=fake_clock.sleep)

    async with throttle.slot():
        pass
    throttle.defer(10)
    throttle.defer(3)
    async with throttle.slot():
        pass

    assert fake_clock.slept == [10.0]


@pytest.mark.asyncio
async def test_only_one_request_in_flight():
    throttle = RequestThrottle(0.0)
    in_flight = 0
    peak = 0

    async def request() -> None:
        nonlocal in_flight, peak
        async with throttle.slot():
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1

    await asyncio.gather(*(request() for _ in range(4)))

    assert peak == 1
