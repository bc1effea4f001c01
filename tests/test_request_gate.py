"""Tests for the Request Gate."""
import asyncio

import pytest

from legistrack.ingestion.request_gate import RequestGate
from tests.fakes import FakeClock, RecordingSleep


def _gate(min_interval=0.1):
    clock = FakeClock()
    sleep = RecordingSleep(clock)
    return RequestGate(min_interval=min_interval, clock=clock.monotonic, sleep=sleep), clock, sleep


def test_requests_run_fifo_and_spaced_by_min_interval():
    gate, clock, sleep = _gate()
    started = []

    def request(name):
        async def run():
            started.append((name, clock.monotonic()))
            return name
        return run

    async def scenario():
        return await asyncio.gather(*(gate.submit(request(n)) for n in ("a", "b", "c")))

    assert asyncio.run(scenario()) == ["a", "b", "c"]
    assert [name for name, _ in started] == ["a", "b", "c"]

    starts = [at for _, at in started]
    for earlier, later in zip(starts, starts[1:]):
        assert later - earlier == pytest.approx(0.1)
    assert sleep.delays == [pytest.approx(0.1), pytest.approx(0.1)]


def test_first_request_does_not_wait():
    gate, _, sleep = _gate()

    async def request():
        return 1

    asyncio.run(gate.submit(request))
    assert sleep.delays == []
    assert gate.last_request_time is not None


def test_no_wait_when_interval_already_elapsed():
    gate, clock, sleep = _gate()

    async def request():
        return 1

    async def scenario():
        await gate.submit(request)
        clock.advance(5)
        await gate.submit(request)

    asyncio.run(scenario())
    assert sleep.delays == []


def test_exception_reaches_caller_and_queue_continues():
    gate, _, _ = _gate()

    async def failing():
        raise ValueError("upstream said no")

    async def ok():
        return "fine"

    async def scenario():
        return await asyncio.gather(gate.submit(failing), gate.submit(ok), return_exceptions=True)

    first, second = asyncio.run(scenario())
    assert isinstance(first, ValueError)
    assert second == "fine"
    assert gate.pending == 0
