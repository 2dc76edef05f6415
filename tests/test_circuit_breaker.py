"""Tests for CategoryCircuitBreaker.

Verifies:
- Opening after the configured number of consecutive failures
- Rejection without running the operation while open
- Half-open probing after the timeout and closing on success
- Re-opening on a failed probe
- Optional single-probe gating while half-open
- State change listeners and manual controls
"""

import asyncio

import pytest

from error_recovery.circuit_breaker import CategoryCircuitBreaker
from error_recovery.exceptions import CircuitOpenError
from error_recovery.models import CircuitState


async def _fail():
    raise ConnectionError("connection refused")


async def _trip(breaker, times):
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(_fail)


@pytest.fixture
def breaker(fake_clock):
    return CategoryCircuitBreaker("network", threshold=3, timeout_seconds=60, clock=fake_clock)


class TestCircuitBreakerTransitions:

    @pytest.mark.asyncio
    async def test_initial_state_closed(self, breaker):
        assert breaker.is_closed
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker, fake_clock):
        await _trip(breaker, 2)
        assert breaker.is_closed
        assert breaker.failure_count == 2

        await _trip(breaker, 1)
        assert breaker.is_open
        assert breaker.state.next_attempt_time == fake_clock.now + breaker.timeout
        assert breaker.state.last_failure_time == fake_clock.now

    @pytest.mark.asyncio
    async def test_open_rejects_without_invoking(self, breaker, fake_clock):
        await _trip(breaker, 3)
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        fake_clock.advance(30)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(operation)

        assert calls == []
        assert exc_info.value.breaker_name == "network"
        assert "Circuit breaker network is open" in str(exc_info.value)
        # Rejection leaves the failure counter alone
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_probe_after_timeout_closes_on_success(self, breaker, fake_clock):
        await _trip(breaker, 3)
        fake_clock.advance(61)
        seen_states = []

        async def probe():
            seen_states.append(breaker.state.state)
            return "recovered"

        assert await breaker.execute(probe) == "recovered"
        assert seen_states == [CircuitState.HALF_OPEN]
        assert breaker.is_closed
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_probe_reopens_and_rearms(self, breaker, fake_clock):
        await _trip(breaker, 3)
        fake_clock.advance(61)

        await _trip(breaker, 1)
        assert breaker.is_open
        assert breaker.state.next_attempt_time == fake_clock.now + breaker.timeout

        with pytest.raises(CircuitOpenError):
            await breaker.execute(_fail)

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, breaker):
        await _trip(breaker, 2)

        async def ok():
            return 1

        await breaker.execute(ok)
        assert breaker.failure_count == 0
        await _trip(breaker, 2)
        assert breaker.is_closed

    @pytest.mark.asyncio
    async def test_sync_operation(self, breaker):
        assert await breaker.execute(lambda: 42) == 42

    @pytest.mark.asyncio
    async def test_should_reject_moves_open_to_half_open(self, breaker, fake_clock):
        await _trip(breaker, 3)
        assert breaker.should_reject() is True
        fake_clock.advance(60)
        assert breaker.should_reject() is False
        assert breaker.is_half_open


class TestHalfOpenProbes:

    async def _slow_probe_running(self, breaker, fake_clock):
        await _trip(breaker, 3)
        fake_clock.advance(61)
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return "probe"

        task = asyncio.create_task(breaker.execute(slow))
        await started.wait()
        return task, release

    @pytest.mark.asyncio
    async def test_half_open_admits_concurrent_callers_by_default(self, breaker, fake_clock):
        task, release = await self._slow_probe_running(breaker, fake_clock)

        assert await breaker.execute(lambda: "second") == "second"

        release.set()
        assert await task == "probe"
        assert breaker.is_closed

    @pytest.mark.asyncio
    async def test_single_probe_rejects_concurrent_callers(self, fake_clock):
        breaker = CategoryCircuitBreaker(
            "timeout", threshold=3, timeout_seconds=60, single_probe=True, clock=fake_clock
        )
        task, release = await self._slow_probe_running(breaker, fake_clock)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(lambda: "second")

        release.set()
        assert await task == "probe"
        assert breaker.is_closed
        assert await breaker.execute(lambda: "after") == "after"


class TestControlsAndStatus:

    @pytest.mark.asyncio
    async def test_state_change_listeners(self, breaker, fake_clock):
        transitions = []
        breaker.on_state_change(lambda old, new: transitions.append((old, new)))

        def broken(old, new):
            raise RuntimeError("listener bug")

        breaker.on_state_change(broken)

        await _trip(breaker, 3)
        fake_clock.advance(61)
        await breaker.execute(lambda: None)

        assert transitions == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_force_open_and_reset(self, breaker, fake_clock):
        breaker.force_open()
        assert breaker.is_open
        with pytest.raises(CircuitOpenError):
            await breaker.execute(lambda: None)

        breaker.reset()
        assert breaker.is_closed
        assert breaker.state.next_attempt_time is None
        assert await breaker.execute(lambda: "ok") == "ok"

    @pytest.mark.asyncio
    async def test_failed_probe_after_force_open_reopens(self, breaker, fake_clock):
        breaker.force_open()
        fake_clock.advance(61)

        await _trip(breaker, 1)

        assert breaker.is_open
        assert breaker.failure_count == 1
        assert breaker.state.next_attempt_time == fake_clock.now + breaker.timeout
        with pytest.raises(CircuitOpenError):
            await breaker.execute(lambda: None)

    @pytest.mark.asyncio
    async def test_get_status(self, breaker, fake_clock):
        status = breaker.get_status()
        assert status == {
            "name": "network",
            "state": "closed",
            "failure_count": 0,
            "last_failure_time": None,
            "next_attempt_time": None,
        }

        await _trip(breaker, 3)
        status = breaker.get_status()
        assert status["state"] == "open"
        assert status["failure_count"] == 3
        assert status["last_failure_time"] == fake_clock.now.isoformat()
        assert status["next_attempt_time"] == (fake_clock.now + breaker.timeout).isoformat()
