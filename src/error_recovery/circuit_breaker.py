"""
Per-category circuit breaker gating operations after repeated failures
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .exceptions import CircuitOpenError
from .models import CircuitState

logger = logging.getLogger(__name__)

StateChangeListener = Callable[[CircuitState, CircuitState], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CircuitBreakerState:
    """State of a circuit breaker"""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: Optional[datetime] = None
    next_attempt_time: Optional[datetime] = None


class CategoryCircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    closed: every call runs. Reaching ``threshold`` consecutive failures opens
    the circuit and arms ``next_attempt_time``.
    open: calls are rejected with CircuitOpenError until ``next_attempt_time``;
    the first call after that moves the breaker to half-open and runs.
    half_open: a success closes the circuit, a failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        timeout_seconds: float = 300.0,
        single_probe: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.name = name
        self.threshold = threshold
        self.timeout = timedelta(seconds=timeout_seconds)
        self.single_probe = single_probe
        self.clock = clock
        self.state = CircuitBreakerState()
        self.lock = asyncio.Lock()
        self._probe_in_flight = False
        self._listeners: List[StateChangeListener] = []

    @property
    def is_closed(self) -> bool:
        return self.state.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state.state == CircuitState.HALF_OPEN

    @property
    def failure_count(self) -> int:
        return self.state.failure_count

    def on_state_change(self, listener: StateChangeListener) -> None:
        """Register a callback invoked with (old_state, new_state)"""
        self._listeners.append(listener)

    async def execute(self, operation: Callable[[], Any]) -> Any:
        """Run operation if the gate admits it, recording the outcome"""
        async with self.lock:
            if self.should_reject():
                logger.debug(f"Circuit breaker {self.name} rejected a call")
                raise CircuitOpenError(self.name)
            is_probe = self.is_half_open
            if is_probe and self.single_probe:
                self._probe_in_flight = True

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            await self._record_failure()
            raise
        finally:
            if is_probe and self.single_probe:
                self._probe_in_flight = False

        await self._record_success()
        return result

    def should_reject(self) -> bool:
        """
        Gate check. Moving from open to half-open happens here, so the first
        caller past ``next_attempt_time`` becomes the probe.
        """
        if self.state.state == CircuitState.CLOSED:
            return False

        if self.state.state == CircuitState.OPEN:
            next_attempt = self.state.next_attempt_time
            if next_attempt is not None and self.clock() >= next_attempt:
                self._transition(CircuitState.HALF_OPEN)
                return False
            return True

        # Half-open
        return self.single_probe and self._probe_in_flight

    async def _record_success(self) -> None:
        async with self.lock:
            self.state.failure_count = 0
            if self.state.state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    async def _record_failure(self) -> None:
        async with self.lock:
            now = self.clock()
            self.state.failure_count += 1
            self.state.last_failure_time = now

            # A failed half-open probe reopens regardless of the count
            if self.state.state == CircuitState.HALF_OPEN or self.state.failure_count >= self.threshold:
                self.state.next_attempt_time = now + self.timeout
                if self.state.state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit breaker {self.name} transitioning to OPEN after {self.state.failure_count} failures"
                    )
                    self._transition(CircuitState.OPEN)

    def force_open(self) -> None:
        """Open the circuit immediately and arm the probe timer"""
        self.state.next_attempt_time = self.clock() + self.timeout
        if self.state.state != CircuitState.OPEN:
            self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Return to a clean closed state"""
        self.state.failure_count = 0
        self.state.next_attempt_time = None
        self._probe_in_flight = False
        if self.state.state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state.state
        self.state.state = new_state
        logger.info(f"Circuit breaker {self.name} transitioning {old_state.value} -> {new_state.value}")

        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Circuit breaker {self.name} state listener failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the breaker for statistics"""
        return {
            "name": self.name,
            "state": self.state.state.value,
            "failure_count": self.state.failure_count,
            "last_failure_time": self.state.last_failure_time.isoformat() if self.state.last_failure_time else None,
            "next_attempt_time": self.state.next_attempt_time.isoformat() if self.state.next_attempt_time else None,
        }
