"""
Circuit breaker for outbound calls.

Three-state machine guarding calls to the GitHub and AI APIs:

    CLOSED -> OPEN:      failure_count >= failure_threshold
    OPEN -> HALF_OPEN:   reset_timeout elapsed
    HALF_OPEN -> CLOSED: half_open_max_calls consecutive successes
    HALF_OPEN -> OPEN:   any failure

Usage:
    breaker = get_circuit_breaker("openai-completion", failure_threshold=3)
    result = await breaker.execute(lambda: client.chat.completions.create(...))
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .logging import get_logger

logger = get_logger("core.circuit_breaker")

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, message: str = "Circuit is open"):
        super().__init__(f"{message}: {name}")
        self.name = name


class CircuitBreaker:
    """Async circuit breaker with a per-call timeout."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        timeout: Optional[float] = 10.0,
        on_open: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        on_half_open: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self.timeout = timeout
        self.on_open = on_open
        self.on_close = on_close
        self.on_half_open = on_half_open
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._next_attempt = 0.0
        self._total_calls = 0
        self._total_failures = 0
        self._rejected_calls = 0

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` through the breaker."""
        if self._state == CircuitState.OPEN:
            if self._clock() < self._next_attempt:
                self._rejected_calls += 1
                raise CircuitOpenError(self.name)
            self._half_open()

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.half_open_max_calls:
                self._rejected_calls += 1
                raise CircuitOpenError(self.name, "Maximum half-open calls reached")
            self._half_open_calls += 1

        self._total_calls += 1
        try:
            if self.timeout:
                result = await asyncio.wait_for(fn(), timeout=self.timeout)
            else:
                result = await fn()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self._failure_count = 0
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.half_open_max_calls:
                self._close()

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._total_failures += 1
        if self._state == CircuitState.HALF_OPEN or (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt = self._clock() + self.reset_timeout
        logger.warning(
            "Circuit breaker opened",
            breaker=self.name,
            failure_count=self._failure_count,
            reset_timeout=self.reset_timeout,
        )
        if self.on_open:
            self.on_open()

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        logger.info("Circuit breaker closed", breaker=self.name)
        if self.on_close:
            self.on_close()

    def _half_open(self) -> None:
        self._state = CircuitState.HALF_OPEN
        self._success_count = 0
        self._half_open_calls = 0
        logger.info("Circuit breaker half-open", breaker=self.name)
        if self.on_half_open:
            self.on_half_open()

    def get_state(self) -> CircuitState:
        """Current state."""
        return self._state

    def is_open(self) -> bool:
        """True while calls are being rejected."""
        return self._state == CircuitState.OPEN and self._clock() < self._next_attempt

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self._close()

    def get_stats(self) -> Dict[str, Any]:
        """Return counters for the admin performance view."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "half_open_calls": self._half_open_calls,
            "total_calls": self._total_calls,
            "total_failures": self._total_failures,
            "rejected_calls": self._rejected_calls,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
        }


# Registry, one breaker per service name
_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, **options: Any) -> CircuitBreaker:
    """Get or create the breaker for ``name``; options apply on creation only."""
    if name not in _breakers:
        _breakers[name] = CircuitBreaker(name, **options)
    return _breakers[name]


async def execute_with_circuit_breaker(
    name: str, fn: Callable[[], Awaitable[T]], **options: Any
) -> T:
    """Run ``fn`` through the named breaker."""
    return await get_circuit_breaker(name, **options).execute(fn)


def get_all_circuit_breakers() -> Dict[str, Dict[str, Any]]:
    """Stats for every registered breaker."""
    return {name: breaker.get_stats() for name, breaker in _breakers.items()}


def reset_all_circuit_breakers() -> None:
    """Reset every registered breaker to CLOSED."""
    for breaker in _breakers.values():
        breaker.reset()


def clear_circuit_breakers() -> None:
    """Drop all registered breakers."""
    _breakers.clear()
