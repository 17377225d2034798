"""Circuit breakers guarding Supabase and LLM provider calls.

Breakers are registered by name so the health endpoint can report their
state without holding references to the services that own them.
"""

import contextlib
import enum
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Iterator
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_registry: dict[str, "CircuitBreaker"] = {}
_registry_lock = threading.Lock()


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted on an open circuit."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"Circuit breaker is open for {service_name}")


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Opens once ``failure_threshold`` calls in a row have failed. While open,
    calls are refused until ``recovery_timeout`` seconds have passed since the
    last failure; the next call is then let through as a probe and its
    outcome closes or re-opens the circuit.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ) -> None:
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state_locked()

    def _state_locked(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def check(self) -> None:
        """Raise CircuitBreakerOpen if calls are currently refused."""
        if self.state is CircuitState.OPEN:
            raise CircuitBreakerOpen(self.service_name)

    def record_success(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.warning("Circuit breaker CLOSED for %s (recovered)", self.service_name)
            self._consecutive_failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._consecutive_failures < self.failure_threshold:
                return
            if self._state_locked() is not CircuitState.OPEN:
                logger.warning(
                    "Circuit breaker OPEN for %s after %d consecutive failures",
                    self.service_name,
                    self._consecutive_failures,
                )
            self._opened_at = time.monotonic()

    @contextlib.contextmanager
    def guard(self) -> Iterator[None]:
        """Run a synchronous block under the breaker.

        Raises:
            CircuitBreakerOpen: If the circuit is open.
        """
        self.check()
        try:
            yield
        except Exception:
            self.record_failure()
            raise
        self.record_success()

    async def call_async(
        self, func: Callable[..., Awaitable[T]], *args: object, **kwargs: object
    ) -> T:
        """Await ``func`` under the breaker.

        Raises:
            CircuitBreakerOpen: If the circuit is open.
            Exception: Whatever ``func`` raised, after recording the failure.
        """
        self.check()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


def get_circuit_breaker(service_name: str, **kwargs: float) -> CircuitBreaker:
    """Return the named breaker, creating it on first use."""
    with _registry_lock:
        breaker = _registry.get(service_name)
        if breaker is None:
            breaker = CircuitBreaker(service_name, **kwargs)  # type: ignore[arg-type]
            _registry[service_name] = breaker
        return breaker


def circuit_states() -> dict[str, str]:
    """Snapshot of every registered breaker's state, for health checks."""
    with _registry_lock:
        breakers = list(_registry.values())
    return {breaker.service_name: breaker.state.value for breaker in breakers}
