import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Callable, TypeVar

from app.core.errors import ConflictError

T = TypeVar("T")


def retry_on_conflict(
    func: Callable[[], T],
    *,
    max_retries: int = 5,
    base_delay_seconds: float = 0.05,
    retryable_errors: tuple[type[Exception], ...] = (ConflictError,),
) -> T:
    """Call ``func`` until it stops raising a retryable error.

    ``func`` must re-read whatever state it depends on, so every retry works
    against the freshest version. The last error is re-raised once the retry
    budget is spent.
    """
    last_exception: Exception | None = None
    for attempt in range(max(1, max_retries)):
        try:
            return func()
        except retryable_errors as exc:  # type: ignore[misc]
            last_exception = exc
            if attempt == max_retries - 1:
                break
            time.sleep(base_delay_seconds * (2**attempt))
    assert last_exception is not None
    raise last_exception


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int = 4
    recovery_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1
    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    last_failure_time: float = field(default=0.0)
    half_open_calls: int = field(default=0)
    _lock: Lock = field(default_factory=Lock)

    def can_execute(self) -> bool:
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.OPEN:
                if time.time() - self.last_failure_time >= self.recovery_timeout_seconds:
                    self.state = CircuitState.HALF_OPEN
                    self.half_open_calls = 0
                    return True
                return False
            if self.half_open_calls < self.half_open_max_calls:
                self.half_open_calls += 1
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self.state in {CircuitState.HALF_OPEN, CircuitState.OPEN}:
                self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.half_open_calls = 0

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitState.OPEN
                self.half_open_calls = 0

    def status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
        }


_registry: dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_breaker(name: str) -> CircuitBreaker:
    with _registry_lock:
        if name not in _registry:
            _registry[name] = CircuitBreaker(name=name)
        return _registry[name]


def get_breakers_status() -> dict[str, dict]:
    return {name: breaker.status() for name, breaker in _registry.items()}
