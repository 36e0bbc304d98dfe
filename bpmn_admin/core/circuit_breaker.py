"""
Circuit Breaker Pattern for the Register Service

Import validation needs the list of register keys. When the register service
is down, every import would otherwise wait for the HTTP timeout; the breaker
fails fast instead after too many consecutive failures.

States:
- CLOSED: Normal operation, requests go through
- OPEN: Too many failures, blocking requests (fast-fail)
- HALF_OPEN: Testing if service recovered (allows 1 request)

Example:
    breaker = CircuitBreaker(failure_threshold=5, timeout=60)

    if breaker.is_open():
        raise ExternalServiceError("Register service unavailable", service="register")

    try:
        keys = session.get(f"{base_url}/keys")
        breaker.record_success()
    except requests.exceptions.RequestException:
        breaker.record_failure()
        raise
"""

import threading
import logging
from typing import Optional
from datetime import datetime

logger = logging.getLogger(__name__)


class CircuitBreakerState:
    """Circuit breaker states"""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """
    Circuit breaker for calls to an external service.
    """

    def __init__(
        self,
        name: str = "register",
        failure_threshold: int = 5,
        timeout: int = 60,
        half_open_max_calls: int = 1
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Guarded service name (used in logs)
            failure_threshold: Number of consecutive failures before opening
            timeout: Seconds to wait before attempting recovery (HALF_OPEN)
            half_open_max_calls: Number of test calls allowed in HALF_OPEN state
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.half_open_max_calls = half_open_max_calls

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._half_open_calls = 0

        self._lock = threading.Lock()

        logger.info(f"CircuitBreaker[{name}] initialized: threshold={failure_threshold}, timeout={timeout}s")

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def is_open(self) -> bool:
        """Check if circuit is open (blocking requests)"""
        with self._lock:
            if self._state == CircuitBreakerState.OPEN:
                if self._last_failure_time:
                    elapsed = (datetime.utcnow() - self._last_failure_time).total_seconds()
                    if elapsed >= self.timeout:
                        logger.info(f"CircuitBreaker[{self.name}]: OPEN → HALF_OPEN (timeout passed)")
                        self._state = CircuitBreakerState.HALF_OPEN
                        self._half_open_calls = 0
                        return False

                return True

            if self._state == CircuitBreakerState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    logger.warning(f"CircuitBreaker[{self.name}]: HALF_OPEN max calls reached, blocking request")
                    return True

            return False

    def is_closed(self) -> bool:
        return self.state == CircuitBreakerState.CLOSED

    def is_half_open(self) -> bool:
        return self.state == CircuitBreakerState.HALF_OPEN

    def record_success(self):
        """Record successful call (reset failure counter)"""
        with self._lock:
            previous_state = self._state

            self._failure_count = 0
            self._last_failure_time = None

            if self._state != CircuitBreakerState.CLOSED:
                self._state = CircuitBreakerState.CLOSED
                self._half_open_calls = 0
                logger.info(f"CircuitBreaker[{self.name}]: {previous_state} → CLOSED (success)")

    def record_failure(self):
        """Record failed call (increment failure counter)"""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.utcnow()

            # In HALF_OPEN one failure reopens the circuit
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._state = CircuitBreakerState.OPEN
                logger.warning(
                    f"CircuitBreaker[{self.name}]: HALF_OPEN → OPEN "
                    f"(test call failed, will retry in {self.timeout}s)"
                )

            elif self._state == CircuitBreakerState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    self._state = CircuitBreakerState.OPEN
                    logger.error(
                        f"CircuitBreaker[{self.name}]: CLOSED → OPEN "
                        f"({self._failure_count} consecutive failures, "
                        f"will retry in {self.timeout}s)"
                    )

            logger.warning(
                f"CircuitBreaker[{self.name}]: State={self._state}, "
                f"Failures={self._failure_count}/{self.failure_threshold}"
            )

    def record_attempt(self):
        """Count a test call let through while HALF_OPEN"""
        with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._half_open_calls += 1

    def reset(self):
        """Manually reset circuit breaker to CLOSED state"""
        with self._lock:
            previous_state = self._state
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._half_open_calls = 0

            if previous_state != CircuitBreakerState.CLOSED:
                logger.info(f"CircuitBreaker[{self.name}]: Manually reset {previous_state} → CLOSED")

    def get_status(self) -> dict:
        """Get circuit breaker status (for /health)"""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "last_failure": self._last_failure_time.isoformat() if self._last_failure_time else None,
                "timeout_seconds": self.timeout,
                "half_open_calls": self._half_open_calls if self._state == CircuitBreakerState.HALF_OPEN else None,
            }
