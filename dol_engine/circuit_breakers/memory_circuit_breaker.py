"""
In-process circuit breaker.

State lives in this process only; each worker tracks its own collectors.
"""
import asyncio
import logging
import time
from typing import Dict

from .base_circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class InMemoryCircuitBreaker(CircuitBreaker):
    """
    Opens after failure_threshold consecutive failures and stays open for
    recovery_timeout seconds, after which the next call is let through.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock=time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._failures: Dict[str, int] = {}
        self._opened_times: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def is_open(self, service_name: str) -> bool:
        async with self._lock:
            return self._is_open_locked(service_name)

    def _is_open_locked(self, service_name: str) -> bool:
        opened_time = self._opened_times.get(service_name)
        if opened_time is None:
            return False
        if (self._clock() - opened_time) < self.recovery_timeout:
            return True
        # half-open: one failure re-opens immediately
        del self._opened_times[service_name]
        self._failures[service_name] = self.failure_threshold - 1
        logger.info(f"Circuit breaker half-open for {service_name} (recovery timeout elapsed)")
        return False

    async def record_success(self, service_name: str) -> None:
        async with self._lock:
            self._failures[service_name] = 0
            self._opened_times.pop(service_name, None)
            logger.debug(f"Circuit breaker success recorded for {service_name}")

    async def record_failure(self, service_name: str) -> None:
        async with self._lock:
            failure_count = self._failures.get(service_name, 0) + 1
            self._failures[service_name] = failure_count

            if failure_count >= self.failure_threshold:
                if service_name not in self._opened_times:
                    self._opened_times[service_name] = self._clock()
                    logger.warning(
                        f"Circuit breaker OPENED for {service_name} "
                        f"(failures: {failure_count}/{self.failure_threshold}, "
                        f"recovery in {self.recovery_timeout}s)"
                    )
            else:
                logger.debug(
                    f"Circuit breaker failure recorded for {service_name} "
                    f"({failure_count}/{self.failure_threshold})"
                )

    async def get_failure_count(self, service_name: str) -> int:
        async with self._lock:
            return self._failures.get(service_name, 0)

    async def get_status(self, service_name: str) -> dict:
        """Get detailed circuit breaker status for monitoring."""
        async with self._lock:
            status = {
                'service_name': service_name,
                'is_open': self._is_open_locked(service_name),
                'failure_count': self._failures.get(service_name, 0),
                'failure_threshold': self.failure_threshold,
                'recovery_timeout': self.recovery_timeout
            }
            opened_time = self._opened_times.get(service_name)
            if opened_time is not None:
                status['recovery_in_seconds'] = max(0, self.recovery_timeout - (self._clock() - opened_time))
            return status

    async def reset(self, service_name: str) -> None:
        """Reset circuit breaker for service (admin operation)."""
        async with self._lock:
            self._failures[service_name] = 0
            self._opened_times.pop(service_name, None)
            logger.info(f"Circuit breaker reset for {service_name}")
