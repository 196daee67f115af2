"""
Circuit breaker collector decorator.

Wraps any collector so that a feed which keeps failing is skipped outright
(reported as a soft failure) until its recovery timeout elapses.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..circuit_breakers.base_circuit_breaker import CircuitBreaker
from ..models.events import WeatherEvent
from ..models.geometry import BoundingBox
from ..models.results import DateWindow
from .base_collector import BaseCollector, CollectorResult

logger = logging.getLogger(__name__)


class CircuitBreakerCollector(BaseCollector):
    """Decorator that wraps any collector with circuit breaker protection"""

    def __init__(
        self,
        wrapped: BaseCollector,
        circuit_breaker: CircuitBreaker,
        name: Optional[str] = None,
    ):
        super().__init__(
            name=name or wrapped.name,
            timeout_seconds=wrapped.timeout_seconds,
            max_retries=wrapped.max_retries,
            source=wrapped.source,
        )
        self.wrapped = wrapped
        self.circuit_breaker = circuit_breaker
        self.service_name = f"collector_{wrapped.name}"
        self.stats["circuit_open_blocks"] = 0

    async def fetch_events(self, bbox: BoundingBox, window: DateWindow) -> CollectorResult:
        self.stats["requests"] += 1

        # ASK: is the feed currently allowed?
        if await self.circuit_breaker.is_open(self.service_name):
            self.stats["circuit_open_blocks"] += 1
            self.stats["soft_failures"] += 1
            logger.debug(f"Circuit breaker OPEN for {self.service_name} - skipping collector")
            return CollectorResult.failure(self.source, f"circuit breaker open for {self.wrapped.name}")

        result = await self.wrapped.fetch_events(bbox, window)

        # TELL: report the outcome
        if result.soft_failed:
            await self.circuit_breaker.record_failure(self.service_name)
            self.stats["soft_failures"] += 1
        else:
            await self.circuit_breaker.record_success(self.service_name)
            self.stats["successes"] += 1
            self.stats["events_returned"] += len(result.events)
        self.stats["total_time_ms"] += result.elapsed_ms
        return result

    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        return await self.wrapped._collect(bbox, window)

    async def health_check(self) -> Dict[str, Any]:
        wrapped_health = await self.wrapped.health_check()
        cb_status = await self.circuit_breaker.get_status(self.service_name)
        status = "circuit_open" if cb_status.get("is_open") else wrapped_health.get("status", "unknown")
        return {
            "status": status,
            "collector": self.name,
            "source": self.source.value,
            "wrapped": wrapped_health,
            "circuit_breaker": cb_status,
        }

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats["wrapped"] = self.wrapped.get_statistics()
        return stats

    async def close(self):
        await self.wrapped.close()
