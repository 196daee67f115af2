"""
Date-of-loss engine.

Coordinates one request end to end: validate the property and window, try
the cache, fan out to every collector concurrently, then deduplicate, score
and infer. Collector failures and timeouts degrade confidence; only an
invalid location or window is raised to the caller.
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from .cache import DOLResultCache, cache_key
from .collectors.base_collector import BaseCollector, CollectorResult
from .deduplicator import deduplicate_events
from .inference import infer_date_of_loss
from .logging_config import get_request_logger
from .models.geometry import BoundingBox
from .models.results import DateWindow, DOLResult, PropertyContext
from .scoring import DEFAULT_PARAMETERS, ScoringParameters, score_events

logger = logging.getLogger(__name__)

# slack on top of a collector's own budget before the engine gives up on it
TIMEOUT_GRACE_SECONDS = 0.5


class DateOfLossEngine:
    """
    Infers the most probable date of loss for a property.

    Collectors run in parallel, each bounded by its own timeout; the engine
    never waits on a collector past that budget. The result cache is the only
    shared state, and its writes are idempotent.
    """

    def __init__(
        self,
        collectors: Sequence[BaseCollector],
        cache: Optional[DOLResultCache] = None,
        params: ScoringParameters = DEFAULT_PARAMETERS,
        search_radius_miles: float = 50.0,
        max_window_days: int = 366,
        default_days_back: int = 90,
    ):
        self.collectors = list(collectors)
        self.cache = cache
        self.params = params
        self.search_radius_miles = max(search_radius_miles, params.max_radius_miles)
        self.max_window_days = max_window_days
        self.default_days_back = default_days_back
        self._request_count = 0

        logger.info(
            f"DateOfLossEngine initialized with {len(self.collectors)} collectors: "
            f"{[c.name for c in self.collectors]}, cache: {cache is not None}"
        )

    async def infer_date_of_loss(self, prop: PropertyContext, window: DateWindow) -> DOLResult:
        """
        Infer the date of loss for prop within window.

        Raises:
            InvalidLocationError: coordinates outside WGS84 ranges
            InvalidWindowError: start after end, or window too long
        """
        prop.validate()
        window.validate(self.max_window_days)

        self._request_count += 1
        request_id = uuid.uuid4().hex[:12]
        log = get_request_logger(__name__, request_id, (prop.lat, prop.lon))
        start_time = time.monotonic()

        key = cache_key(prop, window, self.params)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                log.info(f"Cache hit for {key}")
                return cached

        bbox = BoundingBox.around(prop.point, self.search_radius_miles)
        results = await self._collect_all(bbox, window)

        raw_events = [event for r in results for event in r.events]
        degraded = [r.source for r in results if r.soft_failed]

        deduplicated = deduplicate_events(raw_events, self.params)
        scored = score_events(deduplicated, prop, self.params)
        result = infer_date_of_loss(
            scored,
            total_events_scanned=len(raw_events),
            degraded_sources=degraded,
            params=self.params,
            window=window,
        )

        if self.cache is not None:
            await self.cache.put(key, result)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        log.info(
            f"DOL inference: date={result.recommended_date} confidence={result.confidence:.3f} "
            f"scanned={len(raw_events)} deduplicated={len(deduplicated)} "
            f"cited={len(result.top_events)} degraded={list(result.degraded_sources)}",
            extra={"response_time_ms": round(elapsed_ms, 1)},
        )
        return result

    async def infer_recent(self, prop: PropertyContext, days_back: Optional[int] = None, today=None) -> DOLResult:
        """Infer over the last days_back days ending today (UTC)."""
        window = DateWindow.last_days(days_back or self.default_days_back, today=today)
        return await self.infer_date_of_loss(prop, window)

    async def _collect_all(self, bbox: BoundingBox, window: DateWindow) -> List[CollectorResult]:
        # cancelling this gather cancels every in-flight collector
        return list(await asyncio.gather(*(self._run_collector(c, bbox, window) for c in self.collectors)))

    async def _run_collector(self, collector: BaseCollector, bbox: BoundingBox, window: DateWindow) -> CollectorResult:
        budget = collector.timeout_seconds + TIMEOUT_GRACE_SECONDS
        started = time.monotonic()
        try:
            return await asyncio.wait_for(collector.fetch_events(bbox, window), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Collector {collector.name} exceeded {budget:.1f}s budget")
            error = f"timed out after {budget:.1f}s"
        except Exception as e:
            logger.error(f"❌ Collector {collector.name} raised: {e}", exc_info=True)
            error = f"collector raised: {e}"
        return CollectorResult.failure(collector.source, error, (time.monotonic() - started) * 1000)

    async def health_check(self) -> Dict[str, Any]:
        """Health of every collector; degraded if any is not healthy."""
        checks = await asyncio.gather(*(c.health_check() for c in self.collectors), return_exceptions=True)
        collectors = {}
        overall_healthy = True
        for collector, check in zip(self.collectors, checks):
            if isinstance(check, Exception):
                check = {"status": "error", "error": str(check)}
            collectors[collector.name] = check
            if check.get("status") != "healthy":
                overall_healthy = False
        return {
            "status": "healthy" if overall_healthy else "degraded",
            "collectors": collectors,
            "cache": self.cache.stats if self.cache is not None else None,
        }

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "requests": self._request_count,
            "collectors": [c.get_statistics() for c in self.collectors],
            "cache": self.cache.stats if self.cache is not None else None,
            "scoring_fingerprint": self.params.fingerprint(),
        }

    async def aclose(self) -> None:
        for collector in self.collectors:
            await collector.close()
        if self.cache is not None:
            await self.cache.close()

    async def __aenter__(self) -> "DateOfLossEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
