"""
Base collector for weather event sources.

A collector turns one upstream feed into normalized WeatherEvents for a
bounding box and date window. fetch_events never raises for feed problems:
timeouts, transport errors and unparseable payloads come back as an empty
CollectorResult with soft_failed=True so the engine can degrade confidence
instead of failing the request.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from ..error_handling import CollectorError, NonRetryableError, classify_http_error, retry_with_backoff
from ..exceptions import InvalidEventError, SourceUnavailableError
from ..models.events import EventSource, WeatherEvent
from ..models.geometry import BoundingBox
from ..models.results import DateWindow

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "dol-engine/0.1 (weather-correlation)"


@dataclass(frozen=True)
class CollectorResult:
    """Outcome of one collector call"""
    source: EventSource
    events: Tuple[WeatherEvent, ...] = ()
    soft_failed: bool = False
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    skipped_features: int = 0

    @classmethod
    def failure(cls, source: EventSource, error: str, elapsed_ms: float = 0.0) -> "CollectorResult":
        return cls(source=source, soft_failed=True, error=error, elapsed_ms=elapsed_ms)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse feed timestamps ('2024-05-03T21:15:00Z', '2024-05-03 21:15', epoch seconds) as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip().replace("Z", "+00:00")
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            try:
                moment = datetime.strptime(text, "%Y%m%d%H%M")
            except ValueError:
                return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_float(value: Any) -> Optional[float]:
    """First number in a feed value such as 1.75, '1.75', ['60 MPH'] or '0.75 IN'."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    token = str(value).strip().split(" ")[0]
    try:
        return float(token)
    except ValueError:
        return None


class BaseCollector(ABC):
    """Abstract base class for weather event collectors"""

    SOURCE: EventSource = None

    def __init__(
        self,
        name: Optional[str] = None,
        timeout_seconds: float = 5.0,
        max_retries: int = 1,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        source: Optional[EventSource] = None,
    ):
        self.source = source or self.SOURCE
        if self.source is None:
            raise ValueError(f"{self.__class__.__name__} needs an event source")
        self.name = name or self.source.value
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

        self.stats = {
            "requests": 0,
            "successes": 0,
            "soft_failures": 0,
            "events_returned": 0,
            "features_skipped": 0,
            "total_time_ms": 0.0,
        }

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers={"User-Agent": self.user_agent, "Accept": "application/geo+json, application/json"},
            )
        return self._client

    async def fetch_events(self, bbox: BoundingBox, window: DateWindow) -> CollectorResult:
        """Collect events for bbox/window within this collector's time budget."""
        self.stats["requests"] += 1
        start_time = time.monotonic()

        try:
            events, skipped = await asyncio.wait_for(self._collect(bbox, window), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return self._soft_fail(f"timed out after {self.timeout_seconds}s", start_time)
        except (CollectorError, SourceUnavailableError) as e:
            return self._soft_fail(e.message, start_time)
        except Exception as e:
            # parse or programming errors in one feed must not sink the request
            logger.exception(f"Unexpected error in collector {self.name}")
            return self._soft_fail(f"unexpected error: {e}", start_time)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        self.stats["successes"] += 1
        self.stats["events_returned"] += len(events)
        self.stats["total_time_ms"] += elapsed_ms
        logger.debug(
            f"Collector {self.name} returned {len(events)} events in {elapsed_ms:.1f}ms",
            extra={"collector": self.name, "response_time_ms": round(elapsed_ms, 1)},
        )
        return CollectorResult(
            source=self.source,
            events=tuple(events),
            elapsed_ms=elapsed_ms,
            skipped_features=skipped,
        )

    def _soft_fail(self, error: str, start_time: float) -> CollectorResult:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        self.stats["soft_failures"] += 1
        self.stats["total_time_ms"] += elapsed_ms
        logger.warning(
            f"⚠️ Collector {self.name} soft-failed: {error}",
            extra={"collector": self.name, "response_time_ms": round(elapsed_ms, 1)},
        )
        return CollectorResult.failure(self.source, error, elapsed_ms)

    @abstractmethod
    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        """Fetch and normalize events, returning them with the count of skipped features.

        May raise CollectorError or SourceUnavailableError.
        """
        pass

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, retrying transient failures."""

        async def _request():
            try:
                response = await self.client.get(url, params=params)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise classify_http_error(e, self.source, self.name) from e
            try:
                return response.json()
            except ValueError as e:
                raise NonRetryableError(f"{self.name} returned invalid JSON: {e}", self.source) from e

        _request.__name__ = f"{self.name}_get"
        return await retry_with_backoff(
            _request,
            max_retries=self.max_retries,
            base_delay=0.25,
            max_delay=self.timeout_seconds / 2,
            exceptions=(CollectorError,),
        )

    @staticmethod
    def filter_in_scope(
        events: Iterable[WeatherEvent],
        bbox: BoundingBox,
        window: DateWindow,
    ) -> List[WeatherEvent]:
        return [e for e in events if window.contains(e.occurred_at) and bbox.intersects(e.geometry)]

    async def health_check(self) -> Dict[str, Any]:
        """Check health status from recent call outcomes"""
        requests = self.stats["requests"]
        failures = self.stats["soft_failures"]
        status = "healthy"
        if requests and failures == requests:
            status = "unavailable"
        elif failures:
            status = "degraded"
        return {"status": status, "collector": self.name, "source": self.source.value, "statistics": self.stats}

    def get_statistics(self) -> Dict[str, Any]:
        requests = max(self.stats["requests"], 1)
        return {
            "collector": self.name,
            "source": self.source.value,
            **self.stats,
            "success_rate": (self.stats["successes"] / requests) * 100,
            "avg_time_ms": self.stats["total_time_ms"] / requests,
        }

    async def close(self):
        """Close the HTTP client if this collector created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class GeoJSONCollector(BaseCollector):
    """Base for feeds that serve a GeoJSON FeatureCollection.

    Subclasses build the request in _collect and normalize each feature in
    parse_feature. Skipped features are counted per call, so one collector
    can serve concurrent requests.
    """

    @abstractmethod
    def parse_feature(self, feature: Dict[str, Any]) -> Optional[WeatherEvent]:
        """Normalize one GeoJSON feature; None means the feature is not relevant."""
        pass

    def _normalize_features(
        self,
        payload: Any,
        bbox: BoundingBox,
        window: DateWindow,
    ) -> Tuple[List[WeatherEvent], int]:
        """Normalize a FeatureCollection, skipping malformed or out-of-scope features."""
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
            raise SourceUnavailableError(self.name, "payload is not a GeoJSON FeatureCollection")

        events = []
        skipped = 0
        for feature in payload["features"]:
            try:
                event = self.parse_feature(feature)
            except InvalidEventError as e:
                skipped += 1
                logger.debug(f"Collector {self.name} rejected feature: {e.reason} ({e.event_id})")
                continue
            except (KeyError, TypeError, ValueError, IndexError) as e:
                skipped += 1
                logger.debug(f"Collector {self.name} skipped malformed feature: {e}")
                continue
            if event is not None:
                events.append(event)

        self.stats["features_skipped"] += skipped
        return self.filter_in_scope(events, bbox, window), skipped
