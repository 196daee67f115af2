"""
Severe-weather alert collector (CAP-style warnings served as GeoJSON).
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..models.events import EventSource, EventType, MagnitudeKind, WeatherEvent
from ..models.geometry import BoundingBox, Geometry
from ..models.results import DateWindow
from .base_collector import GeoJSONCollector, parse_float, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_ALERTS_URL = "https://api.weather.gov/alerts"

ALERT_EVENT_TYPES = {
    "severe thunderstorm warning": EventType.SEVERE_THUNDERSTORM_WARNING,
    "tornado warning": EventType.TORNADO_WARNING,
    "flash flood warning": EventType.FLASH_FLOOD_WARNING,
}

CERTAINTY_QUALITY = {
    "observed": 1.0,
    "likely": 0.8,
    "possible": 0.5,
    "unlikely": 0.2,
}

SEVERITY_RANK = {
    "extreme": 10,
    "severe": 8,
    "moderate": 5,
}

HAIL_TEXT = re.compile(r"(\d+(?:\.\d+)?)\s*inch(?:es)?\s*hail", re.IGNORECASE)
WIND_TEXT = re.compile(r"(\d+)\s*mph", re.IGNORECASE)


def extract_magnitude(properties: Dict[str, Any]):
    """Hail size or wind gust from CAP parameters, falling back to warning text.

    Hail wins over wind since it is the stronger property-damage signal.
    """
    parameters = properties.get("parameters") or {}
    hail = parse_float(parameters.get("maxHailSize"))
    if hail is not None and hail > 0:
        return hail, MagnitudeKind.HAIL_INCHES
    wind = parse_float(parameters.get("maxWindGust"))
    if wind is not None and wind > 0:
        return wind, MagnitudeKind.WIND_MPH

    text = " ".join(str(properties.get(k) or "") for k in ("headline", "description"))
    match = HAIL_TEXT.search(text)
    if match:
        return float(match.group(1)), MagnitudeKind.HAIL_INCHES
    match = WIND_TEXT.search(text)
    if match:
        return float(match.group(1)), MagnitudeKind.WIND_MPH
    return None, None


class NWSAlertCollector(GeoJSONCollector):
    """Collects severe thunderstorm, tornado and flash flood warnings"""

    SOURCE = EventSource.ALERT

    def __init__(self, base_url: str = DEFAULT_ALERTS_URL, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        """
        Query alerts whose polygon covers the bbox centre (the property).

        The alerts endpoint filters by a single point, so a warning that
        passed near the property without covering it is not returned and
        proximity decay only applies to alerts from feeds that answer area
        queries. Whatever the feed does return is still scoped by
        filter_in_scope.
        """
        center_lat = (bbox.min_lat + bbox.max_lat) / 2
        center_lon = (bbox.min_lon + bbox.max_lon) / 2
        params = {
            "start": window.start_datetime.isoformat(),
            "end": window.end_datetime.isoformat(),
            "point": f"{center_lat:.4f},{center_lon:.4f}",
            "event": ",".join(name.title() for name in ALERT_EVENT_TYPES),
        }
        payload = await self._get_json(self.base_url, params=params)
        return self._normalize_features(payload, bbox, window)

    def parse_feature(self, feature: Dict[str, Any]) -> Optional[WeatherEvent]:
        properties = feature.get("properties") or {}
        event_type = ALERT_EVENT_TYPES.get(str(properties.get("event", "")).strip().lower())
        if event_type is None:
            return None

        occurred_at = None
        for key in ("onset", "effective", "sent"):
            occurred_at = parse_timestamp(properties.get(key))
            if occurred_at is not None:
                break
        if occurred_at is None:
            raise ValueError("alert has no onset, effective or sent time")

        magnitude, magnitude_kind = extract_magnitude(properties)
        certainty = str(properties.get("certainty") or "").lower()
        severity = str(properties.get("severity") or "")
        alert_id = str(properties.get("id") or feature.get("id"))

        return WeatherEvent(
            id=alert_id,
            source=self.source,
            type=event_type,
            occurred_at=occurred_at,
            geometry=Geometry.from_geojson(feature.get("geometry")),
            magnitude=magnitude,
            magnitude_kind=magnitude_kind,
            source_ref=str(feature.get("id") or properties.get("@id") or alert_id),
            quality_score=CERTAINTY_QUALITY.get(certainty, 1.0),
            metadata={
                "headline": properties.get("headline"),
                "area": properties.get("areaDesc"),
                "severity": severity,
                "severity_rank": SEVERITY_RANK.get(severity.lower(), 3),
                "certainty": properties.get("certainty"),
                "expires": properties.get("expires"),
            },
        )
