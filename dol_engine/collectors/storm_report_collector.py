"""
Ground report collector for local storm reports (spotter, public and
station observations) served as GeoJSON points.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models.events import EventSource, EventType, MagnitudeKind, WeatherEvent
from ..models.geometry import BoundingBox, Geometry
from ..models.results import DateWindow
from .base_collector import GeoJSONCollector, parse_float, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_REPORTS_URL = "https://mesonet.agron.iastate.edu/geojson/lsr.geojson"


def classify_report(typetext: str) -> Optional[EventType]:
    text = typetext.upper()
    if "HAIL" in text:
        return EventType.HAIL_REPORT
    if "TORNADO" in text:
        return EventType.TORNADO_REPORT
    if "WND" in text or "WIND" in text:
        return EventType.WIND_REPORT
    return None


class StormReportCollector(GeoJSONCollector):
    """Collects hail, wind and tornado ground reports"""

    SOURCE = EventSource.GROUND_REPORT

    def __init__(self, base_url: str = DEFAULT_REPORTS_URL, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        params = {
            "sts": window.start_datetime.strftime("%Y%m%d%H%M"),
            "ets": window.end_datetime.strftime("%Y%m%d%H%M"),
            "bbox": bbox.to_query(),
        }
        payload = await self._get_json(self.base_url, params=params)
        return self._normalize_features(payload, bbox, window)

    def parse_feature(self, feature: Dict[str, Any]) -> Optional[WeatherEvent]:
        properties = feature.get("properties") or {}
        event_type = classify_report(str(properties.get("typetext") or properties.get("type") or ""))
        if event_type is None:
            return None

        occurred_at = parse_timestamp(properties.get("valid") or properties.get("utc_valid"))
        if occurred_at is None:
            raise ValueError("report has no valid time")

        geometry = Geometry.from_geojson(feature.get("geometry"))
        if geometry.is_empty and properties.get("lat") is not None and properties.get("lon") is not None:
            geometry = Geometry.point(float(properties["lat"]), float(properties["lon"]))

        magnitude = parse_float(properties.get("magnitude"))
        if magnitude is not None and magnitude <= 0:
            magnitude = None
        magnitude_kind = None
        if magnitude is not None and event_type == EventType.HAIL_REPORT:
            magnitude_kind = MagnitudeKind.HAIL_INCHES
        elif magnitude is not None and event_type == EventType.WIND_REPORT:
            magnitude_kind = MagnitudeKind.WIND_MPH

        # one product can carry many reports, so key on time and place as well
        report_id = feature.get("id")
        if report_id is None and not geometry.is_empty:
            location = geometry.coordinates[0]
            report_id = (
                f"{properties.get('product_id') or properties.get('wfo', 'lsr')}:"
                f"{occurred_at:%Y%m%d%H%M}:{location.lat:.3f},{location.lon:.3f}"
            )
        if report_id is None:
            raise ValueError("report has no identifier or location")

        return WeatherEvent(
            id=str(report_id),
            source=self.source,
            type=event_type,
            occurred_at=occurred_at,
            geometry=geometry,
            magnitude=magnitude,
            magnitude_kind=magnitude_kind,
            source_ref=str(properties.get("product_id") or report_id),
            metadata={
                "typetext": properties.get("typetext"),
                "city": properties.get("city"),
                "county": properties.get("county"),
                "state": properties.get("state"),
                "reporter": properties.get("source"),
                "remark": properties.get("remark"),
            },
        )
