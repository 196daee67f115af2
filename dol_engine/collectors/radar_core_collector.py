"""
Radar-derived hail core collector.

Reads GeoJSON polygons of high-reflectivity storm cores, each with a valid
time, an optional maximum estimated hail size (MESH, inches) and an optional
detection confidence.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models.events import EventSource, EventType, MagnitudeKind, WeatherEvent
from ..models.geometry import BoundingBox, Geometry
from ..models.results import DateWindow
from .base_collector import GeoJSONCollector, parse_float, parse_timestamp

logger = logging.getLogger(__name__)


class RadarCoreCollector(GeoJSONCollector):
    SOURCE = EventSource.RADAR_DERIVED

    def __init__(self, base_url: str, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        params = {
            "start": window.start.isoformat(),
            "end": window.end.isoformat(),
            "bbox": bbox.to_query(),
        }
        payload = await self._get_json(self.base_url, params=params)
        return self._normalize_features(payload, bbox, window)

    def parse_feature(self, feature: Dict[str, Any]) -> Optional[WeatherEvent]:
        properties = feature.get("properties") or {}
        occurred_at = parse_timestamp(properties.get("valid") or properties.get("time"))
        if occurred_at is None:
            raise ValueError("radar core has no valid time")

        mesh = parse_float(properties.get("mesh_inches", properties.get("mesh")))
        confidence = parse_float(properties.get("confidence"))
        core_id = properties.get("id") or feature.get("id") or f"core-{occurred_at:%Y%m%d%H%M%S}"

        return WeatherEvent(
            id=str(core_id),
            source=self.source,
            type=EventType.RADAR_CORE,
            occurred_at=occurred_at,
            geometry=Geometry.from_geojson(feature.get("geometry")),
            magnitude=mesh if mesh is not None and mesh > 0 else None,
            magnitude_kind=MagnitudeKind.HAIL_INCHES,
            source_ref=str(properties.get("source_ref") or core_id),
            quality_score=confidence if confidence is not None else 1.0,
            metadata={
                "radar": properties.get("radar"),
                "max_dbz": properties.get("max_dbz"),
            },
        )
