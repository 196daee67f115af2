"""
Weather event models.

WeatherEvent is the normalized form every collector produces; ScoredEvent is
that event evaluated against one property. Both are immutable.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ..exceptions import InvalidEventError
from .geometry import Geometry


class EventSource(str, Enum):
    """Independent ingestion channels, in descending authority"""
    ALERT = "alert"
    GROUND_REPORT = "ground_report"
    RADAR_DERIVED = "radar_derived"

    @property
    def priority(self) -> int:
        """Lower is more authoritative."""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    EventSource.ALERT: 0,
    EventSource.GROUND_REPORT: 1,
    EventSource.RADAR_DERIVED: 2,
}


class EventType(str, Enum):
    SEVERE_THUNDERSTORM_WARNING = "severe_thunderstorm_warning"
    TORNADO_WARNING = "tornado_warning"
    FLASH_FLOOD_WARNING = "flash_flood_warning"
    HAIL_REPORT = "hail_report"
    WIND_REPORT = "wind_report"
    TORNADO_REPORT = "tornado_report"
    RADAR_CORE = "radar_core"

    @property
    def is_alert(self) -> bool:
        return self in ALERT_TYPES


ALERT_TYPES = frozenset({
    EventType.SEVERE_THUNDERSTORM_WARNING,
    EventType.TORNADO_WARNING,
    EventType.FLASH_FLOOD_WARNING,
})


class MagnitudeKind(str, Enum):
    HAIL_INCHES = "hail_inches"
    WIND_MPH = "wind_mph"


_IMPLIED_KIND = {
    EventType.HAIL_REPORT: MagnitudeKind.HAIL_INCHES,
    EventType.RADAR_CORE: MagnitudeKind.HAIL_INCHES,
    EventType.WIND_REPORT: MagnitudeKind.WIND_MPH,
}


def implied_magnitude_kind(event_type: EventType) -> Optional[MagnitudeKind]:
    """Unit a bare magnitude carries for this event type, if any."""
    return _IMPLIED_KIND.get(event_type)


@dataclass(frozen=True)
class WeatherEvent:
    """A single reported or derived weather signal"""
    id: str
    source: EventSource
    type: EventType
    occurred_at: datetime
    geometry: Geometry
    magnitude: Optional[float] = None
    magnitude_kind: Optional[MagnitudeKind] = None
    source_ref: str = ""
    quality_score: float = 1.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.geometry is None or self.geometry.is_empty:
            raise InvalidEventError(self.id, "geometry has no coordinates", source=getattr(self.source, "value", None))

        # frozen: normalize through object.__setattr__
        if self.occurred_at.tzinfo is None:
            object.__setattr__(self, "occurred_at", self.occurred_at.replace(tzinfo=timezone.utc))
        else:
            object.__setattr__(self, "occurred_at", self.occurred_at.astimezone(timezone.utc))

        if self.magnitude is not None and not math.isfinite(self.magnitude):
            object.__setattr__(self, "magnitude", None)
        if self.magnitude_kind is None and self.magnitude is not None:
            object.__setattr__(self, "magnitude_kind", implied_magnitude_kind(self.type))

        quality = self.quality_score
        if quality is None or not math.isfinite(quality):
            quality = 1.0
        object.__setattr__(self, "quality_score", min(max(float(quality), 0.0), 1.0))
        object.__setattr__(self, "metadata", dict(self.metadata or {}))

    @property
    def occurred_date(self):
        """UTC calendar date of the event."""
        return self.occurred_at.date()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "type": self.type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "geometry": self.geometry.to_dict(),
            "magnitude": self.magnitude,
            "magnitude_kind": self.magnitude_kind.value if self.magnitude_kind else None,
            "source_ref": self.source_ref,
            "quality_score": self.quality_score,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherEvent":
        geometry = data.get("geometry") or {}
        if "type" in geometry:
            geometry = Geometry.from_geojson(geometry)
        else:
            geometry = Geometry.from_dict(geometry)
        kind = data.get("magnitude_kind")
        return cls(
            id=str(data["id"]),
            source=EventSource(data["source"]),
            type=EventType(data["type"]),
            occurred_at=datetime.fromisoformat(str(data["occurred_at"]).replace("Z", "+00:00")),
            geometry=geometry,
            magnitude=data.get("magnitude"),
            magnitude_kind=MagnitudeKind(kind) if kind else None,
            source_ref=data.get("source_ref", ""),
            quality_score=data.get("quality_score", 1.0),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class ScoredEvent:
    """A WeatherEvent evaluated against one property"""
    event: WeatherEvent
    distance_miles: float
    bearing_degrees: float
    cardinal_direction: str
    inside_geometry: bool
    score: float

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def source(self) -> EventSource:
        return self.event.source

    @property
    def occurred_at(self) -> datetime:
        return self.event.occurred_at

    @property
    def sources(self):
        """Distinct sources this event stands for, including merged duplicates."""
        merged = self.event.metadata.get("merged_sources") or []
        found = {self.event.source}
        for name in merged:
            try:
                found.add(EventSource(name))
            except ValueError:
                continue
        return frozenset(found)
