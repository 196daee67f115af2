"""
Request and result models for date-of-loss inference.
"""
import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from ..exceptions import InvalidLocationError, InvalidWindowError
from .geometry import GeoPoint


@dataclass(frozen=True)
class PropertyContext:
    """The claim location being evaluated"""
    lat: float
    lon: float
    address: Optional[str] = None
    name: Optional[str] = None

    def validate(self) -> None:
        """Raise InvalidLocationError unless lat/lon are finite WGS84 values."""
        try:
            lat = float(self.lat)
            lon = float(self.lon)
        except (TypeError, ValueError):
            raise InvalidLocationError(self.lat, self.lon, "coordinates must be numeric")
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidLocationError(self.lat, self.lon, "coordinates must be finite")
        if not -90.0 <= lat <= 90.0:
            raise InvalidLocationError(self.lat, self.lon, "latitude must be within [-90, 90]")
        if not -180.0 <= lon <= 180.0:
            raise InvalidLocationError(self.lat, self.lon, "longitude must be within [-180, 180]")

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(float(self.lat), float(self.lon))


@dataclass(frozen=True)
class DateWindow:
    """Inclusive UTC calendar date range"""
    start: date
    end: date

    @classmethod
    def last_days(cls, days_back: int, today: Optional[date] = None) -> "DateWindow":
        end = today or datetime.now(timezone.utc).date()
        return cls(start=end - timedelta(days=days_back), end=end)

    def validate(self, max_days: Optional[int] = None) -> None:
        if self.start > self.end:
            raise InvalidWindowError(self.start, self.end, "start is after end")
        if max_days is not None and self.days > max_days:
            raise InvalidWindowError(self.start, self.end, f"window exceeds {max_days} days")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def start_datetime(self) -> datetime:
        return datetime(self.start.year, self.start.month, self.start.day, tzinfo=timezone.utc)

    @property
    def end_datetime(self) -> datetime:
        """Exclusive upper bound (midnight after end)."""
        following = self.end + timedelta(days=1)
        return datetime(following.year, following.month, following.day, tzinfo=timezone.utc)

    def contains(self, moment: datetime) -> bool:
        return self.start_datetime <= moment < self.end_datetime

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "DateWindow":
        return cls(start=date.fromisoformat(data["start"]), end=date.fromisoformat(data["end"]))


@dataclass(frozen=True)
class CitedEvent:
    """Citation-relevant fields of one event supporting the recommended date"""
    id: str
    type: str
    source: str
    occurred_at: datetime
    magnitude: Optional[float]
    magnitude_kind: Optional[str]
    distance_miles: float
    direction: str
    score: float
    source_ref: str = ""
    merged_sources: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "occurred_at": self.occurred_at.isoformat(),
            "magnitude": self.magnitude,
            "magnitude_kind": self.magnitude_kind,
            "distance_miles": round(self.distance_miles, 3),
            "direction": self.direction,
            "score": round(self.score, 6),
            "source_ref": self.source_ref,
            "merged_sources": list(self.merged_sources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CitedEvent":
        return cls(
            id=data["id"],
            type=data["type"],
            source=data["source"],
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
            magnitude=data.get("magnitude"),
            magnitude_kind=data.get("magnitude_kind"),
            distance_miles=data["distance_miles"],
            direction=data["direction"],
            score=data["score"],
            source_ref=data.get("source_ref", ""),
            merged_sources=tuple(data.get("merged_sources") or ()),
        )


@dataclass(frozen=True)
class DateCandidate:
    """One calendar-date bucket considered during inference"""
    day: date
    strength: float
    event_count: int
    sources: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "strength": round(self.strength, 6),
            "event_count": self.event_count,
            "sources": list(self.sources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DateCandidate":
        return cls(
            day=date.fromisoformat(data["date"]),
            strength=data["strength"],
            event_count=data["event_count"],
            sources=tuple(data.get("sources") or ()),
        )


@dataclass(frozen=True)
class DOLResult:
    """Engine output for one request. recommended_date None means no signal."""
    recommended_date: Optional[date]
    confidence: float
    total_events_scanned: int
    top_events: Tuple[CitedEvent, ...] = ()
    candidates: Tuple[DateCandidate, ...] = ()
    max_hail_inches: Optional[float] = None
    max_wind_mph: Optional[float] = None
    degraded_sources: Tuple[str, ...] = ()
    window: Optional[DateWindow] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_signal(self) -> bool:
        return self.recommended_date is not None

    @property
    def is_degraded(self) -> bool:
        return len(self.degraded_sources) > 0

    @classmethod
    def no_signal(
        cls,
        total_events_scanned: int,
        degraded_sources: Tuple[str, ...] = (),
        window: Optional[DateWindow] = None,
    ) -> "DOLResult":
        return cls(
            recommended_date=None,
            confidence=0.0,
            total_events_scanned=total_events_scanned,
            degraded_sources=tuple(degraded_sources),
            window=window,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended_date": self.recommended_date.isoformat() if self.recommended_date else None,
            "confidence": round(self.confidence, 6),
            "total_events_scanned": self.total_events_scanned,
            "top_events": [e.to_dict() for e in self.top_events],
            "candidates": [c.to_dict() for c in self.candidates],
            "max_hail_inches": self.max_hail_inches,
            "max_wind_mph": self.max_wind_mph,
            "degraded_sources": list(self.degraded_sources),
            "window": self.window.to_dict() if self.window else None,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DOLResult":
        recommended = data.get("recommended_date")
        window = data.get("window")
        generated = data.get("generated_at")
        return cls(
            recommended_date=date.fromisoformat(recommended) if recommended else None,
            confidence=data["confidence"],
            total_events_scanned=data["total_events_scanned"],
            top_events=tuple(CitedEvent.from_dict(e) for e in data.get("top_events") or []),
            candidates=tuple(DateCandidate.from_dict(c) for c in data.get("candidates") or []),
            max_hail_inches=data.get("max_hail_inches"),
            max_wind_mph=data.get("max_wind_mph"),
            degraded_sources=tuple(data.get("degraded_sources") or ()),
            window=DateWindow.from_dict(window) if window else None,
            generated_at=datetime.fromisoformat(generated) if generated else datetime.now(timezone.utc),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))

    @classmethod
    def from_json(cls, payload) -> "DOLResult":
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        return cls.from_dict(json.loads(payload))
