"""
Composite event scoring.

score = normalized_magnitude * proximity_weight * quality_score

Every constant lives in ScoringParameters so a tuned configuration is one
value that can be fingerprinted for the cache key.
"""
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from .geo_math import nearest_point_on_geometry
from .models.events import EventType, MagnitudeKind, ScoredEvent, WeatherEvent
from .models.results import PropertyContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringParameters:
    max_radius_miles: float = 25.0
    hail_reference_inches: float = 1.5
    wind_reference_mph: float = 58.0
    alert_magnitude_floor: float = 0.3
    corroboration_bonus: float = 1.2
    soft_fail_penalty: float = 0.15
    dominance_weight: float = 0.6
    source_weight: float = 0.4
    max_top_events: int = 10
    dedup_window_hours: float = 3.0
    dedup_distance_miles: float = 10.0

    def fingerprint(self) -> str:
        """Short stable hash of every parameter."""
        payload = json.dumps(asdict(self), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:10]


DEFAULT_PARAMETERS = ScoringParameters()


def normalize_magnitude_value(
    magnitude: Optional[float],
    kind: Optional[MagnitudeKind],
    params: ScoringParameters = DEFAULT_PARAMETERS,
) -> Optional[float]:
    """Magnitude on the [0, 1] severity scale, or None if it has no known unit."""
    if magnitude is None or kind is None:
        return None
    if kind == MagnitudeKind.HAIL_INCHES:
        reference = params.hail_reference_inches
    elif kind == MagnitudeKind.WIND_MPH:
        reference = params.wind_reference_mph
    else:
        return None
    return min(max(magnitude / reference, 0.0), 1.0)


def normalized_magnitude(event: WeatherEvent, params: ScoringParameters = DEFAULT_PARAMETERS) -> float:
    """
    Type-aware severity in [0, 1].

    Alerts never score below the alert floor since a warning alone is
    evidence. A tornado report without a rating is a confirmed touchdown and
    scores 1. Any other event without a usable magnitude scores 0.

    A merged event never scores below its strongest member, recorded by the
    deduplicator as metadata["merged_severity"].
    """
    value = normalize_magnitude_value(event.magnitude, event.magnitude_kind, params)

    if event.type.is_alert:
        severity = max(value or 0.0, params.alert_magnitude_floor)
    elif event.type == EventType.TORNADO_REPORT:
        severity = 1.0 if value is None else max(value, params.alert_magnitude_floor)
    else:
        severity = value or 0.0
    return max(severity, float(event.metadata.get("merged_severity") or 0.0))


def proximity_weight(distance_miles: float, params: ScoringParameters = DEFAULT_PARAMETERS) -> float:
    """Linear decay from 1 at the property to 0 at max_radius_miles."""
    return max(0.0, 1.0 - distance_miles / params.max_radius_miles)


def score_event(
    event: WeatherEvent,
    prop: PropertyContext,
    params: ScoringParameters = DEFAULT_PARAMETERS,
) -> ScoredEvent:
    nearest = nearest_point_on_geometry(prop.point, event.geometry)
    weight = 1.0 if nearest.inside else proximity_weight(nearest.distance_miles, params)
    score = normalized_magnitude(event, params) * weight * event.quality_score
    return ScoredEvent(
        event=event,
        distance_miles=nearest.distance_miles,
        bearing_degrees=nearest.bearing_degrees,
        cardinal_direction=nearest.cardinal_direction,
        inside_geometry=nearest.inside,
        score=score,
    )


def score_events(
    events: Iterable[WeatherEvent],
    prop: PropertyContext,
    params: ScoringParameters = DEFAULT_PARAMETERS,
) -> List[ScoredEvent]:
    """Score every event; callers filter on score > 0."""
    scored = [score_event(event, prop, params) for event in events]
    positive = sum(1 for s in scored if s.score > 0)
    logger.debug(f"Scored {len(scored)} events, {positive} within {params.max_radius_miles} mi with signal")
    return scored
