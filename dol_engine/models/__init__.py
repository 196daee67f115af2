"""
Data models for the date-of-loss engine.
"""
from .geometry import BoundingBox, GeoPoint, Geometry
from .events import (
    ALERT_TYPES,
    EventSource,
    EventType,
    MagnitudeKind,
    ScoredEvent,
    WeatherEvent,
    implied_magnitude_kind,
)
from .results import CitedEvent, DateCandidate, DateWindow, DOLResult, PropertyContext

__all__ = [
    'BoundingBox', 'GeoPoint', 'Geometry',
    'ALERT_TYPES', 'EventSource', 'EventType', 'MagnitudeKind', 'ScoredEvent', 'WeatherEvent',
    'implied_magnitude_kind',
    'CitedEvent', 'DateCandidate', 'DateWindow', 'DOLResult', 'PropertyContext',
]
