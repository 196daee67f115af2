"""
Shared test fixtures for the date-of-loss engine test suite.
Provides the reference property, event factories and the Phoenix storm scenario.
"""
import math
from datetime import date, datetime, timezone

import pytest

from dol_engine.models import (
    DateWindow,
    EventSource,
    EventType,
    Geometry,
    PropertyContext,
    WeatherEvent,
)

PHOENIX_LAT = 33.4484
PHOENIX_LON = -112.0740
EARTH_RADIUS_MILES = 3958.8


def offset_north(lat: float, miles: float) -> float:
    """Latitude `miles` due north of lat (exact along a meridian)."""
    return lat + math.degrees(miles / EARTH_RADIUS_MILES)


def offset_east(lat: float, lon: float, miles: float) -> float:
    """Longitude roughly `miles` due east at latitude lat."""
    return lon + math.degrees(miles / (EARTH_RADIUS_MILES * math.cos(math.radians(lat))))


def square(lat: float, lon: float, half_size_deg: float) -> Geometry:
    return Geometry.polygon([
        (lat - half_size_deg, lon - half_size_deg),
        (lat - half_size_deg, lon + half_size_deg),
        (lat + half_size_deg, lon + half_size_deg),
        (lat + half_size_deg, lon - half_size_deg),
    ])


@pytest.fixture
def phoenix():
    """Reference property used throughout the scenarios."""
    return PropertyContext(lat=PHOENIX_LAT, lon=PHOENIX_LON, address="Phoenix, AZ")


@pytest.fixture
def spring_window():
    return DateWindow(start=date(2024, 4, 1), end=date(2024, 5, 31))


@pytest.fixture
def make_event():
    """Factory for WeatherEvents with sensible defaults."""
    counter = {"n": 0}

    def _make(
        source=EventSource.GROUND_REPORT,
        event_type=EventType.HAIL_REPORT,
        occurred_at=datetime(2024, 5, 3, 22, 30, tzinfo=timezone.utc),
        geometry=None,
        magnitude=None,
        quality_score=1.0,
        event_id=None,
        **kwargs,
    ):
        counter["n"] += 1
        return WeatherEvent(
            id=event_id or f"{source.value}-{counter['n']}",
            source=source,
            type=event_type,
            occurred_at=occurred_at,
            geometry=geometry or Geometry.point(PHOENIX_LAT, PHOENIX_LON),
            magnitude=magnitude,
            quality_score=quality_score,
            source_ref=f"ref-{counter['n']}",
            **kwargs,
        )

    return _make


@pytest.fixture
def scenario_events():
    """
    Phoenix storm scenario:
    - 1.75in hail ground report 2 miles north on 2024-05-03
    - severe thunderstorm warning polygon covering the property on 2024-05-03
    - radar hail core 40 miles north on 2024-04-20
    """
    hail = WeatherEvent(
        id="lsr-hail-1",
        source=EventSource.GROUND_REPORT,
        type=EventType.HAIL_REPORT,
        occurred_at=datetime(2024, 5, 3, 22, 30, tzinfo=timezone.utc),
        geometry=Geometry.point(offset_north(PHOENIX_LAT, 2.0), PHOENIX_LON),
        magnitude=1.75,
        source_ref="LSRPSR-0503",
    )
    warning = WeatherEvent(
        id="svr-warning-1",
        source=EventSource.ALERT,
        type=EventType.SEVERE_THUNDERSTORM_WARNING,
        occurred_at=datetime(2024, 5, 3, 18, 0, tzinfo=timezone.utc),
        geometry=square(PHOENIX_LAT, PHOENIX_LON, 0.1),
        source_ref="urn:oid:svr-1",
        metadata={"headline": "Severe Thunderstorm Warning issued May 3"},
    )
    radar = WeatherEvent(
        id="core-0420",
        source=EventSource.RADAR_DERIVED,
        type=EventType.RADAR_CORE,
        occurred_at=datetime(2024, 4, 20, 23, 0, tzinfo=timezone.utc),
        geometry=square(offset_north(PHOENIX_LAT, 40.0), PHOENIX_LON, 0.02),
        magnitude=2.0,
    )
    return {"hail": hail, "warning": warning, "radar": radar}


@pytest.fixture(autouse=True)
def suppress_logging():
    """Suppress logging during tests to reduce noise."""
    import logging
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)
