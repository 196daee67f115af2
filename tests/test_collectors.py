"""
Collector tests against canned GeoJSON feeds served through httpx.MockTransport.
"""
import asyncio
import json
from datetime import date, datetime, timezone

import httpx
import pytest

from dol_engine.collectors import (
    GeoJSONCollector,
    NWSAlertCollector,
    RadarCoreCollector,
    StaticCollector,
    StormReportCollector,
)
from dol_engine.collectors.base_collector import parse_float, parse_timestamp
from dol_engine.collectors.nws_alert_collector import extract_magnitude
from dol_engine.collectors.storm_report_collector import classify_report
from dol_engine.error_handling import NonRetryableError, RetryableError, classify_http_error
from dol_engine.models import (
    BoundingBox,
    DateWindow,
    EventSource,
    EventType,
    GeoPoint,
    MagnitudeKind,
)

from conftest import PHOENIX_LAT, PHOENIX_LON

pytest_plugins = ('pytest_asyncio',)

WINDOW = DateWindow(start=date(2024, 4, 1), end=date(2024, 5, 31))
BBOX = BoundingBox.around(GeoPoint(PHOENIX_LAT, PHOENIX_LON), 50.0)


def polygon_around(lat, lon, half=0.1):
    ring = [
        [lon - half, lat - half],
        [lon + half, lat - half],
        [lon + half, lat + half],
        [lon - half, lat + half],
        [lon - half, lat - half],
    ]
    return {"type": "Polygon", "coordinates": [ring]}


def feature_collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


class FeedRecorder:
    """MockTransport handler replaying queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


ALERT_FEED = feature_collection(
    {
        "id": "https://api.weather.gov/alerts/urn:oid:svr-1",
        "type": "Feature",
        "geometry": polygon_around(PHOENIX_LAT, PHOENIX_LON),
        "properties": {
            "id": "urn:oid:svr-1",
            "event": "Severe Thunderstorm Warning",
            "onset": "2024-05-03T15:05:00-07:00",
            "sent": "2024-05-03T15:00:00-07:00",
            "certainty": "Likely",
            "severity": "Severe",
            "headline": "Severe Thunderstorm Warning issued May 3",
            "parameters": {"maxHailSize": ["1.00"], "maxWindGust": ["60 MPH"]},
        },
    },
    {
        "id": "statement-1",
        "geometry": polygon_around(PHOENIX_LAT, PHOENIX_LON),
        "properties": {"event": "Special Weather Statement", "onset": "2024-05-03T14:00:00Z"},
    },
    {
        "id": "no-time",
        "geometry": polygon_around(PHOENIX_LAT, PHOENIX_LON),
        "properties": {"event": "Tornado Warning"},
    },
    {
        "id": "outside-window",
        "geometry": polygon_around(PHOENIX_LAT, PHOENIX_LON),
        "properties": {"event": "Tornado Warning", "onset": "2023-07-01T00:00:00Z"},
    },
    {
        "id": "no-geometry",
        "geometry": None,
        "properties": {"event": "Flash Flood Warning", "onset": "2024-05-03T14:00:00Z"},
    },
)

REPORT_FEED = feature_collection(
    {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [PHOENIX_LON, PHOENIX_LAT + 0.03]},
        "properties": {
            "valid": "2024-05-03T22:30:00Z",
            "typetext": "HAIL",
            "magnitude": 1.75,
            "product_id": "202405032235-KPSR-NWUS55-LSRPSR",
            "city": "Phoenix",
        },
    },
    {
        "type": "Feature",
        "geometry": None,
        "properties": {
            "valid": "2024-05-03T22:40:00Z",
            "typetext": "TSTM WND GST",
            "magnitude": "70",
            "lat": PHOENIX_LAT,
            "lon": PHOENIX_LON - 0.05,
            "wfo": "PSR",
        },
    },
    {
        "id": "tor-1",
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [PHOENIX_LON, PHOENIX_LAT]},
        "properties": {"valid": "2024-05-03T23:00:00Z", "typetext": "TORNADO", "magnitude": 0},
    },
    {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [PHOENIX_LON, PHOENIX_LAT]},
        "properties": {"valid": "2024-05-03T23:00:00Z", "typetext": "HEAVY RAIN", "magnitude": 2.1},
    },
    {
        "id": "far-away",
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [-97.5, 35.4]},
        "properties": {"valid": "2024-05-03T23:00:00Z", "typetext": "HAIL", "magnitude": 2.5},
    },
)

RADAR_FEED = feature_collection(
    {
        "id": "core-0503-1",
        "type": "Feature",
        "geometry": polygon_around(PHOENIX_LAT + 0.05, PHOENIX_LON, 0.02),
        "properties": {"valid": "2024-05-03T22:20:00Z", "mesh_inches": 2.0, "confidence": 0.7, "radar": "KIWA"},
    },
)


class TestAlertCollector:
    @pytest.mark.asyncio
    async def test_parses_warnings(self):
        feed = FeedRecorder(ALERT_FEED)
        collector = NWSAlertCollector(client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)

        assert not result.soft_failed
        assert [e.id for e in result.events] == ["urn:oid:svr-1"]
        assert result.skipped_features == 2

        event = result.events[0]
        assert event.source == EventSource.ALERT
        assert event.type == EventType.SEVERE_THUNDERSTORM_WARNING
        assert event.occurred_at == datetime(2024, 5, 3, 22, 5, tzinfo=timezone.utc)
        assert event.magnitude == 1.0
        assert event.magnitude_kind == MagnitudeKind.HAIL_INCHES
        assert event.quality_score == 0.8
        assert event.geometry.is_polygon
        assert event.metadata["severity_rank"] == 8

        params = feed.requests[0].url.params
        assert params["point"] == f"{PHOENIX_LAT:.4f},{PHOENIX_LON:.4f}"
        assert "Severe Thunderstorm Warning" in params["event"]

    @pytest.mark.asyncio
    async def test_nearby_warning_kept_for_proximity_scoring(self):
        # polygon 0.3 degrees north, not covering the queried point
        nearby = feature_collection({
            "id": "svr-nearby",
            "geometry": polygon_around(PHOENIX_LAT + 0.3, PHOENIX_LON),
            "properties": {"event": "Severe Thunderstorm Warning", "onset": "2024-05-03T21:00:00Z"},
        })
        feed = FeedRecorder(nearby)
        collector = NWSAlertCollector(client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)

        assert [e.id for e in result.events] == ["svr-nearby"]
        assert feed.requests[0].url.params["point"] == f"{PHOENIX_LAT:.4f},{PHOENIX_LON:.4f}"

    @pytest.mark.asyncio
    async def test_concurrent_fetches_count_skips_separately(self):
        clean = feature_collection(ALERT_FEED["features"][0])
        feed = FeedRecorder(ALERT_FEED, clean)
        collector = NWSAlertCollector(client=feed.client(), max_retries=0)
        first, second = await asyncio.gather(
            collector.fetch_events(BBOX, WINDOW),
            collector.fetch_events(BBOX, WINDOW),
        )

        assert sorted([first.skipped_features, second.skipped_features]) == [0, 2]
        assert collector.stats["features_skipped"] == 2

    def test_magnitude_from_text(self):
        magnitude, kind = extract_magnitude({"description": "Ping pong ball size, 1.50 inch hail expected."})
        assert (magnitude, kind) == (1.5, MagnitudeKind.HAIL_INCHES)
        magnitude, kind = extract_magnitude({"headline": "Wind gusts to 70 mph"})
        assert (magnitude, kind) == (70.0, MagnitudeKind.WIND_MPH)
        assert extract_magnitude({"description": "Heavy rain"}) == (None, None)


class TestStormReportCollector:
    @pytest.mark.asyncio
    async def test_parses_reports(self):
        feed = FeedRecorder(REPORT_FEED)
        collector = StormReportCollector(client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)

        assert not result.soft_failed
        by_type = {e.type: e for e in result.events}
        assert set(by_type) == {EventType.HAIL_REPORT, EventType.WIND_REPORT, EventType.TORNADO_REPORT}

        hail = by_type[EventType.HAIL_REPORT]
        assert hail.magnitude == 1.75
        assert hail.source_ref == "202405032235-KPSR-NWUS55-LSRPSR"
        assert hail.id.startswith("202405032235-KPSR-NWUS55-LSRPSR:202405032230:")

        wind = by_type[EventType.WIND_REPORT]
        assert wind.magnitude == 70.0
        assert wind.magnitude_kind == MagnitudeKind.WIND_MPH
        assert wind.id.startswith("PSR:202405032240:")

        tornado = by_type[EventType.TORNADO_REPORT]
        assert tornado.magnitude is None

        params = feed.requests[0].url.params
        assert params["sts"] == "202404010000"
        assert params["ets"] == "202406010000"
        assert params["bbox"] == BBOX.to_query()

    @pytest.mark.parametrize("typetext,expected", [
        ("HAIL", EventType.HAIL_REPORT),
        ("Marine Hail", EventType.HAIL_REPORT),
        ("TSTM WND GST", EventType.WIND_REPORT),
        ("NON-TSTM WND DMG", EventType.WIND_REPORT),
        ("TORNADO", EventType.TORNADO_REPORT),
        ("FUNNEL CLOUD", None),
        ("SNOW", None),
    ])
    def test_classify_report(self, typetext, expected):
        assert classify_report(typetext) == expected


class TestRadarCoreCollector:
    @pytest.mark.asyncio
    async def test_parses_cores(self):
        feed = FeedRecorder(RADAR_FEED)
        collector = RadarCoreCollector("https://radar.example/cores", client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)

        assert len(result.events) == 1
        core = result.events[0]
        assert core.source == EventSource.RADAR_DERIVED
        assert core.type == EventType.RADAR_CORE
        assert core.magnitude == 2.0
        assert core.quality_score == 0.7
        assert feed.requests[0].url.params["start"] == "2024-04-01"


class TestFeedFailures:
    @pytest.mark.asyncio
    async def test_server_error_retried_then_recovered(self):
        feed = FeedRecorder(httpx.Response(503), REPORT_FEED)
        collector = StormReportCollector(client=feed.client(), max_retries=1)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert not result.soft_failed
        assert len(feed.requests) == 2
        assert len(result.events) == 3

    @pytest.mark.asyncio
    async def test_persistent_server_error_soft_fails(self):
        feed = FeedRecorder(httpx.Response(502))
        collector = StormReportCollector(client=feed.client(), max_retries=1)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert result.events == ()
        assert "server error" in result.error
        assert len(feed.requests) == 2
        assert collector.stats["soft_failures"] == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        feed = FeedRecorder(httpx.Response(404))
        collector = NWSAlertCollector(client=feed.client(), max_retries=3)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert len(feed.requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_soft_fails(self):
        feed = FeedRecorder(httpx.Response(200, content=b"<html>maintenance</html>"))
        collector = NWSAlertCollector(client=feed.client(), max_retries=2)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert "invalid JSON" in result.error
        assert len(feed.requests) == 1

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape_soft_fails(self):
        feed = FeedRecorder({"error": "no data"})
        collector = RadarCoreCollector("https://radar.example/cores", client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert "FeatureCollection" in result.error

    @pytest.mark.asyncio
    async def test_connection_error_soft_fails(self):
        feed = FeedRecorder(httpx.ConnectError("connection refused"))
        collector = StormReportCollector(client=feed.client(), max_retries=0)
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert "transport error" in result.error

    @pytest.mark.asyncio
    async def test_health_reflects_failures(self):
        feed = FeedRecorder(httpx.Response(404))
        collector = StormReportCollector(client=feed.client(), max_retries=0)
        await collector.fetch_events(BBOX, WINDOW)
        health = await collector.health_check()
        assert health["status"] == "unavailable"
        stats = collector.get_statistics()
        assert stats["success_rate"] == 0.0
        assert stats["source"] == "ground_report"


class TestStaticCollector:
    @pytest.mark.asyncio
    async def test_slow_feed_times_out(self, scenario_events):
        collector = StaticCollector(
            EventSource.RADAR_DERIVED,
            [scenario_events["radar"]],
            delay_seconds=10.0,
            timeout_seconds=0.05,
        )
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert "timed out" in result.error
        assert result.events == ()

    @pytest.mark.asyncio
    async def test_raising_feed_soft_fails(self):
        collector = StaticCollector(EventSource.ALERT, error=RuntimeError("boom"))
        result = await collector.fetch_events(BBOX, WINDOW)
        assert result.soft_failed
        assert "boom" in result.error

    @pytest.mark.asyncio
    async def test_filters_to_window_and_bbox(self, scenario_events):
        collector = StaticCollector(EventSource.GROUND_REPORT, [scenario_events["hail"]])
        inside = await collector.fetch_events(BBOX, WINDOW)
        assert [e.id for e in inside.events] == ["lsr-hail-1"]

        june = DateWindow(start=date(2024, 6, 1), end=date(2024, 6, 30))
        outside = await collector.fetch_events(BBOX, june)
        assert outside.events == ()
        assert collector.calls == 2

    def test_rejects_foreign_events(self, scenario_events):
        with pytest.raises(ValueError):
            StaticCollector(EventSource.ALERT, [scenario_events["hail"]])

    def test_from_fixture(self, tmp_path, scenario_events):
        path = tmp_path / "events.json"
        path.write_text(json.dumps({"events": [e.to_dict() for e in scenario_events.values()]}))
        collectors = StaticCollector.from_fixture(path, timeout_seconds=1.0)
        by_source = {c.source: c for c in collectors}
        assert set(by_source) == set(EventSource)
        assert [e.id for e in by_source[EventSource.ALERT].events] == ["svr-warning-1"]
        assert by_source[EventSource.RADAR_DERIVED].timeout_seconds == 1.0


class TestGeoJSONCollector:
    def test_parse_feature_is_required(self):
        class NoParser(GeoJSONCollector):
            SOURCE = EventSource.RADAR_DERIVED

            async def _collect(self, bbox, window):
                return [], 0

        with pytest.raises(TypeError):
            NoParser()

    def test_feed_collectors_share_geojson_base(self):
        for cls in (NWSAlertCollector, StormReportCollector, RadarCoreCollector):
            assert issubclass(cls, GeoJSONCollector)
        assert not issubclass(StaticCollector, GeoJSONCollector)


class TestParsingHelpers:
    @pytest.mark.parametrize("value,expected", [
        ("2024-05-03T22:30:00Z", datetime(2024, 5, 3, 22, 30, tzinfo=timezone.utc)),
        ("2024-05-03 22:30", datetime(2024, 5, 3, 22, 30, tzinfo=timezone.utc)),
        ("202405032230", datetime(2024, 5, 3, 22, 30, tzinfo=timezone.utc)),
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        ("", None),
        (None, None),
        ("yesterday", None),
    ])
    def test_parse_timestamp(self, value, expected):
        assert parse_timestamp(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (1.75, 1.75),
        ("0.75 IN", 0.75),
        (["60 MPH"], 60.0),
        ([], None),
        ("M", None),
        (None, None),
    ])
    def test_parse_float(self, value, expected):
        assert parse_float(value) == expected

    def test_classify_http_error(self):
        request = httpx.Request("GET", "https://feed.example")
        server = httpx.HTTPStatusError("", request=request, response=httpx.Response(500, request=request))
        limited = httpx.HTTPStatusError("", request=request, response=httpx.Response(429, request=request))
        assert isinstance(classify_http_error(server, EventSource.ALERT, "alerts"), RetryableError)
        assert isinstance(classify_http_error(limited, EventSource.ALERT, "alerts"), NonRetryableError)
        assert isinstance(classify_http_error(httpx.ReadTimeout("slow"), EventSource.ALERT, "alerts"), RetryableError)
