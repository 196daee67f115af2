from datetime import datetime, timedelta, timezone

import pytest

from dol_engine.deduplicator import UnionFind, deduplicate_events
from dol_engine.models import EventSource, EventType, Geometry, MagnitudeKind
from dol_engine.scoring import ScoringParameters, normalized_magnitude, score_event

from conftest import PHOENIX_LAT, PHOENIX_LON, offset_north, square

BASE_TIME = datetime(2024, 5, 3, 21, 0, tzinfo=timezone.utc)


class TestUnionFind:
    def test_components(self):
        uf = UnionFind(6)
        assert uf.union(0, 1)
        assert uf.union(1, 2)
        assert uf.union(4, 5)
        assert not uf.union(0, 2)
        groups = sorted(sorted(g) for g in uf.groups().values())
        assert groups == [[0, 1, 2], [3], [4, 5]]

    def test_arrays_are_plain_lists(self):
        uf = UnionFind(3)
        uf.union(0, 2)
        assert uf.parent[uf.find(2)] == uf.find(0)
        assert len(uf.rank) == 3


class TestDeduplicate:
    def test_empty(self):
        assert deduplicate_events([]) == []

    def test_alert_and_ground_report_merge(self, make_event):
        alert = make_event(
            source=EventSource.ALERT,
            event_type=EventType.SEVERE_THUNDERSTORM_WARNING,
            occurred_at=BASE_TIME,
            geometry=square(PHOENIX_LAT, PHOENIX_LON, 0.1),
        )
        report = make_event(
            occurred_at=BASE_TIME + timedelta(hours=1),
            geometry=Geometry.point(offset_north(PHOENIX_LAT, 3.0), PHOENIX_LON),
            magnitude=1.75,
        )
        merged = deduplicate_events([report, alert])

        assert len(merged) == 1
        event = merged[0]
        # equal quality: alert wins on source priority
        assert event.source == EventSource.ALERT
        assert event.geometry == alert.geometry
        assert event.magnitude == 1.75
        assert event.magnitude_kind == MagnitudeKind.HAIL_INCHES
        assert event.metadata["merged_count"] == 2
        assert event.metadata["merged_sources"] == ["alert", "ground_report"]
        assert sorted(event.metadata["merged_event_ids"]) == sorted([alert.id, report.id])

    def test_higher_quality_wins_over_priority(self, make_event):
        alert = make_event(
            source=EventSource.ALERT,
            event_type=EventType.SEVERE_THUNDERSTORM_WARNING,
            occurred_at=BASE_TIME,
            quality_score=0.5,
        )
        report = make_event(occurred_at=BASE_TIME, magnitude=1.0, quality_score=0.9)
        merged = deduplicate_events([alert, report])
        assert len(merged) == 1
        assert merged[0].id == report.id
        assert merged[0].source == EventSource.GROUND_REPORT

    def test_alert_severity_survives_unrated_report(self, phoenix, make_event):
        alert = make_event(
            source=EventSource.ALERT,
            event_type=EventType.SEVERE_THUNDERSTORM_WARNING,
            occurred_at=BASE_TIME,
            geometry=square(PHOENIX_LAT, PHOENIX_LON, 0.1),
            quality_score=0.8,
        )
        damage = make_event(
            event_type=EventType.WIND_REPORT,
            occurred_at=BASE_TIME + timedelta(hours=1),
            geometry=Geometry.point(offset_north(PHOENIX_LAT, 3.0), PHOENIX_LON),
            event_id="wnd-dmg",
        )
        merged = deduplicate_events([alert, damage])

        assert len(merged) == 1
        event = merged[0]
        assert event.id == "wnd-dmg"
        assert event.magnitude is None
        assert event.metadata["merged_types"] == ["severe_thunderstorm_warning", "wind_report"]
        assert event.metadata["merged_severity"] == pytest.approx(0.3)
        assert normalized_magnitude(event) == pytest.approx(0.3)
        assert score_event(event, phoenix).score > 0

    def test_merged_severity_carries_through_remerge(self, make_event):
        tornado = make_event(event_type=EventType.TORNADO_REPORT, occurred_at=BASE_TIME, quality_score=0.6)
        hail = make_event(occurred_at=BASE_TIME, magnitude=0.75)
        first = deduplicate_events([tornado, hail])
        assert normalized_magnitude(first[0]) == 1.0

        later = make_event(occurred_at=BASE_TIME + timedelta(minutes=30), magnitude=0.3)
        again = deduplicate_events(first + [later])
        assert len(again) == 1
        assert normalized_magnitude(again[0]) == 1.0
        assert "tornado_report" in again[0].metadata["merged_types"]

    def test_maximum_magnitude_kept(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME, magnitude=1.0),
            make_event(occurred_at=BASE_TIME + timedelta(minutes=20), magnitude=2.5),
            make_event(occurred_at=BASE_TIME + timedelta(minutes=40), magnitude=1.25),
        ]
        merged = deduplicate_events(events)
        assert len(merged) == 1
        assert merged[0].magnitude == 2.5
        # earliest wins the representative tie
        assert merged[0].occurred_at == BASE_TIME

    def test_outside_time_window_not_merged(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME, magnitude=1.0),
            make_event(occurred_at=BASE_TIME + timedelta(hours=3, minutes=1), magnitude=1.0),
        ]
        assert len(deduplicate_events(events)) == 2

    def test_outside_distance_not_merged(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME, magnitude=1.0),
            make_event(
                occurred_at=BASE_TIME,
                magnitude=1.0,
                geometry=Geometry.point(offset_north(PHOENIX_LAT, 10.5), PHOENIX_LON),
            ),
        ]
        assert len(deduplicate_events(events)) == 2

    def test_transitive_chain_forms_one_cluster(self, make_event):
        events = [
            make_event(
                occurred_at=BASE_TIME + timedelta(hours=2 * i),
                magnitude=1.0,
                geometry=Geometry.point(offset_north(PHOENIX_LAT, 8.0 * i), PHOENIX_LON),
            )
            for i in range(3)
        ]
        merged = deduplicate_events(events)
        assert len(merged) == 1
        assert merged[0].metadata["merged_count"] == 3

    def test_singletons_are_unchanged(self, make_event):
        event = make_event(magnitude=1.0)
        assert deduplicate_events([event]) == [event]
        assert "merged_count" not in deduplicate_events([event])[0].metadata

    def test_order_independent(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME, magnitude=1.0),
            make_event(source=EventSource.RADAR_DERIVED, event_type=EventType.RADAR_CORE,
                       occurred_at=BASE_TIME + timedelta(minutes=30), magnitude=1.5),
            make_event(occurred_at=BASE_TIME + timedelta(days=1), magnitude=0.75),
        ]
        forward = deduplicate_events(events)
        backward = deduplicate_events(list(reversed(events)))
        assert forward == backward

    def test_idempotent(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME + timedelta(minutes=15 * i), magnitude=0.5 + 0.25 * i,
                       geometry=Geometry.point(offset_north(PHOENIX_LAT, 4.0 * i), PHOENIX_LON))
            for i in range(6)
        ] + [
            make_event(occurred_at=BASE_TIME + timedelta(days=2), magnitude=1.0),
            make_event(source=EventSource.ALERT, event_type=EventType.TORNADO_WARNING,
                       occurred_at=BASE_TIME + timedelta(days=2, hours=1)),
        ]
        once = deduplicate_events(events)
        twice = deduplicate_events(once)
        assert twice == once

    def test_configurable_thresholds(self, make_event):
        events = [
            make_event(occurred_at=BASE_TIME, magnitude=1.0),
            make_event(occurred_at=BASE_TIME + timedelta(hours=5), magnitude=1.0),
        ]
        params = ScoringParameters(dedup_window_hours=6.0)
        assert len(deduplicate_events(events, params)) == 1

    def test_mixed_units_compare_normalized(self, make_event):
        hail = make_event(occurred_at=BASE_TIME, magnitude=0.75)
        wind = make_event(event_type=EventType.WIND_REPORT, occurred_at=BASE_TIME, magnitude=70.0)
        merged = deduplicate_events([hail, wind])
        assert len(merged) == 1
        assert merged[0].magnitude == 70.0
        assert merged[0].magnitude_kind == MagnitudeKind.WIND_MPH

    @pytest.mark.parametrize("count", [1, 5, 25])
    def test_duplicates_from_many_reports_collapse(self, make_event, count):
        events = [make_event(occurred_at=BASE_TIME, magnitude=1.0) for _ in range(count)]
        assert len(deduplicate_events(events)) == 1
