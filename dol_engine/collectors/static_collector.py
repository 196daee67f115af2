"""
Fixture-backed collector for offline runs and tests.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models.events import EventSource, WeatherEvent
from ..models.geometry import BoundingBox
from ..models.results import DateWindow
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class StaticCollector(BaseCollector):
    """
    Serves a fixed list of events, filtered to the requested bbox and window.

    delay_seconds and error simulate slow or failing feeds.
    """

    def __init__(
        self,
        source: EventSource,
        events: Sequence[WeatherEvent] = (),
        delay_seconds: float = 0.0,
        error: Optional[Exception] = None,
        **kwargs,
    ):
        super().__init__(source=source, **kwargs)
        mismatched = [e.id for e in events if e.source != source]
        if mismatched:
            raise ValueError(f"Events {mismatched} do not belong to source {source.value}")
        self.events = list(events)
        self.delay_seconds = delay_seconds
        self.error = error
        self.calls = 0

    async def _collect(self, bbox: BoundingBox, window: DateWindow) -> Tuple[List[WeatherEvent], int]:
        self.calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.filter_in_scope(self.events, bbox, window), 0

    @classmethod
    def from_fixture(cls, path, **kwargs) -> List["StaticCollector"]:
        """One collector per source from a JSON file of serialized events.

        Accepts either a list of events or {"events": [...]}.
        """
        data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        records: List[Dict[str, Any]] = data.get("events", []) if isinstance(data, dict) else data
        by_source: Dict[EventSource, List[WeatherEvent]] = {source: [] for source in EventSource}
        for record in records:
            event = WeatherEvent.from_dict(record)
            by_source[event.source].append(event)
        logger.info(f"Loaded {len(records)} fixture events from {path}")
        return [cls(source=source, events=events, **kwargs) for source, events in by_source.items()]
