"""
Cross-source deduplication of weather events.

Two events are merge candidates when they occurred within the time window of
each other and their centroids are within the distance threshold. Candidate
pairs are joined with an array-backed union-find and each connected
component collapses into one representative event.
"""
import logging
from dataclasses import replace
from datetime import timedelta
from typing import Dict, List, Sequence

from .geo_math import geometry_centroid, haversine_distance_miles
from .models.events import EventSource, WeatherEvent
from .scoring import DEFAULT_PARAMETERS, ScoringParameters, normalize_magnitude_value, normalized_magnitude

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets over indices 0..n-1 (parent/rank arrays)"""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, index: int) -> int:
        root = index
        while self.parent[root] != root:
            root = self.parent[root]
        # path compression
        while self.parent[index] != root:
            self.parent[index], index = root, self.parent[index]
        return root

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if self.rank[root_a] < self.rank[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        if self.rank[root_a] == self.rank[root_b]:
            self.rank[root_a] += 1
        return True

    def groups(self) -> Dict[int, List[int]]:
        clusters: Dict[int, List[int]] = {}
        for index in range(len(self.parent)):
            clusters.setdefault(self.find(index), []).append(index)
        return clusters


def _ordering_key(event: WeatherEvent):
    return (event.occurred_at, event.source.priority, event.id)


def _representative_key(event: WeatherEvent):
    return (-event.quality_score, event.source.priority, event.occurred_at, event.id)


def _member_sources(event: WeatherEvent) -> List[EventSource]:
    found = [event.source]
    for name in event.metadata.get("merged_sources") or []:
        try:
            found.append(EventSource(name))
        except ValueError:
            continue
    return found


def _merge_cluster(members: Sequence[WeatherEvent], params: ScoringParameters) -> WeatherEvent:
    ranked = sorted(members, key=_representative_key)
    representative = ranked[0]

    # strongest magnitude on the normalized scale; representative wins ties
    strongest = None
    strongest_value = -1.0
    for member in ranked:
        value = normalize_magnitude_value(member.magnitude, member.magnitude_kind, params)
        if value is not None and value > strongest_value:
            strongest, strongest_value = member, value

    magnitude = representative.magnitude
    magnitude_kind = representative.magnitude_kind
    if strongest is not None:
        magnitude = strongest.magnitude
        magnitude_kind = strongest.magnitude_kind

    sources = set()
    types = set()
    merged_ids = []
    merged_count = 0
    for member in members:
        sources.update(_member_sources(member))
        types.add(member.type.value)
        types.update(member.metadata.get("merged_types") or [])
        merged_ids.extend(member.metadata.get("merged_event_ids") or [member.id])
        merged_count += int(member.metadata.get("merged_count", 1))

    metadata = dict(representative.metadata)
    metadata.update({
        "merged_count": merged_count,
        "merged_sources": [s.value for s in sorted(sources, key=lambda s: s.priority)],
        "merged_types": sorted(types),
        "merged_event_ids": sorted(set(merged_ids)),
        # an alert or unrated tornado member keeps its type-aware severity
        "merged_severity": max(normalized_magnitude(m, params) for m in members),
    })
    return replace(representative, magnitude=magnitude, magnitude_kind=magnitude_kind, metadata=metadata)


def deduplicate_events(
    events: Sequence[WeatherEvent],
    params: ScoringParameters = DEFAULT_PARAMETERS,
) -> List[WeatherEvent]:
    """
    Collapse reports of the same storm cell into representative events.

    Output is ordered by (occurred_at, source priority, id) and is a fixed
    point: deduplicating it again changes nothing.
    """
    if not events:
        return []

    ordered = sorted(events, key=_ordering_key)
    centroids = [geometry_centroid(e.geometry) for e in ordered]
    window = timedelta(hours=params.dedup_window_hours)
    uf = UnionFind(len(ordered))

    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            # sorted by time: nothing further can be inside the window
            if ordered[j].occurred_at - ordered[i].occurred_at > window:
                break
            if haversine_distance_miles(centroids[i], centroids[j]) <= params.dedup_distance_miles:
                uf.union(i, j)

    result = []
    merged_clusters = 0
    for indices in uf.groups().values():
        if len(indices) == 1:
            result.append(ordered[indices[0]])
            continue
        merged_clusters += 1
        result.append(_merge_cluster([ordered[i] for i in indices], params))

    result.sort(key=_ordering_key)
    logger.debug(
        f"Deduplicated {len(ordered)} events into {len(result)} "
        f"({merged_clusters} merged clusters)"
    )
    return result
