"""
Date-of-loss inference over scored events.

Scored events are bucketed by UTC calendar date. Each bucket's strength is
the sum of its scores, multiplied by the corroboration bonus when two or
more independent sources contribute. The strongest bucket wins; ties go to
the more recent date.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

from .models.events import EventSource, MagnitudeKind, ScoredEvent
from .models.results import CitedEvent, DateCandidate, DateWindow, DOLResult
from .scoring import DEFAULT_PARAMETERS, ScoringParameters

logger = logging.getLogger(__name__)

# strengths within this are treated as equal for tie-breaking
_STRENGTH_PRECISION = 9


@dataclass
class DateBucket:
    day: date
    events: List[ScoredEvent]

    @property
    def sources(self) -> frozenset:
        found = set()
        for scored in self.events:
            found.update(scored.sources)
        return frozenset(found)

    def strength(self, params: ScoringParameters = DEFAULT_PARAMETERS) -> float:
        total = sum(s.score for s in self.events)
        if len(self.sources) >= 2:
            total *= params.corroboration_bonus
        return total

    def to_candidate(self, params: ScoringParameters) -> DateCandidate:
        return DateCandidate(
            day=self.day,
            strength=self.strength(params),
            event_count=len(self.events),
            sources=tuple(s.value for s in sorted(self.sources, key=lambda s: s.priority)),
        )


def bucket_by_date(scored_events: Sequence[ScoredEvent]) -> Dict[date, DateBucket]:
    """Group events with a positive score by the UTC date they occurred."""
    buckets: Dict[date, DateBucket] = {}
    for scored in scored_events:
        if scored.score <= 0:
            continue
        day = scored.occurred_at.date()
        buckets.setdefault(day, DateBucket(day=day, events=[])).events.append(scored)
    return buckets


def compute_confidence(
    winner_strength: float,
    total_strength: float,
    distinct_sources: int,
    soft_failed_count: int,
    params: ScoringParameters = DEFAULT_PARAMETERS,
) -> float:
    """
    Blend of bucket dominance and source diversity, less a fixed penalty per
    soft-failed collector, clamped to [0, 1].
    """
    if winner_strength <= 0 or total_strength <= 0:
        return 0.0
    dominance = winner_strength / total_strength
    diversity = min(distinct_sources, 3) / 3.0
    confidence = (
        params.dominance_weight * dominance
        + params.source_weight * diversity
        - params.soft_fail_penalty * soft_failed_count
    )
    return min(max(confidence, 0.0), 1.0)


def _cite(scored: ScoredEvent) -> CitedEvent:
    event = scored.event
    return CitedEvent(
        id=event.id,
        type=event.type.value,
        source=event.source.value,
        occurred_at=event.occurred_at,
        magnitude=event.magnitude,
        magnitude_kind=event.magnitude_kind.value if event.magnitude_kind else None,
        distance_miles=scored.distance_miles,
        direction=scored.cardinal_direction,
        score=scored.score,
        source_ref=event.source_ref,
        merged_sources=tuple(event.metadata.get("merged_sources") or ()),
    )


def _max_magnitude(events: Sequence[ScoredEvent], kind: MagnitudeKind) -> Optional[float]:
    values = [
        s.event.magnitude for s in events
        if s.event.magnitude is not None and s.event.magnitude_kind == kind
    ]
    return max(values) if values else None


def infer_date_of_loss(
    scored_events: Sequence[ScoredEvent],
    total_events_scanned: int,
    degraded_sources: Sequence[EventSource] = (),
    params: ScoringParameters = DEFAULT_PARAMETERS,
    window: Optional[DateWindow] = None,
) -> DOLResult:
    """
    Pick the best-supported date of loss.

    Returns a no-signal result (no date, confidence 0, no events) when
    nothing scores above zero.
    """
    degraded = tuple(s.value for s in sorted(set(degraded_sources), key=lambda s: s.priority))
    buckets = bucket_by_date(scored_events)
    if not buckets:
        logger.debug(f"No positive-score events among {len(scored_events)} scored")
        return DOLResult.no_signal(total_events_scanned, degraded, window)

    candidates = [b.to_candidate(params) for b in buckets.values()]
    candidates.sort(key=lambda c: (round(c.strength, _STRENGTH_PRECISION), c.day), reverse=True)
    winner = candidates[0]
    winning_bucket = buckets[winner.day]

    total_strength = sum(c.strength for c in candidates)
    confidence = compute_confidence(
        winner.strength,
        total_strength,
        len(winner.sources),
        len(degraded),
        params,
    )

    ranked = sorted(winning_bucket.events, key=lambda s: (-s.score, s.occurred_at, s.id))
    top_events = tuple(_cite(s) for s in ranked[:params.max_top_events])

    return DOLResult(
        recommended_date=winner.day,
        confidence=confidence,
        total_events_scanned=total_events_scanned,
        top_events=top_events,
        candidates=tuple(candidates),
        max_hail_inches=_max_magnitude(winning_bucket.events, MagnitudeKind.HAIL_INCHES),
        max_wind_mph=_max_magnitude(winning_bucket.events, MagnitudeKind.WIND_MPH),
        degraded_sources=degraded,
        window=window,
    )
