"""
Wiring of collectors, cache and engine from Settings.
"""
import logging
from typing import List, Optional

from .cache import DOLResultCache, InMemoryCacheStore, RedisCacheStore
from .circuit_breakers import CircuitBreaker, InMemoryCircuitBreaker
from .collectors import (
    BaseCollector,
    CircuitBreakerCollector,
    NWSAlertCollector,
    RadarCoreCollector,
    StaticCollector,
    StormReportCollector,
)
from .config import Settings, get_settings
from .engine import DateOfLossEngine

logger = logging.getLogger(__name__)


def build_collectors(settings: Settings, circuit_breaker: Optional[CircuitBreaker] = None) -> List[BaseCollector]:
    """Enabled live collectors, each behind the shared circuit breaker."""
    common = {
        "timeout_seconds": settings.COLLECTOR_TIMEOUT_SECONDS,
        "max_retries": settings.COLLECTOR_MAX_RETRIES,
        "user_agent": settings.HTTP_USER_AGENT,
    }
    collectors: List[BaseCollector] = []
    if settings.ENABLE_ALERT_SOURCE:
        collectors.append(NWSAlertCollector(base_url=settings.ALERT_SOURCE_URL, **common))
    if settings.ENABLE_GROUND_REPORT_SOURCE:
        collectors.append(StormReportCollector(base_url=settings.GROUND_REPORT_SOURCE_URL, **common))
    if settings.ENABLE_RADAR_SOURCE and settings.RADAR_SOURCE_URL:
        collectors.append(RadarCoreCollector(base_url=settings.RADAR_SOURCE_URL, **common))

    breaker = circuit_breaker or InMemoryCircuitBreaker(
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
    )
    return [CircuitBreakerCollector(c, breaker) for c in collectors]


def build_cache(settings: Settings) -> Optional[DOLResultCache]:
    if settings.CACHE_BACKEND == "none":
        return None
    if settings.CACHE_BACKEND == "redis":
        store = RedisCacheStore(
            settings.REDIS_URL,
            app_env=settings.APP_ENV,
            fallback_max_entries=settings.CACHE_MAX_ENTRIES,
        )
    else:
        store = InMemoryCacheStore(max_entries=settings.CACHE_MAX_ENTRIES)
    return DOLResultCache(
        store,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
        degraded_ttl_seconds=settings.DEGRADED_CACHE_TTL_SECONDS,
    )


def build_engine(
    settings: Optional[Settings] = None,
    collectors: Optional[List[BaseCollector]] = None,
) -> DateOfLossEngine:
    """Engine with live collectors, or the given ones (e.g. StaticCollectors)."""
    settings = settings or get_settings()
    if collectors is None:
        collectors = build_collectors(settings)
    engine = DateOfLossEngine(
        collectors=collectors,
        cache=build_cache(settings),
        params=settings.scoring_parameters(),
        search_radius_miles=settings.SEARCH_RADIUS_MILES,
        max_window_days=settings.MAX_WINDOW_DAYS,
        default_days_back=settings.DEFAULT_DAYS_BACK,
    )
    logger.info(f"Engine built (env: {settings.APP_ENV}, cache: {settings.CACHE_BACKEND})")
    return engine


def build_fixture_engine(fixture_path, settings: Optional[Settings] = None) -> DateOfLossEngine:
    """Engine whose collectors serve events from a JSON fixture file."""
    settings = settings or get_settings()
    collectors = StaticCollector.from_fixture(fixture_path, timeout_seconds=settings.COLLECTOR_TIMEOUT_SECONDS)
    return build_engine(settings, collectors=collectors)
