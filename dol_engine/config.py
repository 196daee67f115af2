import logging
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

# Explicitly load .env file to ensure environment variables are available
load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Environment detection
    APP_ENV: Literal["production", "development"] = Field(
        default="development",
        description="Application environment: production fails fast on Redis errors, development falls back to memory"
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root logging level"
    )
    LOG_FORMAT: Literal["json", "development"] = Field(
        default="development",
        description="json for structured logs, development for human-readable lines"
    )

    # Scoring constants (tunable, validate against historical claims before changing)
    MAX_RADIUS_MILES: float = Field(default=25.0, description="Proximity decay radius; events beyond score 0")
    HAIL_REFERENCE_INCHES: float = Field(default=1.5, description="Severe-hail reference diameter")
    WIND_REFERENCE_MPH: float = Field(default=58.0, description="Severe-wind reference speed")
    ALERT_MAGNITUDE_FLOOR: float = Field(default=0.3, description="Normalized magnitude for alerts without a number")
    CORROBORATION_BONUS: float = Field(default=1.2, description="Bucket multiplier when 2+ distinct sources agree")
    SOFT_FAIL_PENALTY: float = Field(default=0.15, description="Confidence penalty per soft-failed collector")
    CONFIDENCE_DOMINANCE_WEIGHT: float = Field(default=0.6, description="Weight of bucket dominance in confidence")
    CONFIDENCE_SOURCE_WEIGHT: float = Field(default=0.4, description="Weight of distinct-source count in confidence")
    MAX_TOP_EVENTS: int = Field(default=10, description="Maximum cited events in a result")
    DEDUP_WINDOW_HOURS: float = Field(default=3.0, description="Time window for merging duplicate reports")
    DEDUP_DISTANCE_MILES: float = Field(default=10.0, description="Centroid distance for merging duplicate reports")

    # Collectors
    ENABLE_ALERT_SOURCE: bool = Field(default=True, description="Enable the severe-weather alert collector")
    ENABLE_GROUND_REPORT_SOURCE: bool = Field(default=True, description="Enable the ground storm-report collector")
    ENABLE_RADAR_SOURCE: bool = Field(default=False, description="Enable the radar-derived hail core collector")
    ALERT_SOURCE_URL: str = Field(
        default="https://api.weather.gov/alerts",
        description="GeoJSON endpoint for CAP-style severe weather alerts"
    )
    GROUND_REPORT_SOURCE_URL: str = Field(
        default="https://mesonet.agron.iastate.edu/geojson/lsr.geojson",
        description="GeoJSON endpoint for local storm reports"
    )
    RADAR_SOURCE_URL: Optional[str] = Field(
        default=None,
        description="GeoJSON endpoint for radar hail-core polygons"
    )
    COLLECTOR_TIMEOUT_SECONDS: float = Field(default=5.0, description="Per-collector time budget")
    COLLECTOR_MAX_RETRIES: int = Field(default=1, description="Retries for transient feed errors inside the budget")
    HTTP_USER_AGENT: str = Field(
        default="dol-engine/0.1 (weather-correlation)",
        description="User-Agent sent to upstream feeds"
    )
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(default=5, description="Consecutive failures before a collector is skipped")
    CIRCUIT_BREAKER_RECOVERY_SECONDS: int = Field(default=60, description="Seconds before a skipped collector is retried")

    # Cache
    CACHE_BACKEND: Literal["memory", "redis", "none"] = Field(default="memory", description="Result cache store")
    REDIS_URL: Optional[str] = Field(default=None, description="Redis connection URL for the redis cache backend")
    CACHE_TTL_SECONDS: int = Field(default=21600, description="TTL for results with all sources available")
    DEGRADED_CACHE_TTL_SECONDS: int = Field(default=300, description="TTL for results with soft-failed sources")
    CACHE_MAX_ENTRIES: int = Field(default=1024, description="Entry bound for the in-memory cache")

    # Request bounds
    SEARCH_RADIUS_MILES: float = Field(
        default=50.0,
        description="Collector query radius; wider than MAX_RADIUS_MILES so far events are still counted and deduplicated"
    )
    MAX_WINDOW_DAYS: int = Field(default=366, description="Longest accepted date window")
    DEFAULT_DAYS_BACK: int = Field(default=90, description="Look-back used when no explicit window is given")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra="ignore"
    )

    @field_validator('ENABLE_ALERT_SOURCE', 'ENABLE_GROUND_REPORT_SOURCE', 'ENABLE_RADAR_SOURCE', mode='before')
    @classmethod
    def parse_boolean(cls, v):
        """Handle string boolean values from environment variables."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ('true', '1', 'yes', 'on', 't', 'y')
        return bool(v)

    def scoring_parameters(self):
        """Build the immutable scoring parameter set from these settings."""
        from .scoring import ScoringParameters
        return ScoringParameters(
            max_radius_miles=self.MAX_RADIUS_MILES,
            hail_reference_inches=self.HAIL_REFERENCE_INCHES,
            wind_reference_mph=self.WIND_REFERENCE_MPH,
            alert_magnitude_floor=self.ALERT_MAGNITUDE_FLOOR,
            corroboration_bonus=self.CORROBORATION_BONUS,
            soft_fail_penalty=self.SOFT_FAIL_PENALTY,
            dominance_weight=self.CONFIDENCE_DOMINANCE_WEIGHT,
            source_weight=self.CONFIDENCE_SOURCE_WEIGHT,
            max_top_events=self.MAX_TOP_EVENTS,
            dedup_window_hours=self.DEDUP_WINDOW_HOURS,
            dedup_distance_miles=self.DEDUP_DISTANCE_MILES,
        )


def validate_environment_configuration(settings: Settings) -> None:
    """
    Validate configuration for the current environment mode.

    Critical errors prevent startup, warnings are logged but allow continuation.

    Raises:
        ConfigurationError: for critical configuration errors
    """
    critical_errors = []
    warnings = []

    if settings.MAX_RADIUS_MILES <= 0:
        critical_errors.append(("MAX_RADIUS_MILES", "must be > 0"))
    if settings.HAIL_REFERENCE_INCHES <= 0 or settings.WIND_REFERENCE_MPH <= 0:
        critical_errors.append(("HAIL_REFERENCE_INCHES/WIND_REFERENCE_MPH", "reference magnitudes must be > 0"))
    if not 0 <= settings.ALERT_MAGNITUDE_FLOOR <= 1:
        critical_errors.append(("ALERT_MAGNITUDE_FLOOR", "must be within [0, 1]"))
    if settings.CORROBORATION_BONUS < 1:
        critical_errors.append(("CORROBORATION_BONUS", "must be >= 1"))
    if not 0 <= settings.SOFT_FAIL_PENALTY <= 1:
        critical_errors.append(("SOFT_FAIL_PENALTY", "must be within [0, 1]"))
    if settings.MAX_TOP_EVENTS < 1:
        critical_errors.append(("MAX_TOP_EVENTS", "must be >= 1"))
    if settings.COLLECTOR_TIMEOUT_SECONDS <= 0:
        critical_errors.append(("COLLECTOR_TIMEOUT_SECONDS", "must be > 0"))
    if settings.COLLECTOR_MAX_RETRIES < 0:
        critical_errors.append(("COLLECTOR_MAX_RETRIES", "must be >= 0"))
    if settings.DEDUP_WINDOW_HOURS < 0 or settings.DEDUP_DISTANCE_MILES < 0:
        critical_errors.append(("DEDUP_WINDOW_HOURS/DEDUP_DISTANCE_MILES", "must be >= 0"))
    if settings.MAX_WINDOW_DAYS < 1 or settings.DEFAULT_DAYS_BACK < 1:
        critical_errors.append(("MAX_WINDOW_DAYS/DEFAULT_DAYS_BACK", "must be >= 1"))
    if settings.SEARCH_RADIUS_MILES < settings.MAX_RADIUS_MILES:
        warnings.append("SEARCH_RADIUS_MILES below MAX_RADIUS_MILES; the scoring radius will be used for queries")
    if settings.CACHE_BACKEND == "redis" and not settings.REDIS_URL:
        critical_errors.append(("REDIS_URL", "required when CACHE_BACKEND=redis"))
    if settings.ENABLE_RADAR_SOURCE and not settings.RADAR_SOURCE_URL:
        critical_errors.append(("RADAR_SOURCE_URL", "required when ENABLE_RADAR_SOURCE=true"))

    weight_sum = settings.CONFIDENCE_DOMINANCE_WEIGHT + settings.CONFIDENCE_SOURCE_WEIGHT
    if abs(weight_sum - 1.0) > 1e-6:
        warnings.append(f"Confidence weights sum to {weight_sum:.3f}; confidence will be clamped to [0, 1]")
    if settings.DEGRADED_CACHE_TTL_SECONDS > settings.CACHE_TTL_SECONDS:
        warnings.append("DEGRADED_CACHE_TTL_SECONDS exceeds CACHE_TTL_SECONDS; degraded results will outlive full ones")
    if not (settings.ENABLE_ALERT_SOURCE or settings.ENABLE_GROUND_REPORT_SOURCE or settings.ENABLE_RADAR_SOURCE):
        warnings.append("All collectors disabled; every request will return a no-signal result")
    if settings.APP_ENV == "production" and settings.CACHE_BACKEND == "memory":
        warnings.append("Production with in-memory cache; entries are not shared between workers")

    if critical_errors:
        error_msg = "Critical configuration errors found:\n" + "\n".join(
            f"- {name}: {why}" for name, why in critical_errors
        )
        logger.error(error_msg)
        raise ConfigurationError(
            ", ".join(name for name, _ in critical_errors),
            "; ".join(why for _, why in critical_errors),
        )

    for warning in warnings:
        logger.warning(warning)
    if warnings:
        logger.info(f"Environment validation completed with {len(warnings)} warnings")
    else:
        logger.info("Environment validation completed successfully - no issues found")


def get_settings() -> Settings:
    """Build settings from the environment and validate them."""
    settings = Settings()
    validate_environment_configuration(settings)
    return settings
