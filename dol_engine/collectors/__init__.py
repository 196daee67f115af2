"""
Weather event collectors.

Each collector wraps one upstream feed behind BaseCollector.fetch_events.
"""

from .base_collector import BaseCollector, CollectorResult, GeoJSONCollector
from .circuit_breaker_collector import CircuitBreakerCollector
from .nws_alert_collector import NWSAlertCollector
from .radar_core_collector import RadarCoreCollector
from .static_collector import StaticCollector
from .storm_report_collector import StormReportCollector

__all__ = [
    'BaseCollector', 'CollectorResult', 'CircuitBreakerCollector', 'GeoJSONCollector',
    'NWSAlertCollector', 'RadarCoreCollector', 'StaticCollector', 'StormReportCollector',
]
