"""
Exception hierarchy for the date-of-loss engine.

Only InvalidLocationError and InvalidWindowError reach callers of the engine.
Collector failures are absorbed into the result as a confidence penalty.
"""
from typing import Optional


class DOLEngineError(Exception):
    """Base exception for all engine errors"""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source


class InvalidLocationError(DOLEngineError):
    """Raised when property coordinates are outside WGS84 ranges"""

    def __init__(self, latitude: float, longitude: float, reason: Optional[str] = None):
        message = f"Invalid property location ({latitude}, {longitude})"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.latitude = latitude
        self.longitude = longitude


class InvalidWindowError(DOLEngineError):
    """Raised when the requested date window is empty or too long"""

    def __init__(self, start, end, reason: str):
        super().__init__(f"Invalid date window {start}..{end}: {reason}")
        self.start = start
        self.end = end
        self.reason = reason


class InvalidEventError(DOLEngineError, ValueError):
    """Raised when a weather event cannot be ingested (e.g. empty geometry)"""

    def __init__(self, event_id: str, reason: str, source: Optional[str] = None):
        super().__init__(f"Invalid weather event {event_id!r}: {reason}", source=source)
        self.event_id = event_id
        self.reason = reason


class SourceUnavailableError(DOLEngineError):
    """Raised inside a collector when its upstream feed cannot be used"""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Source {source} unavailable: {reason}", source=source)
        self.reason = reason


class CacheError(DOLEngineError):
    """Raised by cache stores; the engine logs it and carries on uncached"""


class ConfigurationError(DOLEngineError):
    """Raised when engine configuration is invalid"""

    def __init__(self, config_field: str, reason: str):
        super().__init__(f"Configuration error in {config_field}: {reason}")
        self.config_field = config_field
        self.reason = reason
