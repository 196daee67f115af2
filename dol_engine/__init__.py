"""
Weather event correlation and date-of-loss inference.
"""
from .engine import DateOfLossEngine
from .exceptions import DOLEngineError, InvalidLocationError, InvalidWindowError
from .models import DateWindow, DOLResult, EventSource, EventType, PropertyContext, WeatherEvent
from .scoring import ScoringParameters

__version__ = "0.1.0"

__all__ = [
    'DateOfLossEngine', 'DOLEngineError', 'InvalidLocationError', 'InvalidWindowError',
    'DateWindow', 'DOLResult', 'EventSource', 'EventType', 'PropertyContext', 'WeatherEvent',
    'ScoringParameters',
]
