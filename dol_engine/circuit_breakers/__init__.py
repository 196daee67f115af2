"""
Circuit breaker implementations for collectors.
"""

from .base_circuit_breaker import CircuitBreaker
from .memory_circuit_breaker import InMemoryCircuitBreaker

__all__ = ['CircuitBreaker', 'InMemoryCircuitBreaker']
