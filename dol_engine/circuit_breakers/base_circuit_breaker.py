"""
Circuit breaker interface used to skip collectors whose feed keeps failing.
"""
from abc import ABC, abstractmethod


class CircuitBreaker(ABC):
    """Ask/tell circuit breaker keyed by service name"""

    @abstractmethod
    async def is_open(self, service_name: str) -> bool:
        pass

    @abstractmethod
    async def record_success(self, service_name: str) -> None:
        pass

    @abstractmethod
    async def record_failure(self, service_name: str) -> None:
        pass

    @abstractmethod
    async def get_status(self, service_name: str) -> dict:
        pass

    @abstractmethod
    async def reset(self, service_name: str) -> None:
        pass
