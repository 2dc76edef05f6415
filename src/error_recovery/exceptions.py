"""
Exceptions raised by the resilience layer itself
"""

from typing import Optional

from .models import ErrorRecord


class ResilienceError(Exception):
    """Base error for the resilience layer, optionally carrying the classified record"""

    def __init__(self, message: str, record: Optional[ErrorRecord] = None):
        super().__init__(message)
        self.record = record


class CircuitOpenError(ResilienceError):
    """Raised when a circuit breaker rejects an operation without running it"""

    def __init__(self, breaker_name: str):
        super().__init__(f"Circuit breaker {breaker_name} is open")
        self.breaker_name = breaker_name


class HandlerDisposedError(ResilienceError):
    """Raised when an operation is submitted to a disposed handler"""

    def __init__(self):
        super().__init__("Error handler has been disposed")
