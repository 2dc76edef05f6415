"""
Error Recovery Module

Resilience core for MCP/LLM client operations:
- Keyword-based error classification into structured records
- Per-category circuit breakers
- Exponential backoff retries keyed by client and category
- Bounded error history, statistics and a live error event stream
- Fallbacks, escalation and scheduled auto-recovery
"""

from .circuit_breaker import CategoryCircuitBreaker, CircuitBreakerState
from .classifier import ErrorClassifier, generate_error_id
from .config import ErrorHandlingConfig
from .enhanced_error_handler import EnhancedErrorHandler
from .error_ledger import ErrorLedger
from .event_stream import ErrorEventStream, ErrorSubscription
from .exceptions import CircuitOpenError, HandlerDisposedError, ResilienceError
from .models import (
    SYSTEM_CLIENT_ID,
    CircuitState,
    ErrorCategory,
    ErrorHandlingStrategy,
    ErrorRecord,
    ErrorSeverity,
    RecoveryAction,
)
from .recovery import AutoRecoveryScheduler, RecoveryActionRegistry
from .retry_manager import RetryAttempt, RetryManager

__all__ = [
    'EnhancedErrorHandler',
    'ErrorHandlingConfig',
    'ErrorClassifier',
    'generate_error_id',
    'CategoryCircuitBreaker',
    'CircuitBreakerState',
    'RetryManager',
    'RetryAttempt',
    'ErrorLedger',
    'ErrorEventStream',
    'ErrorSubscription',
    'AutoRecoveryScheduler',
    'RecoveryActionRegistry',
    'ErrorRecord',
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorHandlingStrategy',
    'CircuitState',
    'RecoveryAction',
    'SYSTEM_CLIENT_ID',
    'ResilienceError',
    'CircuitOpenError',
    'HandlerDisposedError',
]
