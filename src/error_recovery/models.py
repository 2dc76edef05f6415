"""
Core types for the resilience layer: error taxonomy, handling strategies,
recovery tags and the immutable ErrorRecord produced by classification.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

SYSTEM_CLIENT_ID = "system"
HANDLER_VERSION = "2025-03-26"


class ErrorSeverity(str, Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for specialized handling"""
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    NETWORK = "network"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    BATCH = "batch"
    UNKNOWN = "unknown"


class ErrorHandlingStrategy(str, Enum):
    """How the handler reacts once a failure has been classified"""
    IGNORE = "ignore"
    LOG = "log"
    RETRY = "retry"
    FALLBACK = "fallback"
    ESCALATE = "escalate"
    CIRCUIT_BREAKER = "circuit_breaker"
    AUTO_RECOVER = "auto_recover"


class CircuitState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, rejecting requests
    HALF_OPEN = "half_open"  # Probing whether the category recovered


class RecoveryAction(str, Enum):
    """
    Recovery tags suggested for a category.

    The value is the human-readable remediation, so a record's action list
    reads naturally in logs while callbacks are registered per tag.
    """
    REFRESH_AUTH_TOKEN = "Refresh authentication token"
    REAUTHENTICATE_OAUTH = "Re-authenticate with OAuth 2.1"
    CHECK_API_CREDENTIALS = "Check API credentials"
    CHECK_USER_PERMISSIONS = "Check user permissions"
    VERIFY_SCOPE_ACCESS = "Verify scope access"
    REQUEST_ELEVATED_PRIVILEGES = "Request elevated privileges"
    RETRY_REQUEST = "Retry request"
    CHECK_NETWORK_CONNECTIVITY = "Check network connectivity"
    USE_FALLBACK_ENDPOINT = "Use fallback endpoint"
    INCREASE_TIMEOUT = "Increase timeout duration"
    RETRY_WITH_BACKOFF = "Retry with exponential backoff"
    CHECK_SERVER_LOAD = "Check server load"
    VALIDATE_INPUT = "Validate input parameters"
    CHECK_REQUEST_FORMAT = "Check request format"
    REVIEW_API_DOCUMENTATION = "Review API documentation"
    REDUCE_BATCH_SIZE = "Reduce batch size"
    RETRY_INDIVIDUAL_REQUESTS = "Retry individual requests"
    CHECK_BATCH_FORMAT = "Check batch format"
    CONTACT_SUPPORT = "Contact support"
    CHECK_LOGS = "Check logs"
    RETRY_OPERATION = "Retry operation"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured, immutable result of classifying a failure"""
    id: str
    client_id: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    code: str
    timestamp: datetime
    context: Mapping[str, Any] = field(default_factory=dict)
    details: Optional[str] = None
    stack_trace: Optional[str] = None
    recovery_actions: Tuple[RecoveryAction, ...] = ()
    original_exception: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        # Freeze the context so shared references cannot be mutated by observers
        if not isinstance(self.context, MappingProxyType):
            object.__setattr__(self, "context", MappingProxyType(dict(self.context)))
        object.__setattr__(self, "recovery_actions", tuple(self.recovery_actions))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation"""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "context": dict(self.context),
            "timestamp": self.timestamp.isoformat(),
            "stack_trace": self.stack_trace,
            "recovery_actions": [action.value for action in self.recovery_actions],
        }
