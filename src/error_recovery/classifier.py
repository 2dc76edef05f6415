"""
Error classification: maps raw failures onto structured ErrorRecords
"""

import itertools
import logging
import random
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import ResilienceError
from .models import (
    HANDLER_VERSION,
    SYSTEM_CLIENT_ID,
    ErrorCategory,
    ErrorRecord,
    ErrorSeverity,
    RecoveryAction,
)

logger = logging.getLogger(__name__)

# Scanned in order, first match wins
CLASSIFICATION_RULES: Sequence[Tuple[ErrorCategory, Tuple[str, ...]]] = (
    (ErrorCategory.AUTHENTICATION, ("auth", "token", "oauth")),
    (ErrorCategory.PERMISSION, ("permission", "forbidden")),
    (ErrorCategory.TIMEOUT, ("timeout", "deadline")),
    (ErrorCategory.NETWORK, ("network", "connection")),
    (ErrorCategory.VALIDATION, ("validation", "invalid")),
    (ErrorCategory.BATCH, ("batch", "jsonrpc")),
)

SEVERITY_BY_CATEGORY: Dict[ErrorCategory, ErrorSeverity] = {
    ErrorCategory.AUTHENTICATION: ErrorSeverity.HIGH,
    ErrorCategory.PERMISSION: ErrorSeverity.HIGH,
    ErrorCategory.NETWORK: ErrorSeverity.MEDIUM,
    ErrorCategory.TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorCategory.VALIDATION: ErrorSeverity.LOW,
}

CODE_BY_CATEGORY: Dict[ErrorCategory, str] = {
    ErrorCategory.AUTHENTICATION: "AUTH_ERROR",
    ErrorCategory.PERMISSION: "PERMISSION_ERROR",
    ErrorCategory.NETWORK: "NETWORK_ERROR",
    ErrorCategory.TIMEOUT: "TIMEOUT_ERROR",
    ErrorCategory.VALIDATION: "VALIDATION_ERROR",
    ErrorCategory.BATCH: "BATCH_ERROR",
    ErrorCategory.UNKNOWN: "UNKNOWN_ERROR",
}

RECOVERY_ACTIONS_BY_CATEGORY: Dict[ErrorCategory, Tuple[RecoveryAction, ...]] = {
    ErrorCategory.AUTHENTICATION: (
        RecoveryAction.REFRESH_AUTH_TOKEN,
        RecoveryAction.REAUTHENTICATE_OAUTH,
        RecoveryAction.CHECK_API_CREDENTIALS,
    ),
    ErrorCategory.PERMISSION: (
        RecoveryAction.CHECK_USER_PERMISSIONS,
        RecoveryAction.VERIFY_SCOPE_ACCESS,
        RecoveryAction.REQUEST_ELEVATED_PRIVILEGES,
    ),
    ErrorCategory.NETWORK: (
        RecoveryAction.RETRY_REQUEST,
        RecoveryAction.CHECK_NETWORK_CONNECTIVITY,
        RecoveryAction.USE_FALLBACK_ENDPOINT,
    ),
    ErrorCategory.TIMEOUT: (
        RecoveryAction.INCREASE_TIMEOUT,
        RecoveryAction.RETRY_WITH_BACKOFF,
        RecoveryAction.CHECK_SERVER_LOAD,
    ),
    ErrorCategory.VALIDATION: (
        RecoveryAction.VALIDATE_INPUT,
        RecoveryAction.CHECK_REQUEST_FORMAT,
        RecoveryAction.REVIEW_API_DOCUMENTATION,
    ),
    ErrorCategory.BATCH: (
        RecoveryAction.REDUCE_BATCH_SIZE,
        RecoveryAction.RETRY_INDIVIDUAL_REQUESTS,
        RecoveryAction.CHECK_BATCH_FORMAT,
    ),
}

DEFAULT_RECOVERY_ACTIONS: Tuple[RecoveryAction, ...] = (
    RecoveryAction.CONTACT_SUPPORT,
    RecoveryAction.CHECK_LOGS,
    RecoveryAction.RETRY_OPERATION,
)

_sequence = itertools.count()


def generate_error_id() -> str:
    """Process-unique error id: epoch millis, a sequence number and a random suffix"""
    return f"err_{int(time.time() * 1000)}_{next(_sequence)}_{random.randint(0, 9999)}"


def severity_for(category: ErrorCategory) -> ErrorSeverity:
    return SEVERITY_BY_CATEGORY.get(category, ErrorSeverity.MEDIUM)


def code_for(category: ErrorCategory) -> str:
    return CODE_BY_CATEGORY.get(category, "UNKNOWN_ERROR")


def recovery_actions_for(category: ErrorCategory) -> Tuple[RecoveryAction, ...]:
    return RECOVERY_ACTIONS_BY_CATEGORY.get(category, DEFAULT_RECOVERY_ACTIONS)


class ErrorClassifier:
    """Keyword-based error classification"""

    def __init__(self, rules: Optional[Sequence[Tuple[ErrorCategory, Sequence[str]]]] = None):
        self.rules: List[Tuple[ErrorCategory, Tuple[str, ...]]] = [
            (category, tuple(keyword.lower() for keyword in keywords))
            for category, keywords in (rules if rules is not None else CLASSIFICATION_RULES)
        ]

    def classify_message(self, message: str) -> ErrorCategory:
        """Resolve a category from message text"""
        lower_message = message.lower()
        for category, keywords in self.rules:
            if any(keyword in lower_message for keyword in keywords):
                return category
        return ErrorCategory.UNKNOWN

    def classify(
        self,
        error: Union[BaseException, ErrorRecord, Any],
        client_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        """
        Build an ErrorRecord for a failure.

        Records that were already classified are returned unchanged. Anything
        else is described by its string form, so the classifier never raises.
        """
        if isinstance(error, ErrorRecord):
            return error
        if isinstance(error, ResilienceError) and error.record is not None:
            return error.record

        message = str(error) or type(error).__name__
        category = self.classify_message(message)
        now = datetime.now(timezone.utc)

        stack_trace = None
        if isinstance(error, BaseException) and error.__traceback__ is not None:
            stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        record = ErrorRecord(
            id=generate_error_id(),
            client_id=client_id or SYSTEM_CLIENT_ID,
            category=category,
            severity=severity_for(category),
            message=message,
            code=code_for(category),
            timestamp=now,
            context={
                **(context or {}),
                "handler_version": HANDLER_VERSION,
                "timestamp": now.isoformat(),
            },
            details=details,
            stack_trace=stack_trace,
            recovery_actions=recovery_actions_for(category),
            original_exception=error if isinstance(error, BaseException) else None,
        )
        logger.debug(f"Classified error {record.id} as {category.value} ({record.severity.value}): {message}")
        return record
