"""
Message schemas for publishing error events over Redis pub/sub
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from error_recovery.models import ErrorRecord


class MessageType(str, Enum):
    """Types of messages published by the error handler"""
    ERROR_EVENT = "error_event"
    ERROR_STATISTICS = "error_statistics"


class MessageSource(str, Enum):
    """Source services for messages"""
    ERROR_HANDLER = "error_handler"
    LLM_CLIENT = "llm_client"
    LLM_SERVER = "llm_server"


class BaseMessage(BaseModel):
    """Base message schema for all pub/sub messages"""
    model_config = ConfigDict(use_enum_values=True)

    message_type: MessageType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: MessageSource = MessageSource.ERROR_HANDLER
    message_id: Optional[str] = None


class ErrorEventMessage(BaseMessage):
    """One classified error"""
    message_type: MessageType = MessageType.ERROR_EVENT
    client_id: str
    data: Dict[str, Any] = Field(
        description="Error record including id, category, severity, code, message, context, recovery_actions"
    )

    @field_validator('data')
    @classmethod
    def validate_error_data(cls, v):
        required_fields = ['id', 'category', 'severity', 'code', 'message']
        for field in required_fields:
            if field not in v:
                raise ValueError(f"Required field '{field}' missing from error data")
        return v

    @classmethod
    def from_record(cls, record: ErrorRecord, source: MessageSource = MessageSource.ERROR_HANDLER) -> "ErrorEventMessage":
        return cls(
            message_id=record.id,
            client_id=record.client_id,
            data=record.to_dict(),
            source=source,
        )


class ErrorStatisticsMessage(BaseMessage):
    """Snapshot of handler statistics"""
    message_type: MessageType = MessageType.ERROR_STATISTICS
    data: Dict[str, Any] = Field(
        description="Statistics including total_errors, errors_by_category, errors_by_client, circuit_breakers"
    )

    @field_validator('data')
    @classmethod
    def validate_statistics_data(cls, v):
        if 'total_errors' not in v:
            raise ValueError("total_errors field is required")
        return v


# Example message data structures for documentation
EXAMPLE_ERROR_EVENT_DATA = {
    "id": "err_1718344410123_42_5871",
    "client_id": "openai-primary",
    "category": "network",
    "severity": "medium",
    "message": "connection refused",
    "code": "NETWORK_ERROR",
    "details": None,
    "context": {
        "operation": "chat_completion",
        "handler_version": "2025-03-26",
        "timestamp": "2025-06-14T05:53:30.123000+00:00"
    },
    "timestamp": "2025-06-14T05:53:30.123000+00:00",
    "stack_trace": None,
    "recovery_actions": [
        "Retry request",
        "Check network connectivity",
        "Use fallback endpoint"
    ]
}
