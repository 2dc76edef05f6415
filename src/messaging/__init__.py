"""
Messaging package: Redis pub/sub forwarding of error handler events
"""

from .redis_client import RedisChannels, RedisErrorPublisher
from .schemas import BaseMessage, ErrorEventMessage, ErrorStatisticsMessage, MessageSource, MessageType

__all__ = [
    "RedisChannels",
    "RedisErrorPublisher",
    "BaseMessage",
    "ErrorEventMessage",
    "ErrorStatisticsMessage",
    "MessageSource",
    "MessageType",
]
