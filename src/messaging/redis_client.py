"""
Redis pub/sub forwarding of error events and statistics
"""

import json
import logging
from typing import Any, Dict, List, Optional, Type, Union

import redis.asyncio as redis
from pydantic import ValidationError

from error_recovery.enhanced_error_handler import EnhancedErrorHandler
from error_recovery.models import ErrorRecord

from .schemas import (
    BaseMessage, MessageType, MessageSource,
    ErrorEventMessage, ErrorStatisticsMessage
)

logger = logging.getLogger(__name__)

MESSAGE_CLASSES: Dict[MessageType, Type[BaseMessage]] = {
    MessageType.ERROR_EVENT: ErrorEventMessage,
    MessageType.ERROR_STATISTICS: ErrorStatisticsMessage,
}


class RedisChannels:
    """Channels the error publisher writes to"""
    ERROR_EVENTS = "mcp:error_events"
    ERROR_STATISTICS = "mcp:error_statistics"


class RedisErrorPublisher:
    """
    Forwards a handler's error stream to Redis

    Handles:
    - Connection lifecycle
    - Publishing error events and statistics snapshots
    - Attaching to / detaching from handler event streams
    - Decoding published payloads for consumers

    Publishing failures are logged and counted; they never reach the
    error handler that produced the event.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/1",
        source: MessageSource = MessageSource.ERROR_HANDLER,
        events_channel: str = RedisChannels.ERROR_EVENTS,
        statistics_channel: str = RedisChannels.ERROR_STATISTICS,
    ):
        self.redis_url = redis_url
        self.source = source
        self.events_channel = events_channel
        self.statistics_channel = statistics_channel
        self.redis_client: Optional[redis.Redis] = None
        self.is_connected = False
        self.published_count = 0
        self.failed_count = 0
        self._attached: List[EnhancedErrorHandler] = []

    async def connect(self) -> bool:
        """Open the Redis connection and verify it with a ping"""
        try:
            client = redis.from_url(self.redis_url)
            await client.ping()
        except Exception as e:
            logger.error(f"Redis unavailable at {self.redis_url}: {e}")
            self.is_connected = False
            return False

        self.redis_client = client
        self.is_connected = True
        logger.info(f"Publishing error events to {self.events_channel} via {self.redis_url}")
        return True

    async def disconnect(self) -> None:
        """Detach from every handler and close the Redis connection"""
        for handler in list(self._attached):
            self.detach(handler)

        client, self.redis_client = self.redis_client, None
        self.is_connected = False
        if client is None:
            return
        try:
            await client.aclose()
            logger.info(f"Closed Redis connection to {self.redis_url}")
        except Exception as e:
            logger.error(f"Failed to close Redis connection cleanly: {e}")

    async def publish_message(self, channel: str, message: BaseMessage) -> bool:
        """
        Publish one message as JSON

        Returns:
            True once Redis accepted the message, False when disconnected or
            the publish failed
        """
        if not self.is_connected:
            logger.warning(f"Dropping {message.message_type} message: Redis not connected")
            self.failed_count += 1
            return False

        try:
            await self.redis_client.publish(channel, message.model_dump_json())
        except Exception as e:
            self.failed_count += 1
            logger.error(f"Publish to {channel} failed: {e}")
            return False

        self.published_count += 1
        logger.debug(f"Published {message.message_type} message to {channel}")
        return True

    async def publish_error(self, record: ErrorRecord) -> bool:
        """Publish one classified error"""
        message = ErrorEventMessage.from_record(record, source=self.source)
        return await self.publish_message(self.events_channel, message)

    async def publish_statistics(self, handler: EnhancedErrorHandler) -> bool:
        """Publish a snapshot of the handler's statistics"""
        message = ErrorStatisticsMessage(source=self.source, data=handler.get_error_statistics())
        return await self.publish_message(self.statistics_channel, message)

    def attach(self, handler: EnhancedErrorHandler) -> None:
        """Forward every error the handler publishes"""
        if handler in self._attached:
            return
        handler.errors.add_listener(self.publish_error)
        self._attached.append(handler)
        logger.debug(f"Forwarding error events to {self.events_channel}")

    def detach(self, handler: EnhancedErrorHandler) -> None:
        if handler in self._attached:
            handler.errors.remove_listener(self.publish_error)
            self._attached.remove(handler)

    def deserialize_message(self, raw_data: Union[str, bytes]) -> Optional[BaseMessage]:
        """Decode a published payload; returns None for anything malformed"""
        if isinstance(raw_data, bytes):
            raw_data = raw_data.decode("utf-8")

        try:
            payload = json.loads(raw_data)
            message_class = MESSAGE_CLASSES[MessageType(payload["message_type"])]
            return message_class.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Invalid error message payload: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Undecodable error message: {e!r}")
        return None

    async def health_check(self) -> Dict[str, Any]:
        """Connection status plus publish counters"""
        status: Dict[str, Any] = {
            "connected": self.is_connected,
            "handlers_attached": len(self._attached),
            "published": self.published_count,
            "failed": self.failed_count,
        }
        if not self.is_connected:
            status["status"] = "disconnected"
            return status

        try:
            await self.redis_client.ping()
            server = await self.redis_client.info("server")
        except Exception as e:
            status.update(status="error", connected=False, error=str(e))
            return status

        status.update(status="healthy", redis_version=server.get("redis_version"))
        return status
