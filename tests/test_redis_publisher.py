"""Tests for Redis forwarding of error events.

Verifies:
- Connection management against a mocked redis.asyncio client
- Error events and statistics are published as JSON on their channels
- Attach/detach wires the publisher into a handler's event stream
- Payloads deserialize back into validated message objects
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from pydantic import ValidationError

from error_recovery.enhanced_error_handler import EnhancedErrorHandler
from messaging.redis_client import RedisChannels, RedisErrorPublisher
from messaging.schemas import (
    EXAMPLE_ERROR_EVENT_DATA,
    ErrorEventMessage,
    ErrorStatisticsMessage,
    MessageSource,
)


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.ping.return_value = True
    client.info.return_value = {"redis_version": "7.2.4"}
    return client


@pytest_asyncio.fixture
async def publisher(redis_client):
    publisher = RedisErrorPublisher(redis_url="redis://test:6379/0")
    with patch("messaging.redis_client.redis.from_url", return_value=redis_client):
        assert await publisher.connect() is True
    yield publisher
    await publisher.disconnect()


def _published(redis_client):
    channel, payload = redis_client.publish.await_args[0]
    return channel, json.loads(payload)


class TestConnection:

    @pytest.mark.asyncio
    async def test_connect_failure(self, redis_client):
        redis_client.ping.side_effect = ConnectionError("connection refused")
        publisher = RedisErrorPublisher()
        with patch("messaging.redis_client.redis.from_url", return_value=redis_client):
            assert await publisher.connect() is False
        assert publisher.is_connected is False

    @pytest.mark.asyncio
    async def test_publish_without_connection(self, make_record):
        publisher = RedisErrorPublisher()
        assert await publisher.publish_error(make_record()) is False
        assert publisher.failed_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, redis_client):
        publisher = RedisErrorPublisher()
        with patch("messaging.redis_client.redis.from_url", return_value=redis_client):
            await publisher.connect()
        await publisher.disconnect()

        redis_client.aclose.assert_awaited_once()
        assert publisher.is_connected is False

    @pytest.mark.asyncio
    async def test_health_check(self, publisher):
        health = await publisher.health_check()
        assert health["status"] == "healthy"
        assert health["redis_version"] == "7.2.4"

        await publisher.disconnect()
        assert (await publisher.health_check())["status"] == "disconnected"


class TestPublishing:

    @pytest.mark.asyncio
    async def test_publish_error_event(self, publisher, redis_client, make_record):
        record = make_record("connection refused", client_id="openai", operation="chat")

        assert await publisher.publish_error(record) is True

        channel, payload = _published(redis_client)
        assert channel == RedisChannels.ERROR_EVENTS
        assert payload["message_type"] == "error_event"
        assert payload["source"] == "error_handler"
        assert payload["message_id"] == record.id
        assert payload["client_id"] == "openai"
        assert payload["data"]["category"] == "network"
        assert payload["data"]["context"]["operation"] == "chat"
        assert publisher.published_count == 1

    @pytest.mark.asyncio
    async def test_publish_failure_is_counted(self, publisher, redis_client, make_record):
        redis_client.publish.side_effect = ConnectionError("broken pipe")
        assert await publisher.publish_error(make_record()) is False
        assert publisher.failed_count == 1

    @pytest.mark.asyncio
    async def test_publish_statistics(self, publisher, redis_client):
        handler = EnhancedErrorHandler()
        try:
            assert await publisher.publish_statistics(handler) is True
        finally:
            await handler.dispose()

        channel, payload = _published(redis_client)
        assert channel == RedisChannels.ERROR_STATISTICS
        assert payload["data"]["total_errors"] == 0
        assert payload["data"]["circuit_breakers"]["network"]["state"] == "closed"

    @pytest.mark.asyncio
    async def test_attached_handler_forwards_errors(self, publisher, redis_client):
        handler = EnhancedErrorHandler()
        publisher.attach(handler)
        publisher.attach(handler)

        def invalid():
            raise ValueError("invalid input")

        with pytest.raises(ValueError):
            await handler.handle_error(invalid, client_id="c1")
        assert redis_client.publish.await_count == 1
        assert _published(redis_client)[1]["data"]["code"] == "VALIDATION_ERROR"

        publisher.detach(handler)
        with pytest.raises(ValueError):
            await handler.handle_error(invalid, client_id="c1")
        assert redis_client.publish.await_count == 1
        await handler.dispose()


class TestDeserialization:

    def test_round_trip(self, make_record):
        publisher = RedisErrorPublisher(source=MessageSource.LLM_CLIENT)
        record = make_record("token expired")
        message = ErrorEventMessage.from_record(record, source=publisher.source)

        restored = publisher.deserialize_message(message.model_dump_json().encode("utf-8"))

        assert isinstance(restored, ErrorEventMessage)
        assert restored.source == "llm_client"
        assert restored.data["code"] == "AUTH_ERROR"

    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"client_id": "c1"}),
        json.dumps({"message_type": "heartbeat"}),
        json.dumps({"message_type": "error_event", "client_id": "c1", "data": {"id": "x"}}),
    ])
    def test_invalid_payloads(self, raw):
        assert RedisErrorPublisher().deserialize_message(raw) is None


class TestSchemas:

    def test_error_event_requires_record_fields(self):
        with pytest.raises(ValidationError):
            ErrorEventMessage(client_id="c1", data={"id": "err_1", "category": "network"})

        message = ErrorEventMessage(client_id="openai-primary", data=EXAMPLE_ERROR_EVENT_DATA)
        assert message.message_type == "error_event"

    def test_statistics_requires_total(self):
        with pytest.raises(ValidationError):
            ErrorStatisticsMessage(data={"errors_by_category": {}})
