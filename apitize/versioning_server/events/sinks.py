"""
Notification sinks for lifecycle events.

A sink delivers deprecation, retirement and retirement-upcoming events to
API consumers. The production sink publishes to an SNS topic; subscribers
(email, chat, webhooks) are configured on the topic itself.

Invariants:
    - publish() either delivers or raises NotificationError
    - Message bodies are JSON with the event and the channel settings
    - SNS calls are bounded by config.timeout_seconds
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable

from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from ..models import NotificationChannel
from .outbox import DomainEvent

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Notification delivery failed."""
    pass


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for notification delivery."""

    @abstractmethod
    async def publish(
        self,
        event: DomainEvent,
        channel: NotificationChannel | None = None,
    ) -> None:
        """Deliver one event.

        Args:
            event: Event to deliver
            channel: Policy channel settings (recipients, template), if any

        Raises:
            NotificationError: If delivery fails
        """
        ...


def build_message(
    event: DomainEvent, channel: NotificationChannel | None = None
) -> dict[str, Any]:
    """JSON body shared by every sink."""
    message = event.to_dict()
    if channel is not None:
        message["recipients"] = list(channel.recipients)
        message["template"] = channel.template
    return message


class LoggingNotificationSink:
    """Writes notifications to the log. Used when SNS is disabled."""

    async def publish(
        self,
        event: DomainEvent,
        channel: NotificationChannel | None = None,
    ) -> None:
        logger.info(
            "Lifecycle notification",
            extra={"notification": build_message(event, channel)},
        )


class InMemoryNotificationSink:
    """Records notifications for assertions in tests."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[DomainEvent, NotificationChannel | None]] = []

    async def publish(
        self,
        event: DomainEvent,
        channel: NotificationChannel | None = None,
    ) -> None:
        if self.fail:
            raise NotificationError(f"Simulated failure for {event.event_type.value}")
        self.published.append((event, channel))


class SnsNotificationSink:
    """Publishes notifications to an SNS topic.

    Example:
        >>> sink = SnsNotificationSink(SnsConfig(enabled=True, topic_arn=arn))
        >>> await sink.connect()
        >>> await sink.publish(event)
    """

    def __init__(self, config: Any, client: Any = None) -> None:
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        """Create the SNS client."""
        if self._client is not None:
            return

        self._session = get_session()
        client_config = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_config["endpoint_url"] = self.config.endpoint_url

        self._client_ctx = self._session.create_client("sns", **client_config)
        self._client = await self._client_ctx.__aenter__()
        logger.info(
            "Connected to SNS",
            extra={
                "topic_arn": self.config.topic_arn,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close the SNS client."""
        if self._client_ctx is not None and self._owns_client:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing SNS client: {e}")
        if self._owns_client:
            self._client = None
        self._client_ctx = None
        self._session = None

    async def publish(
        self,
        event: DomainEvent,
        channel: NotificationChannel | None = None,
    ) -> None:
        if self._client is None:
            raise NotificationError("Not connected to SNS")

        subject = f"[{event.api_id}] {event.event_type.value}"
        if event.version:
            subject = f"{subject} {event.version}"

        try:
            await asyncio.wait_for(
                self._client.publish(
                    TopicArn=self.config.topic_arn,
                    Subject=subject[:100],
                    Message=json.dumps(build_message(event, channel), default=str),
                    MessageAttributes={
                        "event_type": {"DataType": "String", "StringValue": event.event_type.value},
                        "tenant_id": {"DataType": "String", "StringValue": event.tenant_id},
                        "api_id": {"DataType": "String", "StringValue": event.api_id},
                    },
                ),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise NotificationError(f"SNS publish timed out for {event.event_id}")
        except ClientError as e:
            raise NotificationError(f"SNS publish failed: {e}") from e

        logger.debug(
            "Notification published",
            extra={"event_id": event.event_id, "event_type": event.event_type.value},
        )
