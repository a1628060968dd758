"""
Outbox dispatcher.

Delivers pending domain events to the notification sink and the deployment
orchestrator:

    VersionDeprecated   -> notification (deprecation channel)
    RetirementUpcoming  -> notification (deprecation channel)
    VersionRetired      -> notification (retirement channel) + deployment teardown
    everything else     -> logged only

Invariants:
    - Each delivery failure is logged and dropped; it never reaches the
      operation that emitted the event and never stops the loop
    - A disabled policy channel suppresses the notification only
    - Events are delivered in emission order
    - Events leave the outbox one at a time; cancellation loses at most
      the event in flight

How to change safely:
    - New event types default to "logged only" until routed here
    - Keep deliveries independent: one failing target must not skip the other
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..models import NotificationChannel
from .deployment import DeploymentOrchestrator
from .outbox import DomainEvent, EventOutbox, EventType
from .sinks import NotificationSink

logger = logging.getLogger(__name__)

_DEPRECATION_EVENTS = frozenset({EventType.VERSION_DEPRECATED, EventType.RETIREMENT_UPCOMING})
_RETIREMENT_EVENTS = frozenset({EventType.VERSION_RETIRED})


class EventDispatcher:
    """Drains the outbox and performs side effects.

    Attributes:
        outbox: Source of pending events
        notifications: Notification sink
        deployments: Deployment orchestrator
        policies: Optional policy store used to honour channel settings

    Example:
        >>> dispatcher = EventDispatcher(outbox, sink, orchestrator)
        >>> delivered = await dispatcher.dispatch_pending()
    """

    def __init__(
        self,
        outbox: EventOutbox,
        notifications: NotificationSink,
        deployments: DeploymentOrchestrator,
        policies: Any = None,
        interval_seconds: float = 1.0,
    ) -> None:
        self.outbox = outbox
        self.notifications = notifications
        self.deployments = deployments
        self.policies = policies
        self.interval_seconds = interval_seconds

        self._running = False
        self._dispatched_count = 0
        self._failed_count = 0

    @property
    def stats(self) -> dict[str, int]:
        return {
            "dispatched": self._dispatched_count,
            "failed": self._failed_count,
            "pending": len(self.outbox),
        }

    async def dispatch_pending(self) -> int:
        """Deliver every event pending on entry, one at a time.

        Events are taken off the outbox individually, so cancelling this
        coroutine loses at most the event being delivered; the rest stay
        queued for the next pass.

        Returns:
            Number of events processed
        """
        processed = 0
        for _ in range(len(self.outbox)):
            events = self.outbox.drain(max_events=1)
            if not events:
                break
            await self._dispatch(events[0])
            processed += 1
        return processed

    async def start(self) -> None:
        """Run the dispatch loop until stopped."""
        if self._running:
            logger.warning("Dispatcher already running")
            return

        self._running = True
        logger.info("Starting event dispatcher", extra={"interval": self.interval_seconds})

        try:
            while self._running:
                await self.outbox.wait(self.interval_seconds)
                await self.dispatch_pending()
        except asyncio.CancelledError:
            logger.info("Event dispatcher cancelled")
        finally:
            self._running = False
            # Deliver whatever was emitted during shutdown.
            await self.dispatch_pending()

    async def stop(self) -> None:
        """Stop the dispatch loop."""
        self._running = False
        logger.info("Stopping event dispatcher", extra=self.stats)

    async def _dispatch(self, event: DomainEvent) -> None:
        context = {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "tenant_id": event.tenant_id,
            "api_id": event.api_id,
            "version": event.version,
        }

        if event.event_type in _DEPRECATION_EVENTS or event.event_type in _RETIREMENT_EVENTS:
            await self._notify(event, context)

        if event.event_type in _RETIREMENT_EVENTS:
            await self._tear_down(event, context)

        self._dispatched_count += 1
        logger.info("Event dispatched", extra=context)

    async def _notify(self, event: DomainEvent, context: dict[str, Any]) -> None:
        try:
            channel = await self._channel_for(event)
            if channel is not None and not channel.enabled:
                logger.debug("Notification channel disabled", extra=context)
                return
            await self.notifications.publish(event, channel)
        except Exception as e:
            self._failed_count += 1
            logger.error(f"Notification delivery failed: {e}", extra=context, exc_info=True)

    async def _tear_down(self, event: DomainEvent, context: dict[str, Any]) -> None:
        try:
            await self.deployments.remove_deployment(
                event.tenant_id,
                event.api_id,
                event.version or "",
                event.payload.get("deployment") or {},
            )
        except Exception as e:
            self._failed_count += 1
            logger.error(f"Deployment teardown failed: {e}", extra=context, exc_info=True)

    async def _channel_for(self, event: DomainEvent) -> NotificationChannel | None:
        if self.policies is None:
            return None
        policy = await self.policies.get_policy(event.tenant_id, event.api_id)
        if policy is None:
            return None
        if event.event_type in _RETIREMENT_EVENTS:
            return policy.retirement_notifications
        return policy.deprecation_notifications
