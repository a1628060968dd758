"""
Domain event outbox.

State-mutating operations append a DomainEvent here after their primary
write has succeeded. The EventDispatcher drains the outbox and performs the
side effects (notifications, deployment teardown) outside the request path.

Invariants:
    - Events are appended only after the state change is durable
    - drain() hands out each event exactly once, in emission order
    - Emitting never blocks and never fails because of a downstream system

How to change safely:
    - Add new event types at the end of EventType
    - Payload keys are part of the notification contract; only add keys
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..models import format_timestamp, utcnow

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Kinds of domain events."""

    VERSION_CREATED = "VersionCreated"
    VERSION_PUBLISHED = "VersionPublished"
    VERSION_DEPRECATED = "VersionDeprecated"
    VERSION_RETIRED = "VersionRetired"
    RETIREMENT_UPCOMING = "RetirementUpcoming"
    MIGRATION_PLAN_CREATED = "MigrationPlanCreated"


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to a version or migration plan.

    Attributes:
        event_type: What happened
        tenant_id: Owning tenant
        api_id: API identifier
        version: Version the event is about (None for plan-level events)
        payload: Event-specific JSON-serializable data
        event_id: Unique event identifier
        occurred_at: When the state change happened
    """

    event_type: EventType
    tenant_id: str
    api_id: str
    version: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "tenant_id": self.tenant_id,
            "api_id": self.api_id,
            "version": self.version,
            "occurred_at": format_timestamp(self.occurred_at),
            "payload": self.payload,
        }


class EventOutbox:
    """In-process FIFO of pending domain events.

    Example:
        >>> outbox = EventOutbox()
        >>> outbox.emit(DomainEvent(EventType.VERSION_CREATED, "t1", "orders", "1.0.0"))
        >>> [e.event_type for e in outbox.drain()]
        [<EventType.VERSION_CREATED: 'VersionCreated'>]
    """

    def __init__(self) -> None:
        self._pending: deque[DomainEvent] = deque()
        self._wakeup = asyncio.Event()

    def emit(self, event: DomainEvent) -> None:
        """Append an event."""
        self._pending.append(event)
        self._wakeup.set()
        logger.debug(
            "Event emitted",
            extra={
                "event_type": event.event_type.value,
                "tenant_id": event.tenant_id,
                "api_id": event.api_id,
                "version": event.version,
            },
        )

    def drain(self, max_events: int | None = None) -> list[DomainEvent]:
        """Remove and return pending events in emission order."""
        events = []
        while self._pending and (max_events is None or len(events) < max_events):
            events.append(self._pending.popleft())
        if not self._pending:
            self._wakeup.clear()
        return events

    async def wait(self, timeout: float) -> bool:
        """Wait until an event is pending or ``timeout`` elapses."""
        if self._pending:
            return True
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def __len__(self) -> int:
        return len(self._pending)
