"""
Domain events and their side effects.

- outbox: DomainEvent, EventType and the in-process EventOutbox
- dispatcher: EventDispatcher draining the outbox
- sinks: Notification sinks (SNS, logging, in-memory)
- deployment: Deployment orchestrators (webhook, logging, in-memory)
"""

from .deployment import (
    DeploymentError,
    DeploymentOrchestrator,
    InMemoryDeploymentOrchestrator,
    LoggingDeploymentOrchestrator,
    WebhookDeploymentOrchestrator,
)
from .dispatcher import EventDispatcher
from .outbox import DomainEvent, EventOutbox, EventType
from .sinks import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationError,
    NotificationSink,
    SnsNotificationSink,
)

__all__ = [
    "DomainEvent",
    "EventOutbox",
    "EventType",
    "EventDispatcher",
    "NotificationSink",
    "NotificationError",
    "SnsNotificationSink",
    "LoggingNotificationSink",
    "InMemoryNotificationSink",
    "DeploymentOrchestrator",
    "DeploymentError",
    "WebhookDeploymentOrchestrator",
    "LoggingDeploymentOrchestrator",
    "InMemoryDeploymentOrchestrator",
]
