"""
APItize Versioning Server - Main entry point.

This module starts the versioning server with all components:
- HTTP API (aiohttp)
- Event dispatcher loop (outbox -> notifications, deployment teardown)
- Retirement sweeper loop (deprecated -> retired on schedule)

Usage:
    python -m apitize.versioning_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Stores are connected before the HTTP listener accepts requests
    - Graceful shutdown stops the listener before the loops drain
    - All components share one record store and one outbox

How to change safely:
    - Add new components with enable/disable flags
    - Keep the shutdown order: listener, loops, clients, stores
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

import json_log_formatter
from aiohttp import web

from .api import create_http_app
from .config import ServerConfig, StoreBackend
from .events import (
    DeploymentOrchestrator,
    EventDispatcher,
    EventOutbox,
    LoggingDeploymentOrchestrator,
    LoggingNotificationSink,
    NotificationSink,
    SnsNotificationSink,
    WebhookDeploymentOrchestrator,
)
from .lifecycle import RetirementSweeper
from .service import VersioningService
from .specs import InMemorySpecificationStore, S3SpecificationStore, SpecificationStore
from .store import DynamoDbRecordStore, InMemoryRecordStore, RecordStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def create_record_store(config: ServerConfig) -> RecordStore:
    """Create the record store for the configured backend."""
    if config.backend == StoreBackend.MEMORY:
        return InMemoryRecordStore()
    return DynamoDbRecordStore(config.dynamodb)


def create_specification_store(config: ServerConfig) -> SpecificationStore:
    """Create the specification blob store for the configured backend."""
    if config.backend == StoreBackend.MEMORY:
        return InMemorySpecificationStore(prefix=config.s3.spec_prefix)
    return S3SpecificationStore(config.s3)


def create_notification_sink(config: ServerConfig) -> NotificationSink:
    if config.sns.enabled:
        return SnsNotificationSink(config.sns)
    return LoggingNotificationSink()


def create_deployment_orchestrator(config: ServerConfig) -> DeploymentOrchestrator:
    if config.deployment.webhook_url:
        return WebhookDeploymentOrchestrator(config.deployment)
    return LoggingDeploymentOrchestrator()


class Server:
    """Versioning server orchestrator.

    Manages the lifecycle of all server components:
    - Record and specification stores
    - HTTP API
    - Background loops (dispatcher, sweeper)

    Attributes:
        config: Server configuration
        records: Record store instance
        specs: Specification blob store
        service: VersioningService facade

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.records: RecordStore | None = None
        self.specs: SpecificationStore | None = None
        self.outbox: EventOutbox | None = None
        self.notifications: Any = None
        self.deployments: Any = None
        self.service: VersioningService | None = None
        self.dispatcher: EventDispatcher | None = None
        self.sweeper: RetirementSweeper | None = None
        self.http_runner: web.AppRunner | None = None

        # Background tasks
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start the server and all components."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting APItize versioning server")
        self.config.log_config()
        self._running = True

        try:
            # Initialize stores
            self.records = create_record_store(self.config)
            await self.records.connect()
            self.specs = create_specification_store(self.config)
            await self.specs.connect()
            logger.info("Stores connected", extra={"backend": self.config.backend.value})

            # Initialize side-effect clients
            self.notifications = create_notification_sink(self.config)
            self.deployments = create_deployment_orchestrator(self.config)
            for client in (self.notifications, self.deployments):
                connect = getattr(client, "connect", None)
                if connect is not None:
                    await connect()

            # Initialize service
            self.outbox = EventOutbox()
            self.service = VersioningService(
                self.records,
                self.specs,
                self.outbox,
                planner_config=self.config.planner,
            )

            # Start dispatcher
            self.dispatcher = EventDispatcher(
                self.outbox,
                self.notifications,
                self.deployments,
                policies=self.service.policies,
                interval_seconds=self.config.lifecycle.dispatch_interval_seconds,
            )
            self._tasks.append(asyncio.create_task(self.dispatcher.start()))

            # Start sweeper if enabled
            if self.config.lifecycle.sweeper_enabled:
                self.sweeper = RetirementSweeper(
                    self.service.versions,
                    self.service.policies,
                    self.outbox,
                    interval_seconds=self.config.lifecycle.sweep_interval_seconds,
                )
                self._tasks.append(asyncio.create_task(self.sweeper.start()))

            # Start HTTP API
            app = create_http_app(self.service, self.config.http)
            self.http_runner = web.AppRunner(app)
            await self.http_runner.setup()
            site = web.TCPSite(self.http_runner, self.config.http.host, self.config.http.port)
            await site.start()

            logger.info(
                "APItize versioning server started",
                extra={"http_bind": f"{self.config.http.host}:{self.config.http.port}"},
            )

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping APItize versioning server")

        if self.http_runner:
            await self.http_runner.cleanup()
            self.http_runner = None

        if self.sweeper:
            await self.sweeper.stop()

        if self.dispatcher:
            await self.dispatcher.stop()

        # Stop background tasks
        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        for client in (self.notifications, self.deployments):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

        if self.specs:
            await self.specs.close()

        if self.records:
            await self.records.close()

        self._running = False
        logger.info("APItize versioning server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    # Create server
    server = Server(config)

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    # Run server
    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
