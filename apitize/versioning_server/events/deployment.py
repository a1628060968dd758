"""
Deployment orchestrator clients.

When a version is retired its deployment must be torn down. The server does
not manage infrastructure itself; it asks an external orchestrator to do it.

- WebhookDeploymentOrchestrator: POSTs a teardown request to an HTTP endpoint
- LoggingDeploymentOrchestrator: Logs the request (no webhook configured)
- InMemoryDeploymentOrchestrator: Records requests (tests)

Invariants:
    - remove_deployment either succeeds or raises DeploymentError
    - Webhook calls are bounded by config.timeout_seconds
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Mapping, Protocol, runtime_checkable

import aiohttp

logger = logging.getLogger(__name__)


class DeploymentError(Exception):
    """Deployment teardown request failed."""
    pass


@runtime_checkable
class DeploymentOrchestrator(Protocol):
    """Protocol for deployment teardown."""

    @abstractmethod
    async def remove_deployment(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        deployment: Mapping[str, Any],
    ) -> None:
        """Tear down the deployment of a retired version.

        Raises:
            DeploymentError: If the request fails
        """
        ...


class LoggingDeploymentOrchestrator:
    """Logs teardown requests instead of sending them."""

    async def remove_deployment(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        deployment: Mapping[str, Any],
    ) -> None:
        logger.info(
            "Deployment removal requested",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "version": version,
                "endpoint": deployment.get("endpoint"),
            },
        )


class InMemoryDeploymentOrchestrator:
    """Records teardown requests for assertions in tests."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.removed: list[tuple[str, str, str]] = []

    async def remove_deployment(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        deployment: Mapping[str, Any],
    ) -> None:
        if self.fail:
            raise DeploymentError(f"Simulated teardown failure for {api_id} {version}")
        self.removed.append((tenant_id, api_id, version))


class WebhookDeploymentOrchestrator:
    """Sends teardown requests to an HTTP webhook.

    Request body:
        {"action": "remove", "tenant_id": ..., "api_id": ...,
         "version": ..., "deployment": {...}}

    Any 2xx response counts as accepted.
    """

    def __init__(self, config: Any, session: aiohttp.ClientSession | None = None) -> None:
        """Initialize the orchestrator client.

        Args:
            config: DeploymentConfig instance (webhook_url must be set)
            session: Optional shared session; the caller keeps ownership
        """
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        logger.info("Deployment webhook ready", extra={"webhook_url": self.config.webhook_url})

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def remove_deployment(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        deployment: Mapping[str, Any],
    ) -> None:
        if self._session is None:
            raise DeploymentError("Deployment webhook client not connected")

        body = {
            "action": "remove",
            "tenant_id": tenant_id,
            "api_id": api_id,
            "version": version,
            "deployment": dict(deployment),
        }

        try:
            await asyncio.wait_for(self._post(body), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            raise DeploymentError(f"Deployment webhook timed out for {api_id} {version}")
        except aiohttp.ClientError as e:
            raise DeploymentError(f"Deployment webhook failed: {e}") from e

        logger.info(
            "Deployment removal accepted",
            extra={"tenant_id": tenant_id, "api_id": api_id, "version": version},
        )

    async def _post(self, body: dict[str, Any]) -> None:
        async with self._session.post(self.config.webhook_url, json=body) as response:
            if response.status >= 300:
                text = await response.text()
                raise DeploymentError(
                    f"Deployment webhook returned {response.status}: {text[:200]}"
                )
