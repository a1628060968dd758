"""
Automatic retirement sweeper.

Runs as a background loop. On each pass, for every lifecycle policy with
auto_retirement enabled, it looks at the API's deprecated versions:

- retirement is due at the deprecation plan's support_end_date, or at
  deprecated_at + retirement_period_days when the plan has none
- due versions are retired through the version store
- versions due within deprecation_warning_days get one RetirementUpcoming
  event per process lifetime

Invariants:
    - Policies without auto_retirement are never touched
    - A version retired concurrently is skipped, not an error
    - One failing API does not stop the pass for other APIs
    - stop() ends the loop without waiting out the current interval
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Set, Tuple

from ..errors import InvalidTransition, VersionNotFound
from ..events import DomainEvent, EventOutbox, EventType
from ..models import (
    LifecyclePolicy,
    VersionRecord,
    VersionStatus,
    format_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


def retirement_due_at(record: VersionRecord, policy: LifecyclePolicy) -> Optional[datetime]:
    """When a deprecated version should be retired."""
    if record.deprecation_plan and record.deprecation_plan.support_end_date:
        return record.deprecation_plan.support_end_date
    if record.deprecated_at is None:
        return None
    return record.deprecated_at + timedelta(days=policy.retirement_period_days)


class RetirementSweeper:
    """Retires deprecated versions whose support window has ended.

    Example:
        >>> sweeper = RetirementSweeper(version_store, policy_store, outbox)
        >>> retired = await sweeper.sweep_once()
    """

    def __init__(
        self,
        versions: Any,
        policies: Any,
        outbox: EventOutbox,
        interval_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.versions = versions
        self.policies = policies
        self.outbox = outbox
        self.interval_seconds = interval_seconds
        self.clock = clock

        self._running = False
        self._stop_event = asyncio.Event()
        self._warned: Set[Tuple[str, str, str]] = set()
        self._retired_count = 0

    async def start(self) -> None:
        """Run sweeps until stopped."""
        if self._running:
            logger.warning("Retirement sweeper already running")
            return

        self._running = True
        self._stop_event.clear()
        logger.info("Starting retirement sweeper", extra={"interval": self.interval_seconds})

        try:
            while self._running:
                try:
                    await self.sweep_once()
                except Exception as e:
                    logger.error(f"Retirement sweep failed: {e}", exc_info=True)
                await self._wait_for_next_pass()
        except asyncio.CancelledError:
            logger.info("Retirement sweeper cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        self._stop_event.set()
        logger.info("Stopping retirement sweeper", extra={"retired": self._retired_count})

    async def _wait_for_next_pass(self) -> None:
        """Sleep for one interval, returning early once stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def sweep_once(self) -> List[VersionRecord]:
        """Run one pass over every auto-retiring policy.

        Returns:
            Records retired during this pass
        """
        retired: List[VersionRecord] = []
        for policy in await self.policies.list_policies():
            if not policy.auto_retirement:
                continue
            try:
                retired.extend(await self._sweep_api(policy))
            except Exception as e:
                logger.error(
                    f"Sweep failed for API: {e}",
                    extra={"tenant_id": policy.tenant_id, "api_id": policy.api_id},
                    exc_info=True,
                )
        if retired:
            logger.info("Retirement sweep completed", extra={"retired": len(retired)})
        return retired

    async def _sweep_api(self, policy: LifecyclePolicy) -> List[VersionRecord]:
        now = self.clock()
        warning_window = timedelta(days=policy.deprecation_warning_days)
        retired = []

        records = await self.versions.get_versions(policy.tenant_id, policy.api_id)
        for record in records:
            if record.status is not VersionStatus.DEPRECATED:
                continue
            due = retirement_due_at(record, policy)
            if due is None:
                continue

            if due <= now:
                try:
                    retired.append(await self.versions.retire_version(
                        policy.tenant_id, policy.api_id, record.version
                    ))
                    self._retired_count += 1
                except (InvalidTransition, VersionNotFound) as e:
                    logger.warning(
                        f"Skipping retirement of {record.version}: {e}",
                        extra={"tenant_id": policy.tenant_id, "api_id": policy.api_id},
                    )
            elif due - now <= warning_window:
                self._warn(record, due)

        return retired

    def _warn(self, record: VersionRecord, due: datetime) -> None:
        key = (record.tenant_id, record.api_id, record.version)
        if key in self._warned:
            return
        self._warned.add(key)
        self.outbox.emit(DomainEvent(
            event_type=EventType.RETIREMENT_UPCOMING,
            tenant_id=record.tenant_id,
            api_id=record.api_id,
            version=record.version,
            payload={
                "retirement_date": format_timestamp(due),
                "replacement_version": record.deprecation_plan.replacement_version
                if record.deprecation_plan
                else None,
            },
        ))
