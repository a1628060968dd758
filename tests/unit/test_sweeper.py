"""
Unit tests for the automatic retirement sweeper.

Tests cover:
- Due-date resolution
- Retirement of expired deprecated versions
- One-shot "retirement upcoming" warnings
- Policies without auto-retirement
- Stopping the background loop
"""

import asyncio
from datetime import timedelta

import pytest

from apitize.versioning_server.events import EventType
from apitize.versioning_server.lifecycle import (
    PolicyStore,
    RetirementSweeper,
    VersionStore,
    retirement_due_at,
)
from apitize.versioning_server.models import (
    DeprecationPlan,
    LifecyclePolicy,
    VersionRecord,
    VersionStatus,
)


@pytest.fixture
def versions(records, specs, outbox, clock):
    return VersionStore(records, specs, outbox, clock=clock)


@pytest.fixture
def policies(records):
    return PolicyStore(records)


@pytest.fixture
def sweeper(versions, policies, outbox, clock):
    return RetirementSweeper(versions, policies, outbox, interval_seconds=1, clock=clock)


async def deprecated_version(versions, version, support_end_date=None):
    await versions.create_version(VersionRecord(
        api_id="orders",
        tenant_id="t1",
        version=version,
        status=VersionStatus.PUBLISHED,
    ))
    return await versions.deprecate_version(
        "t1",
        "orders",
        version,
        DeprecationPlan(
            reason="superseded",
            support_end_date=support_end_date,
            replacement_version="2.0.0",
        ),
    )


def auto_policy(**kwargs):
    return LifecyclePolicy(tenant_id="t1", api_id="orders", auto_retirement=True, **kwargs)


class TestRetirementDueAt:
    """Tests for retirement_due_at."""

    def test_plan_date_wins(self, clock):
        end = clock.now + timedelta(days=5)
        record = VersionRecord(
            api_id="orders",
            tenant_id="t1",
            version="1.0.0",
            status=VersionStatus.DEPRECATED,
            deprecated_at=clock.now,
            deprecation_plan=DeprecationPlan("x", support_end_date=end),
        )
        assert retirement_due_at(record, auto_policy(retirement_period_days=1)) == end

    def test_falls_back_to_retirement_period(self, clock):
        record = VersionRecord(
            api_id="orders",
            tenant_id="t1",
            version="1.0.0",
            status=VersionStatus.DEPRECATED,
            deprecated_at=clock.now,
            deprecation_plan=DeprecationPlan("x"),
        )
        due = retirement_due_at(record, auto_policy(retirement_period_days=14))
        assert due == clock.now + timedelta(days=14)


class TestSweep:
    """Tests for RetirementSweeper.sweep_once."""

    @pytest.mark.asyncio
    async def test_retires_expired_versions(self, sweeper, versions, policies, outbox, clock):
        await policies.put_policy(auto_policy())
        await deprecated_version(versions, "1.0.0", clock.now + timedelta(days=10))
        outbox.drain()

        clock.advance(days=11)
        retired = await sweeper.sweep_once()

        assert [r.version for r in retired] == ["1.0.0"]
        stored = await versions.get_version("t1", "orders", "1.0.0")
        assert stored.status is VersionStatus.RETIRED
        assert [e.event_type for e in outbox.drain()] == [EventType.VERSION_RETIRED]

    @pytest.mark.asyncio
    async def test_uses_retirement_period_without_end_date(
        self, sweeper, versions, policies, clock
    ):
        await policies.put_policy(auto_policy(retirement_period_days=7))
        await deprecated_version(versions, "1.0.0")

        clock.advance(days=6)
        assert await sweeper.sweep_once() == []

        clock.advance(days=2)
        assert [r.version for r in await sweeper.sweep_once()] == ["1.0.0"]

    @pytest.mark.asyncio
    async def test_warns_once_inside_warning_window(
        self, sweeper, versions, policies, outbox, clock
    ):
        await policies.put_policy(auto_policy(deprecation_warning_days=30))
        end = clock.now + timedelta(days=20)
        await deprecated_version(versions, "1.0.0", end)
        outbox.drain()

        assert await sweeper.sweep_once() == []
        await sweeper.sweep_once()

        events = outbox.drain()
        assert [e.event_type for e in events] == [EventType.RETIREMENT_UPCOMING]
        assert events[0].version == "1.0.0"
        assert events[0].payload["replacement_version"] == "2.0.0"
        assert events[0].payload["retirement_date"] == end.isoformat()

    @pytest.mark.asyncio
    async def test_quiet_outside_warning_window(self, sweeper, versions, policies, outbox, clock):
        await policies.put_policy(auto_policy(deprecation_warning_days=30))
        await deprecated_version(versions, "1.0.0", clock.now + timedelta(days=60))
        outbox.drain()

        assert await sweeper.sweep_once() == []
        assert len(outbox) == 0

    @pytest.mark.asyncio
    async def test_ignores_policies_without_auto_retirement(
        self, sweeper, versions, policies, clock
    ):
        await policies.put_policy(LifecyclePolicy(tenant_id="t1", api_id="orders"))
        await deprecated_version(versions, "1.0.0", clock.now + timedelta(days=1))

        clock.advance(days=2)

        assert await sweeper.sweep_once() == []
        stored = await versions.get_version("t1", "orders", "1.0.0")
        assert stored.status is VersionStatus.DEPRECATED

    @pytest.mark.asyncio
    async def test_published_versions_untouched(self, sweeper, versions, policies, clock):
        await policies.put_policy(auto_policy())
        await versions.create_version(VersionRecord(
            api_id="orders",
            tenant_id="t1",
            version="1.0.0",
            status=VersionStatus.PUBLISHED,
        ))

        clock.advance(days=365)

        assert await sweeper.sweep_once() == []


class TestSweepLoop:
    """Tests for the background loop."""

    @pytest.mark.asyncio
    async def test_stop_interrupts_interval(self, versions, policies, outbox, clock):
        sweeper = RetirementSweeper(versions, policies, outbox, interval_seconds=3600, clock=clock)
        task = asyncio.create_task(sweeper.start())

        for _ in range(50):
            if sweeper._running:
                break
            await asyncio.sleep(0.01)

        await sweeper.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert task.done()
        assert not sweeper._running
