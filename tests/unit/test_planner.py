"""
Unit tests for migration planning.

Tests cover:
- Strategy step tables and dependency chains
- Rollback and validation templates
- Plan creation, storage and status moves
"""

import re

import pytest

from apitize.versioning_server.compat import CompatibilityReport
from apitize.versioning_server.config import PlannerConfig
from apitize.versioning_server.errors import (
    InvalidMigrationStrategy,
    InvalidTransition,
    MigrationPlanNotFound,
    TenantContextMissing,
    VersionNotFound,
)
from apitize.versioning_server.events import EventType
from apitize.versioning_server.migration import (
    MigrationPlanner,
    MigrationPlanStore,
    MigrationStatus,
    MigrationStrategy,
    StepType,
    TestType,
    build_rollback_plan,
    build_validation_bundle,
    generate_steps,
    generate_validation_tests,
    parse_strategy,
)


class TestStrategySteps:
    """Tests for generate_steps."""

    @pytest.mark.parametrize(
        "strategy,expected_ids",
        [
            ("blue-green", ["prep-1", "deploy-1", "deploy-2", "cleanup-1"]),
            ("canary", ["prep-1", "deploy-1", "deploy-2", "deploy-3", "cleanup-1"]),
            ("rolling", ["prep-1", "deploy-1", "deploy-2", "verify-1", "cleanup-1"]),
            ("immediate", ["prep-1", "deploy-1", "verify-1", "cleanup-1"]),
        ],
    )
    def test_step_ids(self, strategy, expected_ids):
        assert [s.id for s in generate_steps(strategy)] == expected_ids

    @pytest.mark.parametrize("strategy", MigrationStrategy.values())
    def test_each_step_depends_on_previous(self, strategy):
        steps = generate_steps(strategy)

        assert steps[0].dependencies == ()
        for previous, step in zip(steps, steps[1:]):
            assert step.dependencies == (previous.id,)

    @pytest.mark.parametrize("strategy", MigrationStrategy.values())
    def test_bookends(self, strategy):
        steps = generate_steps(strategy)

        assert steps[0].name == "Pre-deployment Validation"
        assert steps[0].type is StepType.PREPARATION
        assert steps[-1].name == "Cleanup Old Resources"
        assert steps[-1].type is StepType.CLEANUP

    def test_canary_names(self):
        names = [s.name for s in generate_steps(MigrationStrategy.CANARY)]
        assert names[1:4] == ["Deploy Canary (10%)", "Increase to 50%", "Full Deployment"]

    def test_blue_green_names(self):
        names = [s.name for s in generate_steps("blue-green")]
        assert names[1:3] == ["Deploy Green Environment", "Switch Traffic"]

    def test_unknown_strategy(self):
        with pytest.raises(InvalidMigrationStrategy) as exc_info:
            parse_strategy("big-bang")
        assert exc_info.value.details["supported"] == MigrationStrategy.values()


class TestTemplates:
    """Tests for rollback and validation templates."""

    def test_default_rollback_conditions(self):
        plan = build_rollback_plan(PlannerConfig())

        assert plan.enabled
        assert plan.conditions == ("error-rate > 5%", "response-time > 2000ms")
        assert plan.steps[0] == "Stop traffic to new version"

    def test_configured_thresholds(self):
        plan = build_rollback_plan(
            PlannerConfig(rollback_error_rate_pct=2.5, rollback_response_time_ms=800)
        )
        assert plan.conditions == ("error-rate > 2.5%", "response-time > 800ms")

    def test_pre_and_post_tests(self):
        pre = generate_validation_tests("pre")
        post = generate_validation_tests("post")

        assert [t.name for t in pre] == ["Health Check", "API Compatibility"]
        assert [t.type for t in post] == [
            TestType.INTEGRATION,
            TestType.CONTRACT,
            TestType.PERFORMANCE,
        ]

    def test_bundle_names_contract_suite(self):
        bundle = build_validation_bundle(PlannerConfig(contract_test_suite="orders-contracts"))
        assert bundle.contract_tests == ("orders-contracts",)


class StubAnalyzer:
    """Returns a fixed report, or raises for unknown versions."""

    def __init__(self, known=("1.0.0", "2.0.0")):
        self.known = set(known)
        self.calls = []

    async def compare_versions(self, tenant_id, api_id, version1, version2):
        self.calls.append((tenant_id, api_id, version1, version2))
        missing = [v for v in (version1, version2) if v not in self.known]
        if missing:
            raise VersionNotFound(api_id, missing, operation="compare_versions")
        return CompatibilityReport(version1, version2)


@pytest.fixture
def analyzer():
    return StubAnalyzer()


@pytest.fixture
def planner(analyzer, records, outbox, clock):
    return MigrationPlanner(analyzer, MigrationPlanStore(records), outbox, clock=clock)


class TestMigrationPlanner:
    """Tests for MigrationPlanner."""

    @pytest.mark.asyncio
    async def test_create_plan(self, planner, outbox, clock):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")

        assert re.fullmatch(r"migration-\d+-[0-9a-f]{9}", plan.id)
        assert plan.status is MigrationStatus.PLANNED
        assert plan.strategy is MigrationStrategy.CANARY
        assert plan.created_at == clock.now
        assert plan.compatibility_report.compatible
        assert len(plan.steps) == 5

        events = outbox.drain()
        assert [e.event_type for e in events] == [EventType.MIGRATION_PLAN_CREATED]
        assert events[0].payload["plan_id"] == plan.id

    @pytest.mark.asyncio
    async def test_plan_is_stored(self, planner):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "rolling")
        assert await planner.get_migration_plan("t1", "orders", plan.id) == plan

    @pytest.mark.asyncio
    async def test_unknown_strategy_checked_first(self, planner, analyzer, records):
        with pytest.raises(InvalidMigrationStrategy):
            await planner.create_migration_plan("t1", "orders", "1.0.0", "9.9.9", "big-bang")
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_missing_version(self, planner, outbox):
        with pytest.raises(VersionNotFound):
            await planner.create_migration_plan("t1", "orders", "1.0.0", "9.9.9", "canary")
        assert len(outbox) == 0
        assert await planner.list_migration_plans("t1", "orders") == []

    @pytest.mark.asyncio
    async def test_tenant_required(self, planner):
        with pytest.raises(TenantContextMissing):
            await planner.create_migration_plan("", "orders", "1.0.0", "2.0.0", "canary")

    @pytest.mark.asyncio
    async def test_plan_not_found(self, planner):
        with pytest.raises(MigrationPlanNotFound):
            await planner.get_migration_plan("t1", "orders", "migration-0-000000000")

    @pytest.mark.asyncio
    async def test_plans_scoped_to_tenant(self, planner):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        with pytest.raises(MigrationPlanNotFound):
            await planner.get_migration_plan("t2", "orders", plan.id)

    @pytest.mark.asyncio
    async def test_list_oldest_first(self, planner, clock):
        first = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        clock.advance(minutes=5)
        second = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "immediate")

        plans = await planner.list_migration_plans("t1", "orders")

        assert [p.id for p in plans] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_start_then_complete(self, planner, clock):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")

        clock.advance(minutes=1)
        started = await planner.start_migration("t1", "orders", plan.id)
        clock.advance(minutes=10)
        completed = await planner.complete_migration("t1", "orders", plan.id)

        assert started.status is MigrationStatus.IN_PROGRESS
        assert started.started_at == completed.started_at
        assert completed.status is MigrationStatus.COMPLETED
        assert completed.completed_at == clock.now

    @pytest.mark.asyncio
    async def test_fail_records_reason(self, planner):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        await planner.start_migration("t1", "orders", plan.id)

        failed = await planner.fail_migration("t1", "orders", plan.id, "error rate 9%")

        assert failed.status is MigrationStatus.FAILED
        assert failed.failure_reason == "error rate 9%"

    @pytest.mark.asyncio
    async def test_cannot_complete_planned(self, planner):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        with pytest.raises(InvalidTransition):
            await planner.complete_migration("t1", "orders", plan.id)

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, planner):
        plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        await planner.start_migration("t1", "orders", plan.id)
        await planner.complete_migration("t1", "orders", plan.id)

        with pytest.raises(InvalidTransition):
            await planner.fail_migration("t1", "orders", plan.id, "too late")
