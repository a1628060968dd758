"""
Migration plan generator.

Builds a MigrationPlan for moving traffic between two versions of an API.
Steps come from a fixed per-strategy table:

    blue-green  prep -> Deploy Green Environment -> Switch Traffic -> cleanup
    canary      prep -> Deploy Canary (10%) -> Increase to 50%
                     -> Full Deployment -> cleanup
    rolling     prep -> Rolling Update (25%) -> Rolling Update (100%)
                     -> Verify Rollout -> cleanup
    immediate   prep -> Immediate Cutover -> Post-deployment Verification
                     -> cleanup

Every plan starts with "Pre-deployment Validation" and ends with
"Cleanup Old Resources". The compatibility report is embedded for audit and
never blocks plan creation. The rollback plan is a static template whose
thresholds come from PlannerConfig, not from the report.

Invariants:
    - Step i (i > 0) depends on exactly the id of step i - 1
    - Unknown strategies are rejected before any lookup or write
    - Status moves planned -> in-progress -> completed | failed

How to change safely:
    - Changing a strategy's steps changes new plans only; stored plans keep
      their steps
    - Keep step ids stable; external pipelines key on them
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..config import PlannerConfig
from ..errors import (
    InvalidMigrationStrategy,
    InvalidTransition,
    MigrationPlanNotFound,
    require_tenant,
)
from ..events import DomainEvent, EventOutbox, EventType
from ..models import utcnow
from .plan_store import MigrationPlanStore
from .types import (
    MigrationPlan,
    MigrationStatus,
    MigrationStep,
    MigrationStrategy,
    RollbackPlan,
    StepType,
    StepValidation,
    TestType,
    ValidationBundle,
    ValidationTest,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _StepTemplate:
    name: str
    description: str
    type: StepType
    commands: Tuple[str, ...]
    validation: StepValidation


_PREPARATION = _StepTemplate(
    name="Pre-deployment Validation",
    description="Run pre-deployment tests and validations",
    type=StepType.PREPARATION,
    commands=("npm test", "npm run lint", "npm run security-check"),
    validation=StepValidation(health_check=True, contract_tests=True),
)

_CLEANUP = _StepTemplate(
    name="Cleanup Old Resources",
    description="Remove old deployment resources",
    type=StepType.CLEANUP,
    commands=("kubectl delete deployment old-api-deployment",),
    validation=StepValidation(),
)

_FULL_CHECKS = StepValidation(health_check=True, contract_tests=True, performance_tests=True)
_TRAFFIC_CHECKS = StepValidation(health_check=True, performance_tests=True)

STRATEGY_STEPS: Dict[MigrationStrategy, Tuple[_StepTemplate, ...]] = {
    MigrationStrategy.BLUE_GREEN: (
        _StepTemplate(
            name="Deploy Green Environment",
            description="Deploy new version to green environment",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f green-deployment.yaml",),
            validation=_FULL_CHECKS,
        ),
        _StepTemplate(
            name="Switch Traffic",
            description="Switch traffic from blue to green",
            type=StepType.DEPLOYMENT,
            commands=(
                "kubectl patch service api-service "
                "-p '{\"spec\":{\"selector\":{\"slot\":\"green\"}}}'",
            ),
            validation=_TRAFFIC_CHECKS,
        ),
    ),
    MigrationStrategy.CANARY: (
        _StepTemplate(
            name="Deploy Canary (10%)",
            description="Deploy new version to 10% of traffic",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f canary-10-deployment.yaml",),
            validation=_FULL_CHECKS,
        ),
        _StepTemplate(
            name="Increase to 50%",
            description="Increase canary traffic to 50%",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f canary-50-deployment.yaml",),
            validation=_TRAFFIC_CHECKS,
        ),
        _StepTemplate(
            name="Full Deployment",
            description="Route 100% traffic to new version",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f full-deployment.yaml",),
            validation=_TRAFFIC_CHECKS,
        ),
    ),
    MigrationStrategy.ROLLING: (
        _StepTemplate(
            name="Rolling Update (25%)",
            description="Replace 25% of instances with the new version",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f rolling-25-deployment.yaml",),
            validation=_FULL_CHECKS,
        ),
        _StepTemplate(
            name="Rolling Update (100%)",
            description="Replace the remaining instances with the new version",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f rolling-100-deployment.yaml",),
            validation=_TRAFFIC_CHECKS,
        ),
        _StepTemplate(
            name="Verify Rollout",
            description="Confirm every instance runs the new version",
            type=StepType.VERIFICATION,
            commands=("kubectl rollout status deployment/api-deployment",),
            validation=_FULL_CHECKS,
        ),
    ),
    MigrationStrategy.IMMEDIATE: (
        _StepTemplate(
            name="Immediate Cutover",
            description="Route 100% traffic to new version at once",
            type=StepType.DEPLOYMENT,
            commands=("kubectl apply -f full-deployment.yaml",),
            validation=_TRAFFIC_CHECKS,
        ),
        _StepTemplate(
            name="Post-deployment Verification",
            description="Run post-deployment tests against the new version",
            type=StepType.VERIFICATION,
            commands=("npm run test:contract", "npm run test:smoke"),
            validation=_FULL_CHECKS,
        ),
    ),
}

_ID_PREFIX = {
    StepType.PREPARATION: "prep",
    StepType.DEPLOYMENT: "deploy",
    StepType.VERIFICATION: "verify",
    StepType.CLEANUP: "cleanup",
}

ROLLBACK_STEPS = (
    "Stop traffic to new version",
    "Route all traffic to old version",
    "Investigate issues",
)


def parse_strategy(strategy: Union[str, MigrationStrategy]) -> MigrationStrategy:
    """Resolve a strategy selector.

    Raises:
        InvalidMigrationStrategy: If the selector is unknown
    """
    if isinstance(strategy, MigrationStrategy):
        return strategy
    try:
        return MigrationStrategy(strategy)
    except ValueError:
        raise InvalidMigrationStrategy(str(strategy), MigrationStrategy.values())


def generate_steps(strategy: Union[str, MigrationStrategy]) -> List[MigrationStep]:
    """Build the ordered step list for a strategy."""
    templates = (_PREPARATION,) + STRATEGY_STEPS[parse_strategy(strategy)] + (_CLEANUP,)

    counters: Dict[StepType, int] = {}
    steps: List[MigrationStep] = []
    for template in templates:
        counters[template.type] = counters.get(template.type, 0) + 1
        step_id = f"{_ID_PREFIX[template.type]}-{counters[template.type]}"
        steps.append(MigrationStep(
            id=step_id,
            name=template.name,
            description=template.description,
            type=template.type,
            dependencies=(steps[-1].id,) if steps else (),
            commands=template.commands,
            validation=template.validation,
        ))
    return steps


def build_rollback_plan(config: PlannerConfig) -> RollbackPlan:
    """Static rollback template."""
    return RollbackPlan(
        enabled=True,
        conditions=(
            f"error-rate > {config.rollback_error_rate_pct:g}%",
            f"response-time > {config.rollback_response_time_ms}ms",
        ),
        steps=ROLLBACK_STEPS,
    )


def generate_validation_tests(phase: str) -> List[ValidationTest]:
    """Tests for the "pre" or "post" deployment phase."""
    tests = [
        ValidationTest(
            name="Health Check",
            type=TestType.INTEGRATION,
            endpoint="/health",
            timeout_ms=5000,
            retries=3,
        ),
        ValidationTest(
            name="API Compatibility",
            type=TestType.CONTRACT,
            endpoint="/api/v1/test",
            timeout_ms=10000,
            retries=2,
        ),
    ]
    if phase == "post":
        tests.append(ValidationTest(
            name="Performance Baseline",
            type=TestType.PERFORMANCE,
            endpoint="/api/v1/benchmark",
            timeout_ms=15000,
            retries=1,
        ))
    return tests


def build_validation_bundle(config: PlannerConfig) -> ValidationBundle:
    return ValidationBundle(
        pre_deployment=tuple(generate_validation_tests("pre")),
        post_deployment=tuple(generate_validation_tests("post")),
        contract_tests=(config.contract_test_suite,),
    )


class MigrationPlanner:
    """Creates and tracks migration plans.

    Attributes:
        analyzer: CompatibilityAnalyzer producing the embedded report
        plans: MigrationPlanStore
        outbox: Domain event outbox
        config: Planner configuration

    Example:
        >>> planner = MigrationPlanner(analyzer, plan_store, outbox)
        >>> plan = await planner.create_migration_plan("t1", "orders", "1.0.0", "2.0.0", "canary")
        >>> [s.id for s in plan.steps]
        ['prep-1', 'deploy-1', 'deploy-2', 'deploy-3', 'cleanup-1']
    """

    def __init__(
        self,
        analyzer: Any,
        plans: MigrationPlanStore,
        outbox: EventOutbox,
        config: Optional[PlannerConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.analyzer = analyzer
        self.plans = plans
        self.outbox = outbox
        self.config = config or PlannerConfig()
        self.clock = clock

    async def create_migration_plan(
        self,
        tenant_id: str,
        api_id: str,
        from_version: str,
        to_version: str,
        strategy: Union[str, MigrationStrategy],
    ) -> MigrationPlan:
        """Build and store a plan.

        Raises:
            TenantContextMissing: If tenant_id is blank
            InvalidMigrationStrategy: If the strategy is unknown
            VersionNotFound: If either version does not exist
        """
        require_tenant(tenant_id, "create_migration_plan")
        resolved = parse_strategy(strategy)

        report = await self.analyzer.compare_versions(tenant_id, api_id, from_version, to_version)

        now = self.clock()
        plan = MigrationPlan(
            id=self._new_plan_id(now),
            tenant_id=tenant_id,
            api_id=api_id,
            from_version=from_version,
            to_version=to_version,
            strategy=resolved,
            steps=tuple(generate_steps(resolved)),
            rollback_plan=build_rollback_plan(self.config),
            validation=build_validation_bundle(self.config),
            compatibility_report=report,
            created_at=now,
        )
        await self.plans.create(plan)

        logger.info(
            "Migration plan created",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "plan_id": plan.id,
                "from_version": from_version,
                "to_version": to_version,
                "strategy": resolved.value,
                "compatible": report.compatible,
                "score": report.score,
            },
        )
        self.outbox.emit(DomainEvent(
            event_type=EventType.MIGRATION_PLAN_CREATED,
            tenant_id=tenant_id,
            api_id=api_id,
            version=to_version,
            payload={
                "plan_id": plan.id,
                "from_version": from_version,
                "to_version": to_version,
                "strategy": resolved.value,
                "compatible": report.compatible,
            },
        ))
        return plan

    async def get_migration_plan(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        """Load a plan.

        Raises:
            MigrationPlanNotFound: If no such plan exists
        """
        plan = await self.plans.get(tenant_id, api_id, plan_id)
        if plan is None:
            raise MigrationPlanNotFound(api_id, plan_id)
        return plan

    async def list_migration_plans(self, tenant_id: str, api_id: str) -> List[MigrationPlan]:
        return await self.plans.list(tenant_id, api_id)

    async def start_migration(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        return await self._move(tenant_id, api_id, plan_id, MigrationStatus.IN_PROGRESS)

    async def complete_migration(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        return await self._move(tenant_id, api_id, plan_id, MigrationStatus.COMPLETED)

    async def fail_migration(
        self,
        tenant_id: str,
        api_id: str,
        plan_id: str,
        reason: str = "",
    ) -> MigrationPlan:
        return await self._move(
            tenant_id, api_id, plan_id, MigrationStatus.FAILED, failure_reason=reason or None
        )

    async def _move(
        self,
        tenant_id: str,
        api_id: str,
        plan_id: str,
        target: MigrationStatus,
        **changes: Any,
    ) -> MigrationPlan:
        plan = await self.get_migration_plan(tenant_id, api_id, plan_id)
        if not plan.status.can_transition_to(target):
            raise InvalidTransition(
                plan_id,
                current=plan.status.value,
                target=target.value,
                operation="update_migration_status",
                api_id=api_id,
            )

        updated = plan.with_status(target, self.clock(), **changes)
        await self.plans.replace_status(plan, updated)

        logger.info(
            "Migration status changed",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "plan_id": plan_id,
                "from_status": plan.status.value,
                "to_status": target.value,
            },
        )
        return updated

    @staticmethod
    def _new_plan_id(now: datetime) -> str:
        return f"migration-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"
