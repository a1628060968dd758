"""
Migration plan types.

A MigrationPlan is an ordered, strategy-specific list of steps for moving
live traffic from one version of an API to another, together with a
rollback template, a validation bundle and the compatibility report that
was current when the plan was made.

Invariants:
    - Plans are immutable; status changes produce a new plan
    - Status moves planned -> in-progress -> completed | failed
    - Step i (i > 0) depends on exactly the id of step i - 1
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from ..compat.report import CompatibilityReport
from ..models import format_timestamp, parse_timestamp, utcnow


class MigrationStrategy(Enum):
    """Deployment strategies."""

    BLUE_GREEN = "blue-green"
    CANARY = "canary"
    ROLLING = "rolling"
    IMMEDIATE = "immediate"

    @classmethod
    def values(cls) -> List[str]:
        return [s.value for s in cls]


class MigrationStatus(Enum):
    """Execution status of a plan."""

    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    def can_transition_to(self, target: MigrationStatus) -> bool:
        return target in _MIGRATION_TRANSITIONS.get(self, ())


_MIGRATION_TRANSITIONS = {
    MigrationStatus.PLANNED: (MigrationStatus.IN_PROGRESS,),
    MigrationStatus.IN_PROGRESS: (MigrationStatus.COMPLETED, MigrationStatus.FAILED),
}


class StepType(Enum):
    PREPARATION = "preparation"
    DEPLOYMENT = "deployment"
    VERIFICATION = "verification"
    CLEANUP = "cleanup"


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TestType(Enum):
    """Kinds of validation test."""

    __test__ = False  # not a pytest test class

    CONTRACT = "contract"
    INTEGRATION = "integration"
    PERFORMANCE = "performance"
    SECURITY = "security"


@dataclass(frozen=True)
class StepValidation:
    """Checks to run after a step."""

    health_check: bool = False
    contract_tests: bool = False
    performance_tests: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "health_check": self.health_check,
            "contract_tests": self.contract_tests,
            "performance_tests": self.performance_tests,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> StepValidation:
        data = data or {}
        return cls(
            health_check=bool(data.get("health_check", False)),
            contract_tests=bool(data.get("contract_tests", False)),
            performance_tests=bool(data.get("performance_tests", False)),
        )


@dataclass(frozen=True)
class MigrationStep:
    """One step of a migration plan.

    Attributes:
        id: Step identifier ("prep-1", "deploy-2", "verify-1", "cleanup-1")
        name: Human-readable name
        description: What the step does
        type: Step category
        status: Execution status
        dependencies: Ids of steps that must finish first
        commands: Commands an operator or pipeline runs
        validation: Checks to run after the step
    """

    id: str
    name: str
    description: str
    type: StepType
    status: StepStatus = StepStatus.PENDING
    dependencies: Tuple[str, ...] = ()
    commands: Tuple[str, ...] = ()
    validation: StepValidation = field(default_factory=StepValidation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "commands": list(self.commands),
            "validation": self.validation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationStep:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            type=StepType(data["type"]),
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            dependencies=tuple(data.get("dependencies") or ()),
            commands=tuple(data.get("commands") or ()),
            validation=StepValidation.from_dict(data.get("validation")),
        )


@dataclass(frozen=True)
class ValidationTest:
    """A test run before or after deployment.

    Attributes:
        name: Test name
        type: Test category
        endpoint: Path to call
        method: HTTP method
        expected_status: Status code that counts as success
        timeout_ms: Per-attempt timeout in milliseconds
        retries: Attempts after the first failure
    """

    name: str
    type: TestType
    endpoint: str
    method: str = "GET"
    expected_status: int = 200
    timeout_ms: int = 5000
    retries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "endpoint": self.endpoint,
            "method": self.method,
            "expected_status": self.expected_status,
            "timeout_ms": self.timeout_ms,
            "retries": self.retries,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ValidationTest:
        return cls(
            name=data["name"],
            type=TestType(data["type"]),
            endpoint=data["endpoint"],
            method=data.get("method", "GET"),
            expected_status=int(data.get("expected_status", 200)),
            timeout_ms=int(data.get("timeout_ms", 5000)),
            retries=int(data.get("retries", 0)),
        )


@dataclass(frozen=True)
class RollbackPlan:
    """When and how to undo a migration."""

    enabled: bool = True
    conditions: Tuple[str, ...] = ()
    steps: Tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "conditions": list(self.conditions),
            "steps": list(self.steps),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RollbackPlan:
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", True)),
            conditions=tuple(data.get("conditions") or ()),
            steps=tuple(data.get("steps") or ()),
        )


@dataclass(frozen=True)
class ValidationBundle:
    """Tests attached to a plan."""

    pre_deployment: Tuple[ValidationTest, ...] = ()
    post_deployment: Tuple[ValidationTest, ...] = ()
    contract_tests: Tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "pre_deployment": [t.to_dict() for t in self.pre_deployment],
            "post_deployment": [t.to_dict() for t in self.post_deployment],
            "contract_tests": list(self.contract_tests),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ValidationBundle:
        data = data or {}
        return cls(
            pre_deployment=tuple(
                ValidationTest.from_dict(t) for t in data.get("pre_deployment") or ()
            ),
            post_deployment=tuple(
                ValidationTest.from_dict(t) for t in data.get("post_deployment") or ()
            ),
            contract_tests=tuple(data.get("contract_tests") or ()),
        )


@dataclass(frozen=True)
class MigrationMetrics:
    """Outcome metrics reported while a migration runs."""

    success_rate: float = 0.0
    error_rate: float = 0.0
    performance_impact: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
            "performance_impact": self.performance_impact,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MigrationMetrics:
        data = data or {}
        return cls(
            success_rate=float(data.get("success_rate", 0.0)),
            error_rate=float(data.get("error_rate", 0.0)),
            performance_impact=float(data.get("performance_impact", 0.0)),
        )


@dataclass(frozen=True)
class MigrationPlan:
    """Plan for moving traffic from one version to another.

    Attributes:
        id: Plan identifier ("migration-<ms>-<suffix>")
        tenant_id: Owning tenant
        api_id: API identifier
        from_version: Version traffic moves away from
        to_version: Version traffic moves to
        strategy: Deployment strategy
        steps: Ordered steps
        rollback_plan: Rollback template
        validation: Validation bundle
        compatibility_report: Report current at plan creation
        status: Execution status
        metrics: Outcome metrics
        created_at / started_at / completed_at: Timestamps
        failure_reason: Why the migration failed, if it did
    """

    id: str
    tenant_id: str
    api_id: str
    from_version: str
    to_version: str
    strategy: MigrationStrategy
    steps: Tuple[MigrationStep, ...] = ()
    rollback_plan: RollbackPlan = field(default_factory=RollbackPlan)
    validation: ValidationBundle = field(default_factory=ValidationBundle)
    compatibility_report: Optional[CompatibilityReport] = None
    status: MigrationStatus = MigrationStatus.PLANNED
    metrics: MigrationMetrics = field(default_factory=MigrationMetrics)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def with_status(self, target: MigrationStatus, at: datetime, **changes: Any) -> MigrationPlan:
        """Return a copy moved to ``target``.

        Raises:
            ValueError: If the transition is not allowed
        """
        if not self.status.can_transition_to(target):
            raise ValueError(f"{self.status.value} -> {target.value} is not allowed")
        if target is MigrationStatus.IN_PROGRESS:
            return replace(self, status=target, started_at=at, **changes)
        return replace(self, status=target, completed_at=at, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "api_id": self.api_id,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "status": self.status.value,
            "strategy": self.strategy.value,
            "steps": [s.to_dict() for s in self.steps],
            "rollback_plan": self.rollback_plan.to_dict(),
            "validation": self.validation.to_dict(),
            "metrics": self.metrics.to_dict(),
            "compatibility_report": self.compatibility_report.to_dict()
            if self.compatibility_report
            else None,
            "created_at": format_timestamp(self.created_at),
            "started_at": format_timestamp(self.started_at),
            "completed_at": format_timestamp(self.completed_at),
            "failure_reason": self.failure_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationPlan:
        report = data.get("compatibility_report")
        return cls(
            id=data["id"],
            tenant_id=data.get("tenant_id", ""),
            api_id=data["api_id"],
            from_version=data["from_version"],
            to_version=data["to_version"],
            strategy=MigrationStrategy(data["strategy"]),
            steps=tuple(MigrationStep.from_dict(s) for s in data.get("steps") or ()),
            rollback_plan=RollbackPlan.from_dict(data.get("rollback_plan")),
            validation=ValidationBundle.from_dict(data.get("validation")),
            compatibility_report=CompatibilityReport.from_dict(report) if report else None,
            status=MigrationStatus(data.get("status", MigrationStatus.PLANNED.value)),
            metrics=MigrationMetrics.from_dict(data.get("metrics")),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            started_at=parse_timestamp(data.get("started_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
            failure_reason=data.get("failure_reason"),
        )
