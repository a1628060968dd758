"""
Migration planning between API versions.
"""

from .plan_store import MigrationPlanStore
from .planner import (
    ROLLBACK_STEPS,
    STRATEGY_STEPS,
    MigrationPlanner,
    build_rollback_plan,
    build_validation_bundle,
    generate_steps,
    generate_validation_tests,
    parse_strategy,
)
from .types import (
    MigrationMetrics,
    MigrationPlan,
    MigrationStatus,
    MigrationStep,
    MigrationStrategy,
    RollbackPlan,
    StepStatus,
    StepType,
    StepValidation,
    TestType,
    ValidationBundle,
    ValidationTest,
)

__all__ = [
    "MigrationPlanner",
    "MigrationPlanStore",
    "generate_steps",
    "generate_validation_tests",
    "build_rollback_plan",
    "build_validation_bundle",
    "parse_strategy",
    "STRATEGY_STEPS",
    "ROLLBACK_STEPS",
    "MigrationPlan",
    "MigrationStep",
    "MigrationStrategy",
    "MigrationStatus",
    "MigrationMetrics",
    "RollbackPlan",
    "StepStatus",
    "StepType",
    "StepValidation",
    "TestType",
    "ValidationBundle",
    "ValidationTest",
]
