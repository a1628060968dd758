"""
Versioning service facade.

VersioningService is the single entry point used by the HTTP API (and by
tests). It wires the version store, policy engine, compatibility analyzer
and migration planner together and enforces the tenant context on every
call.

Control flow:
    create_version -> VersionStore (validate, gate, persist)
                   -> PolicyEngine (evict over max_versions)
    publish_version -> VersionStore -> PolicyEngine
    create_migration_plan -> CompatibilityAnalyzer -> MigrationPlanner

Invariants:
    - Every operation requires a non-blank tenant_id (TenantContextMissing)
    - Payload validation happens before any write (ValidationError)
    - Side effects are emitted to the outbox, never performed inline
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .compat import CompatibilityAnalyzer, CompatibilityReport
from .config import PlannerConfig
from .errors import ValidationError, VersionNotFound, require_tenant
from .events import EventOutbox
from .lifecycle import PolicyEngine, PolicyStore, VersionStore
from .migration import MigrationPlan, MigrationPlanner, MigrationPlanStore
from .models import (
    ApiSpecification,
    DeploymentDescriptor,
    DeprecationPlan,
    LifecyclePolicy,
    VersionRecord,
    VersionStatus,
    parse_timestamp,
    utcnow,
)
from .specs import SpecificationStore
from .store import RecordStore

logger = logging.getLogger(__name__)


class VersioningService:
    """Tenant-aware API version lifecycle and migration planning.

    Example:
        >>> service = VersioningService(records, specs, outbox)
        >>> await service.create_version("t1", "orders", "1.0.0", spec, status="published")
        >>> plan = await service.create_migration_plan("t1", "orders", "1.0.0", "1.1.0", "canary")
    """

    def __init__(
        self,
        records: RecordStore,
        specs: SpecificationStore,
        outbox: EventOutbox,
        planner_config: Optional[PlannerConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.records = records
        self.specs = specs
        self.outbox = outbox
        self.clock = clock

        self.versions = VersionStore(records, specs, outbox, clock=clock)
        self.policies = PolicyStore(records)
        self.policy_engine = PolicyEngine(self.versions, self.policies, clock=clock)
        self.analyzer = CompatibilityAnalyzer(self.versions)
        self.plans = MigrationPlanStore(records)
        self.planner = MigrationPlanner(
            self.analyzer,
            self.plans,
            outbox,
            config=planner_config,
            clock=clock,
        )

    # Versions

    async def create_version(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        specification: Optional[Mapping[str, Any]] = None,
        *,
        status: str = VersionStatus.DRAFT.value,
        changelog: str = "",
        breaking_changes: bool = False,
        created_by: str = "",
        deployment: Optional[Mapping[str, Any]] = None,
    ) -> VersionRecord:
        """Create a version, then apply the max-versions policy."""
        require_tenant(tenant_id, "create_version")
        record = self._build_record(
            tenant_id,
            api_id,
            version,
            specification,
            status=status,
            changelog=changelog,
            breaking_changes=breaking_changes,
            created_by=created_by,
            deployment=deployment,
        )

        policy = await self.policies.get_policy(tenant_id, api_id)
        created = await self.versions.create_version(record, policy)
        await self.policy_engine.evaluate(tenant_id, api_id, created.version)
        return created

    async def publish_version(self, tenant_id: str, api_id: str, version: str) -> VersionRecord:
        """Publish a draft, then apply the max-versions policy."""
        require_tenant(tenant_id, "publish_version")
        published = await self.versions.publish_version(tenant_id, api_id, version)
        await self.policy_engine.evaluate(tenant_id, api_id, version)
        return published

    async def get_version(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
    ) -> Optional[VersionRecord]:
        require_tenant(tenant_id, "get_version")
        return await self.versions.get_version(tenant_id, api_id, version)

    async def list_versions(self, tenant_id: str, api_id: str) -> List[VersionRecord]:
        require_tenant(tenant_id, "list_versions")
        return await self.versions.get_versions(tenant_id, api_id)

    async def get_latest_version(
        self,
        tenant_id: str,
        api_id: str,
        published_only: bool = False,
    ) -> Optional[VersionRecord]:
        require_tenant(tenant_id, "get_latest_version")
        return await self.versions.get_latest_version(tenant_id, api_id, published_only)

    async def get_specification(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
    ) -> ApiSpecification:
        """Stored specification document of a version.

        Raises:
            VersionNotFound: If the version does not exist
        """
        record = await self.get_version(tenant_id, api_id, version)
        if record is None:
            raise VersionNotFound(api_id, [version], operation="get_specification")
        return await self.versions.load_specification(record)

    async def deprecate_version(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        reason: str,
        migration_guide: str = "",
        support_end_date: Optional[Any] = None,
        replacement_version: Optional[str] = None,
    ) -> VersionRecord:
        """Deprecate a published version.

        Without an explicit support_end_date the policy's support period
        applies; without a policy the date stays unset.
        """
        require_tenant(tenant_id, "deprecate_version")
        if not reason:
            raise ValidationError("reason is required", field_name="reason")

        try:
            end = parse_timestamp(support_end_date)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid support_end_date: {support_end_date!r}",
                field_name="support_end_date",
            )
        if end is None:
            policy = await self.policies.get_policy(tenant_id, api_id)
            if policy is not None:
                end = self.clock() + policy.support_period

        plan = DeprecationPlan(
            reason=reason,
            migration_guide=migration_guide,
            support_end_date=end,
            replacement_version=replacement_version,
        )
        return await self.versions.deprecate_version(tenant_id, api_id, version, plan)

    async def retire_version(self, tenant_id: str, api_id: str, version: str) -> VersionRecord:
        require_tenant(tenant_id, "retire_version")
        return await self.versions.retire_version(tenant_id, api_id, version)

    # Compatibility and migration

    async def compare_versions(
        self,
        tenant_id: str,
        api_id: str,
        version1: str,
        version2: str,
    ) -> CompatibilityReport:
        require_tenant(tenant_id, "compare_versions")
        return await self.analyzer.compare_versions(tenant_id, api_id, version1, version2)

    async def create_migration_plan(
        self,
        tenant_id: str,
        api_id: str,
        from_version: str,
        to_version: str,
        strategy: str,
    ) -> MigrationPlan:
        return await self.planner.create_migration_plan(
            tenant_id, api_id, from_version, to_version, strategy
        )

    async def get_migration_plan(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        return await self.planner.get_migration_plan(tenant_id, api_id, plan_id)

    async def list_migration_plans(self, tenant_id: str, api_id: str) -> List[MigrationPlan]:
        return await self.planner.list_migration_plans(tenant_id, api_id)

    async def start_migration(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        return await self.planner.start_migration(tenant_id, api_id, plan_id)

    async def complete_migration(self, tenant_id: str, api_id: str, plan_id: str) -> MigrationPlan:
        return await self.planner.complete_migration(tenant_id, api_id, plan_id)

    async def fail_migration(
        self,
        tenant_id: str,
        api_id: str,
        plan_id: str,
        reason: str = "",
    ) -> MigrationPlan:
        return await self.planner.fail_migration(tenant_id, api_id, plan_id, reason)

    # Policies

    async def put_policy(
        self,
        tenant_id: str,
        api_id: str,
        data: Mapping[str, Any],
    ) -> LifecyclePolicy:
        """Create or replace a lifecycle policy from its dictionary form."""
        require_tenant(tenant_id, "put_policy")
        payload: Dict[str, Any] = dict(data)
        payload["tenant_id"] = tenant_id
        payload["api_id"] = api_id
        try:
            policy = LifecyclePolicy.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid lifecycle policy: {e}", field_name="policy")
        return await self.policies.put_policy(policy)

    async def get_policy(self, tenant_id: str, api_id: str) -> Optional[LifecyclePolicy]:
        require_tenant(tenant_id, "get_policy")
        return await self.policies.get_policy(tenant_id, api_id)

    async def list_policies(self, tenant_id: str) -> List[LifecyclePolicy]:
        require_tenant(tenant_id, "list_policies")
        return await self.policies.list_policies(tenant_id)

    # Health

    async def health(self) -> Dict[str, Any]:
        return {
            "healthy": self.records.is_connected,
            "pending_events": len(self.outbox),
        }

    @staticmethod
    def _build_record(
        tenant_id: str,
        api_id: str,
        version: str,
        specification: Optional[Mapping[str, Any]],
        *,
        status: str,
        changelog: str,
        breaking_changes: bool,
        created_by: str,
        deployment: Optional[Mapping[str, Any]],
    ) -> VersionRecord:
        try:
            initial = VersionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'", field_name="status")

        if not isinstance(breaking_changes, bool):
            raise ValidationError(
                f"breaking_changes must be a boolean, got {breaking_changes!r}",
                field_name="breaking_changes",
            )

        try:
            return VersionRecord(
                api_id=api_id,
                tenant_id=tenant_id,
                version=version,
                status=initial,
                created_by=created_by,
                changelog=changelog,
                breaking_changes=breaking_changes,
                specification=ApiSpecification.from_dict(specification),
                deployment=DeploymentDescriptor.from_dict(deployment),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid version payload: {e}")
