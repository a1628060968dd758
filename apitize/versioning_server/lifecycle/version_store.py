"""
Version store.

Owns the lifecycle of VersionRecords for every tenant API:

    create -> draft | published
    draft -> published -> deprecated -> retired

Records live in the api-versions table, partitioned by "<tenant>:<api>" and
sorted by version string. Specification documents are written to the
specification store before the record so that a stored record always
points at an existing blob.

Invariants:
    - Version strings are strict semantic versions
    - (tenant, api, version) is unique; enforced by a conditional write
    - Transitions are compare-and-swap on the status that was read
    - compatibility_level is computed at creation and never recomputed
    - Events are emitted only after the record write succeeded

How to change safely:
    - Never add a transition that skips a status
    - Changing the classification baseline changes stored levels for new
      versions only; existing records keep theirs
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .. import semantic
from ..errors import (
    DuplicateVersion,
    InvalidTransition,
    InvalidVersionFormat,
    VersionNotFound,
    require_tenant,
)
from ..events import DomainEvent, EventOutbox, EventType
from ..models import (
    ApiSpecification,
    CompatibilityLevel,
    DeprecationPlan,
    LifecyclePolicy,
    VersionMetrics,
    VersionRecord,
    VersionStatus,
    utcnow,
)
from ..specs import SpecificationStore
from ..store import (
    VERSIONS_TABLE,
    ConditionalCheckFailedError,
    RecordStore,
    tenant_partition,
)
from .policy_engine import enforce_breaking_change_policy

logger = logging.getLogger(__name__)

_INITIAL_STATUSES = (VersionStatus.DRAFT, VersionStatus.PUBLISHED)


class VersionStore:
    """Persistence and transitions for API versions.

    Attributes:
        records: Durable record store
        specs: Specification blob store
        outbox: Domain event outbox

    Example:
        >>> store = VersionStore(records, specs, outbox)
        >>> record = await store.create_version(VersionRecord("orders", "t1", "1.0.0"))
        >>> await store.publish_version("t1", "orders", "1.0.0")
    """

    def __init__(
        self,
        records: RecordStore,
        specs: SpecificationStore,
        outbox: EventOutbox,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.records = records
        self.specs = specs
        self.outbox = outbox
        self.clock = clock

    async def create_version(
        self,
        record: VersionRecord,
        policy: Optional[LifecyclePolicy] = None,
    ) -> VersionRecord:
        """Validate and persist a new version.

        Args:
            record: Caller-supplied record; timestamps, metrics and
                compatibility_level are overwritten
            policy: Lifecycle policy whose breaking-change rule applies

        Returns:
            The stored record

        Raises:
            TenantContextMissing: If record.tenant_id is blank
            InvalidVersionFormat: If the version is not a semantic version
            InvalidTransition: If the initial status is not draft or published
            BreakingChangePolicyViolation: If the policy rejects the change
            DuplicateVersion: If the version already exists
        """
        tenant_id = require_tenant(record.tenant_id, "create_version")
        api_id = record.api_id

        if not semantic.is_valid(record.version):
            raise InvalidVersionFormat(record.version, api_id)

        if record.status not in _INITIAL_STATUSES:
            raise InvalidTransition(
                record.version,
                current="none",
                target=record.status.value,
                operation="create_version",
                api_id=api_id,
            )

        existing = await self.get_versions(tenant_id, api_id)
        level = self._classify(record.version, existing)

        enforce_breaking_change_policy(
            policy, api_id, record.version, record.breaking_changes, level
        )

        now = self.clock()
        record = replace(
            record,
            created_at=now,
            compatibility_level=level,
            metrics=VersionMetrics(),
            published_at=now if record.status is VersionStatus.PUBLISHED else None,
            deprecated_at=None,
            retired_at=None,
            deprecation_plan=None,
        )

        key = await self.specs.put_specification(
            tenant_id, api_id, record.version, record.specification.to_dict()
        )
        record = replace(record, specification_key=key)

        try:
            await self.records.put_if_absent(
                VERSIONS_TABLE,
                tenant_partition(tenant_id, api_id),
                record.version,
                record.to_dict(),
            )
        except ConditionalCheckFailedError:
            raise DuplicateVersion(api_id, record.version)

        logger.info(
            "Version created",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "version": record.version,
                "status": record.status.value,
                "compatibility_level": level.value,
                "created_by": record.created_by,
            },
        )
        self._emit(EventType.VERSION_CREATED, record, {
            "status": record.status.value,
            "compatibility_level": level.value,
            "breaking_changes": record.breaking_changes,
        })
        return record

    async def get_version(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
    ) -> Optional[VersionRecord]:
        require_tenant(tenant_id, "get_version")
        item = await self.records.get(VERSIONS_TABLE, tenant_partition(tenant_id, api_id), version)
        return VersionRecord.from_dict(item) if item else None

    async def get_versions(self, tenant_id: str, api_id: str) -> List[VersionRecord]:
        """All versions of an API, in no particular order."""
        require_tenant(tenant_id, "get_versions")
        items = await self.records.query(VERSIONS_TABLE, tenant_partition(tenant_id, api_id))
        return [VersionRecord.from_dict(item) for item in items]

    async def get_latest_version(
        self,
        tenant_id: str,
        api_id: str,
        published_only: bool = False,
    ) -> Optional[VersionRecord]:
        """Highest-precedence version, optionally among published ones."""
        records = await self.get_versions(tenant_id, api_id)
        if published_only:
            records = [r for r in records if r.status is VersionStatus.PUBLISHED]
        if not records:
            return None
        return max(records, key=lambda r: semantic.precedence_key(r.version))

    async def publish_version(self, tenant_id: str, api_id: str, version: str) -> VersionRecord:
        """Move a draft to published.

        Raises:
            VersionNotFound: If the version does not exist
            InvalidTransition: If the version is not a draft
        """
        record = await self._transition(
            tenant_id, api_id, version, VersionStatus.PUBLISHED, "publish_version"
        )
        self._emit(EventType.VERSION_PUBLISHED, record, {})
        return record

    async def deprecate_version(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        plan: DeprecationPlan,
    ) -> VersionRecord:
        """Move a published version to deprecated and attach ``plan``.

        Raises:
            VersionNotFound: If the version does not exist
            InvalidTransition: If the version is not published
        """
        record = await self._transition(
            tenant_id,
            api_id,
            version,
            VersionStatus.DEPRECATED,
            "deprecate_version",
            deprecation_plan=plan,
        )
        self._emit(EventType.VERSION_DEPRECATED, record, {"deprecation_plan": plan.to_dict()})
        return record

    async def retire_version(self, tenant_id: str, api_id: str, version: str) -> VersionRecord:
        """Move a deprecated version to retired.

        The deployment teardown happens asynchronously via the outbox.

        Raises:
            VersionNotFound: If the version does not exist
            InvalidTransition: If the version is not deprecated
        """
        record = await self._transition(
            tenant_id, api_id, version, VersionStatus.RETIRED, "retire_version"
        )
        self._emit(EventType.VERSION_RETIRED, record, {
            "deployment": record.deployment.to_dict(),
            "replacement_version": record.deprecation_plan.replacement_version
            if record.deprecation_plan
            else None,
        })
        return record

    async def load_specification(self, record: VersionRecord) -> ApiSpecification:
        """Read a version's specification back from the blob store."""
        if not record.specification_key:
            return record.specification
        document = await self.specs.get_specification(record.specification_key)
        return ApiSpecification.from_dict(document)

    async def _transition(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        target: VersionStatus,
        operation: str,
        **changes: Any,
    ) -> VersionRecord:
        record = await self.get_version(tenant_id, api_id, version)
        if record is None:
            raise VersionNotFound(api_id, [version], operation=operation)

        if not record.status.can_transition_to(target):
            raise InvalidTransition(
                version,
                current=record.status.value,
                target=target.value,
                operation=operation,
                api_id=api_id,
            )

        updated = record.transition(target, self.clock(), **changes)
        try:
            await self.records.put_if_match(
                VERSIONS_TABLE,
                tenant_partition(tenant_id, api_id),
                version,
                updated.to_dict(),
                expected={"status": record.status.value},
            )
        except ConditionalCheckFailedError:
            current = await self.get_version(tenant_id, api_id, version)
            raise InvalidTransition(
                version,
                current=current.status.value if current else "missing",
                target=target.value,
                operation=operation,
                api_id=api_id,
            )

        logger.info(
            "Version status changed",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "version": version,
                "from_status": record.status.value,
                "to_status": target.value,
            },
        )
        return updated

    @staticmethod
    def _classify(version: str, existing: List[VersionRecord]) -> CompatibilityLevel:
        """Classify against the latest published version (any status as fallback)."""
        others = [r for r in existing if r.version != version]
        published = [r for r in others if r.status is VersionStatus.PUBLISHED]
        baseline_pool = published or others
        if not baseline_pool:
            return CompatibilityLevel.PATCH
        baseline = max(baseline_pool, key=lambda r: semantic.precedence_key(r.version))
        return CompatibilityLevel(semantic.classify_change(baseline.version, version))

    def _emit(self, event_type: EventType, record: VersionRecord, payload: Dict[str, Any]) -> None:
        self.outbox.emit(DomainEvent(
            event_type=event_type,
            tenant_id=record.tenant_id,
            api_id=record.api_id,
            version=record.version,
            payload=payload,
        ))
