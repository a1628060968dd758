"""
Migration plan persistence.

Plans live in the migration-plans table, partitioned by "<tenant>:<api>"
and sorted by plan id. Creation is a conditional put; status updates are
compare-and-swap on the stored status.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..errors import InvalidTransition, require_tenant
from ..store import (
    MIGRATIONS_TABLE,
    ConditionalCheckFailedError,
    RecordStore,
    tenant_partition,
)
from .types import MigrationPlan

logger = logging.getLogger(__name__)


class MigrationPlanStore:
    """CRUD for migration plans."""

    def __init__(self, records: RecordStore) -> None:
        self.records = records

    async def create(self, plan: MigrationPlan) -> None:
        """Persist a new plan.

        Raises:
            ConditionalCheckFailedError: If a plan with the same id exists
        """
        require_tenant(plan.tenant_id, "create_migration_plan")
        await self.records.put_if_absent(
            MIGRATIONS_TABLE,
            tenant_partition(plan.tenant_id, plan.api_id),
            plan.id,
            plan.to_dict(),
        )

    async def get(self, tenant_id: str, api_id: str, plan_id: str) -> Optional[MigrationPlan]:
        require_tenant(tenant_id, "get_migration_plan")
        partition = tenant_partition(tenant_id, api_id)
        item = await self.records.get(MIGRATIONS_TABLE, partition, plan_id)
        return MigrationPlan.from_dict(item) if item else None

    async def list(self, tenant_id: str, api_id: str) -> List[MigrationPlan]:
        """Plans for an API, oldest first."""
        require_tenant(tenant_id, "list_migration_plans")
        items = await self.records.query(MIGRATIONS_TABLE, tenant_partition(tenant_id, api_id))
        plans = [MigrationPlan.from_dict(item) for item in items]
        return sorted(plans, key=lambda p: (p.created_at, p.id))

    async def replace_status(self, previous: MigrationPlan, updated: MigrationPlan) -> None:
        """Write ``updated`` if the stored plan still has ``previous.status``.

        Raises:
            InvalidTransition: If another writer changed the plan first
        """
        try:
            await self.records.put_if_match(
                MIGRATIONS_TABLE,
                tenant_partition(previous.tenant_id, previous.api_id),
                previous.id,
                updated.to_dict(),
                expected={"status": previous.status.value},
            )
        except ConditionalCheckFailedError:
            current = await self.get(previous.tenant_id, previous.api_id, previous.id)
            raise InvalidTransition(
                previous.id,
                current=current.status.value if current else "missing",
                target=updated.status.value,
                operation="update_migration_status",
                api_id=previous.api_id,
            )
