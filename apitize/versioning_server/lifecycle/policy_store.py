"""
Lifecycle policy persistence.

One policy per (tenant, api), stored in the lifecycle-policies table under
sort key "policy". Writes are last-writer-wins.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..errors import require_tenant
from ..models import LifecyclePolicy
from ..store import POLICIES_TABLE, RecordStore, tenant_partition

logger = logging.getLogger(__name__)

POLICY_SORT_KEY = "policy"


class PolicyStore:
    """CRUD for lifecycle policies."""

    def __init__(self, records: RecordStore) -> None:
        self.records = records

    async def put_policy(self, policy: LifecyclePolicy) -> LifecyclePolicy:
        """Create or replace the policy for ``policy.api_id``."""
        require_tenant(policy.tenant_id, "put_policy")
        await self.records.put(
            POLICIES_TABLE,
            tenant_partition(policy.tenant_id, policy.api_id),
            POLICY_SORT_KEY,
            policy.to_dict(),
        )
        logger.info(
            "Lifecycle policy saved",
            extra={
                "tenant_id": policy.tenant_id,
                "api_id": policy.api_id,
                "max_versions": policy.max_versions,
                "auto_retirement": policy.auto_retirement,
            },
        )
        return policy

    async def get_policy(self, tenant_id: str, api_id: str) -> Optional[LifecyclePolicy]:
        require_tenant(tenant_id, "get_policy")
        item = await self.records.get(
            POLICIES_TABLE,
            tenant_partition(tenant_id, api_id),
            POLICY_SORT_KEY,
        )
        return LifecyclePolicy.from_dict(item) if item else None

    async def list_policies(self, tenant_id: Optional[str] = None) -> List[LifecyclePolicy]:
        """All policies, optionally restricted to one tenant."""
        items = await self.records.scan(POLICIES_TABLE)
        policies = [LifecyclePolicy.from_dict(item) for item in items]
        if tenant_id is not None:
            policies = [p for p in policies if p.tenant_id == tenant_id]
        return sorted(policies, key=lambda p: (p.tenant_id, p.api_id))
