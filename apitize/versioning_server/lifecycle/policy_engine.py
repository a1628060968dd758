"""
Lifecycle policy engine.

Enforces a tenant's LifecyclePolicy for one API:
- Breaking-change gate, checked before a version is written
- Max-versions eviction, run after every create and publish

Eviction is a threshold-triggered FIFO: when more versions are published
than policy.max_versions allows, the lowest-precedence published versions
are deprecated until the limit holds.

Invariants:
    - No policy configured means no gate and no eviction
    - Evicted versions get support_end_date = now + support_period_days
    - The replacement is the triggering version, unless that version is
      itself evicted; then it is the highest remaining published version
    - A concurrent transition (InvalidTransition) skips that version only

How to change safely:
    - Eviction order must stay precedence-ascending; tenants rely on it
    - Keep the gate free of writes so a rejection leaves no trace
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from .. import semantic
from ..errors import BreakingChangePolicyViolation, InvalidTransition, VersionNotFound
from ..models import (
    BreakingChangePolicy,
    CompatibilityLevel,
    DeprecationPlan,
    LifecyclePolicy,
    VersionRecord,
    VersionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

EVICTION_REASON = "Exceeded maximum version policy"
EVICTION_GUIDE = "Please migrate to the latest version"


def enforce_breaking_change_policy(
    policy: Optional[LifecyclePolicy],
    api_id: str,
    version: str,
    breaking_changes: bool,
    level: CompatibilityLevel,
) -> None:
    """Reject a declared breaking change the policy does not allow.

    Raises:
        BreakingChangePolicyViolation: If the policy forbids the change
    """
    if policy is None or not breaking_changes:
        return

    rule = policy.breaking_change_policy
    if rule is BreakingChangePolicy.ALLOWED:
        return
    if rule is BreakingChangePolicy.MAJOR_ONLY and level is CompatibilityLevel.MAJOR:
        return

    raise BreakingChangePolicyViolation(api_id, version, rule.value, level.value)


class PolicyEngine:
    """Applies max-versions eviction.

    Attributes:
        versions: VersionStore performing the deprecations
        policies: PolicyStore supplying the policy

    Example:
        >>> engine = PolicyEngine(version_store, policy_store)
        >>> evicted = await engine.evaluate("t1", "orders", "1.5.0")
    """

    def __init__(
        self,
        versions: Any,
        policies: Any,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.versions = versions
        self.policies = policies
        self.clock = clock

    async def evaluate(
        self,
        tenant_id: str,
        api_id: str,
        trigger_version: str,
    ) -> List[VersionRecord]:
        """Deprecate published versions in excess of the policy limit.

        Args:
            tenant_id: Owning tenant
            api_id: API identifier
            trigger_version: Version whose create/publish triggered evaluation

        Returns:
            Records deprecated by this evaluation
        """
        policy = await self.policies.get_policy(tenant_id, api_id)
        if policy is None:
            return []

        records = await self.versions.get_versions(tenant_id, api_id)
        published = sorted(
            (r for r in records if r.status is VersionStatus.PUBLISHED),
            key=lambda r: semantic.precedence_key(r.version),
        )
        excess = len(published) - policy.max_versions
        if excess <= 0:
            return []

        evicted = published[:excess]
        remaining = published[excess:]
        evicted_versions = {r.version for r in evicted}
        if trigger_version in evicted_versions:
            replacement = remaining[-1].version if remaining else None
        else:
            replacement = trigger_version

        support_end = self.clock() + policy.support_period

        logger.info(
            "Max versions exceeded, deprecating oldest",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "published": len(published),
                "max_versions": policy.max_versions,
                "evicting": sorted(evicted_versions, key=semantic.precedence_key),
                "replacement": replacement,
            },
        )

        deprecated = []
        for record in evicted:
            plan = DeprecationPlan(
                reason=EVICTION_REASON,
                migration_guide=EVICTION_GUIDE,
                support_end_date=support_end,
                replacement_version=replacement,
            )
            try:
                deprecated.append(
                    await self.versions.deprecate_version(tenant_id, api_id, record.version, plan)
                )
            except (InvalidTransition, VersionNotFound) as e:
                logger.warning(
                    f"Skipping eviction of {record.version}: {e}",
                    extra={"tenant_id": tenant_id, "api_id": api_id, "version": record.version},
                )

        return deprecated
