"""
Version lifecycle management.

- version_store: VersionRecord persistence and status transitions
- policy_store: LifecyclePolicy CRUD
- policy_engine: Breaking-change gate and max-versions eviction
- sweeper: Background automatic retirement
"""

from .policy_engine import (
    EVICTION_GUIDE,
    EVICTION_REASON,
    PolicyEngine,
    enforce_breaking_change_policy,
)
from .policy_store import PolicyStore
from .sweeper import RetirementSweeper, retirement_due_at
from .version_store import VersionStore

__all__ = [
    "VersionStore",
    "PolicyStore",
    "PolicyEngine",
    "enforce_breaking_change_policy",
    "EVICTION_REASON",
    "EVICTION_GUIDE",
    "RetirementSweeper",
    "retirement_due_at",
]
