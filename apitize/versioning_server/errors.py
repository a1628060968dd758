"""
Error types for the versioning server.

Domain errors are raised by the lifecycle, compatibility and migration
components and surfaced to callers:
- VersioningError: Base exception
- InvalidVersionFormat: Malformed semantic version string
- DuplicateVersion: (tenant, api, version) already exists
- VersionNotFound: Lookup miss
- InvalidTransition: Status transition precondition violated
- TenantContextMissing: Tenant-scoped call without a tenant identity
- BreakingChangePolicyViolation: Lifecycle policy forbids the declared change
- InvalidMigrationStrategy: Unknown deployment strategy selector
- MigrationPlanNotFound: Lookup miss for a migration plan

Invariants:
    - All domain errors inherit from VersioningError
    - Errors carry api_id / version / operation context in details
    - Messages never include stack traces or backend internals
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class VersioningError(Exception):
    """Base exception for all versioning errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "VERSIONING_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body returned to callers."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class InvalidVersionFormat(VersioningError):
    """Version string is not valid semantic-version syntax."""

    def __init__(self, version: str, api_id: Optional[str] = None) -> None:
        super().__init__(
            f"Invalid semantic version format: '{version}'",
            code="INVALID_VERSION_FORMAT",
            details={"api_id": api_id, "version": version},
        )
        self.version = version
        self.api_id = api_id


class DuplicateVersion(VersioningError):
    """A version with the same identity already exists."""

    def __init__(self, api_id: str, version: str) -> None:
        super().__init__(
            f"Version {version} of API '{api_id}' already exists",
            code="DUPLICATE_VERSION",
            details={"api_id": api_id, "version": version},
        )
        self.api_id = api_id
        self.version = version


class VersionNotFound(VersioningError):
    """Version lookup miss.

    Raised when:
    - Deprecating or retiring an unknown version
    - Comparing versions where either side is missing
    """

    def __init__(self, api_id: str, versions: List[str], operation: str = "") -> None:
        joined = ", ".join(versions)
        super().__init__(
            f"Version(s) {joined} of API '{api_id}' not found",
            code="VERSION_NOT_FOUND",
            details={"api_id": api_id, "versions": versions, "operation": operation},
        )
        self.api_id = api_id
        self.versions = versions
        self.operation = operation


class InvalidTransition(VersioningError):
    """Status transition precondition violated.

    Attributes:
        current: Status the record was observed in
        target: Status the caller asked for
    """

    def __init__(
        self,
        resource_id: str,
        current: str,
        target: str,
        operation: str = "",
        api_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Cannot move '{resource_id}' from '{current}' to '{target}'",
            code="INVALID_TRANSITION",
            details={
                "api_id": api_id,
                "resource_id": resource_id,
                "current": current,
                "target": target,
                "operation": operation,
            },
        )
        self.resource_id = resource_id
        self.current = current
        self.target = target
        self.operation = operation


class TenantContextMissing(VersioningError):
    """Tenant-scoped operation invoked without a resolved tenant identity."""

    def __init__(self, operation: str = "") -> None:
        super().__init__(
            "Tenant context required",
            code="TENANT_CONTEXT_MISSING",
            details={"operation": operation},
        )
        self.operation = operation


class BreakingChangePolicyViolation(VersioningError):
    """The tenant's lifecycle policy does not allow this breaking change."""

    def __init__(self, api_id: str, version: str, policy: str, level: str) -> None:
        super().__init__(
            f"Breaking change in {version} of API '{api_id}' violates "
            f"policy '{policy}' (compatibility level '{level}')",
            code="BREAKING_CHANGE_POLICY_VIOLATION",
            details={
                "api_id": api_id,
                "version": version,
                "policy": policy,
                "compatibility_level": level,
            },
        )
        self.api_id = api_id
        self.version = version
        self.policy = policy


class InvalidMigrationStrategy(VersioningError):
    """Deployment strategy selector is not one of the supported strategies."""

    def __init__(self, strategy: str, supported: List[str]) -> None:
        super().__init__(
            f"Unknown migration strategy '{strategy}'. Supported: {', '.join(supported)}",
            code="INVALID_MIGRATION_STRATEGY",
            details={"strategy": strategy, "supported": supported},
        )
        self.strategy = strategy


class MigrationPlanNotFound(VersioningError):
    """Migration plan lookup miss."""

    def __init__(self, api_id: str, plan_id: str) -> None:
        super().__init__(
            f"Migration plan '{plan_id}' for API '{api_id}' not found",
            code="MIGRATION_PLAN_NOT_FOUND",
            details={"api_id": api_id, "plan_id": plan_id},
        )
        self.api_id = api_id
        self.plan_id = plan_id


class ValidationError(VersioningError):
    """Request payload failed validation."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


def require_tenant(tenant_id: Optional[str], operation: str = "") -> str:
    """Return ``tenant_id`` or raise TenantContextMissing when it is blank."""
    if not tenant_id or not tenant_id.strip():
        raise TenantContextMissing(operation)
    return tenant_id
