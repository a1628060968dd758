"""
Core record types for API versions and lifecycle policies.

This module defines the data model persisted by the version store and the
policy store:
- VersionRecord: One snapshot of an API contract and its lifecycle state
- ApiSpecification: The OpenAPI document that is diffed for compatibility
- DeploymentDescriptor / VersionMetrics / DeprecationPlan: Record sections
- LifecyclePolicy: Per (tenant, api) eviction and retirement settings

Invariants:
    - Records are immutable; transitions produce a new record via replace()
    - Status moves forward one step at a time (see VersionStatus.next_status)
    - retired_at implies deprecated_at is set and precedes it
    - deprecation_plan is present only for deprecated or retired records
    - Timestamps are timezone-aware UTC datetimes, ISO-8601 on the wire

How to change safely:
    - Add new fields with defaults so stored records keep loading
    - Never rename dictionary keys; stored bodies use them as-is
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from dataclasses import field as dataclass_field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime to ISO-8601 (None passes through)."""
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive values are assumed to be UTC. A trailing "Z" is accepted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class VersionStatus(Enum):
    """Lifecycle status of a version."""

    DRAFT = "draft"
    PUBLISHED = "published"
    DEPRECATED = "deprecated"
    RETIRED = "retired"

    @property
    def next_status(self) -> VersionStatus | None:
        """The only status this one may move to (None for retired)."""
        order = list(VersionStatus)
        index = order.index(self)
        if index + 1 < len(order):
            return order[index + 1]
        return None

    def can_transition_to(self, target: VersionStatus) -> bool:
        """Whether a single forward step reaches ``target``."""
        return self.next_status is target


class CompatibilityLevel(Enum):
    """Semantic-version classification relative to the predecessor."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"


class Environment(Enum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class BreakingChangePolicy(Enum):
    """Which versions may declare breaking changes."""

    MAJOR_ONLY = "major-only"
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class SpecInfo:
    """OpenAPI ``info`` block."""

    title: str = ""
    description: str = ""
    version: str = ""
    contact: dict[str, str] | None = None
    license: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "version": self.version,
        }
        if self.contact is not None:
            data["contact"] = dict(self.contact)
        if self.license is not None:
            data["license"] = dict(self.license)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SpecInfo:
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            version=data.get("version", ""),
            contact=dict(data["contact"]) if data.get("contact") else None,
            license=dict(data["license"]) if data.get("license") else None,
        )


@dataclass(frozen=True)
class ServerEntry:
    """OpenAPI ``servers`` entry."""

    url: str
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "description": self.description}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServerEntry:
        return cls(url=data["url"], description=data.get("description", ""))


HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{where} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{where} must be a list, got {type(value).__name__}")
    return value


def _check_operation_shape(operation: Any, where: str) -> None:
    operation = _require_mapping(operation, where)
    if operation.get("responses") is not None:
        _require_mapping(operation["responses"], f"{where}.responses")
    if operation.get("parameters") is not None:
        _require_list(operation["parameters"], f"{where}.parameters")
    body = operation.get("requestBody")
    if body is not None:
        body = _require_mapping(body, f"{where}.requestBody")
        if body.get("content") is not None:
            _require_mapping(body["content"], f"{where}.requestBody.content")


def _check_schema_shape(schema: Any, where: str) -> None:
    schema = _require_mapping(schema, where)
    if schema.get("properties") is not None:
        _require_mapping(schema["properties"], f"{where}.properties")
    if schema.get("required") is not None:
        _require_list(schema["required"], f"{where}.required")


def _check_document_shape(data: Mapping[str, Any]) -> None:
    """Structural checks on the sections the compatibility rules walk."""
    if data.get("info") is not None:
        _require_mapping(data["info"], "info")
    if data.get("servers") is not None:
        _require_list(data["servers"], "servers")

    paths = _require_mapping(data.get("paths") or {}, "paths")
    for path, operations in paths.items():
        if operations is None:
            continue
        operations = _require_mapping(operations, f"paths.{path}")
        for method, operation in operations.items():
            if method.lower() in HTTP_METHODS:
                _check_operation_shape(operation, f"paths.{path}.{method}")

    components = _require_mapping(data.get("components") or {}, "components")
    schemas = _require_mapping(components.get("schemas") or {}, "components.schemas")
    for name, schema in schemas.items():
        _check_schema_shape(schema, f"components.schemas.{name}")


@dataclass(frozen=True)
class ApiSpecification:
    """An API contract document.

    ``paths`` maps a path template to its operations (method -> operation
    object), as in OpenAPI. ``components`` holds reusable schemas.

    Attributes:
        openapi: OpenAPI document version (e.g. "3.0.3")
        info: Title, description and contract version
        servers: Base URLs
        paths: Path -> method -> operation mapping
        components: Reusable components (schemas, parameters, ...)
    """

    openapi: str = "3.0.3"
    info: SpecInfo = dataclass_field(default_factory=SpecInfo)
    servers: tuple[ServerEntry, ...] = ()
    paths: Mapping[str, Mapping[str, Any]] = dataclass_field(default_factory=dict)
    components: Mapping[str, Any] = dataclass_field(default_factory=dict)

    def path_keys(self) -> list[str]:
        """All path templates in document order."""
        return list(self.paths.keys())

    def operations(self, path: str) -> Mapping[str, Any]:
        """Operations defined on ``path`` (empty mapping if absent)."""
        return self.paths.get(path) or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "openapi": self.openapi,
            "info": self.info.to_dict(),
            "servers": [s.to_dict() for s in self.servers],
            "paths": {path: dict(ops) for path, ops in self.paths.items()},
            "components": dict(self.components),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ApiSpecification:
        """Build a specification, rejecting documents the analyzer cannot walk.

        Raises:
            ValueError: If a section that must be an object or list is not
        """
        data = _require_mapping(data or {}, "specification")
        _check_document_shape(data)
        return cls(
            openapi=data.get("openapi", "3.0.3"),
            info=SpecInfo.from_dict(data.get("info") or {}),
            servers=tuple(ServerEntry.from_dict(s) for s in data.get("servers") or []),
            paths={path: dict(ops or {}) for path, ops in (data.get("paths") or {}).items()},
            components=dict(data.get("components") or {}),
        )


@dataclass(frozen=True)
class ResourceSpec:
    """Container resource sizing."""

    cpu: str = "250m"
    memory: str = "256Mi"

    def to_dict(self) -> dict[str, str]:
        return {"cpu": self.cpu, "memory": self.memory}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResourceSpec:
        return cls(cpu=data.get("cpu", "250m"), memory=data.get("memory", "256Mi"))


@dataclass(frozen=True)
class HealthCheckSpec:
    """Health check settings for a deployment."""

    path: str = "/health"
    interval: int = 30
    timeout: int = 5

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "interval": self.interval, "timeout": self.timeout}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HealthCheckSpec:
        return cls(
            path=data.get("path", "/health"),
            interval=int(data.get("interval", 30)),
            timeout=int(data.get("timeout", 5)),
        )


@dataclass(frozen=True)
class DeploymentDescriptor:
    """Where and how a version is deployed.

    Informational only: nothing here is checked against live infrastructure.
    """

    environment: Environment = Environment.DEVELOPMENT
    endpoint: str = ""
    container_image: str = ""
    replicas: int = 1
    resources: ResourceSpec = dataclass_field(default_factory=ResourceSpec)
    health_check: HealthCheckSpec = dataclass_field(default_factory=HealthCheckSpec)

    def to_dict(self) -> dict[str, Any]:
        return {
            "environment": self.environment.value,
            "endpoint": self.endpoint,
            "container_image": self.container_image,
            "replicas": self.replicas,
            "resources": self.resources.to_dict(),
            "health_check": self.health_check.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DeploymentDescriptor:
        data = data or {}
        return cls(
            environment=Environment(data.get("environment", Environment.DEVELOPMENT.value)),
            endpoint=data.get("endpoint", ""),
            container_image=data.get("container_image", ""),
            replicas=int(data.get("replicas", 1)),
            resources=ResourceSpec.from_dict(data.get("resources") or {}),
            health_check=HealthCheckSpec.from_dict(data.get("health_check") or {}),
        )


@dataclass(frozen=True)
class VersionMetrics:
    """Externally supplied usage snapshot. Read-only for this server."""

    requests: int = 0
    errors: int = 0
    response_time: float = 0.0
    uptime: float = 100.0
    adoption: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "errors": self.errors,
            "response_time": self.response_time,
            "uptime": self.uptime,
            "adoption": self.adoption,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> VersionMetrics:
        data = data or {}
        return cls(
            requests=int(data.get("requests", 0)),
            errors=int(data.get("errors", 0)),
            response_time=float(data.get("response_time", 0.0)),
            uptime=float(data.get("uptime", 100.0)),
            adoption=float(data.get("adoption", 0.0)),
        )


@dataclass(frozen=True)
class DeprecationPlan:
    """Why a version was deprecated and where callers should go.

    Attributes:
        reason: Why the version is being deprecated
        migration_guide: Guidance for callers
        support_end_date: When support ends (retirement becomes due)
        replacement_version: Version callers should move to
    """

    reason: str
    migration_guide: str = ""
    support_end_date: datetime | None = None
    replacement_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "migration_guide": self.migration_guide,
            "support_end_date": format_timestamp(self.support_end_date),
            "replacement_version": self.replacement_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeprecationPlan:
        return cls(
            reason=data.get("reason", ""),
            migration_guide=data.get("migration_guide", ""),
            support_end_date=parse_timestamp(data.get("support_end_date")),
            replacement_version=data.get("replacement_version"),
        )


@dataclass(frozen=True)
class VersionRecord:
    """One published/draft/deprecated/retired snapshot of an API's contract.

    Attributes:
        api_id: API identifier
        tenant_id: Owning tenant
        version: Semantic version string (identity, never changes)
        status: Lifecycle status
        created_at: Creation timestamp
        created_by: Actor that created the version
        changelog: Human-readable change notes
        breaking_changes: Whether the author declared breaking changes
        compatibility_level: Classification against the predecessor at creation
        specification: The contract document
        deployment: Deployment descriptor
        metrics: Usage snapshot
        published_at / deprecated_at / retired_at: Transition timestamps
        deprecation_plan: Present for deprecated and retired versions
        specification_key: Blob store location of the specification
    """

    api_id: str
    tenant_id: str
    version: str
    status: VersionStatus = VersionStatus.DRAFT
    created_at: datetime = dataclass_field(default_factory=utcnow)
    created_by: str = ""
    changelog: str = ""
    breaking_changes: bool = False
    compatibility_level: CompatibilityLevel = CompatibilityLevel.PATCH
    specification: ApiSpecification = dataclass_field(default_factory=ApiSpecification)
    deployment: DeploymentDescriptor = dataclass_field(default_factory=DeploymentDescriptor)
    metrics: VersionMetrics = dataclass_field(default_factory=VersionMetrics)
    published_at: datetime | None = None
    deprecated_at: datetime | None = None
    retired_at: datetime | None = None
    deprecation_plan: DeprecationPlan | None = None
    specification_key: str | None = None

    def __post_init__(self) -> None:
        """Validate the timeline invariants."""
        if not self.api_id:
            raise ValueError("api_id cannot be empty")
        if self.retired_at is not None:
            if self.deprecated_at is None:
                raise ValueError(f"Version {self.version}: retired_at set without deprecated_at")
            if self.retired_at < self.deprecated_at:
                raise ValueError(f"Version {self.version}: retired_at precedes deprecated_at")
        if (
            self.deprecated_at is not None
            and self.published_at is not None
            and self.deprecated_at < self.published_at
        ):
            raise ValueError(f"Version {self.version}: deprecated_at precedes published_at")
        if self.deprecation_plan is not None and self.status not in (
            VersionStatus.DEPRECATED,
            VersionStatus.RETIRED,
        ):
            raise ValueError(
                f"Version {self.version}: deprecation_plan set on a {self.status.value} version"
            )

    def transition(self, target: VersionStatus, at: datetime, **changes: Any) -> VersionRecord:
        """Return a copy moved to ``target`` with its timestamp stamped.

        Raises:
            ValueError: If ``target`` is not the next status
        """
        if not self.status.can_transition_to(target):
            raise ValueError(f"{self.status.value} -> {target.value} is not a forward step")
        stamp_field = {
            VersionStatus.PUBLISHED: "published_at",
            VersionStatus.DEPRECATED: "deprecated_at",
            VersionStatus.RETIRED: "retired_at",
        }[target]
        previous = {
            VersionStatus.PUBLISHED: self.created_at,
            VersionStatus.DEPRECATED: self.published_at,
            VersionStatus.RETIRED: self.deprecated_at,
        }[target]
        # Clock skew between writers must not break ordering.
        if previous is not None and at < previous:
            at = previous
        return replace(self, status=target, **{stamp_field: at}, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_id": self.api_id,
            "tenant_id": self.tenant_id,
            "version": self.version,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "created_by": self.created_by,
            "changelog": self.changelog,
            "breaking_changes": self.breaking_changes,
            "compatibility_level": self.compatibility_level.value,
            "specification": self.specification.to_dict(),
            "deployment": self.deployment.to_dict(),
            "metrics": self.metrics.to_dict(),
            "published_at": format_timestamp(self.published_at),
            "deprecated_at": format_timestamp(self.deprecated_at),
            "retired_at": format_timestamp(self.retired_at),
            "deprecation_plan": self.deprecation_plan.to_dict()
            if self.deprecation_plan
            else None,
            "specification_key": self.specification_key,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VersionRecord:
        plan = data.get("deprecation_plan")
        return cls(
            api_id=data["api_id"],
            tenant_id=data.get("tenant_id", ""),
            version=data["version"],
            status=VersionStatus(data.get("status", VersionStatus.DRAFT.value)),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            created_by=data.get("created_by", ""),
            changelog=data.get("changelog", ""),
            breaking_changes=bool(data.get("breaking_changes", False)),
            compatibility_level=CompatibilityLevel(
                data.get("compatibility_level", CompatibilityLevel.PATCH.value)
            ),
            specification=ApiSpecification.from_dict(data.get("specification")),
            deployment=DeploymentDescriptor.from_dict(data.get("deployment")),
            metrics=VersionMetrics.from_dict(data.get("metrics")),
            published_at=parse_timestamp(data.get("published_at")),
            deprecated_at=parse_timestamp(data.get("deprecated_at")),
            retired_at=parse_timestamp(data.get("retired_at")),
            deprecation_plan=DeprecationPlan.from_dict(plan) if plan else None,
            specification_key=data.get("specification_key"),
        )


@dataclass(frozen=True)
class NotificationChannel:
    """Notification settings for one lifecycle event kind."""

    enabled: bool = True
    recipients: tuple[str, ...] = ()
    template: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "recipients": list(self.recipients),
            "template": self.template,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> NotificationChannel:
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", True)),
            recipients=tuple(data.get("recipients") or ()),
            template=data.get("template", ""),
        )


@dataclass(frozen=True)
class LifecyclePolicy:
    """Per (tenant, api) lifecycle configuration.

    Attributes:
        tenant_id: Owning tenant
        api_id: API the policy applies to
        max_versions: Maximum concurrently published versions
        support_period_days: Support window granted on deprecation
        deprecation_warning_days: Lead time for "retirement upcoming" warnings
        auto_retirement: Whether the sweeper retires expired versions
        retirement_period_days: Fallback delay after deprecation when a plan
            has no support end date
        breaking_change_policy: Which versions may declare breaking changes
        backward_compatibility_required: Whether a compatibility suite must pass
        test_suite: Name of that suite
        deprecation_notifications: Channel settings for deprecations
        retirement_notifications: Channel settings for retirements
    """

    tenant_id: str
    api_id: str
    max_versions: int = 5
    support_period_days: int = 90
    deprecation_warning_days: int = 30
    auto_retirement: bool = False
    retirement_period_days: int = 30
    breaking_change_policy: BreakingChangePolicy = BreakingChangePolicy.MAJOR_ONLY
    backward_compatibility_required: bool = False
    test_suite: str = ""
    deprecation_notifications: NotificationChannel = dataclass_field(
        default_factory=NotificationChannel
    )
    retirement_notifications: NotificationChannel = dataclass_field(
        default_factory=NotificationChannel
    )

    def __post_init__(self) -> None:
        """Validate policy limits."""
        if self.max_versions < 1:
            raise ValueError(f"max_versions must be >= 1, got {self.max_versions}")
        for name in ("support_period_days", "deprecation_warning_days", "retirement_period_days"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def support_period(self) -> timedelta:
        return timedelta(days=self.support_period_days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "api_id": self.api_id,
            "policy": {
                "max_versions": self.max_versions,
                "support_period_days": self.support_period_days,
                "deprecation_warning_days": self.deprecation_warning_days,
                "auto_retirement": self.auto_retirement,
                "retirement_period_days": self.retirement_period_days,
                "breaking_change_policy": self.breaking_change_policy.value,
                "backward_compatibility": {
                    "required": self.backward_compatibility_required,
                    "test_suite": self.test_suite,
                },
            },
            "notifications": {
                "deprecation": self.deprecation_notifications.to_dict(),
                "retirement": self.retirement_notifications.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LifecyclePolicy:
        policy = data.get("policy") or {}
        compat = policy.get("backward_compatibility") or {}
        notifications = data.get("notifications") or {}
        return cls(
            tenant_id=data.get("tenant_id", ""),
            api_id=data["api_id"],
            max_versions=int(policy.get("max_versions", 5)),
            support_period_days=int(policy.get("support_period_days", 90)),
            deprecation_warning_days=int(policy.get("deprecation_warning_days", 30)),
            auto_retirement=bool(policy.get("auto_retirement", False)),
            retirement_period_days=int(policy.get("retirement_period_days", 30)),
            breaking_change_policy=BreakingChangePolicy(
                policy.get("breaking_change_policy", BreakingChangePolicy.MAJOR_ONLY.value)
            ),
            backward_compatibility_required=bool(compat.get("required", False)),
            test_suite=compat.get("test_suite", ""),
            deprecation_notifications=NotificationChannel.from_dict(
                notifications.get("deprecation")
            ),
            retirement_notifications=NotificationChannel.from_dict(
                notifications.get("retirement")
            ),
        )
