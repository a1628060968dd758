"""
API contract compatibility analysis.

Compares two OpenAPI-style specifications and reports the changes that
would break callers of the older one:

    removed path                          removed-endpoint        critical
    removed method on a surviving path    removed-endpoint        critical
    200 response content differs          changed-response-format high
    new required parameter / body field   added-required-field    medium
    component schema removed / retyped    changed-schema          medium
    component property newly required     added-required-field    medium

Added paths, added operations, newly deprecated operations and added
optional parameters are reported as warnings.

Invariants:
    - Response content is compared structurally (dict key order ignored)
    - Identical specifications produce no findings and score 100
    - Only one level of $ref is resolved; nested schema changes may be missed

How to change safely:
    - New rules must use the existing severity taxonomy
    - Adding a rule changes scores for existing plans; note it in the changelog

Example:
    >>> report = compare_specifications(old_spec, new_spec, "1.0.0", "2.0.0")
    >>> report.compatible
    False
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import VersionNotFound
from ..models import HTTP_METHODS, ApiSpecification
from .report import (
    BreakingChange,
    ChangeType,
    CompatibilityReport,
    CompatWarning,
    Severity,
)

logger = logging.getLogger(__name__)

_SCHEMA_REF_PREFIX = "#/components/schemas/"


def compare_specifications(
    old: ApiSpecification,
    new: ApiSpecification,
    version1: str = "",
    version2: str = "",
) -> CompatibilityReport:
    """Diff two specifications.

    Args:
        old: Baseline specification (what callers use today)
        new: Candidate specification
        version1: Label for the baseline
        version2: Label for the candidate

    Returns:
        CompatibilityReport with findings and warnings
    """
    breaking: List[BreakingChange] = []
    warnings: List[CompatWarning] = []

    old_paths = old.path_keys()
    new_paths = new.path_keys()

    breaking.extend(_check_removed_paths(old_paths, new_paths))

    for path in new_paths:
        if path not in old.paths:
            warnings.append(CompatWarning(
                type="added-endpoint",
                description=f"Endpoint {path} was added",
                recommendation="Document the new endpoint for consumers",
            ))
            continue
        path_breaking, path_warnings = _check_path(
            path, old.operations(path), new.operations(path), old, new
        )
        breaking.extend(path_breaking)
        warnings.extend(path_warnings)

    breaking.extend(_check_component_schemas(old, new))

    report = CompatibilityReport(
        version1=version1,
        version2=version2,
        breaking_changes=breaking,
        warnings=warnings,
    )
    logger.debug(
        "Compared specifications",
        extra={
            "version1": version1,
            "version2": version2,
            "breaking_changes": len(breaking),
            "warnings": len(warnings),
            "score": report.score,
        },
    )
    return report


def _check_removed_paths(old_paths: List[str], new_paths: List[str]) -> List[BreakingChange]:
    """Every path in the baseline must still exist."""
    remaining = set(new_paths)
    return [
        BreakingChange(
            type=ChangeType.REMOVED_ENDPOINT,
            path=path,
            description=f"Endpoint {path} was removed",
            severity=Severity.CRITICAL,
            impact="Clients using this endpoint will fail",
            mitigation="Provide alternative endpoint or keep for backward compatibility",
        )
        for path in old_paths
        if path not in remaining
    ]


def _methods(operations: Mapping[str, Any]) -> List[str]:
    return [m for m in operations if m.lower() in HTTP_METHODS]


def _check_path(
    path: str,
    old_ops: Mapping[str, Any],
    new_ops: Mapping[str, Any],
    old_spec: ApiSpecification,
    new_spec: ApiSpecification,
) -> Tuple[List[BreakingChange], List[CompatWarning]]:
    """Compare the operations of a path present in both specifications."""
    breaking: List[BreakingChange] = []
    warnings: List[CompatWarning] = []

    old_methods = _methods(old_ops)
    new_methods = _methods(new_ops)

    for method in old_methods:
        if method not in new_ops:
            breaking.append(BreakingChange(
                type=ChangeType.REMOVED_ENDPOINT,
                path=f"{method.upper()} {path}",
                description=f"Operation {method.upper()} {path} was removed",
                severity=Severity.CRITICAL,
                impact="Clients calling this operation will fail",
                mitigation="Keep the operation and mark it deprecated instead",
            ))

    for method in new_methods:
        label = f"{method.upper()} {path}"
        new_op = new_ops.get(method) or {}
        if method not in old_ops:
            warnings.append(CompatWarning(
                type="added-operation",
                description=f"Operation {label} was added",
                recommendation="Document the new operation for consumers",
            ))
            continue

        old_op = old_ops.get(method) or {}

        if _response_changed(old_op, new_op):
            breaking.append(BreakingChange(
                type=ChangeType.CHANGED_RESPONSE_FORMAT,
                path=label,
                description="Response format changed",
                severity=Severity.HIGH,
                impact="Client parsing may fail",
                mitigation="Use content negotiation or versioned endpoints",
            ))

        param_breaking, param_warnings = _check_parameters(label, old_op, new_op)
        breaking.extend(param_breaking)
        warnings.extend(param_warnings)

        breaking.extend(_check_request_body(label, old_op, new_op, old_spec, new_spec))

        if not old_op.get("deprecated") and new_op.get("deprecated"):
            warnings.append(CompatWarning(
                type="deprecated-operation",
                description=f"Operation {label} was marked deprecated",
                recommendation="Plan migration away from this operation",
            ))

    return breaking, warnings


def _response_changed(old_op: Mapping[str, Any], new_op: Mapping[str, Any]) -> bool:
    """Whether the success-response content differs.

    Only evaluated when both operations declare responses. Dictionaries
    compare equal regardless of key order.
    """
    old_responses = old_op.get("responses")
    new_responses = new_op.get("responses")
    if not old_responses or not new_responses:
        return False
    return _success_content(old_responses) != _success_content(new_responses)


def _success_content(responses: Mapping[str, Any]) -> Any:
    response = responses.get("200")
    if response is None:
        response = responses.get(200)
    if not isinstance(response, Mapping):
        return None
    return response.get("content")


def _parameter_key(param: Mapping[str, Any]) -> Tuple[str, str]:
    return param.get("name", ""), param.get("in", "query")


def _check_parameters(
    label: str,
    old_op: Mapping[str, Any],
    new_op: Mapping[str, Any],
) -> Tuple[List[BreakingChange], List[CompatWarning]]:
    """New required parameters break callers; new optional ones do not."""
    breaking: List[BreakingChange] = []
    warnings: List[CompatWarning] = []

    old_params: Dict[Tuple[str, str], Mapping[str, Any]] = {
        _parameter_key(p): p for p in old_op.get("parameters") or [] if isinstance(p, Mapping)
    }

    for param in new_op.get("parameters") or []:
        if not isinstance(param, Mapping):
            continue
        key = _parameter_key(param)
        name, location = key
        previous = old_params.get(key)
        required = bool(param.get("required")) or location == "path"

        if previous is None:
            if required:
                breaking.append(BreakingChange(
                    type=ChangeType.ADDED_REQUIRED_FIELD,
                    path=label,
                    description=f"Required {location} parameter '{name}' was added",
                    severity=Severity.MEDIUM,
                    impact="Requests without this parameter will be rejected",
                    mitigation="Make the parameter optional with a default",
                ))
            else:
                warnings.append(CompatWarning(
                    type="added-optional-parameter",
                    description=f"Optional {location} parameter '{name}' was added to {label}",
                    recommendation="Document the parameter and its default",
                ))
        elif required and not (bool(previous.get("required")) or location == "path"):
            breaking.append(BreakingChange(
                type=ChangeType.ADDED_REQUIRED_FIELD,
                path=label,
                description=f"{location.capitalize()} parameter '{name}' became required",
                severity=Severity.MEDIUM,
                impact="Requests without this parameter will be rejected",
                mitigation="Keep the parameter optional with a default",
            ))

    return breaking, warnings


def _body_schema(op: Mapping[str, Any], spec: ApiSpecification) -> Optional[Mapping[str, Any]]:
    body = op.get("requestBody")
    if not isinstance(body, Mapping):
        return None
    content = body.get("content") or {}
    media = content.get("application/json")
    if media is None and content:
        media = next(iter(content.values()))
    if not isinstance(media, Mapping):
        return None
    return _resolve(media.get("schema"), spec)


def _resolve(schema: Any, spec: ApiSpecification) -> Optional[Mapping[str, Any]]:
    """Resolve one level of a components.schemas $ref."""
    if not isinstance(schema, Mapping):
        return None
    ref = schema.get("$ref")
    if isinstance(ref, str) and ref.startswith(_SCHEMA_REF_PREFIX):
        target = (spec.components.get("schemas") or {}).get(ref[len(_SCHEMA_REF_PREFIX):])
        return target if isinstance(target, Mapping) else None
    return schema


def _check_request_body(
    label: str,
    old_op: Mapping[str, Any],
    new_op: Mapping[str, Any],
    old_spec: ApiSpecification,
    new_spec: ApiSpecification,
) -> List[BreakingChange]:
    """Request body properties that callers must now send."""
    new_schema = _body_schema(new_op, new_spec)
    if new_schema is None:
        return []
    old_schema = _body_schema(old_op, old_spec) or {}

    old_required = set(old_schema.get("required") or [])
    return [
        BreakingChange(
            type=ChangeType.ADDED_REQUIRED_FIELD,
            path=label,
            description=f"Request body field '{name}' is now required",
            severity=Severity.MEDIUM,
            impact="Requests without this field will be rejected",
            mitigation="Make the field optional or supply a server-side default",
        )
        for name in new_schema.get("required") or []
        if name not in old_required
    ]


def _property_shape(prop: Any) -> Tuple[Any, Any]:
    if not isinstance(prop, Mapping):
        return None, None
    return prop.get("type"), prop.get("$ref")


def _check_component_schemas(old: ApiSpecification, new: ApiSpecification) -> List[BreakingChange]:
    """Compare reusable component schemas one level deep."""
    changes: List[BreakingChange] = []
    old_schemas = old.components.get("schemas") or {}
    new_schemas = new.components.get("schemas") or {}

    for name, old_schema in old_schemas.items():
        path = f"components.schemas.{name}"
        if name not in new_schemas:
            changes.append(BreakingChange(
                type=ChangeType.CHANGED_SCHEMA,
                path=path,
                description=f"Schema '{name}' was removed",
                severity=Severity.MEDIUM,
                impact="Payloads referencing this schema may no longer validate",
                mitigation="Keep the schema until no operation references it",
            ))
            continue

        new_schema = new_schemas[name]
        if not isinstance(old_schema, Mapping) or not isinstance(new_schema, Mapping):
            continue

        old_props = old_schema.get("properties") or {}
        new_props = new_schema.get("properties") or {}

        for prop, definition in old_props.items():
            if prop not in new_props:
                changes.append(BreakingChange(
                    type=ChangeType.CHANGED_SCHEMA,
                    path=f"{path}.{prop}",
                    description=f"Property '{prop}' was removed from schema '{name}'",
                    severity=Severity.MEDIUM,
                    impact="Clients reading this property will get nothing",
                    mitigation="Keep the property and mark it deprecated",
                ))
            elif _property_shape(definition) != _property_shape(new_props[prop]):
                old_type, old_ref = _property_shape(definition)
                new_type, new_ref = _property_shape(new_props[prop])
                changes.append(BreakingChange(
                    type=ChangeType.CHANGED_SCHEMA,
                    path=f"{path}.{prop}",
                    description=(
                        f"Property '{prop}' of schema '{name}' changed type from "
                        f"'{old_type or old_ref}' to '{new_type or new_ref}'"
                    ),
                    severity=Severity.MEDIUM,
                    impact="Clients may fail to parse or send this property",
                    mitigation="Add a new property instead of retyping the old one",
                ))

        old_required = set(old_schema.get("required") or [])
        for prop in new_schema.get("required") or []:
            if prop not in old_required:
                changes.append(BreakingChange(
                    type=ChangeType.ADDED_REQUIRED_FIELD,
                    path=f"{path}.{prop}",
                    description=f"Property '{prop}' of schema '{name}' is now required",
                    severity=Severity.MEDIUM,
                    impact="Payloads without this property will be rejected",
                    mitigation="Make the property optional with a default",
                ))

    return changes


class CompatibilityAnalyzer:
    """Looks up two stored versions and compares their specifications.

    Attributes:
        versions: VersionStore used to resolve version records

    Example:
        >>> analyzer = CompatibilityAnalyzer(version_store)
        >>> report = await analyzer.compare_versions("t1", "orders", "1.0.0", "2.0.0")
    """

    def __init__(self, versions: Any) -> None:
        self.versions = versions

    async def compare_versions(
        self,
        tenant_id: str,
        api_id: str,
        version1: str,
        version2: str,
    ) -> CompatibilityReport:
        """Compare two versions of an API.

        Raises:
            VersionNotFound: If either version does not exist
        """
        first = await self.versions.get_version(tenant_id, api_id, version1)
        second = await self.versions.get_version(tenant_id, api_id, version2)

        missing = [v for v, record in ((version1, first), (version2, second)) if record is None]
        if missing:
            raise VersionNotFound(api_id, missing, operation="compare_versions")

        report = compare_specifications(
            first.specification,
            second.specification,
            version1,
            version2,
        )
        logger.info(
            "Compared versions",
            extra={
                "tenant_id": tenant_id,
                "api_id": api_id,
                "version1": version1,
                "version2": version2,
                "compatible": report.compatible,
                "score": report.score,
            },
        )
        return report
