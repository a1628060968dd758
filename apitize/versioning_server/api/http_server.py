"""
HTTP API for the versioning server.

REST surface over VersioningService. Every /v1/apis route is tenant-scoped:
the tenant comes from the X-Tenant-ID header and the acting user from
X-Actor.

Routes:
    POST /v1/apis/{api_id}/versions
    GET  /v1/apis/{api_id}/versions
    GET  /v1/apis/{api_id}/versions/latest
    GET  /v1/apis/{api_id}/versions/{version}
    GET  /v1/apis/{api_id}/versions/{version}/specification
    POST /v1/apis/{api_id}/versions/{version}/publish
    POST /v1/apis/{api_id}/versions/{version}/deprecate
    POST /v1/apis/{api_id}/versions/{version}/retire
    GET  /v1/apis/{api_id}/versions/{version1}/compare/{version2}
    POST /v1/apis/{api_id}/versions/{from_version}/migrate/{to_version}
    GET  /v1/apis/{api_id}/migrations
    GET  /v1/apis/{api_id}/migrations/{plan_id}
    POST /v1/apis/{api_id}/migrations/{plan_id}/{start|complete|fail}
    GET  /v1/apis/{api_id}/lifecycle-policy
    PUT  /v1/apis/{api_id}/lifecycle-policy
    GET  /v1/health

Invariants:
    - Domain errors map to 4xx with {"error", "error_code", "details"}
    - Unexpected errors map to a generic 500; stack traces only go to logs
    - JSON request/response format

How to change safely:
    - Version the route prefix if breaking changes are needed
    - Keep ERROR_STATUS in sync with errors.py
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from aiohttp import web

from .. import semantic
from ..config import HttpConfig
from ..errors import (
    BreakingChangePolicyViolation,
    DuplicateVersion,
    InvalidMigrationStrategy,
    InvalidTransition,
    InvalidVersionFormat,
    MigrationPlanNotFound,
    TenantContextMissing,
    ValidationError,
    VersioningError,
    VersionNotFound,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type, int] = {
    InvalidVersionFormat: 400,
    TenantContextMissing: 400,
    ValidationError: 400,
    InvalidMigrationStrategy: 400,
    VersionNotFound: 404,
    MigrationPlanNotFound: 404,
    DuplicateVersion: 409,
    InvalidTransition: 409,
    BreakingChangePolicyViolation: 422,
}


def status_for(error: VersioningError) -> int:
    """HTTP status for a domain error (400 for unlisted subclasses)."""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def create_http_app(
    service: Any,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create the HTTP application.

    Args:
        service: VersioningService instance
        config: HTTP configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Tenant-ID, X-Actor"

        return response

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except VersioningError as e:
            status = status_for(e)
            logger.info(
                f"Request rejected: {e.message}",
                extra={"path": request.path, "status": status, "error_code": e.code},
            )
            return web.json_response(e.to_dict(), status=status)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", extra={"path": request.path}, exc_info=True)
            return web.json_response(
                {"error": "Internal server error", "error_code": "INTERNAL", "details": {}},
                status=500,
            )

    app = web.Application(middlewares=[cors_middleware, error_middleware])

    prefix = "/v1/apis/{api_id}"
    app.router.add_post(f"{prefix}/versions", partial(handle_create_version, service=service))
    app.router.add_get(f"{prefix}/versions", partial(handle_list_versions, service=service))
    app.router.add_get(
        f"{prefix}/versions/latest", partial(handle_latest_version, service=service)
    )
    app.router.add_get(
        f"{prefix}/versions/{{version}}", partial(handle_get_version, service=service)
    )
    app.router.add_get(
        f"{prefix}/versions/{{version}}/specification",
        partial(handle_get_specification, service=service),
    )
    app.router.add_post(
        f"{prefix}/versions/{{version}}/publish", partial(handle_publish, service=service)
    )
    app.router.add_post(
        f"{prefix}/versions/{{version}}/deprecate", partial(handle_deprecate, service=service)
    )
    app.router.add_post(
        f"{prefix}/versions/{{version}}/retire", partial(handle_retire, service=service)
    )
    app.router.add_get(
        f"{prefix}/versions/{{version1}}/compare/{{version2}}",
        partial(handle_compare, service=service),
    )
    app.router.add_post(
        f"{prefix}/versions/{{from_version}}/migrate/{{to_version}}",
        partial(handle_create_migration, service=service),
    )
    app.router.add_get(f"{prefix}/migrations", partial(handle_list_migrations, service=service))
    app.router.add_get(
        f"{prefix}/migrations/{{plan_id}}", partial(handle_get_migration, service=service)
    )
    app.router.add_post(
        f"{prefix}/migrations/{{plan_id}}/{{action}}",
        partial(handle_migration_action, service=service),
    )
    app.router.add_get(f"{prefix}/lifecycle-policy", partial(handle_get_policy, service=service))
    app.router.add_put(f"{prefix}/lifecycle-policy", partial(handle_put_policy, service=service))
    app.router.add_get("/v1/health", partial(handle_health, service=service))

    return app


def extract_context(request: web.Request) -> tuple[str, str]:
    """Extract request context from headers.

    Returns:
        Tuple of (tenant_id, actor)

    Raises:
        TenantContextMissing: If X-Tenant-ID is missing or blank
    """
    tenant_id = request.headers.get("X-Tenant-ID", "").strip()
    actor = request.headers.get("X-Actor", "").strip() or "anonymous"

    if not tenant_id:
        raise TenantContextMissing(operation=f"{request.method} {request.path}")

    return tenant_id, actor


async def read_json(request: web.Request, required: bool = True) -> dict[str, Any]:
    """Parse a JSON object body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    if not request.can_read_body:
        if required:
            raise ValidationError("Request body is required")
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _query_flag(request: web.Request, name: str) -> bool:
    return request.query.get(name, "false").lower() == "true"


async def handle_create_version(request: web.Request, service: Any) -> web.Response:
    """Handle POST /v1/apis/{api_id}/versions - Create a version."""
    tenant_id, actor = extract_context(request)
    api_id = request.match_info["api_id"]
    body = await read_json(request)

    version = body.get("version")
    if not version:
        raise ValidationError("version is required", field_name="version")

    record = await service.create_version(
        tenant_id,
        api_id,
        version,
        body.get("specification"),
        status=body.get("status", "draft"),
        changelog=body.get("changelog", ""),
        breaking_changes=body.get("breaking_changes", False),
        created_by=actor,
        deployment=body.get("deployment"),
    )
    return web.json_response(record.to_dict(), status=201)


async def handle_list_versions(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/versions - List versions by precedence."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    status = request.query.get("status")

    records = await service.list_versions(tenant_id, api_id)
    if status:
        records = [r for r in records if r.status.value == status]
    records.sort(key=lambda r: semantic.precedence_key(r.version))

    return web.json_response({
        "api_id": api_id,
        "versions": [r.to_dict() for r in records],
        "count": len(records),
    })


async def handle_latest_version(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/versions/latest - Highest version."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    published_only = _query_flag(request, "published_only")

    record = await service.get_latest_version(tenant_id, api_id, published_only)
    if record is None:
        raise VersionNotFound(api_id, ["latest"], operation="get_latest_version")
    return web.json_response(record.to_dict())


async def handle_get_version(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/versions/{version} - Get one version."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    version = request.match_info["version"]

    record = await service.get_version(tenant_id, api_id, version)
    if record is None:
        raise VersionNotFound(api_id, [version], operation="get_version")
    return web.json_response(record.to_dict())


async def handle_get_specification(request: web.Request, service: Any) -> web.Response:
    """Handle GET .../versions/{version}/specification - Stored document."""
    tenant_id, _ = extract_context(request)
    spec = await service.get_specification(
        tenant_id, request.match_info["api_id"], request.match_info["version"]
    )
    return web.json_response(spec.to_dict())


async def handle_publish(request: web.Request, service: Any) -> web.Response:
    """Handle POST .../versions/{version}/publish - Draft to published."""
    tenant_id, _ = extract_context(request)
    record = await service.publish_version(
        tenant_id, request.match_info["api_id"], request.match_info["version"]
    )
    return web.json_response(record.to_dict())


async def handle_deprecate(request: web.Request, service: Any) -> web.Response:
    """Handle POST .../versions/{version}/deprecate - Published to deprecated."""
    tenant_id, _ = extract_context(request)
    body = await read_json(request)

    record = await service.deprecate_version(
        tenant_id,
        request.match_info["api_id"],
        request.match_info["version"],
        reason=body.get("reason", ""),
        migration_guide=body.get("migration_guide", ""),
        support_end_date=body.get("support_end_date"),
        replacement_version=body.get("replacement_version"),
    )
    return web.json_response(record.to_dict())


async def handle_retire(request: web.Request, service: Any) -> web.Response:
    """Handle POST .../versions/{version}/retire - Deprecated to retired."""
    tenant_id, _ = extract_context(request)
    record = await service.retire_version(
        tenant_id, request.match_info["api_id"], request.match_info["version"]
    )
    return web.json_response(record.to_dict())


async def handle_compare(request: web.Request, service: Any) -> web.Response:
    """Handle GET .../versions/{version1}/compare/{version2} - Compatibility report."""
    tenant_id, _ = extract_context(request)
    report = await service.compare_versions(
        tenant_id,
        request.match_info["api_id"],
        request.match_info["version1"],
        request.match_info["version2"],
    )
    return web.json_response(report.to_dict())


async def handle_create_migration(request: web.Request, service: Any) -> web.Response:
    """Handle POST .../versions/{from}/migrate/{to} - Create a migration plan."""
    tenant_id, _ = extract_context(request)
    body = await read_json(request, required=False)

    plan = await service.create_migration_plan(
        tenant_id,
        request.match_info["api_id"],
        request.match_info["from_version"],
        request.match_info["to_version"],
        body.get("strategy", "blue-green"),
    )
    return web.json_response(plan.to_dict(), status=201)


async def handle_list_migrations(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/migrations - List plans."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    plans = await service.list_migration_plans(tenant_id, api_id)
    return web.json_response({
        "api_id": api_id,
        "migrations": [p.to_dict() for p in plans],
        "count": len(plans),
    })


async def handle_get_migration(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/migrations/{plan_id} - Get one plan."""
    tenant_id, _ = extract_context(request)
    plan = await service.get_migration_plan(
        tenant_id, request.match_info["api_id"], request.match_info["plan_id"]
    )
    return web.json_response(plan.to_dict())


async def handle_migration_action(request: web.Request, service: Any) -> web.Response:
    """Handle POST .../migrations/{plan_id}/{start|complete|fail}."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    plan_id = request.match_info["plan_id"]
    action = request.match_info["action"]

    if action == "start":
        plan = await service.start_migration(tenant_id, api_id, plan_id)
    elif action == "complete":
        plan = await service.complete_migration(tenant_id, api_id, plan_id)
    elif action == "fail":
        body = await read_json(request, required=False)
        plan = await service.fail_migration(tenant_id, api_id, plan_id, body.get("reason", ""))
    else:
        raise web.HTTPNotFound(
            text=json.dumps({"error": f"Unknown migration action '{action}'"}),
            content_type="application/json",
        )
    return web.json_response(plan.to_dict())


async def handle_get_policy(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/apis/{api_id}/lifecycle-policy."""
    tenant_id, _ = extract_context(request)
    api_id = request.match_info["api_id"]
    policy = await service.get_policy(tenant_id, api_id)
    if policy is None:
        return web.json_response(
            {
                "error": f"No lifecycle policy for API '{api_id}'",
                "error_code": "POLICY_NOT_FOUND",
                "details": {"api_id": api_id},
            },
            status=404,
        )
    return web.json_response(policy.to_dict())


async def handle_put_policy(request: web.Request, service: Any) -> web.Response:
    """Handle PUT /v1/apis/{api_id}/lifecycle-policy - Create or replace."""
    tenant_id, _ = extract_context(request)
    body = await read_json(request)
    policy = await service.put_policy(tenant_id, request.match_info["api_id"], body)
    return web.json_response(policy.to_dict())


async def handle_health(request: web.Request, service: Any) -> web.Response:
    """Handle GET /v1/health - Health check."""
    result = await service.health()
    status = 200 if result.get("healthy") else 503
    return web.json_response(result, status=status)
