"""
APItize Versioning Server - tenant-aware API version lifecycle and migration planning.

This package keeps the record of every version of every tenant API and plans
the transition of live traffic between them:
- Version records (draft -> published -> deprecated -> retired) in DynamoDB
- OpenAPI specification documents in S3
- Structural compatibility reports between two versions
- Lifecycle policies that evict old published versions
- Strategy-driven migration plans (blue-green, canary, rolling, immediate)

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌──────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│ VersioningService│
    └─────────────┘     └─────────────┘     └────────┬─────────┘
                                                     │
                 ┌──────────────┬────────────────────┼───────────────┐
                 ▼              ▼                    ▼               ▼
          ┌────────────┐ ┌────────────┐      ┌────────────┐  ┌────────────┐
          │  Version   │ │  Policy    │      │   Compat   │  │ Migration  │
          │   Store    │ │  Engine    │      │  Analyzer  │  │  Planner   │
          └─────┬──────┘ └────────────┘      └────────────┘  └─────┬──────┘
                │                                                  │
                ▼                                                  ▼
          ┌──────────────────────────┐    ┌──────────┐      ┌────────────┐
          │ DynamoDB / S3 / Outbox   │───▶│Dispatcher│─────▶│ SNS / Hook │
          └──────────────────────────┘    └──────────┘      └────────────┘

Invariants:
    - (tenant_id, api_id, version) identifies a version and never changes
    - Status moves forward only: draft -> published -> deprecated -> retired
    - compatibility_level is computed once, at creation time
    - Uniqueness and status transitions are conditional writes
    - Side effects (notifications, deployment teardown) never roll back state

How to change safely:
    - New compatibility rules must reuse the existing severity taxonomy
    - New migration strategies go into the step table in migration/planner.py
    - Keep the DynamoDB item layout (pk, sk, status, body) stable

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
