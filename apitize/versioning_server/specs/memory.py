"""
In-memory specification store for tests and local development.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from .base import BlobNotFoundError, canonical_bytes, specification_key

logger = logging.getLogger(__name__)


class InMemorySpecificationStore:
    """Keeps specification blobs in a dict keyed by their content address."""

    def __init__(self, prefix: str = "api-specifications") -> None:
        self.prefix = prefix
        self._blobs: dict[str, bytes] = {}

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self._blobs.clear()

    async def put_specification(
        self,
        tenant_id: str,
        api_id: str,
        version: str,
        document: Mapping[str, Any],
    ) -> str:
        body = canonical_bytes(document)
        key = specification_key(self.prefix, tenant_id, api_id, version, body)
        self._blobs[key] = body
        logger.debug("Stored specification", extra={"key": key, "size_bytes": len(body)})
        return key

    async def get_specification(self, key: str) -> dict[str, Any]:
        body = self._blobs.get(key)
        if body is None:
            raise BlobNotFoundError(key)
        return json.loads(body.decode("utf-8"))

    @property
    def blob_count(self) -> int:
        return len(self._blobs)
