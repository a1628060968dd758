"""
In-memory record store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without AWS

Invariants:
    - All data is lost on process exit
    - Conditional writes are atomic under a single asyncio lock
    - Items are deep-copied on the way in and out

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep semantics identical to the DynamoDB backend
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from .base import (
    ConditionalCheckFailedError,
    StoreConnectionError,
)

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore for testing.

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.connect()
        >>> await store.put_if_absent("api-versions", "t1:orders", "1.0.0", {"status": "draft"})
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[Tuple[str, str], Dict[str, Any]]] = defaultdict(dict)
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryRecordStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._tables.clear()
        logger.debug("InMemoryRecordStore closed")

    def _check(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    async def put_if_absent(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        self._check()
        async with self._lock:
            rows = self._tables[table]
            if (partition_key, sort_key) in rows:
                raise ConditionalCheckFailedError(table, partition_key, sort_key)
            rows[(partition_key, sort_key)] = copy.deepcopy(dict(item))

    async def put_if_match(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
        expected: Mapping[str, str],
    ) -> None:
        self._check()
        async with self._lock:
            rows = self._tables[table]
            current = rows.get((partition_key, sort_key))
            if current is None or any(current.get(k) != v for k, v in expected.items()):
                raise ConditionalCheckFailedError(table, partition_key, sort_key)
            rows[(partition_key, sort_key)] = copy.deepcopy(dict(item))

    async def put(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        self._check()
        async with self._lock:
            self._tables[table][(partition_key, sort_key)] = copy.deepcopy(dict(item))

    async def get(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
    ) -> Optional[Dict[str, Any]]:
        self._check()
        item = self._tables[table].get((partition_key, sort_key))
        return copy.deepcopy(item) if item is not None else None

    async def query(self, table: str, partition_key: str) -> List[Dict[str, Any]]:
        self._check()
        return [
            copy.deepcopy(item)
            for (pk, _), item in self._tables[table].items()
            if pk == partition_key
        ]

    async def scan(self, table: str) -> List[Dict[str, Any]]:
        self._check()
        return [copy.deepcopy(item) for item in self._tables[table].values()]

    # Testing helpers

    def get_item_count(self, table: str) -> int:
        """Total items in a table (testing helper)."""
        return len(self._tables.get(table, {}))
