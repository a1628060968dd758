"""
Base protocol and types for the durable record store.

This module defines the RecordStore protocol that all backends must implement,
along with the store error family.

A record store holds JSON-serializable items grouped into named tables.
Each item is addressed by a partition key and a sort key; every item
may also carry a top-level ``status`` attribute that conditional writes
can match against.

Invariants:
    - put_if_absent is a single conditional write (no read-then-write)
    - put_if_match only succeeds when every expected attribute matches
    - query returns every item in one partition, in no particular order
    - Backends apply their configured timeout to every call

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

logger = logging.getLogger(__name__)

# Logical table names; backends map them to physical names.
VERSIONS_TABLE = "api-versions"
POLICIES_TABLE = "api-lifecycle-policies"
MIGRATIONS_TABLE = "migration-plans"

ALL_TABLES = (VERSIONS_TABLE, POLICIES_TABLE, MIGRATIONS_TABLE)


class StoreError(Exception):
    """Base exception for record store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection to the store backend failed."""
    pass


class StoreTimeoutError(StoreError):
    """Store operation timed out."""
    pass


class ConditionalCheckFailedError(StoreError):
    """A conditional write found the item in an unexpected state.

    Attributes:
        table: Logical table name
        partition_key: Partition key of the item
        sort_key: Sort key of the item
    """

    def __init__(self, table: str, partition_key: str, sort_key: str) -> None:
        super().__init__(f"Conditional write failed for {table}/{partition_key}/{sort_key}")
        self.table = table
        self.partition_key = partition_key
        self.sort_key = sort_key


def tenant_partition(tenant_id: str, api_id: str) -> str:
    """Partition key isolating one tenant's API."""
    return f"{tenant_id}:{api_id}"


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for durable record store backends.

    Example:
        >>> store = DynamoDbRecordStore(config)
        >>> await store.connect()
        >>> await store.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", item)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the backend connection."""
        ...

    @abstractmethod
    async def put_if_absent(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        """Write ``item`` only if no item exists at the key.

        Raises:
            ConditionalCheckFailedError: If the key is taken
        """
        ...

    @abstractmethod
    async def put_if_match(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
        expected: Mapping[str, str],
    ) -> None:
        """Overwrite the item only if it exists and matches ``expected``.

        Args:
            expected: Top-level attribute values that must hold (e.g. status)

        Raises:
            ConditionalCheckFailedError: If the item is missing or differs
        """
        ...

    @abstractmethod
    async def put(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        """Unconditionally write ``item``."""
        ...

    @abstractmethod
    async def get(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
    ) -> Optional[Dict[str, Any]]:
        """Fetch one item, or None."""
        ...

    @abstractmethod
    async def query(self, table: str, partition_key: str) -> List[Dict[str, Any]]:
        """Fetch every item in a partition."""
        ...

    @abstractmethod
    async def scan(self, table: str) -> List[Dict[str, Any]]:
        """Fetch every item in a table."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...
