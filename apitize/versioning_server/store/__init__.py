"""
Durable record store abstraction.

This module provides a pluggable store backend interface supporting:
- AWS DynamoDB (production)
- In-memory (for testing)

Version records, lifecycle policies and migration plans are all kept in
a record store, one logical table each.

Invariants:
    - Uniqueness is enforced with a single conditional write
    - Status transitions are compare-and-swap on the stored status
    - Items are JSON-serializable dictionaries

How to change safely:
    - New backends must implement the RecordStore protocol
    - Keep the conditional-write semantics identical across backends
"""

from .base import (
    MIGRATIONS_TABLE,
    POLICIES_TABLE,
    VERSIONS_TABLE,
    ConditionalCheckFailedError,
    RecordStore,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    tenant_partition,
)
from .dynamodb import DynamoDbRecordStore
from .memory import InMemoryRecordStore

__all__ = [
    # Protocol and types
    "RecordStore",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "ConditionalCheckFailedError",
    "tenant_partition",
    # Tables
    "VERSIONS_TABLE",
    "POLICIES_TABLE",
    "MIGRATIONS_TABLE",
    # Implementations
    "DynamoDbRecordStore",
    "InMemoryRecordStore",
]
