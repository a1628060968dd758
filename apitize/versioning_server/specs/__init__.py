"""
Specification blob storage.

- S3 (production)
- In-memory (for testing)
"""

from .base import (
    BlobNotFoundError,
    BlobStoreError,
    BlobTimeoutError,
    SpecificationStore,
    canonical_bytes,
    specification_key,
)
from .memory import InMemorySpecificationStore
from .s3 import S3SpecificationStore

__all__ = [
    "SpecificationStore",
    "BlobStoreError",
    "BlobNotFoundError",
    "BlobTimeoutError",
    "canonical_bytes",
    "specification_key",
    "InMemorySpecificationStore",
    "S3SpecificationStore",
]
