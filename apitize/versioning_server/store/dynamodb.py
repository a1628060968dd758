"""
AWS DynamoDB record store implementation.

This module provides the production RecordStore backend. It uses the AWS SDK
(aiobotocore) for async operations.

Item layout (every table):
    pk      S   partition key ("<tenant_id>:<api_id>")
    sk      S   sort key (version string, "policy", or plan id)
    status  S   copy of the body's status, used by conditional writes
    body    S   canonical JSON of the full item

Invariants:
    - put_if_absent uses attribute_not_exists(pk) - one round trip, no race
    - put_if_match conditions on the stored status attribute
    - Every call is bounded by config.timeout_seconds
    - Paginated reads follow LastEvaluatedKey until exhausted

How to change safely:
    - Test with DynamoDB Local or LocalStack before deploying to AWS
    - Never change the item layout without a backfill
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping

from aiobotocore.session import get_session
from botocore.exceptions import ClientError, EndpointConnectionError

from .base import (
    ALL_TABLES,
    ConditionalCheckFailedError,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)

_INDEXED_ATTRIBUTES = ("status",)


class DynamoDbRecordStore:
    """DynamoDB implementation of RecordStore protocol.

    Attributes:
        config: DynamoDbConfig instance
        client: DynamoDB client (created on connect, or injected)

    Example:
        >>> config = DynamoDbConfig(table_prefix="apitize", region="us-east-1")
        >>> store = DynamoDbRecordStore(config)
        >>> await store.connect()
        >>> await store.get("api-versions", "t1:orders", "1.0.0")
    """

    def __init__(self, config: Any, client: Any = None) -> None:
        """Initialize DynamoDB store.

        Args:
            config: DynamoDbConfig instance
            client: Optional pre-built client; the caller keeps ownership
        """
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = client
        self._owns_client = client is None
        self._connected = client is not None

    @property
    def is_connected(self) -> bool:
        """Whether connected to DynamoDB."""
        return self._connected

    def table_name(self, table: str) -> str:
        """Physical table name for a logical table."""
        return f"{self.config.table_prefix}-{table}"

    async def connect(self) -> None:
        """Connect to DynamoDB and verify the tables exist.

        Raises:
            StoreConnectionError: If connection fails or a table is missing
        """
        if self._connected:
            return

        try:
            self._session = get_session()

            client_config = {
                "region_name": self.config.region,
            }
            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url

            self._client_ctx = self._session.create_client("dynamodb", **client_config)
            self._client = await self._client_ctx.__aenter__()

            for table in ALL_TABLES:
                await self._call(self._client.describe_table, TableName=self.table_name(table))

            self._connected = True
            logger.info(
                "Connected to DynamoDB",
                extra={
                    "table_prefix": self.config.table_prefix,
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except EndpointConnectionError as e:
            await self.close()
            raise StoreConnectionError(f"Failed to connect to DynamoDB endpoint: {e}") from e
        except StoreError as e:
            await self.close()
            raise StoreConnectionError(f"DynamoDB table check failed: {e}") from e

    async def close(self) -> None:
        """Close DynamoDB connection."""
        if self._client_ctx is not None and self._owns_client:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")

        if self._owns_client:
            self._client = None
        self._client_ctx = None
        self._session = None
        self._connected = False
        logger.info("DynamoDB connection closed")

    async def put_if_absent(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        try:
            await self._call(
                self._require_client().put_item,
                TableName=self.table_name(table),
                Item=self._encode(partition_key, sort_key, item),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except _ConditionFailed:
            raise ConditionalCheckFailedError(table, partition_key, sort_key)

    async def put_if_match(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
        expected: Mapping[str, str],
    ) -> None:
        names = {"#pk": "pk"}
        values: dict[str, Any] = {}
        clauses = ["attribute_exists(#pk)"]
        for index, (attr, value) in enumerate(sorted(expected.items())):
            if attr not in _INDEXED_ATTRIBUTES:
                raise StoreError(f"Attribute '{attr}' cannot be used in a condition")
            names[f"#a{index}"] = attr
            values[f":v{index}"] = {"S": value}
            clauses.append(f"#a{index} = :v{index}")

        kwargs: dict[str, Any] = {
            "TableName": self.table_name(table),
            "Item": self._encode(partition_key, sort_key, item),
            "ConditionExpression": " AND ".join(clauses),
            "ExpressionAttributeNames": names,
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values

        try:
            await self._call(self._require_client().put_item, **kwargs)
        except _ConditionFailed:
            raise ConditionalCheckFailedError(table, partition_key, sort_key)

    async def put(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
        item: Mapping[str, Any],
    ) -> None:
        await self._call(
            self._require_client().put_item,
            TableName=self.table_name(table),
            Item=self._encode(partition_key, sort_key, item),
        )

    async def get(
        self,
        table: str,
        partition_key: str,
        sort_key: str,
    ) -> dict[str, Any] | None:
        response = await self._call(
            self._require_client().get_item,
            TableName=self.table_name(table),
            Key={"pk": {"S": partition_key}, "sk": {"S": sort_key}},
            ConsistentRead=True,
        )
        raw = response.get("Item")
        return self._decode(raw) if raw else None

    async def query(self, table: str, partition_key: str) -> list[dict[str, Any]]:
        items = []
        start_key = None

        while True:
            kwargs: dict[str, Any] = {
                "TableName": self.table_name(table),
                "KeyConditionExpression": "pk = :pk",
                "ExpressionAttributeValues": {":pk": {"S": partition_key}},
                "ConsistentRead": True,
            }
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key

            response = await self._call(self._require_client().query, **kwargs)
            items.extend(self._decode(raw) for raw in response.get("Items", []))

            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                break

        return items

    async def scan(self, table: str) -> list[dict[str, Any]]:
        items = []
        start_key = None

        while True:
            kwargs: dict[str, Any] = {"TableName": self.table_name(table)}
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key

            response = await self._call(self._require_client().scan, **kwargs)
            items.extend(self._decode(raw) for raw in response.get("Items", []))

            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                break

        return items

    async def health_check(self) -> bool:
        """Check if DynamoDB connection is healthy."""
        if not self._client:
            return False

        try:
            await asyncio.wait_for(
                self._client.describe_table(TableName=self.table_name(ALL_TABLES[0])),
                timeout=5.0,
            )
            return True
        except Exception:
            return False

    def _require_client(self) -> Any:
        if not self._client:
            raise StoreConnectionError("Not connected to DynamoDB")
        return self._client

    async def _call(self, method: Any, **kwargs: Any) -> dict[str, Any]:
        """Run one DynamoDB call under the configured timeout."""
        try:
            return await asyncio.wait_for(method(**kwargs), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            raise StoreTimeoutError(f"DynamoDB {method.__name__} timed out")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ConditionalCheckFailedException":
                raise _ConditionFailed() from e
            if error_code in ("ProvisionedThroughputExceededException", "ThrottlingException"):
                raise StoreTimeoutError("DynamoDB throughput exceeded") from e
            if error_code == "ResourceNotFoundException":
                raise StoreError(f"DynamoDB table not found: {kwargs.get('TableName')}") from e
            raise StoreError(f"DynamoDB {method.__name__} failed: {e}") from e

    @staticmethod
    def _encode(partition_key: str, sort_key: str, item: Mapping[str, Any]) -> dict[str, Any]:
        encoded = {
            "pk": {"S": partition_key},
            "sk": {"S": sort_key},
            "body": {"S": json.dumps(dict(item), sort_keys=True, separators=(",", ":"))},
        }
        for attr in _INDEXED_ATTRIBUTES:
            value = item.get(attr)
            if isinstance(value, str):
                encoded[attr] = {"S": value}
        return encoded

    @staticmethod
    def _decode(raw: Mapping[str, Any]) -> dict[str, Any]:
        try:
            return json.loads(raw["body"]["S"])
        except (KeyError, json.JSONDecodeError) as e:
            raise StoreError(f"Malformed DynamoDB item: {e}") from e


class _ConditionFailed(Exception):
    """Internal marker for ConditionalCheckFailedException."""
