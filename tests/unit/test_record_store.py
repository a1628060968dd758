"""
Unit tests for the record and specification stores.

Tests cover:
- In-memory conditional writes
- DynamoDB request shapes, pagination and error mapping (fake client)
- S3 specification storage (fake client)
"""

import asyncio
import json

import pytest
from botocore.exceptions import ClientError

from apitize.versioning_server.config import DynamoDbConfig, S3Config
from apitize.versioning_server.specs import (
    BlobNotFoundError,
    BlobStoreError,
    InMemorySpecificationStore,
    S3SpecificationStore,
    canonical_bytes,
)
from apitize.versioning_server.store import (
    VERSIONS_TABLE,
    ConditionalCheckFailedError,
    DynamoDbRecordStore,
    InMemoryRecordStore,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    tenant_partition,
)


def client_error(code, operation="PutItem"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


class TestInMemoryRecordStore:
    """Tests for InMemoryRecordStore."""

    @pytest.mark.asyncio
    async def test_put_if_absent_once(self, records):
        await records.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "draft"})

        with pytest.raises(ConditionalCheckFailedError) as exc_info:
            await records.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "x"})

        assert exc_info.value.sort_key == "1.0.0"
        assert await records.get(VERSIONS_TABLE, "t1:orders", "1.0.0") == {"status": "draft"}

    @pytest.mark.asyncio
    async def test_put_if_match(self, records):
        await records.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "draft"})

        await records.put_if_match(
            VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "published"}, {"status": "draft"}
        )
        with pytest.raises(ConditionalCheckFailedError):
            await records.put_if_match(
                VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "retired"}, {"status": "draft"}
            )

        assert (await records.get(VERSIONS_TABLE, "t1:orders", "1.0.0"))["status"] == "published"

    @pytest.mark.asyncio
    async def test_put_if_match_missing_item(self, records):
        with pytest.raises(ConditionalCheckFailedError):
            await records.put_if_match(VERSIONS_TABLE, "t1:orders", "9.9.9", {}, {"status": "x"})

    @pytest.mark.asyncio
    async def test_concurrent_creates_single_winner(self, records):
        results = await asyncio.gather(
            *(
                records.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"n": n})
                for n in range(5)
            ),
            return_exceptions=True,
        )

        assert sum(r is None for r in results) == 1
        assert records.get_item_count(VERSIONS_TABLE) == 1

    @pytest.mark.asyncio
    async def test_query_is_partition_scoped(self, records):
        await records.put(VERSIONS_TABLE, tenant_partition("t1", "orders"), "1.0.0", {"v": 1})
        await records.put(VERSIONS_TABLE, tenant_partition("t2", "orders"), "1.0.0", {"v": 2})

        assert await records.query(VERSIONS_TABLE, "t1:orders") == [{"v": 1}]
        assert len(await records.scan(VERSIONS_TABLE)) == 2

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, records):
        await records.put(VERSIONS_TABLE, "t1:orders", "1.0.0", {"tags": ["a"]})

        item = await records.get(VERSIONS_TABLE, "t1:orders", "1.0.0")
        item["tags"].append("b")

        assert (await records.get(VERSIONS_TABLE, "t1:orders", "1.0.0"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_requires_connect(self):
        with pytest.raises(StoreConnectionError):
            await InMemoryRecordStore().get(VERSIONS_TABLE, "t1:orders", "1.0.0")


class FakeDynamoClient:
    """Records DynamoDB calls and replays queued responses or errors."""

    def __init__(self):
        self.calls = []
        self.responses = []

    def queue(self, response):
        self.responses.append(response)

    async def _respond(self, name, kwargs):
        self.calls.append((name, kwargs))
        if not self.responses:
            return {}
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def put_item(self, **kwargs):
        return await self._respond("put_item", kwargs)

    async def get_item(self, **kwargs):
        return await self._respond("get_item", kwargs)

    async def query(self, **kwargs):
        return await self._respond("query", kwargs)

    async def scan(self, **kwargs):
        return await self._respond("scan", kwargs)

    async def describe_table(self, **kwargs):
        return await self._respond("describe_table", kwargs)


class SlowDynamoClient(FakeDynamoClient):
    async def get_item(self, **kwargs):
        await asyncio.sleep(1)
        return {}


def raw_item(pk, sk, body):
    return {
        "pk": {"S": pk},
        "sk": {"S": sk},
        "body": {"S": json.dumps(body)},
    }


class TestDynamoDbRecordStore:
    """Tests for DynamoDbRecordStore with an injected client."""

    @pytest.fixture
    def client(self):
        return FakeDynamoClient()

    @pytest.fixture
    def store(self, client):
        return DynamoDbRecordStore(DynamoDbConfig(table_prefix="test"), client=client)

    def test_injected_client_counts_as_connected(self, store):
        assert store.is_connected
        assert store.table_name(VERSIONS_TABLE) == "test-api-versions"

    @pytest.mark.asyncio
    async def test_put_if_absent_request(self, store, client):
        await store.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "draft"})

        name, kwargs = client.calls[0]
        assert name == "put_item"
        assert kwargs["TableName"] == "test-api-versions"
        assert kwargs["ConditionExpression"] == "attribute_not_exists(pk)"
        assert kwargs["Item"]["pk"] == {"S": "t1:orders"}
        assert kwargs["Item"]["status"] == {"S": "draft"}
        assert json.loads(kwargs["Item"]["body"]["S"]) == {"status": "draft"}

    @pytest.mark.asyncio
    async def test_condition_failure_maps(self, store, client):
        client.queue(client_error("ConditionalCheckFailedException"))

        with pytest.raises(ConditionalCheckFailedError) as exc_info:
            await store.put_if_absent(VERSIONS_TABLE, "t1:orders", "1.0.0", {"status": "draft"})

        assert exc_info.value.table == VERSIONS_TABLE

    @pytest.mark.asyncio
    async def test_put_if_match_request(self, store, client):
        await store.put_if_match(
            VERSIONS_TABLE,
            "t1:orders",
            "1.0.0",
            {"status": "published"},
            {"status": "draft"},
        )

        _, kwargs = client.calls[0]
        assert kwargs["ConditionExpression"] == "attribute_exists(#pk) AND #a0 = :v0"
        assert kwargs["ExpressionAttributeNames"] == {"#pk": "pk", "#a0": "status"}
        assert kwargs["ExpressionAttributeValues"] == {":v0": {"S": "draft"}}

    @pytest.mark.asyncio
    async def test_put_if_match_rejects_unindexed_attribute(self, store):
        with pytest.raises(StoreError):
            await store.put_if_match(VERSIONS_TABLE, "t1:orders", "1.0.0", {}, {"owner": "x"})

    @pytest.mark.asyncio
    async def test_throttling_maps_to_timeout(self, store, client):
        client.queue(client_error("ThrottlingException"))
        with pytest.raises(StoreTimeoutError):
            await store.put(VERSIONS_TABLE, "t1:orders", "1.0.0", {})

    @pytest.mark.asyncio
    async def test_other_client_errors(self, store, client):
        client.queue(client_error("ResourceNotFoundException", "GetItem"))
        with pytest.raises(StoreError):
            await store.get(VERSIONS_TABLE, "t1:orders", "1.0.0")

    @pytest.mark.asyncio
    async def test_call_timeout(self):
        store = DynamoDbRecordStore(
            DynamoDbConfig(table_prefix="test", timeout_seconds=0.01),
            client=SlowDynamoClient(),
        )
        with pytest.raises(StoreTimeoutError):
            await store.get(VERSIONS_TABLE, "t1:orders", "1.0.0")

    @pytest.mark.asyncio
    async def test_get_decodes_body(self, store, client):
        client.queue({"Item": raw_item("t1:orders", "1.0.0", {"version": "1.0.0"})})

        assert await store.get(VERSIONS_TABLE, "t1:orders", "1.0.0") == {"version": "1.0.0"}
        assert client.calls[0][1]["ConsistentRead"] is True

    @pytest.mark.asyncio
    async def test_get_missing(self, store, client):
        client.queue({})
        assert await store.get(VERSIONS_TABLE, "t1:orders", "1.0.0") is None

    @pytest.mark.asyncio
    async def test_query_follows_pagination(self, store, client):
        client.queue({
            "Items": [raw_item("t1:orders", "1.0.0", {"v": 1})],
            "LastEvaluatedKey": {"pk": {"S": "t1:orders"}, "sk": {"S": "1.0.0"}},
        })
        client.queue({"Items": [raw_item("t1:orders", "2.0.0", {"v": 2})]})

        items = await store.query(VERSIONS_TABLE, "t1:orders")

        assert items == [{"v": 1}, {"v": 2}]
        assert "ExclusiveStartKey" not in client.calls[0][1]
        assert client.calls[1][1]["ExclusiveStartKey"]["sk"] == {"S": "1.0.0"}

    @pytest.mark.asyncio
    async def test_malformed_item(self, store, client):
        client.queue({"Items": [{"pk": {"S": "t1:orders"}}]})
        with pytest.raises(StoreError):
            await store.scan(VERSIONS_TABLE)

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self, store, client):
        await store.close()
        assert not store.is_connected


class FakeBody:
    def __init__(self, content):
        self.content = content

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self):
        return self.content


class FakeS3Client:
    """Dict-backed stand-in for the S3 object API."""

    def __init__(self):
        self.objects = {}
        self.metadata = {}

    async def put_object(self, Bucket, Key, Body, ContentType, Metadata):
        self.objects[Key] = Body
        self.metadata[Key] = Metadata
        return {}

    async def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": FakeBody(self.objects[Key])}


class TestSpecificationStores:
    """Tests for the specification stores."""

    DOCUMENT = {"openapi": "3.0.0", "info": {"title": "Orders", "version": "1.0.0"}}

    def test_canonical_bytes_ignore_key_order(self):
        assert canonical_bytes({"b": 1, "a": 2}) == canonical_bytes({"a": 2, "b": 1})

    @pytest.mark.asyncio
    async def test_memory_round_trip(self, specs):
        key = await specs.put_specification("t1", "orders", "1.0.0", self.DOCUMENT)

        assert key.startswith("api-specifications/t1/orders/1.0.0/")
        assert await specs.get_specification(key) == self.DOCUMENT

    @pytest.mark.asyncio
    async def test_memory_missing(self):
        with pytest.raises(BlobNotFoundError):
            await InMemorySpecificationStore().get_specification("nope")

    @pytest.mark.asyncio
    async def test_s3_put_and_get(self):
        client = FakeS3Client()
        store = S3SpecificationStore(S3Config(bucket="specs"), client=client)

        key = await store.put_specification("t1", "orders", "1.0.0", self.DOCUMENT)

        assert client.metadata[key]["tenant-id"] == "t1"
        assert client.metadata[key]["checksum"].startswith("sha256:")
        assert await store.get_specification(key) == self.DOCUMENT

    @pytest.mark.asyncio
    async def test_s3_missing_key(self):
        store = S3SpecificationStore(S3Config(bucket="specs"), client=FakeS3Client())
        with pytest.raises(BlobNotFoundError):
            await store.get_specification("api-specifications/t1/orders/1.0.0/x.json")

    @pytest.mark.asyncio
    async def test_s3_corrupt_blob(self):
        client = FakeS3Client()
        client.objects["bad"] = b"{not json"
        store = S3SpecificationStore(S3Config(bucket="specs"), client=client)

        with pytest.raises(BlobStoreError):
            await store.get_specification("bad")

    @pytest.mark.asyncio
    async def test_s3_requires_client(self):
        store = S3SpecificationStore(S3Config(bucket="specs"))
        with pytest.raises(BlobStoreError):
            await store.get_specification("x")
