"""Test helpers shared by unit and integration tests."""

from datetime import datetime, timedelta, timezone


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def openapi(paths=None, schemas=None, version="1.0.0"):
    """Build a minimal OpenAPI document."""
    document = {
        "openapi": "3.0.3",
        "info": {"title": "Orders", "version": version},
        "paths": paths or {},
    }
    if schemas is not None:
        document["components"] = {"schemas": schemas}
    return document


def orders_v1():
    """Baseline orders API used across the compatibility tests."""
    order_ref = {"$ref": "#/components/schemas/Order"}
    return openapi(
        paths={
            "/orders": {
                "get": {
                    "parameters": [{"name": "limit", "in": "query", "required": False}],
                    "responses": {
                        "200": {"content": {"application/json": {"schema": order_ref}}},
                    },
                },
                "post": {
                    "requestBody": {"content": {"application/json": {"schema": order_ref}}},
                    "responses": {"201": {"description": "Created"}},
                },
            },
            "/orders/{id}": {
                "get": {
                    "parameters": [{"name": "id", "in": "path", "required": True}],
                    "responses": {
                        "200": {"content": {"application/json": {"schema": order_ref}}},
                    },
                },
            },
        },
        schemas={
            "Order": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "total": {"type": "number"},
                },
                "required": ["id"],
            },
        },
    )
