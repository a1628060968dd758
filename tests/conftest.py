"""
Shared fixtures for the versioning tests.

Every fixture wires in-memory backends and a controllable clock, so no
test touches AWS or the wall clock.
"""

import pytest
import pytest_asyncio

from apitize.versioning_server.events import EventOutbox
from apitize.versioning_server.service import VersioningService
from apitize.versioning_server.specs import InMemorySpecificationStore
from apitize.versioning_server.store import InMemoryRecordStore
from tests.helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def records():
    """Connected in-memory record store."""
    store = InMemoryRecordStore()
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def specs():
    return InMemorySpecificationStore()


@pytest.fixture
def outbox():
    return EventOutbox()


@pytest.fixture
def service(records, specs, outbox, clock):
    """VersioningService over in-memory backends."""
    return VersioningService(records, specs, outbox, clock=clock)
