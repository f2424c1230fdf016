import datetime
from collections import Counter

import pytest

from listings_app.config import Settings
from listings_app.metrics import metrics
from listings_app.service import ListingService
from listings_app.store import InMemoryDocumentStore


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class CountingStore(InMemoryDocumentStore):
    """In-memory store that counts calls and can hold reads open or fail them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = Counter()
        self.gate = None  # asyncio.Event; reads wait on it when set
        self.fail_with = None

    async def _after_read(self, op):
        # the result was read before the gate: a held read returns a snapshot
        self.calls[op] += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def fetch_all(self):
        result = await super().fetch_all()
        await self._after_read("fetch_all")
        return result

    async def fetch_by_id(self, listing_id):
        result = await super().fetch_by_id(listing_id)
        await self._after_read("fetch_by_id")
        return result

    async def fetch_filtered(self, filters):
        result = await super().fetch_filtered(filters)
        await self._after_read("fetch_filtered")
        return result

    async def fetch_page(self, page_size, cursor=None, status=None):
        result = await super().fetch_page(page_size, cursor, status)
        await self._after_read("fetch_page")
        return result


def _ts(day: int) -> str:
    return datetime.datetime(2024, 1, day, tzinfo=datetime.timezone.utc).isoformat()


SAMPLE_LISTINGS = [
    {
        "id": "41",
        "title": "Corner Office Suite",
        "price": 850000,
        "location": "Kuala Lumpur",
        "category": "Office",
        "type": "SALE",
        "landSize": "1,800 sq ft",
        "featured": True,
        "status": "active",
        "description": "Bright corner unit near the LRT.",
        "createdAt": _ts(1),
    },
    {
        "id": "42",
        "title": "Industrial Warehouse",
        "price": 1200000,
        "location": "Shah Alam",
        "category": "Industrial",
        "type": "SALE",
        "landSize": "12,000 sq ft",
        "featured": False,
        "status": "active",
        "description": "High ceilings, heavy floor load.",
        "createdAt": _ts(2),
    },
    {
        "id": "43",
        "title": "Agricultural Land",
        "price": 300000,
        "location": "Kajang",
        "category": "Land",
        "type": "RENT",
        "landSize": "2 acres",
        "featured": True,
        "status": "active",
        "createdAt": _ts(3),
    },
    {
        "id": "44",
        "title": "Retail Shoplot",
        "price": 4500,
        "location": "Petaling Jaya",
        "category": "Commercial",
        "type": "RENT",
        "landSize": "1,400 sq ft",
        "featured": True,
        "status": "sold",
        "createdAt": _ts(4),
    },
]


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return CountingStore(SAMPLE_LISTINGS)


@pytest.fixture
def config():
    return Settings(
        listings_ttl_seconds=300,
        listing_ttl_seconds=600,
        paginated_ttl_seconds=180,
        inflight_timeout_seconds=None,
        strict_cache_keys=True,
    )


@pytest.fixture
def service(store, config, clock):
    return ListingService(store, config=config, clock=clock)
