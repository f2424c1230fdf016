# listings_app/store.py
from __future__ import annotations

import asyncio
import datetime
import itertools
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from listings_app.errors import InvalidCursorError
from listings_app.filters import ListingFilters, apply_filters
from listings_app.models import Listing, ListingCreate, ListingPage, ListingStatus


class DocumentStore(ABC):
    """
    Remote home of listing documents. Every call may be slow and may fail;
    implementations own their own timeouts and retry policy.
    """

    @abstractmethod
    async def fetch_all(self) -> List[Listing]:
        """All listings in the collection, newest first."""

    @abstractmethod
    async def fetch_by_id(self, listing_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def fetch_filtered(self, filters: ListingFilters) -> List[Listing]:
        """Active listings matching `filters`, newest first."""

    @abstractmethod
    async def fetch_page(self, page_size: int, cursor: Optional[str] = None, status: Optional[str] = None) -> ListingPage:
        """One page, newest first, starting after the listing whose id is `cursor`."""

    @abstractmethod
    async def create(self, payload: ListingCreate) -> str:
        ...

    @abstractmethod
    async def update(self, listing_id: str, patch: Dict[str, Any]) -> bool:
        """Apply a camelCase partial document; False when the listing does not exist."""

    @abstractmethod
    async def delete(self, listing_id: str) -> bool:
        ...


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and tests. Yields to the loop on every call."""

    def __init__(
        self,
        listings: Iterable[Union[Listing, Dict[str, Any]]] = (),
        now: Callable[[], datetime.datetime] = _utcnow,
    ):
        self._now = now
        self._seq = itertools.count()
        self._docs: Dict[str, Listing] = {}
        self._order: Dict[str, int] = {}
        for item in listings:
            listing = item if isinstance(item, Listing) else Listing.model_validate(item)
            self._put(listing)

    def __len__(self) -> int:
        return len(self._docs)

    def _put(self, listing: Listing) -> None:
        if listing.id not in self._order:
            self._order[listing.id] = next(self._seq)
        self._docs[listing.id] = listing

    def _newest_first(self) -> List[Listing]:
        epoch = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)

        def sort_key(l: Listing):
            created = l.created_at or epoch
            if created.tzinfo is None:
                created = created.replace(tzinfo=datetime.timezone.utc)
            return (created, self._order[l.id])

        return sorted(self._docs.values(), key=sort_key, reverse=True)

    async def fetch_all(self) -> List[Listing]:
        await asyncio.sleep(0)
        return self._newest_first()

    async def fetch_by_id(self, listing_id: str) -> Optional[Listing]:
        await asyncio.sleep(0)
        return self._docs.get(listing_id)

    async def fetch_filtered(self, filters: ListingFilters) -> List[Listing]:
        await asyncio.sleep(0)
        active = [l for l in self._newest_first() if l.status == ListingStatus.ACTIVE]
        return apply_filters(active, filters)

    async def fetch_page(self, page_size: int, cursor: Optional[str] = None, status: Optional[str] = None) -> ListingPage:
        await asyncio.sleep(0)
        rows = self._newest_first()
        if status:
            rows = [l for l in rows if l.status.value == status]
        if cursor:
            ids = [l.id for l in rows]
            if cursor not in ids:
                raise InvalidCursorError(cursor)
            rows = rows[ids.index(cursor) + 1:]
        page = rows[:page_size]
        has_more = len(page) == page_size
        return ListingPage(
            listings=page,
            has_more=has_more,
            next_page_cursor=page[-1].id if has_more and page else None,
        )

    async def create(self, payload: ListingCreate) -> str:
        await asyncio.sleep(0)
        listing_id = uuid.uuid4().hex[:20]
        now = self._now()
        doc = {**payload.to_document(), "id": listing_id, "createdAt": now, "updatedAt": now}
        self._put(Listing.model_validate(doc))
        return listing_id

    async def update(self, listing_id: str, patch: Dict[str, Any]) -> bool:
        await asyncio.sleep(0)
        current = self._docs.get(listing_id)
        if current is None:
            return False
        doc = {**current.model_dump(by_alias=True), **patch, "id": listing_id, "updatedAt": self._now()}
        self._put(Listing.model_validate(doc))
        return True

    async def delete(self, listing_id: str) -> bool:
        await asyncio.sleep(0)
        if self._docs.pop(listing_id, None) is None:
            return False
        self._order.pop(listing_id, None)
        return True
