# listings_app/service.py
from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from listings_app.cache import MISSING, TTLCache
from listings_app.coalesce import RequestCoalescer
from listings_app.config import Settings, settings as default_settings
from listings_app.errors import CacheInvalidationError, StoreError
from listings_app.filters import ListingFilters, matches_search
from listings_app.invalidation import InvalidationCoordinator
from listings_app.keys import derive_key, is_cacheable
from listings_app.logs import get_logger
from listings_app.metrics import metrics
from listings_app.models import Listing, ListingCreate, ListingPage, ListingStatus, ListingUpdate
from listings_app.store import DocumentStore

T = TypeVar("T")

logger = get_logger("listings.service")

ALL_LISTINGS_KEY = "listings::all"
MAX_PAGE_SIZE = 50


def listing_key(listing_id: str) -> str:
    return f"listing::{listing_id}"


class ListingService:
    """
    Cache-aware listing data access.

    Reads go TTL cache -> in-flight request table -> document store, and store
    their result on the way back. Writes go straight to the store and, once it
    has accepted them, invalidate every cache entry that could now be stale
    before returning to the caller.
    """

    def __init__(self, store: DocumentStore, config: Optional[Settings] = None, clock: Optional[Callable[[], float]] = None):
        cfg = config or default_settings
        self.store = store
        self.config = cfg
        clock_kw = {"clock": clock} if clock is not None else {}

        self.listings_cache: TTLCache[List[Listing]] = TTLCache("listings", cfg.listings_ttl_seconds, **clock_kw)
        self.listing_cache: TTLCache[Optional[Listing]] = TTLCache("listing", cfg.listing_ttl_seconds, **clock_kw)
        self.paginated_cache: TTLCache[ListingPage] = TTLCache("paginated", cfg.paginated_ttl_seconds, **clock_kw)

        self.coalescer = RequestCoalescer(timeout=cfg.inflight_timeout_seconds)
        self.invalidator = InvalidationCoordinator(
            list_caches=[self.listings_cache, self.paginated_cache],
            item_cache=self.listing_cache,
            item_key=listing_key,
            coalescer=self.coalescer,
        )
        self._sweeper: Optional[asyncio.Task] = None

    # ----------------------------- read-through core -----------------------------

    async def _read_through(
        self,
        cache: TTLCache,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        skip_cache: bool = False,
    ) -> T:
        if not skip_cache:
            cached = cache.get(key)
            if cached is not MISSING:
                metrics.inc(f"cache.hit.{cache.name}")
                return cached
            metrics.inc(f"cache.miss.{cache.name}")

        generation = self.invalidator.generation

        async def load() -> T:
            value = await fetch()
            # a write landed while we were fetching: the value may predate it
            if self.invalidator.generation != generation:
                logger.debug("Dropped fetch result that raced a write", key=key)
            elif is_cacheable(key):
                cache.set(key, value)
            return value

        return await self.coalescer.dedupe(key, load)

    # ----------------------------- reads -----------------------------

    async def get_listings(self, skip_cache: bool = False) -> List[Listing]:
        return await self._read_through(self.listings_cache, ALL_LISTINGS_KEY, self.store.fetch_all, skip_cache)

    async def get_listing_by_id(self, listing_id: str, skip_cache: bool = False) -> Optional[Listing]:
        """None (cached too, as a negative lookup) when the listing does not exist."""
        return await self._read_through(
            self.listing_cache,
            listing_key(listing_id),
            lambda: self.store.fetch_by_id(listing_id),
            skip_cache,
        )

    async def filter_listings(
        self, filters: Union[ListingFilters, Dict[str, Any]], skip_cache: bool = False
    ) -> List[Listing]:
        if not isinstance(filters, ListingFilters):
            filters = ListingFilters.model_validate(filters)
        key = derive_key("filterListings", filters, strict=self.config.strict_cache_keys)
        return await self._read_through(self.listings_cache, key, lambda: self.store.fetch_filtered(filters), skip_cache)

    async def get_listings_paginated(
        self,
        page_size: int = 10,
        cursor: Optional[str] = None,
        status: Optional[str] = None,
        skip_cache: bool = False,
    ) -> ListingPage:
        page_size = max(1, min(MAX_PAGE_SIZE, page_size))
        key = derive_key(
            "paginatedListings",
            {"pageSize": page_size, "pageCursor": cursor, "status": status},
            strict=self.config.strict_cache_keys,
        )
        return await self._read_through(
            self.paginated_cache,
            key,
            lambda: self.store.fetch_page(page_size, cursor, status),
            skip_cache,
        )

    async def get_featured_listings(self, limit: int = 6, skip_cache: bool = False) -> List[Listing]:
        listings = await self.get_listings(skip_cache=skip_cache)
        featured = [l for l in listings if l.featured and l.status == ListingStatus.ACTIVE]
        return featured[:limit]

    async def search_listings(self, query: str, skip_cache: bool = False) -> List[Listing]:
        listings = await self.get_listings(skip_cache=skip_cache)
        return [l for l in listings if matches_search(l, query, include_category=True)]

    async def get_locations(self, skip_cache: bool = False) -> List[str]:
        listings = await self.get_listings(skip_cache=skip_cache)
        return sorted({l.location for l in listings if l.location})

    # ----------------------------- writes -----------------------------

    def _invalidate_after_write(self, listing_id: Optional[str]) -> None:
        try:
            self.invalidator.invalidate(listing_id)
        except Exception as exc:
            logger.error("Cache invalidation failed after write", listing_id=listing_id, error=str(exc))
            raise CacheInvalidationError(listing_id, exc) from exc

    async def _write(self, listing_id: Optional[str], op: Callable[[], Awaitable[T]]) -> T:
        try:
            return await op()
        except StoreError:
            # the store may have applied the write before failing; drop what it could have changed
            self._invalidate_after_write(listing_id)
            raise

    async def create_listing(self, payload: ListingCreate) -> str:
        listing_id = await self._write(None, lambda: self.store.create(payload))
        # a new listing changes every list; no item entry exists for it yet
        self._invalidate_after_write(None)
        logger.info("Listing created", listing_id=listing_id)
        return listing_id

    async def update_listing(self, listing_id: str, updates: Union[ListingUpdate, Dict[str, Any]]) -> bool:
        if not isinstance(updates, ListingUpdate):
            updates = ListingUpdate.model_validate(updates)
        patch = updates.to_patch()
        ok = await self._write(listing_id, lambda: self.store.update(listing_id, patch))
        if ok:
            self._invalidate_after_write(listing_id)
            logger.info("Listing updated", listing_id=listing_id)
        return ok

    async def delete_listing(self, listing_id: str) -> bool:
        ok = await self._write(listing_id, lambda: self.store.delete(listing_id))
        if ok:
            self._invalidate_after_write(listing_id)
            logger.info("Listing deleted", listing_id=listing_id)
        return ok

    async def mark_listing_status(self, listing_id: str, status: str) -> bool:
        if status not in (ListingStatus.SOLD.value, ListingStatus.RENTED.value):
            raise ValueError(f"status must be 'sold' or 'rented', got {status!r}")
        return await self.update_listing(listing_id, ListingUpdate(status=ListingStatus(status)))

    # ----------------------------- cache management -----------------------------

    def invalidate_listing_cache(self, listing_id: Optional[str] = None) -> None:
        self.invalidator.invalidate(listing_id)

    def clear_all_caches(self) -> None:
        """Drop everything, in-flight requests included (logout, forced refresh)."""
        self.invalidator.invalidate(None)
        logger.info("All listing caches cleared")

    def cache_stats(self) -> Dict[str, Any]:
        return {
            "listings": {"size": len(self.listings_cache)},
            "listing": {"size": len(self.listing_cache)},
            "paginated": {"size": len(self.paginated_cache)},
            "in_flight": len(self.coalescer),
        }

    def sweep(self) -> int:
        evicted = sum(c.cleanup() for c in (self.listings_cache, self.listing_cache, self.paginated_cache))
        if evicted:
            metrics.inc("cache.swept", evicted)
        logger.debug("Cache sweep finished", evicted=evicted)
        return evicted

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            interval = self.config.sweep_interval_seconds if interval is None else interval
            self._sweeper = asyncio.create_task(self._sweep_forever(interval), name="listings-cache-sweeper")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
