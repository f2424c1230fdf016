from __future__ import annotations

from typing import Callable, Optional, Sequence

from listings_app.cache import TTLCache
from listings_app.coalesce import RequestCoalescer
from listings_app.logs import get_logger
from listings_app.metrics import metrics

logger = get_logger("listings.invalidation")


class InvalidationCoordinator:
    """
    Clears cached views of listings after a successful write.

    List-level caches are never keyed by id and any of their entries could have
    matched the written listing, so they are always cleared. The item cache loses
    only the written id, or everything when the id is unknown.

    In-flight reads are detached and the generation is bumped: a fetch that
    started before the write must not be joined by later readers, and its result
    must not be stored when it lands.
    """

    def __init__(
        self,
        list_caches: Sequence[TTLCache],
        item_cache: TTLCache,
        item_key: Callable[[str], str],
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self.list_caches = list(list_caches)
        self.item_cache = item_cache
        self.item_key = item_key
        self.coalescer = coalescer
        self.generation = 0

    def invalidate(self, listing_id: Optional[str] = None) -> None:
        self.generation += 1
        for cache in self.list_caches:
            cache.clear()
        if listing_id:
            self.item_cache.delete(self.item_key(listing_id))
        else:
            self.item_cache.clear()
        detached = self.coalescer.forget() if self.coalescer is not None else 0

        metrics.inc("cache.invalidations")
        logger.info(
            "Listing caches invalidated",
            listing_id=listing_id,
            generation=self.generation,
            detached_requests=detached,
        )
