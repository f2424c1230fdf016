# listings_app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from listings_app.__about__ import __app_name__, __version__
from listings_app.config import Settings, settings
from listings_app.docstore import HttpDocumentStore
from listings_app.errors import CacheInvalidationError, CacheKeyError, InvalidCursorError, StoreError
from listings_app.logs import configure_logging, get_logger
from listings_app.metrics import metrics
from listings_app.obs import RequestObservability
from listings_app.routers_listings import cache_router, router as listings_router
from listings_app.service import ListingService
from listings_app.store import DocumentStore, InMemoryDocumentStore

logger = get_logger("listings.app")


def build_store(config: Settings) -> DocumentStore:
    if not config.store_url:
        logger.warning("LISTINGS_STORE_URL not set; using the in-memory document store")
        return InMemoryDocumentStore()
    return HttpDocumentStore(
        base_url=config.store_url,
        collection=config.store_collection,
        api_key=config.store_api_key,
        timeout=config.store_timeout_seconds,
    )


def create_app(store: Optional[DocumentStore] = None, config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # one service (and one set of caches) per process
        service = ListingService(store or build_store(config), config=config)
        app.state.listings = service
        service.start_sweeper()
        logger.info("Listings service started", version=__version__)
        try:
            yield
        finally:
            await service.stop_sweeper()

    app = FastAPI(
        title="Property Listings API",
        version=__version__,
        description="Cached listing reads and admin writes over a remote document store.",
        lifespan=lifespan,
    )
    app.add_middleware(RequestObservability)

    # ---------------------- Error mapping ----------------------
    @app.exception_handler(InvalidCursorError)
    async def invalid_cursor(request: Request, exc: InvalidCursorError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_failed(request: Request, exc: StoreError):
        return JSONResponse(status_code=502, content={"detail": f"Document store error: {exc}"})

    @app.exception_handler(CacheKeyError)
    async def bad_cache_key(request: Request, exc: CacheKeyError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(CacheInvalidationError)
    async def invalidation_failed(request: Request, exc: CacheInvalidationError):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # ---------------------- Health endpoint ----------------------
    @app.get("/health")
    def health():
        """
        Operational heartbeat. Confirms config wiring without leaking secrets.
        """
        return {
            "app": __app_name__,
            "version": __version__,
            "store": "http" if config.store_url else "memory",
            "store_key_loaded": bool(config.store_api_key),
            "strict_cache_keys": config.strict_cache_keys,
            "status": "ok",
        }

    # ---------------------- Metrics endpoint (JSON snapshot) ----------------------
    @app.get("/_metrics")
    def get_metrics():
        """
        Counters (cache hits/misses, coalesced requests, invalidations) + p95 latency.
        """
        return metrics.snapshot()

    # ---------------------- API routers ----------------------
    app.include_router(listings_router, prefix="/listings")
    app.include_router(cache_router, prefix="/_cache")
    return app


app = create_app()
