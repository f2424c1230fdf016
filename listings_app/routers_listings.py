# listings_app/routers_listings.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from listings_app.filters import ListingFilters
from listings_app.models import ListingCreate, ListingUpdate, StatusChange
from listings_app.service import MAX_PAGE_SIZE, ListingService

router = APIRouter(tags=["listings"])
cache_router = APIRouter(tags=["cache"])


def get_service(request: Request) -> ListingService:
    return request.app.state.listings


def _dump(model):
    return model.model_dump(mode="json", by_alias=True)


# ----------------------------- public reads -----------------------------

@router.get("")
async def list_listings(
    skip_cache: bool = Query(False, description="Bypass the cache and read from the store"),
    svc: ListingService = Depends(get_service),
):
    listings = await svc.get_listings(skip_cache=skip_cache)
    return {"count": len(listings), "listings": [_dump(l) for l in listings]}


@router.get("/featured")
async def featured_listings(
    limit: int = Query(6, ge=1, le=MAX_PAGE_SIZE),
    skip_cache: bool = False,
    svc: ListingService = Depends(get_service),
):
    listings = await svc.get_featured_listings(limit=limit, skip_cache=skip_cache)
    return {"count": len(listings), "listings": [_dump(l) for l in listings]}


@router.get("/search")
async def search_listings(
    q: str = Query(..., min_length=1, description="Matched against title, location, description and category"),
    skip_cache: bool = False,
    svc: ListingService = Depends(get_service),
):
    listings = await svc.search_listings(q, skip_cache=skip_cache)
    return {"query": q, "count": len(listings), "listings": [_dump(l) for l in listings]}


@router.get("/locations")
async def listing_locations(skip_cache: bool = False, svc: ListingService = Depends(get_service)):
    return {"locations": await svc.get_locations(skip_cache=skip_cache)}


@router.get("/page")
async def listings_page(
    page_size: int = Query(10, description="Clamped to 1..50"),
    cursor: Optional[str] = Query(None, description="nextPageCursor from the previous page"),
    status: Optional[str] = None,
    skip_cache: bool = False,
    svc: ListingService = Depends(get_service),
):
    page = await svc.get_listings_paginated(page_size=page_size, cursor=cursor, status=status, skip_cache=skip_cache)
    return _dump(page)


@router.post("/filter")
async def filter_listings(
    filters: ListingFilters,
    skip_cache: bool = False,
    svc: ListingService = Depends(get_service),
):
    listings = await svc.filter_listings(filters, skip_cache=skip_cache)
    return {"count": len(listings), "listings": [_dump(l) for l in listings]}


@router.get("/{listing_id}")
async def get_listing(listing_id: str, skip_cache: bool = False, svc: ListingService = Depends(get_service)):
    listing = await svc.get_listing_by_id(listing_id, skip_cache=skip_cache)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found.")
    return _dump(listing)


# ----------------------------- admin writes -----------------------------

@router.post("", status_code=201)
async def create_listing(payload: ListingCreate, svc: ListingService = Depends(get_service)):
    listing_id = await svc.create_listing(payload)
    return {"id": listing_id}


@router.patch("/{listing_id}")
async def update_listing(listing_id: str, updates: ListingUpdate, svc: ListingService = Depends(get_service)):
    if not await svc.update_listing(listing_id, updates):
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found.")
    return {"id": listing_id, "updated": True}


@router.delete("/{listing_id}", status_code=204)
async def delete_listing(listing_id: str, svc: ListingService = Depends(get_service)):
    if not await svc.delete_listing(listing_id):
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found.")
    return Response(status_code=204)


@router.post("/{listing_id}/status")
async def mark_listing_status(listing_id: str, change: StatusChange, svc: ListingService = Depends(get_service)):
    if not await svc.mark_listing_status(listing_id, change.status):
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found.")
    return {"id": listing_id, "status": change.status}


# ----------------------------- cache ops -----------------------------

@cache_router.get("/stats")
async def cache_stats(svc: ListingService = Depends(get_service)):
    """Entry counts per cache and in-flight request count. Read-only."""
    return svc.cache_stats()


@cache_router.post("/clear")
async def clear_caches(svc: ListingService = Depends(get_service)):
    svc.clear_all_caches()
    return svc.cache_stats()
