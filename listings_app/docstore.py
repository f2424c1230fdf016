# listings_app/docstore.py
from __future__ import annotations

import datetime
import time
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from listings_app.errors import InvalidCursorError, StoreError
from listings_app.filters import ListingFilters, apply_filters
from listings_app.logs import get_logger
from listings_app.metrics import metrics
from listings_app.models import Listing, ListingCreate, ListingPage, ListingStatus
from listings_app.store import DocumentStore

logger = get_logger("listings.docstore")

ORDER_NEWEST_FIRST = "createdAt desc"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code >= 500 or code == 429
    return False


def _never_sent(exc: BaseException) -> bool:
    # a write is only safe to repeat when it cannot have reached the server
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


class HttpDocumentStore(DocumentStore):
    """
    Thin, resilient wrapper around a REST document API.
    - One collection per store; documents are camelCase JSON with an "id" field
    - Reads retry transport errors, 5xx and 429 with jittered exponential backoff
    - Writes retry only when the connection was never made
    - Per-request timeout; a hung call surfaces as StoreError, never hangs the cache
    - 404 on a single document maps to None / False, never to an exception
    """

    def __init__(
        self,
        base_url: str,
        collection: str = "listings",
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.timeout = timeout
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        self._transport = transport

    # ----------------------------- internals -----------------------------

    def _path(self, listing_id: Optional[str] = None) -> str:
        return f"/{self.collection}" if listing_id is None else f"/{self.collection}/{listing_id}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers, timeout=self.timeout, transport=self._transport
        ) as c:
            r = await c.request(method, path, **kwargs)
        if r.status_code != 404:
            r.raise_for_status()
        return r

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential_jitter(initial=0.5, max=8),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._request(method, path, **kwargs)

    @retry(
        retry=retry_if_exception(_never_sent),
        wait=wait_exponential_jitter(initial=0.5, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _send_write(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._request(method, path, **kwargs)

    async def _call(self, op: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        t0 = time.perf_counter()
        try:
            send = self._send if method == "GET" else self._send_write
            return await send(method, path, **kwargs)
        except httpx.HTTPStatusError as exc:
            metrics.inc(f"store.{op}.errors")
            logger.error("Document store call failed", op=op, status=exc.response.status_code)
            raise StoreError(op, str(exc), status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            metrics.inc(f"store.{op}.errors")
            logger.error("Document store unreachable", op=op, error=str(exc))
            raise StoreError(op, str(exc)) from exc
        finally:
            metrics.observe_ms(f"store.{op}.ms", (time.perf_counter() - t0) * 1000)

    @staticmethod
    def _documents(op: str, r: httpx.Response) -> List[Listing]:
        try:
            return [Listing.model_validate(d) for d in r.json().get("documents", [])]
        except (ValueError, AttributeError) as exc:
            raise StoreError(op, f"malformed listing documents: {exc}") from exc

    @staticmethod
    def _now() -> str:
        return datetime.datetime.now(datetime.timezone.utc).isoformat()

    # ----------------------------- reads -----------------------------

    async def fetch_all(self) -> List[Listing]:
        r = await self._call("fetch_all", "GET", self._path(), params={"orderBy": ORDER_NEWEST_FIRST})
        if r.status_code == 404:
            raise StoreError("fetch_all", f"collection {self.collection!r} not found", status_code=404)
        return self._documents("fetch_all", r)

    async def fetch_by_id(self, listing_id: str) -> Optional[Listing]:
        r = await self._call("fetch_by_id", "GET", self._path(listing_id))
        if r.status_code == 404:
            return None
        try:
            return Listing.model_validate({**r.json(), "id": listing_id})
        except ValueError as exc:
            raise StoreError("fetch_by_id", f"malformed listing document: {exc}") from exc

    async def fetch_filtered(self, filters: ListingFilters) -> List[Listing]:
        # server-side status filter only; the rest runs locally so no composite index is needed
        params = {"status": ListingStatus.ACTIVE.value, "orderBy": ORDER_NEWEST_FIRST}
        r = await self._call("fetch_filtered", "GET", self._path(), params=params)
        if r.status_code == 404:
            raise StoreError("fetch_filtered", f"collection {self.collection!r} not found", status_code=404)
        return apply_filters(self._documents("fetch_filtered", r), filters)

    async def fetch_page(self, page_size: int, cursor: Optional[str] = None, status: Optional[str] = None) -> ListingPage:
        params: Dict[str, Any] = {"orderBy": ORDER_NEWEST_FIRST, "limit": page_size}
        if status:
            params["status"] = status
        if cursor:
            params["startAfter"] = cursor
        r = await self._call("fetch_page", "GET", self._path(), params=params)
        if r.status_code == 404:
            if cursor:
                raise InvalidCursorError(cursor)
            raise StoreError("fetch_page", f"collection {self.collection!r} not found", status_code=404)
        listings = self._documents("fetch_page", r)
        has_more = len(listings) == page_size
        return ListingPage(
            listings=listings,
            has_more=has_more,
            next_page_cursor=listings[-1].id if has_more and listings else None,
        )

    # ----------------------------- writes -----------------------------

    async def create(self, payload: ListingCreate) -> str:
        now = self._now()
        doc = {**payload.to_document(), "createdAt": now, "updatedAt": now}
        r = await self._call("create", "POST", self._path(), json=doc)
        try:
            return str(r.json()["id"])
        except (ValueError, KeyError) as exc:
            raise StoreError("create", "response carried no document id") from exc

    async def update(self, listing_id: str, patch: Dict[str, Any]) -> bool:
        r = await self._call("update", "PATCH", self._path(listing_id), json={**patch, "updatedAt": self._now()})
        return r.status_code != 404

    async def delete(self, listing_id: str) -> bool:
        r = await self._call("delete", "DELETE", self._path(listing_id))
        return r.status_code != 404
