from __future__ import annotations

from typing import Optional


class ListingsError(Exception):
    """Base class for errors raised by the listings data layer."""


class StoreError(ListingsError):
    """A document store call failed (network, remote or decoding error)."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status_code = status_code


class InvalidCursorError(StoreError):
    def __init__(self, cursor: str):
        super().__init__("fetch_page", f"unknown page cursor {cursor!r}")
        self.cursor = cursor


class CacheKeyError(ListingsError, TypeError):
    """Query parameters have no canonical serialization."""


class CacheInvalidationError(ListingsError):
    """
    Raised when a write reached the store but the caches could not be invalidated.
    The mutation must be treated as failed by the caller.
    """

    def __init__(self, listing_id: Optional[str], cause: BaseException):
        target = listing_id if listing_id is not None else "<all>"
        super().__init__(f"cache invalidation failed for listing {target}: {cause}")
        self.listing_id = listing_id
