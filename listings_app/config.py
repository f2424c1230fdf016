from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()  # loads .env if present


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # document store; no URL means the in-memory store is used
    store_url: str | None = os.getenv("LISTINGS_STORE_URL")
    store_api_key: str | None = os.getenv("LISTINGS_STORE_API_KEY")
    store_collection: str = os.getenv("LISTINGS_STORE_COLLECTION", "listings")
    store_timeout_seconds: float = _env_float("LISTINGS_STORE_TIMEOUT_SECONDS", 15.0)

    # per-cache default TTLs (item lookups are more stable than lists)
    listings_ttl_seconds: float = _env_float("LISTINGS_TTL_SECONDS", 300.0)
    listing_ttl_seconds: float = _env_float("LISTING_TTL_SECONDS", 600.0)
    paginated_ttl_seconds: float = _env_float("PAGINATED_TTL_SECONDS", 180.0)
    sweep_interval_seconds: float = _env_float("CACHE_SWEEP_INTERVAL_SECONDS", 300.0)

    inflight_timeout_seconds: float | None = _env_float("INFLIGHT_TIMEOUT_SECONDS", None)
    strict_cache_keys: bool = _env_bool("STRICT_CACHE_KEYS")
    log_level: str = os.getenv("LOG_LEVEL", "info")


settings = Settings()
