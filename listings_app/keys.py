# listings_app/keys.py
from __future__ import annotations

import datetime
import json
import math
import re
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from listings_app.config import settings
from listings_app.errors import CacheKeyError
from listings_app.logs import get_logger

logger = get_logger("listings.keys")

Params = Union[Mapping[str, Any], BaseModel, None]

ONE_OFF_MARK = "!"

_PLAIN_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _canonical(value: Any) -> Any:
    """
    Reduce a query value to plain JSON types with a single spelling:
    - None inside a mapping means "field absent" and is dropped
    - enums become their value, dates and datetimes ISO-8601 strings
    - sets are sorted; lists and tuples keep their order
    """
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump(mode="python"))
    if isinstance(value, Enum):
        return _canonical(value.value)
    if isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CacheKeyError(f"non-finite float {value!r} in cache key")
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise CacheKeyError(f"non-string field name {k!r} in cache key")
            if v is None:
                continue
            out[k] = _canonical(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical(v) for v in value), key=_dumps)
    raise CacheKeyError(f"cannot derive a cache key from {type(value).__name__} value")


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _field_name(name: str) -> str:
    # quoted names cannot be confused with a separator or with a plain name
    return name if _PLAIN_NAME.fullmatch(name) else _dumps(name)


def is_cacheable(key: str) -> bool:
    """False for the one-off keys handed out for unserializable params."""
    # field names never start with "!", so only one-off keys do
    return not key.partition("::")[2].startswith(ONE_OFF_MARK)


def derive_key(prefix: str, params: Params = None, *, strict: Optional[bool] = None) -> str:
    """
    Build `prefix::field:value|field:value` from a filter mapping or model.

    Field order in the input never matters and None-valued fields are treated as
    absent, so {"a": 1, "b": None} and {"a": 1} share a key. Unserializable
    values raise CacheKeyError when strict; otherwise a one-off key is returned
    so the query is never served from (or stored under) another query's entry.
    """
    strict = settings.strict_cache_keys if strict is None else strict
    try:
        fields = _canonical(params if params is not None else {})
        if not isinstance(fields, dict):
            raise CacheKeyError(f"cache key params must be a mapping, got {type(params).__name__}")
        body = "|".join(f"{_field_name(k)}:{_dumps(fields[k])}" for k in sorted(fields))
    except CacheKeyError as exc:
        if strict:
            raise
        logger.warning("Unserializable cache key params; using a unique key", prefix=prefix, error=str(exc))
        return f"{prefix}::{ONE_OFF_MARK}{uuid.uuid4().hex}"
    return f"{prefix}::{body}"
