import datetime

import pytest

from listings_app.errors import CacheKeyError
from listings_app.filters import ListingFilters, PriceRange
from listings_app.keys import derive_key, is_cacheable
from listings_app.models import ListingType


def test_field_order_does_not_matter():
    assert derive_key("p", {"a": 1, "b": 2}) == derive_key("p", {"b": 2, "a": 1})
    assert derive_key("p", {"a": 1, "b": 2}) != derive_key("p", {"a": 1, "b": 3})


def test_key_shape():
    assert derive_key("paginatedListings", {"pageSize": 10, "status": "active"}) == (
        'paginatedListings::pageSize:10|status:"active"'
    )
    assert derive_key("listings", {}) == "listings::"


def test_none_fields_are_absent():
    assert derive_key("p", {"a": 1, "cursor": None}) == derive_key("p", {"a": 1})
    assert derive_key("p", {"a": {"x": None, "y": 2}}) == derive_key("p", {"a": {"y": 2}})


def test_nested_mappings_are_key_sorted():
    k1 = derive_key("p", {"range": {"min": 1, "max": 9}})
    k2 = derive_key("p", {"range": {"max": 9, "min": 1}})
    assert k1 == k2


def test_prefix_separates_queries():
    assert derive_key("filterListings", {"a": 1}) != derive_key("paginatedListings", {"a": 1})


def test_value_types_are_distinguished():
    assert derive_key("p", {"a": 1}) != derive_key("p", {"a": "1"})
    assert derive_key("p", {"a": [1, 2]}) != derive_key("p", {"a": [2, 1]})
    assert derive_key("p", {"a": {1, 2, 3}}) == derive_key("p", {"a": {3, 2, 1}})


def test_filter_models_and_dicts_agree():
    model = ListingFilters(listing_type=ListingType.SALE, price_range=PriceRange(min=100))
    as_dict = {"price_range": {"min": 100.0}, "listing_type": "SALE"}
    assert derive_key("filterListings", model) == derive_key("filterListings", as_dict)


def test_equivalent_filters_collide():
    explicit = ListingFilters(category="All", location="all", search_query="  ", price_range={})
    assert derive_key("f", explicit) == derive_key("f", ListingFilters())


def test_datetimes_serialize_as_iso():
    when = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)
    assert derive_key("p", {"after": when}) == 'p::after:"2024-05-01T12:00:00+00:00"'


def test_unserializable_value_fails_loudly_when_strict():
    with pytest.raises(CacheKeyError):
        derive_key("p", {"cb": object()}, strict=True)
    with pytest.raises(CacheKeyError):
        derive_key("p", {"n": float("nan")}, strict=True)


def test_unserializable_value_gets_unique_key_when_lenient():
    k1 = derive_key("p", {"cb": object()}, strict=False)
    k2 = derive_key("p", {"cb": object()}, strict=False)
    assert k1.startswith("p::!")
    assert k1 != k2


def test_field_names_with_separators_cannot_forge_another_key():
    assert derive_key("p", {"a": 1, "b": 2}) == "p::a:1|b:2"
    assert derive_key("p", {"a:1|b": 2}) == 'p::"a:1|b":2'
    assert derive_key("p", {"a": 1, "b": 2}) != derive_key("p", {"a:1|b": 2})


def test_only_one_off_keys_are_uncacheable():
    assert not is_cacheable(derive_key("p", {"cb": object()}, strict=False))
    assert is_cacheable(derive_key("p", {"a": 1}))
    assert is_cacheable(derive_key("p", {"q": "::!x"}))
    assert is_cacheable(derive_key("p", {}))
