"""Utility helpers for Shopify ids and request batching."""

from __future__ import annotations

from typing import Iterable, Iterator, List, TypeVar, Union

T = TypeVar("T")

GID_PREFIX = "gid://shopify/"


def to_gid(resource: str, value: Union[int, str]) -> str:
    """Build a GraphQL GID (``gid://shopify/InventoryItem/123``) from a legacy id.

    Values that are already GIDs are returned unchanged.
    """
    value = str(value).strip()
    if value.startswith(GID_PREFIX):
        return value
    return f"{GID_PREFIX}{resource}/{value}"


def legacy_id(value: Union[int, str, None]) -> str:
    """Return the trailing numeric id of a GID, or the value itself as a string."""
    if value is None:
        return ""
    value = str(value).strip()
    if value.startswith(GID_PREFIX):
        # Strip any query string Shopify may append (e.g. ?inventory_item_id=...)
        return value.rsplit("/", 1)[-1].split("?", 1)[0]
    return value


def normalize_sku(sku: object) -> str:
    """Trim a SKU for use as a lookup key; ``None`` becomes an empty string."""
    if sku is None:
        return ""
    return str(sku).strip()


def sku_search_query(sku: str) -> str:
    """Shopify search syntax for an exact SKU term; quotes keep spaces and dashes intact."""
    escaped = sku.replace("\\", "\\\\").replace('"', '\\"')
    return f'sku:"{escaped}"'


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield lists of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch
