"""Mapping from eBay Browse item summaries to storefront product payloads.

The output is the ``product`` body accepted by the destination proxy. The
mapping is total: optional fields fall back to the defaults below rather than
propagating ``None``.
"""
from __future__ import annotations

from collections.abc import Mapping

DEFAULT_TITLE = "Untitled eBay listing"
DEFAULT_DESCRIPTION = "Imported from eBay."
DEFAULT_PRICE = "0.00"
PRODUCT_VENDOR = "Ebayify"
PRODUCT_TYPE = "Imported"
PRODUCT_STATUS = "draft"


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _price(listing: Mapping[str, object]) -> str:
    price = listing.get("price")
    if isinstance(price, Mapping):
        value = _text(price.get("value"))
        if value:
            return value
    return DEFAULT_PRICE


def _images(listing: Mapping[str, object]) -> list[dict[str, str]]:
    image = listing.get("image")
    if isinstance(image, Mapping):
        src = _text(image.get("imageUrl"))
        if src:
            return [{"src": src}]
    return []


def translate_listing(listing: Mapping[str, object]) -> dict[str, object]:
    return {
        "title": _text(listing.get("title")) or DEFAULT_TITLE,
        "body_html": _text(listing.get("shortDescription")) or DEFAULT_DESCRIPTION,
        "vendor": PRODUCT_VENDOR,
        "product_type": PRODUCT_TYPE,
        "status": PRODUCT_STATUS,
        "variants": [{"price": _price(listing), "sku": _text(listing.get("itemId"))}],
        "images": _images(listing),
    }
