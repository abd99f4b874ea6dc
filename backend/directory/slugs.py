"""Route slugs for devices.

A slug is the brand name and the model name, lower-cased, with every run of
whitespace replaced by a hyphen, joined by a hyphen:

    >>> generate_route_slug("Joule", "Victorum")
    'joule-victorum'

Slugs are not stored. Resolving one means finding the brand whose encoded name
prefixes the slug, then the model of that brand whose full slug matches. When
one brand's encoded name is a prefix of another's ("Ice" and "Ice Age"), the
first brand in store order wins.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol, TypeVar

_WHITESPACE = re.compile(r"\s+")


class _Named(Protocol):
    name: str


BrandT = TypeVar("BrandT", bound=_Named)
ModelT = TypeVar("ModelT", bound=_Named)


def slugify_name(name: str) -> str:
    """Lower-case ``name`` and replace each whitespace run with a hyphen."""
    return _WHITESPACE.sub("-", name.lower())


def generate_route_slug(brand_name: str, model_name: str) -> str:
    return f"{slugify_name(brand_name)}-{slugify_name(model_name)}"


def has_brand_and_model(slug: str) -> bool:
    """A slug needs at least one hyphen to hold both a brand and a model part."""
    return len(slug.split("-")) >= 2


def brand_prefix(brand_name: str) -> str:
    return slugify_name(brand_name) + "-"


def match_brand(slug: str, brands: Iterable[BrandT]) -> BrandT | None:
    """Return the first brand whose encoded name prefixes ``slug``."""
    for brand in brands:
        if slug.startswith(brand_prefix(brand.name)):
            return brand
    return None


def match_model(slug: str, brand_name: str, models: Iterable[ModelT]) -> ModelT | None:
    """Return the model whose full route slug under ``brand_name`` equals ``slug``."""
    for model in models:
        if generate_route_slug(brand_name, model.name) == slug:
            return model
    return None


__all__ = [
    "brand_prefix",
    "generate_route_slug",
    "has_brand_and_model",
    "match_brand",
    "match_model",
    "slugify_name",
]
