"""Content fingerprint used as the deduplication key of listings."""

from __future__ import annotations

import hashlib
import math
import re
import unicodedata
from decimal import Decimal, InvalidOperation

FIELD_DELIMITER = "|"

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NON_ALPHA = re.compile(r"[^a-z]")


def _fold(text: str) -> str:
    """Lowercase and drop diacritics so "Rénover" and "renover" compare equal."""

    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower()


def normalize_title(title: str) -> str:
    return _NON_ALNUM.sub("", _fold(title))


def normalize_city(city: str) -> str:
    return _NON_ALPHA.sub("", _fold(city))


def canonical_price(price: Decimal | int | float | str) -> str:
    """Render a price as its shortest plain decimal string (``150000.0`` -> ``150000``)."""

    try:
        value = price if isinstance(price, Decimal) else Decimal(str(price).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid price: {price!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid price: {price!r}")
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal(1))
    return format(normalized, "f")


def canonical_surface(surface: float | int | Decimal | None) -> str:
    if surface is None:
        return ""
    return str(math.floor(surface))


def fingerprint(
    title: str,
    price: Decimal | int | float | str,
    city: str,
    surface: float | int | Decimal | None = None,
) -> str:
    """Return the SHA-256 hex digest of the normalized listing attributes.

    Pure and thread safe; equal normalized inputs always give the same digest.
    """

    normalized = FIELD_DELIMITER.join(
        (
            normalize_title(title),
            canonical_price(price),
            normalize_city(city),
            canonical_surface(surface),
        )
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


__all__ = [
    "FIELD_DELIMITER",
    "canonical_price",
    "canonical_surface",
    "fingerprint",
    "normalize_city",
    "normalize_title",
]
