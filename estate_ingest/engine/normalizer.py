"""Map source-specific raw records onto the canonical listing attributes."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from ..config import DEFAULT_FIELD_MAP
from ..errors import MalformedPayloadError, RecordNormalizationError
from ..records import ListingDraft
from .fingerprint import normalize_city, normalize_title
from .renovation import detect_renovation_need

REQUIRED_FIELDS = ("title", "price", "city")

# Upper bound for prices and surfaces.
MAX_AMOUNT = Decimal(10) ** 12
PRICE_DECIMALS = 2

_NUMBER_NOISE = re.compile(r"[\s€$£]|euros?|eur|m²|m2", re.IGNORECASE)
_MISSING = object()


def ensure_records(payload: Any) -> list[Mapping[str, Any]]:
    """Validate that a feed payload is a list of mappings."""

    if not isinstance(payload, list):
        raise MalformedPayloadError(
            f"Feed payload must be a list of records, got {type(payload).__name__}"
        )
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            raise MalformedPayloadError(
                f"Feed record #{index} is {type(item).__name__}, expected a mapping"
            )
    return payload


def resolve_path(record: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted path (``location.city``) through nested mappings."""

    current: Any = record
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _parse_decimal(value: Any, field: str, max_decimals: int | None = None) -> Decimal:
    if isinstance(value, bool):
        raise RecordNormalizationError(f"{field} must be numeric", field=field)
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        text = _NUMBER_NOISE.sub("", value)
        if "," in text:
            # French formatting: "150.000,50" / "150000,50"
            text = text.replace(".", "").replace(",", ".")
    else:
        raise RecordNormalizationError(f"{field} must be numeric", field=field)
    try:
        number = Decimal(text)
    except InvalidOperation as exc:
        raise RecordNormalizationError(f"{field} is not a number: {value!r}", field=field) from exc
    if not number.is_finite() or number < 0:
        raise RecordNormalizationError(f"{field} must be a positive number", field=field)
    if number > MAX_AMOUNT:
        raise RecordNormalizationError(f"{field} is out of range: {value!r}", field=field)
    if max_decimals is not None and -number.normalize().as_tuple().exponent > max_decimals:
        raise RecordNormalizationError(f"{field} has too many decimals: {value!r}", field=field)
    return number


def _optional_int(value: Any) -> int | None:
    if value is _MISSING or value in (None, "") or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def _optional_str(value: Any) -> str | None:
    if value is _MISSING or value is None:
        return None
    text = str(value).strip()
    return text or None


class Normalizer:
    """Turn raw feed records into ``ListingDraft`` objects using a field map."""

    def __init__(self, field_map: Mapping[str, str] | None = None) -> None:
        self.field_map = dict(DEFAULT_FIELD_MAP)
        if field_map:
            self.field_map.update(field_map)

    def _get(self, record: Mapping[str, Any], name: str) -> Any:
        return resolve_path(record, self.field_map.get(name, name))

    def normalize(self, record: Mapping[str, Any]) -> ListingDraft:
        for name in REQUIRED_FIELDS:
            value = self._get(record, name)
            if value is _MISSING or value is None or (isinstance(value, str) and not value.strip()):
                raise RecordNormalizationError(f"Missing required field: {name}", field=name)

        title = str(self._get(record, "title")).strip()
        city = str(self._get(record, "city")).strip()
        if not normalize_title(title):
            raise RecordNormalizationError("Title has no alphanumeric content", field="title")
        if not normalize_city(city):
            raise RecordNormalizationError("City has no alphabetic content", field="city")
        price = _parse_decimal(self._get(record, "price"), "price", PRICE_DECIMALS)

        raw_surface = self._get(record, "surface")
        surface: float | None = None
        if raw_surface is not _MISSING and raw_surface not in (None, ""):
            surface = float(_parse_decimal(raw_surface, "surface"))

        description = _optional_str(self._get(record, "description")) or ""
        images = self._get(record, "images")
        if images is _MISSING or images is None:
            image_list: list[str] = []
        elif isinstance(images, str):
            image_list = [images]
        elif isinstance(images, Iterable):
            image_list = [str(item) for item in images if item]
        else:
            image_list = []

        assessment = detect_renovation_need(title, description)
        return ListingDraft(
            title=title,
            price=price,
            city=city,
            surface=surface,
            description=description,
            property_type=_optional_str(self._get(record, "property_type")),
            rooms=_optional_int(self._get(record, "rooms")),
            bedrooms=_optional_int(self._get(record, "bedrooms")),
            department=_optional_str(self._get(record, "department")),
            region=_optional_str(self._get(record, "region")),
            external_id=_optional_str(self._get(record, "external_id")),
            url=_optional_str(self._get(record, "url")),
            images=image_list,
            renovation_score=assessment.score,
            renovation_keywords=assessment.keywords,
        )


__all__ = ["MAX_AMOUNT", "Normalizer", "PRICE_DECIMALS", "REQUIRED_FIELDS", "ensure_records", "resolve_path"]
