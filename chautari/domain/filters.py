# SPDX-License-Identifier: Apache-2.0

"""
Canonical filter construction for agency search.

``build_filter`` turns raw, user-supplied parameters (query strings, form
fields, JSON bodies) into a validated, immutable ``CanonicalFilter``. It never
touches storage.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Type
from enum import Enum

from ..models.enums import CareType, PayerType
from .errors import InvalidValueError

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
MAX_QUERY_LENGTH = 100

_LANGUAGE_PATTERN = re.compile(r'^[a-z]{2,3}(-[a-z]{2,4})?$')
_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


@dataclass(frozen=True)
class CanonicalFilter:
    """Validated search constraints. ``None`` means unconstrained."""
    county: Optional[str] = None
    care_type: Optional[CareType] = None
    payer_type: Optional[PayerType] = None
    language: Optional[str] = None
    services: Tuple[str, ...] = field(default_factory=tuple)
    verified_only: bool = False
    query: Optional[str] = None
    home_county: Optional[str] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def _is_unconstrained(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return stripped == "" or stripped.lower() == "all"
    return False


def _enum_value(raw: Mapping[str, Any], name: str, enum_cls: Type[Enum]):
    value = raw.get(name)
    if _is_unconstrained(value):
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise InvalidValueError(name, f"'{value}' is not a valid {name}; expected one of: {allowed}")


def _text_value(raw: Mapping[str, Any], name: str) -> Optional[str]:
    value = raw.get(name)
    if _is_unconstrained(value):
        return None
    if not isinstance(value, str):
        raise InvalidValueError(name, f"'{name}' must be text")
    return value.strip()


def _bool_value(raw: Mapping[str, Any], name: str) -> bool:
    value = raw.get(name)
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise InvalidValueError(name, f"'{name}' must be true or false")


def _int_value(raw: Mapping[str, Any], name: str, default: int, minimum: int,
               maximum: Optional[int] = None) -> int:
    value = raw.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise InvalidValueError(name, f"'{name}' must be a whole number")
    try:
        number = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise InvalidValueError(name, f"'{name}' must be a whole number")
    if isinstance(value, float) and number != value:
        raise InvalidValueError(name, f"'{name}' must be a whole number")
    if number < minimum or (maximum is not None and number > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise InvalidValueError(name, f"'{name}' must be {bounds}")
    return number


def _services_value(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    value = raw.get("services")
    if _is_unconstrained(value):
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise InvalidValueError("services", "'services' must be a list of service names")
    cleaned = []
    for item in items:
        if not isinstance(item, str):
            raise InvalidValueError("services", "'services' must be a list of service names")
        item = item.strip()
        if item and item.lower() != "all" and item not in cleaned:
            cleaned.append(item)
    return tuple(sorted(cleaned))


def build_filter(raw: Mapping[str, Any]) -> CanonicalFilter:
    """
    Build a canonical search filter from raw parameters.

    Empty strings, missing keys, ``None`` and the literal ``"all"`` mean
    "no constraint". Unknown keys are ignored.

    Args:
        raw: Raw parameters (e.g. ``request.args`` or a JSON body)

    Returns:
        CanonicalFilter

    Raises:
        InvalidValueError: naming the first offending field
    """
    raw = raw or {}

    query = _text_value(raw, "query")
    if query is not None:
        if len(query) > MAX_QUERY_LENGTH:
            raise InvalidValueError("query", f"Search text must be at most {MAX_QUERY_LENGTH} characters")
        query = query or None

    language = _text_value(raw, "language")
    if language is not None:
        language = language.lower()
        if not _LANGUAGE_PATTERN.match(language):
            raise InvalidValueError("language", f"'{language}' is not a valid language code")

    return CanonicalFilter(
        county=_text_value(raw, "county"),
        care_type=_enum_value(raw, "care_type", CareType),
        payer_type=_enum_value(raw, "payer_type", PayerType),
        language=language,
        services=_services_value(raw),
        verified_only=_bool_value(raw, "verified_only"),
        query=query,
        home_county=_text_value(raw, "home_county"),
        page=_int_value(raw, "page", 1, 1),
        page_size=_int_value(raw, "page_size", DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE),
    )
