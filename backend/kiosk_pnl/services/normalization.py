# Overview: Canonical row shapes, defaulting policy, and value coercion shared by all mappers.

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..time_utils import parse_provider_datetime


class RowParseError(ValueError):
    """Raised inside a mapper when a single row cannot be parsed."""


GENERIC_LOCATION_ID = "LOC-GENERIC"
DEFAULT_CASH_ON_HAND = 5000.0


@dataclass(frozen=True)
class DefaultPolicy:
    """
    Named fallbacks used when a provider row leaves a field blank.

    Each preset carries its own instance so tests can assert on the exact
    constants a provider falls back to.
    """
    # Gross profit = amount * rate when no profit column is reported
    fallback_profit_rate: float = 0.0
    default_exchange_price: float = 65000.0
    default_markup_percent: float = 0.12
    default_fixed_fee: float = 2.5
    default_city: str = "Unknown"
    default_state: str = "GA"
    default_zip: str = "00000"
    default_rent_model: str = "FIXED"
    default_base_rent: float = 0.0


GLOBAL_POLICY = DefaultPolicy()


@dataclass
class BatchContext:
    source: str
    period: str
    imported_at: datetime


@dataclass
class LocationDraft:
    id: str
    name: str
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    rent_model: str = "FIXED"
    base_rent: float = 0.0

    def merge_display(self, other: "LocationDraft") -> None:
        """Apply later-row display attributes; identity and rent terms stay."""
        if other.name:
            self.name = other.name
        if other.city:
            self.city = other.city
        if other.state:
            self.state = other.state
        if other.rent_model:
            self.rent_model = other.rent_model


@dataclass
class MappedRow:
    """Partial canonical transaction produced by a provider or manual mapper."""
    terminal_sn: str | None
    timestamp: datetime | None
    type: str
    amount_cash: float
    amount_crypto: float = 0.0
    exchange_price: float | None = None
    markup_percent: float | None = None
    fixed_fee: float | None = None
    status: str = "COMPLETED"
    gross_profit: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    location: LocationDraft | None = None
    # Provider's own transaction reference, when the export has one
    original_id: str | None = None


_AMOUNT_NOISE = re.compile(r"[$,\s]")
_NON_NUMERIC = re.compile(r"[^0-9.\-]+")
# Comma is always a thousands separator; "1.234,56" is a decimal comma and is refused
_DECIMAL_COMMA = re.compile(r"\.\d*,")


def _finite(number: float, value: Any) -> float:
    if not math.isfinite(number):
        raise RowParseError(f"Not a finite number: {value!r}")
    return number


def _check_separators(value: Any) -> None:
    if _DECIMAL_COMMA.search(str(value)):
        raise RowParseError(f"Decimal comma is not supported: {value!r}")


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def to_amount(value: Any) -> float | None:
    """
    Parse a money/quantity cell.

    - None / "" -> None
    - "$1,250.00" -> 1250.0
    - anything else non-numeric, NaN, infinity, or a decimal comma
      ("1.234,56") raises RowParseError
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise RowParseError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    _check_separators(value)
    text = _AMOUNT_NOISE.sub("", str(value))
    if not text:
        return None
    try:
        number = float(text)
    except ValueError as exc:
        raise RowParseError(f"Not a number: {value!r}") from exc
    return _finite(number, value)


def to_loose_amount(value: Any) -> float | None:
    """Strip every non-numeric character before parsing (manual mapping rule)."""
    if value is None:
        return None
    _check_separators(value)
    text = _NON_NUMERIC.sub("", str(value))
    if not text:
        return None
    try:
        number = float(text)
    except ValueError as exc:
        raise RowParseError(f"Not a number: {value!r}") from exc
    return _finite(number, value)


def to_timestamp(value: Any) -> datetime | None:
    try:
        return parse_provider_datetime(to_text(value))
    except ValueError as exc:
        raise RowParseError(str(exc)) from exc


def direction_from(text: Any, *, keyword: str = "sell", when_found: str = "SELL", otherwise: str = "BUY") -> str:
    return when_found if keyword in (to_text(text) or "").lower() else otherwise


def status_from(text: Any, vocabulary: dict[str, str], default: str) -> str:
    """
    Map provider status text onto COMPLETED / CANCELLED / ERROR.

    Unrecognized text falls back to `default`, which is never COMPLETED.
    """
    if default == "COMPLETED":
        raise ValueError("Unknown status text must not default to COMPLETED")
    return vocabulary.get((to_text(text) or "").lower(), default)


def slug(value: str, *, sep: str = "-") -> str:
    return re.sub(r"\s+", sep, value.strip()).upper()
