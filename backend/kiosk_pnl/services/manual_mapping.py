# Overview: Fallback mapper for extracts that match no provider preset; uses an operator column table.

from __future__ import annotations

from typing import Any, Iterable

from .normalization import (
    BatchContext,
    DefaultPolicy,
    LocationDraft,
    MappedRow,
    RowParseError,
    direction_from,
    slug,
    to_loose_amount,
    to_text,
    to_timestamp,
)


class MappingError(ValueError):
    """Raised when an operator column table cannot be applied to a batch."""


MANUAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("sn", "Terminal ID / SN"),
    ("date", "Date / Timestamp"),
    ("type", "Tx Type (Buy/Sell)"),
    ("amount", "Cash Amount"),
    ("city", "City"),
    ("state", "State"),
)

REQUIRED_FIELDS = ("amount",)

MANUAL_POLICY = DefaultPolicy(
    fallback_profit_rate=0.10,
    default_city="Unknown",
    default_state="GA",
    default_zip="00000",
    default_rent_model="FIXED",
    default_base_rent=500.0,
)


def validate_mapping(mapping: dict[str, str] | None, headers: Iterable[str]) -> dict[str, str]:
    """
    Check an operator field->column table against the batch headers.

    Blank assignments are dropped; unknown fields, unknown columns and
    missing required fields raise MappingError.
    """
    known = {key for key, _ in MANUAL_FIELDS}
    header_set = set(headers)
    cleaned: dict[str, str] = {}
    errors: list[str] = []

    for field_name, column in (mapping or {}).items():
        if field_name not in known:
            errors.append(f"unknown field: {field_name}")
            continue
        column = to_text(column)
        if not column:
            continue
        if column not in header_set:
            errors.append(f"column not in file: {column}")
            continue
        cleaned[field_name] = column

    for field_name in REQUIRED_FIELDS:
        if field_name not in cleaned:
            errors.append(f"{field_name} column is required")

    if errors:
        raise MappingError("; ".join(errors))
    return cleaned


def _map_manual(
    row: dict[str, Any],
    mapping: dict[str, str],
    context: BatchContext,
    row_index: int,
    policy: DefaultPolicy,
) -> MappedRow | None:
    def value(field_name: str) -> Any:
        column = mapping.get(field_name)
        return row.get(column) if column else None

    amount = to_loose_amount(value("amount"))
    if amount is None or amount <= 0:
        return None

    city = to_text(value("city")) or policy.default_city
    state = to_text(value("state")) or policy.default_state
    return MappedRow(
        terminal_sn=to_text(value("sn")) or f"UNK-{row_index}",
        timestamp=to_timestamp(value("date")),
        type=direction_from(value("type")),
        amount_cash=amount,
        gross_profit=amount * policy.fallback_profit_rate,
        status="COMPLETED",
        metadata={"manualImport": True, "rowData": dict(row)},
        location=LocationDraft(
            id=f"LOC-{slug(city)}",
            name=f"{city} Store",
            city=city,
            state=state,
            zip=policy.default_zip,
            rent_model=policy.default_rent_model,
            base_rent=policy.default_base_rent,
        ),
    )


def map_manual_row(
    row: dict[str, Any],
    mapping: dict[str, str],
    context: BatchContext,
    row_index: int,
    policy: DefaultPolicy = MANUAL_POLICY,
) -> MappedRow | None:
    """Map one row with an operator column table; unparseable rows yield None."""
    try:
        return _map_manual(row, mapping, context, row_index, policy)
    except (RowParseError, ValueError, TypeError):
        return None
