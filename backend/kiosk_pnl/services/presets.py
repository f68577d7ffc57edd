# Overview: Provider preset registry; signature-based format detection and per-provider row mappers.

"""
Provider presets

Each kiosk operator exports its own column layout. A preset pairs a
signature (columns that only that operator's export carries) with a
mapper that turns one raw row into a MappedRow.

Detection walks PRESETS in order and picks the first preset whose whole
signature is present in the header set. Signatures are checked for
overlap when the registry is built, so the order never decides between
two presets that could both match a bare signature.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .normalization import (
    BatchContext,
    DefaultPolicy,
    LocationDraft,
    MappedRow,
    RowParseError,
    direction_from,
    slug,
    status_from,
    to_amount,
    to_text,
    to_timestamp,
)


class PresetConfigurationError(RuntimeError):
    """Raised when two preset signatures could match the same header set."""


RowMapper = Callable[[dict[str, Any], BatchContext, DefaultPolicy], MappedRow]


@dataclass(frozen=True)
class ProviderPreset:
    code: str
    label: str
    signature: frozenset[str]
    mapper: RowMapper
    policy: DefaultPolicy

    def matches(self, headers: Iterable[str]) -> bool:
        return self.signature.issubset(set(headers))

    def map_row(self, row: dict[str, Any], context: BatchContext) -> MappedRow | None:
        """Map one row; a row that cannot be parsed yields None instead of raising."""
        try:
            return self.mapper(row, context, self.policy)
        except (RowParseError, ValueError, TypeError):
            return None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "label": self.label,
            "signature": sorted(self.signature),
            "fallback_profit_rate": self.policy.fallback_profit_rate,
        }


def _reported_or_fallback(row: dict[str, Any], column: str, amount: float, policy: DefaultPolicy) -> float:
    reported = to_amount(row.get(column))
    if reported is not None:
        return reported
    return amount * policy.fallback_profit_rate


# -----------------------------------------------------
# General Bytes
# -----------------------------------------------------

GB_POLICY = DefaultPolicy(fallback_profit_rate=0.12)

GB_STATUSES = {
    "confirmed": "COMPLETED",
    "cancelled": "CANCELLED",
    "canceled": "CANCELLED",
}


def map_general_bytes(row: dict[str, Any], context: BatchContext, policy: DefaultPolicy) -> MappedRow:
    amount = to_amount(row.get("Cash Amount")) or 0.0
    return MappedRow(
        terminal_sn=to_text(row.get("Terminal SN")),
        timestamp=to_timestamp(row.get("Server Time")),
        type=direction_from(row.get("Type")),
        amount_cash=amount,
        amount_crypto=to_amount(row.get("Crypto Amount")) or 0.0,
        gross_profit=_reported_or_fallback(row, "Expected Profit Value", amount, policy),
        status=status_from(row.get("Status"), GB_STATUSES, "ERROR"),
        metadata={
            "serverTimeRaw": to_text(row.get("Server Time")),
            "originalTxId": to_text(row.get("Transaction ID")),
        },
        original_id=to_text(row.get("Transaction ID")),
    )


# -----------------------------------------------------
# BitPay
# -----------------------------------------------------

BP_POLICY = DefaultPolicy(fallback_profit_rate=0.0, default_rent_model="FIXED", default_base_rent=500.0)

BP_STATUSES = {
    "complete": "COMPLETED",
    "completed": "COMPLETED",
    "error": "ERROR",
    "failed": "ERROR",
}


def map_bitpay(row: dict[str, Any], context: BatchContext, policy: DefaultPolicy) -> MappedRow:
    amount = to_amount(row.get("Cash Value")) or 0.0
    city = to_text(row.get("Location City"))
    return MappedRow(
        terminal_sn=to_text(row.get("ATM ID")),
        timestamp=to_timestamp(row.get("Datetime")),
        type=direction_from(row.get("Transaction Type")),
        amount_cash=amount,
        amount_crypto=to_amount(row.get("Coin Quantity")) or 0.0,
        exchange_price=to_amount(row.get("Exchange Feed Price")),
        gross_profit=_reported_or_fallback(row, "Gross Profit", amount, policy),
        status=status_from(row.get("Status"), BP_STATUSES, "CANCELLED"),
        metadata={
            "cryptoAddress": to_text(row.get("Crypto Address")),
            "networkFee": to_text(row.get("Network Fee")),
        },
        location=LocationDraft(
            id=f"LOC-{slug(city or 'UNK')}",
            name=to_text(row.get("Location Store Name")) or "Unknown Store",
            city=city or policy.default_city,
            state=to_text(row.get("Location State")) or policy.default_state,
            zip=to_text(row.get("Location Postal Code")) or policy.default_zip,
            rent_model=policy.default_rent_model,
            base_rent=policy.default_base_rent,
        ),
    )


# -----------------------------------------------------
# BitAccess
# -----------------------------------------------------

BA_POLICY = DefaultPolicy(fallback_profit_rate=0.0)

BA_STATES = {
    "served": "COMPLETED",
    "confirmed": "COMPLETED",
    "canceled": "CANCELLED",
    "cancelled": "CANCELLED",
    "expired": "CANCELLED",
}


def map_bitaccess(row: dict[str, Any], context: BatchContext, policy: DefaultPolicy) -> MappedRow:
    kind = to_text(row.get("Kind"))
    direction = direction_from(kind, keyword="buy", when_found="BUY", otherwise="SELL")
    # Deposit and withdrawal amounts live in separate columns
    if direction == "BUY":
        amount = to_amount(row.get("Amount Deposited")) or 0.0
    else:
        amount = to_amount(row.get("Actual Withdrawal Amount")) or 0.0

    flat_fee = to_amount(row.get("Flat Fee")) or 0.0
    margin_pct = to_amount(row.get("Margin Percentage"))
    margin_rate = (margin_pct or 0.0) / 100
    if margin_pct is None:
        gross_profit = flat_fee + amount * policy.fallback_profit_rate
    else:
        gross_profit = flat_fee + amount * margin_rate

    location_ref = to_text(row.get("Location ID"))
    return MappedRow(
        terminal_sn=to_text(row.get("BTM Machine Name")),
        timestamp=to_timestamp(row.get("Created At")),
        type=direction,
        amount_cash=amount,
        amount_crypto=0.0,
        fixed_fee=flat_fee,
        markup_percent=margin_rate if margin_pct is not None else None,
        gross_profit=gross_profit,
        status=status_from(row.get("State"), BA_STATES, "ERROR"),
        metadata={
            "rawKind": kind,
            "rawState": to_text(row.get("State")),
            "marginPercent": to_text(row.get("Margin Percentage")),
        },
        # BA exports carry a location reference but no address
        location=LocationDraft(
            id=f"LOC-{location_ref or 'UNK'}",
            name=f"BA Location {location_ref or 'UNK'}",
            city=policy.default_city,
            state=policy.default_state,
            zip=policy.default_zip,
            rent_model=policy.default_rent_model,
            base_rent=policy.default_base_rent,
        ),
    )


# -----------------------------------------------------
# Over the counter desk
# -----------------------------------------------------

OTC_POLICY = DefaultPolicy(fallback_profit_rate=0.0)
OTC_DESK_CITY = "OTC-DESK"

OTC_STATUSES = {
    "complete": "COMPLETED",
    "completed": "COMPLETED",
}


def map_otc(row: dict[str, Any], context: BatchContext, policy: DefaultPolicy) -> MappedRow:
    # Desk trades have no machine; the desk city stands in for a terminal
    city = to_text(row.get("Location City")) or OTC_DESK_CITY
    amount = to_amount(row.get("Cash Value"))
    if amount is None:
        amount = to_amount(row.get("$ TX Value"))
    amount = amount or 0.0
    return MappedRow(
        terminal_sn=f"OTC-{slug(city)}",
        timestamp=to_timestamp(row.get("Datetime")),
        type=direction_from(row.get("Transaction Type")),
        amount_cash=amount,
        amount_crypto=to_amount(row.get("Coin Quantity")) or 0.0,
        gross_profit=_reported_or_fallback(row, "Gross Profit", amount, policy),
        status=status_from(row.get("Status"), OTC_STATUSES, "CANCELLED"),
        metadata={
            "receivingBank": to_text(row.get("Receiving Bank")),
            "walletAddress": to_text(row.get("WALLET")),
            "customerId": to_text(row.get("CUST ID")),
        },
        location=LocationDraft(
            id=f"LOC-OTC-{slug(city)}",
            name=to_text(row.get("Customer Name")) or "OTC Client",
            city=city,
            state=to_text(row.get("Location State")) or policy.default_state,
            zip=to_text(row.get("Location Postal Code")) or policy.default_zip,
            rent_model=policy.default_rent_model,
            base_rent=policy.default_base_rent,
        ),
    )


def _check_signatures(presets: tuple[ProviderPreset, ...]) -> tuple[ProviderPreset, ...]:
    codes = [p.code for p in presets]
    if len(set(codes)) != len(codes):
        raise PresetConfigurationError(f"Duplicate preset codes: {codes}")
    for earlier in presets:
        for later in presets:
            if earlier is later:
                continue
            if earlier.signature.issubset(later.signature):
                raise PresetConfigurationError(
                    f"Preset {earlier.code} signature is contained in {later.code}; "
                    f"{earlier.code} would shadow {later.code}"
                )
    return presets


# Detection priority is the tuple order.
PRESETS: tuple[ProviderPreset, ...] = _check_signatures((
    ProviderPreset(
        code="GB",
        label="General Bytes (GB)",
        signature=frozenset({"Terminal SN", "Server Time", "Cash Amount", "Crypto Amount"}),
        mapper=map_general_bytes,
        policy=GB_POLICY,
    ),
    ProviderPreset(
        code="BP",
        label="BitPay (BP)",
        signature=frozenset({"ATM ID", "Transaction Type", "Cash Value", "Gross Profit"}),
        mapper=map_bitpay,
        policy=BP_POLICY,
    ),
    ProviderPreset(
        code="BA",
        label="BitAccess (BA)",
        signature=frozenset({"BTM Machine Name", "Amount Deposited", "Actual Withdrawal Amount", "Kind"}),
        mapper=map_bitaccess,
        policy=BA_POLICY,
    ),
    ProviderPreset(
        code="OTC",
        label="Over The Counter (OTC)",
        signature=frozenset({"CUST ID", "Receiving Bank", "$ TX Value", "WALLET"}),
        mapper=map_otc,
        policy=OTC_POLICY,
    ),
))

PRESETS_BY_CODE: dict[str, ProviderPreset] = {p.code: p for p in PRESETS}

SOURCES: dict[str, str] = {
    **{p.code: p.label for p in PRESETS},
    "OTHER": "Other / Generic",
}


def detect_preset(headers: Iterable[str]) -> ProviderPreset | None:
    header_set = {h.strip() for h in headers if h}
    for preset in PRESETS:
        if preset.matches(header_set):
            return preset
    return None


def get_preset(code: str | None) -> ProviderPreset | None:
    if not code:
        return None
    return PRESETS_BY_CODE.get(code.upper())
