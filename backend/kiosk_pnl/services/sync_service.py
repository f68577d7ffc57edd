# Overview: Merge/upsert gateway; applies a canonical batch to the database as one atomic unit.

"""
Merge semantics

- Locations and terminals are upserted by primary key. Mutable fields are
  overwritten, the key never changes, and a repeated key never adds a row.
- Transactions are append-only: a known id is ignored, never updated.
- The whole batch commits or rolls back together.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

from ..extensions import db
from ..models import (
    DATA_SOURCES,
    RENT_MODELS,
    TERMINAL_STATUSES,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
    Location,
    Terminal,
    Transaction,
)
from ..time_utils import parse_provider_datetime, utcnow
from .canonicalizer import TerminalDraft, TransactionRecord
from .concurrency import lock_for_update, run_serialized
from .normalization import DEFAULT_CASH_ON_HAND, LocationDraft


class SyncError(Exception):
    """Raised when a batch cannot be persisted; nothing from the batch is kept."""


# Keeps IN (...) lists under SQLite's bound-parameter limit.
ID_CHUNK_SIZE = 500


@dataclass
class SyncResult:
    locations_inserted: int = 0
    locations_updated: int = 0
    terminals_inserted: int = 0
    terminals_updated: int = 0
    transactions_inserted: int = 0
    transactions_ignored: int = 0

    def to_dict(self) -> dict:
        return {
            "locations_inserted": self.locations_inserted,
            "locations_updated": self.locations_updated,
            "terminals_inserted": self.terminals_inserted,
            "terminals_updated": self.terminals_updated,
            "transactions_inserted": self.transactions_inserted,
            "transactions_ignored": self.transactions_ignored,
        }


def _chunks(values: list[str], size: int = ID_CHUNK_SIZE) -> Iterable[list[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _existing_by_key(model, key_column, keys: list[str], *, lock: bool = False) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for chunk in _chunks(keys):
        query = db.session.query(model).filter(key_column.in_(chunk))
        if lock:
            query = lock_for_update(query)
        for row in query.all():
            found[getattr(row, key_column.key)] = row
    return found


def _upsert_locations(drafts: list[LocationDraft], result: SyncResult) -> None:
    existing = _existing_by_key(Location, Location.id, [d.id for d in drafts], lock=True)
    for draft in drafts:
        location = existing.get(draft.id)
        if location is None:
            location = Location(
                id=draft.id,
                name=draft.name,
                city=draft.city,
                state=draft.state,
                zip=draft.zip,
                rent_model=draft.rent_model,
                base_rent=draft.base_rent,
            )
            db.session.add(location)
            existing[draft.id] = location
            result.locations_inserted += 1
        else:
            location.name = draft.name
            location.city = draft.city
            location.state = draft.state
            location.rent_model = draft.rent_model
            result.locations_updated += 1


def _upsert_terminals(drafts: list[TerminalDraft], result: SyncResult) -> None:
    existing = _existing_by_key(Terminal, Terminal.sn, [d.sn for d in drafts], lock=True)
    for draft in drafts:
        terminal = existing.get(draft.sn)
        if terminal is None:
            terminal = Terminal(
                sn=draft.sn,
                atm_id=draft.atm_id or draft.sn,
                location_id=draft.location_id,
                cash_on_hand=draft.cash_on_hand if draft.cash_on_hand is not None else DEFAULT_CASH_ON_HAND,
                last_online=draft.last_online or utcnow(),
                status=draft.status,
            )
            db.session.add(terminal)
            existing[draft.sn] = terminal
            result.terminals_inserted += 1
        else:
            if draft.cash_on_hand is not None:
                terminal.cash_on_hand = draft.cash_on_hand
            if draft.last_online is not None:
                terminal.last_online = draft.last_online
            terminal.status = draft.status
            result.terminals_updated += 1


def _insert_transactions(records: list[TransactionRecord], result: SyncResult) -> None:
    known = set(_existing_by_key(Transaction, Transaction.id, [r.id for r in records]).keys())
    for record in records:
        if record.id in known:
            result.transactions_ignored += 1
            continue
        known.add(record.id)
        db.session.add(
            Transaction(
                id=record.id,
                terminal_sn=record.terminal_sn,
                timestamp=record.timestamp,
                type=record.type,
                amount_cash=record.amount_cash,
                amount_crypto=record.amount_crypto,
                exchange_price=record.exchange_price,
                markup_percent=record.markup_percent,
                fixed_fee=record.fixed_fee,
                status=record.status,
                gross_profit=record.gross_profit,
                source=record.source,
                period=record.period,
                metadata_json=record.metadata,
            )
        )
        result.transactions_inserted += 1


def sync_batch(
    locations: list[LocationDraft],
    terminals: list[TerminalDraft],
    transactions: list[TransactionRecord],
) -> SyncResult:
    """
    Persist one batch atomically.

    Raises SyncError with the underlying message when anything fails;
    the session is rolled back first so readers never see a partial batch.
    """
    def _op() -> SyncResult:
        result = SyncResult()
        _upsert_locations(locations, result)
        db.session.flush()
        _upsert_terminals(terminals, result)
        db.session.flush()
        _insert_transactions(transactions, result)
        db.session.commit()
        return result

    try:
        return run_serialized(_op)
    except Exception as exc:  # noqa: BLE001
        db.session.rollback()
        raise SyncError(str(exc)) from exc


def fetch_all(limit: int | None = None) -> dict[str, list]:
    """Current persisted state; transactions newest first."""
    locations = db.session.query(Location).order_by(Location.id.asc()).all()
    terminals = db.session.query(Terminal).order_by(Terminal.sn.asc()).all()
    query = db.session.query(Transaction).order_by(Transaction.timestamp.desc(), Transaction.id.asc())
    if limit:
        query = query.limit(limit)
    return {
        "locations": locations,
        "terminals": terminals,
        "transactions": query.all(),
    }


# -----------------------------------------------------
# Wire payload (camelCase JSON) -> canonical drafts
# -----------------------------------------------------

def _require(item: dict, key: str) -> Any:
    value = item.get(key)
    if value is None or value == "":
        raise SyncError(f"{key} is required")
    return value


def _float(item: dict, key: str, default: float | None = 0.0) -> float | None:
    value = item.get(key)
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise SyncError(f"{key} must be a number") from exc
    if not math.isfinite(number):
        raise SyncError(f"{key} must be a finite number")
    return number


def _choice(item: dict, key: str, allowed: tuple[str, ...], default: str) -> str:
    value = item.get(key) or default
    if value not in allowed:
        raise SyncError(f"{key} must be one of {', '.join(allowed)}")
    return value


def _objects(name: str, value: Any) -> list[dict]:
    if not isinstance(value, list):
        raise SyncError(f"{name} must be a list")
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            raise SyncError(f"{name}[{i}] must be an object")
    return value


def _metadata(item: dict) -> dict:
    value = item.get("metadata")
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SyncError("metadata must be an object")
    return value


def _datetime(item: dict, key: str):
    try:
        return parse_provider_datetime(item.get(key))
    except ValueError as exc:
        raise SyncError(f"{key}: {exc}") from exc


def drafts_from_payload(payload: dict) -> tuple[list[LocationDraft], list[TerminalDraft], list[TransactionRecord]]:
    """Parse the /api/sync payload contract into canonical drafts."""
    if not isinstance(payload, dict):
        raise SyncError("payload must be an object")
    raw_locations = _objects("locations", payload.get("locations") or [])
    raw_terminals = _objects("terminals", payload.get("terminals") or [])
    raw_transactions = _objects("transactions", payload.get("transactions") or [])

    locations = [
        LocationDraft(
            id=str(_require(item, "id")),
            name=item.get("name") or str(item["id"]),
            city=item.get("city"),
            state=item.get("state"),
            zip=item.get("zip"),
            rent_model=_choice(item, "rentModel", RENT_MODELS, "FIXED"),
            base_rent=_float(item, "baseRent"),
        )
        for item in raw_locations
    ]
    terminals = [
        TerminalDraft(
            sn=str(_require(item, "sn")),
            atm_id=str(item.get("atmId") or item["sn"]),
            location_id=str(_require(item, "locationId")),
            cash_on_hand=_float(item, "cashOnHand", default=None),
            last_online=_datetime(item, "lastOnline"),
            status=_choice(item, "status", TERMINAL_STATUSES, "ONLINE"),
        )
        for item in raw_terminals
    ]
    transactions = [
        TransactionRecord(
            id=str(_require(item, "id")),
            terminal_sn=str(_require(item, "terminalSn")),
            timestamp=_datetime(item, "timestamp") or utcnow(),
            type=_choice(item, "type", TRANSACTION_TYPES, "BUY"),
            amount_cash=_float(item, "amountCash"),
            amount_crypto=_float(item, "amountCrypto"),
            exchange_price=_float(item, "exchangePrice"),
            markup_percent=_float(item, "markupPercent"),
            fixed_fee=_float(item, "fixedFee"),
            status=_choice(item, "status", TRANSACTION_STATUSES, "COMPLETED"),
            gross_profit=_float(item, "grossProfit"),
            source=_choice(item, "source", DATA_SOURCES, "OTHER"),
            period=item.get("period") or "UNKNOWN",
            metadata=_metadata(item),
        )
        for item in raw_transactions
    ]
    return locations, terminals, transactions
