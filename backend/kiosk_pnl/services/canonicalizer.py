# Overview: Assembles deduplicated locations, terminals and transactions from per-row mapper output.

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .normalization import (
    GENERIC_LOCATION_ID,
    GLOBAL_POLICY,
    BatchContext,
    DefaultPolicy,
    LocationDraft,
    MappedRow,
)


@dataclass
class TerminalDraft:
    sn: str
    atm_id: str
    location_id: str
    # None = balance not reported; the merge keeps the stored balance
    cash_on_hand: float | None = None
    last_online: datetime | None = None
    status: str = "ONLINE"


@dataclass
class TransactionRecord:
    id: str
    terminal_sn: str
    timestamp: datetime
    type: str
    amount_cash: float
    amount_crypto: float
    exchange_price: float
    markup_percent: float
    fixed_fee: float
    status: str
    gross_profit: float
    source: str
    period: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CanonicalBatch:
    locations: list[LocationDraft]
    terminals: list[TerminalDraft]
    transactions: list[TransactionRecord]
    accepted_rows: int
    skipped_rows: int

    @property
    def total_rows(self) -> int:
        return self.accepted_rows + self.skipped_rows

    def summary(self) -> dict:
        return {
            "accepted_rows": self.accepted_rows,
            "skipped_rows": self.skipped_rows,
            "locations": len(self.locations),
            "terminals": len(self.terminals),
            "transactions": len(self.transactions),
        }


def generic_location(policy: DefaultPolicy = GLOBAL_POLICY) -> LocationDraft:
    return LocationDraft(
        id=GENERIC_LOCATION_ID,
        name="Generic Location",
        city=policy.default_city,
        state=policy.default_state,
        zip=policy.default_zip,
        rent_model="FIXED",
        base_rent=0.0,
    )


def transaction_id(source: str, terminal_sn: str, timestamp: datetime, amount: float, original_id: str | None, occurrence: int) -> str:
    """
    Deterministic id: the same row in the same file always gets the same id,
    so re-importing a file is ignored by the insert-ignore merge.

    `occurrence` separates rows that are otherwise identical within a batch.
    """
    key = "|".join([
        source,
        terminal_sn,
        timestamp.isoformat(),
        f"{amount:.8f}",
        original_id or "",
        str(occurrence),
    ])
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:20]
    return f"TX-{source}-{digest}"


class Canonicalizer:
    """
    Collects mapper output for one batch.

    Exactly one Location and one Terminal object exist per key no matter
    how many rows reference them; later rows only refresh display fields.
    """

    def __init__(self, context: BatchContext, policy: DefaultPolicy = GLOBAL_POLICY):
        self.context = context
        self.policy = policy
        self._locations: dict[str, LocationDraft] = {}
        self._terminals: dict[str, TerminalDraft] = {}
        self._transactions: list[TransactionRecord] = []
        self._occurrences: dict[tuple, int] = {}
        self.accepted = 0
        self.skipped = 0

    def _resolve_location(self, draft: LocationDraft | None) -> LocationDraft:
        if draft is None:
            draft = generic_location(self.policy)
        existing = self._locations.get(draft.id)
        if existing is None:
            self._locations[draft.id] = draft
            return draft
        existing.merge_display(draft)
        return existing

    def _resolve_terminal(self, sn: str, location_id: str, seen_at: datetime) -> TerminalDraft:
        terminal = self._terminals.get(sn)
        if terminal is None:
            terminal = TerminalDraft(sn=sn, atm_id=sn, location_id=location_id, last_online=seen_at)
            self._terminals[sn] = terminal
        elif terminal.last_online is None or seen_at > terminal.last_online:
            terminal.last_online = seen_at
        return terminal

    def add(self, mapped: MappedRow | None, row_index: int) -> bool:
        """Fold one mapper result into the batch. Returns False when the row is skipped."""
        if mapped is None or mapped.amount_cash is None or not math.isfinite(mapped.amount_cash) or mapped.amount_cash <= 0:
            self.skipped += 1
            return False

        sn = mapped.terminal_sn or f"UNK-{row_index}"
        timestamp = mapped.timestamp or self.context.imported_at
        location = self._resolve_location(mapped.location)
        terminal = self._resolve_terminal(sn, location.id, timestamp)

        key = (terminal.sn, timestamp, mapped.amount_cash, mapped.original_id)
        occurrence = self._occurrences.get(key, 0)
        self._occurrences[key] = occurrence + 1

        policy = self.policy
        self._transactions.append(
            TransactionRecord(
                id=transaction_id(
                    self.context.source, terminal.sn, timestamp, mapped.amount_cash, mapped.original_id, occurrence
                ),
                terminal_sn=terminal.sn,
                timestamp=timestamp,
                type=mapped.type or "BUY",
                amount_cash=mapped.amount_cash,
                amount_crypto=mapped.amount_crypto or 0.0,
                exchange_price=mapped.exchange_price or policy.default_exchange_price,
                markup_percent=mapped.markup_percent if mapped.markup_percent is not None else policy.default_markup_percent,
                fixed_fee=mapped.fixed_fee if mapped.fixed_fee is not None else policy.default_fixed_fee,
                status=mapped.status or "ERROR",
                gross_profit=mapped.gross_profit or 0.0,
                source=self.context.source,
                period=self.context.period,
                metadata=dict(mapped.metadata or {}),
            )
        )
        self.accepted += 1
        return True

    def result(self) -> CanonicalBatch:
        return CanonicalBatch(
            locations=list(self._locations.values()),
            terminals=list(self._terminals.values()),
            transactions=list(self._transactions),
            accepted_rows=self.accepted,
            skipped_rows=self.skipped,
        )
