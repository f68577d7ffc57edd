from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSACTION_TYPES = ("BUY", "SELL")
TRANSACTION_STATUSES = ("COMPLETED", "CANCELLED", "ERROR")
DATA_SOURCES = ("GB", "BP", "BA", "OTC", "OTHER")


class Transaction(db.Model):
    """
    Canonical kiosk trade, independent of the provider that reported it.

    WHY: Every operator export uses its own columns and status words.
    Ingestion maps them all onto this one shape so reporting never has
    to know which provider a row came from.

    IMMUTABLE: Transactions are append-only. Re-syncing a known id is
    ignored, never updated.

    metadata_json keeps provider-specific fields opaquely (open map of
    primitive values); it has no fixed schema.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_terminal_status", "terminal_sn", "status"),
        db.Index("ix_transactions_source_period", "source", "period"),
    )

    id = db.Column(db.String(64), primary_key=True)
    # Not a hard FK: rows whose terminal vanished are reported as orphans
    terminal_sn = db.Column(db.String(128), nullable=False, index=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # BUY or SELL
    type = db.Column(db.String(8), nullable=False)

    amount_cash = db.Column(db.Float, nullable=False)
    amount_crypto = db.Column(db.Float, nullable=False, default=0.0)
    exchange_price = db.Column(db.Float, nullable=False, default=0.0)
    markup_percent = db.Column(db.Float, nullable=False, default=0.0)
    fixed_fee = db.Column(db.Float, nullable=False, default=0.0)

    # COMPLETED, CANCELLED, ERROR
    status = db.Column(db.String(16), nullable=False, index=True)
    gross_profit = db.Column(db.Float, nullable=False, default=0.0)

    # Provider code (GB, BP, BA, OTC, OTHER) and reporting period tag (e.g. 2024-Q1)
    source = db.Column(db.String(20), nullable=False, default="OTHER")
    period = db.Column(db.String(20), nullable=False, default="UNKNOWN")

    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Transaction id={self.id!r} sn={self.terminal_sn!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "terminalSn": self.terminal_sn,
            "timestamp": to_utc_z(self.timestamp),
            "type": self.type,
            "amountCash": float(self.amount_cash or 0),
            "amountCrypto": float(self.amount_crypto or 0),
            "exchangePrice": float(self.exchange_price or 0),
            "markupPercent": float(self.markup_percent or 0),
            "fixedFee": float(self.fixed_fee or 0),
            "status": self.status,
            "grossProfit": float(self.gross_profit or 0),
            "source": self.source or "OTHER",
            "period": self.period or "UNKNOWN",
            "metadata": self.metadata_json or {},
        }
