from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ImportBatch(db.Model):
    """
    Audit record of one processed provider extract.

    WHY: Operators need to see which files were loaded for which period,
    how many rows were accepted or skipped, and why an import failed.

    LIFECYCLE:
    1. COMPLETED: Entities merged in a single committed transaction
    2. FAILED: Merge rolled back; error_message holds the cause

    DESIGN:
    - Written only after the merge commits or rolls back
    - Never part of the entity data it describes
    - preset_code is NULL when the operator mapped columns manually
    """
    __tablename__ = "import_batches"
    __table_args__ = (
        db.Index("ix_import_batches_source_period", "source", "period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    source = db.Column(db.String(20), nullable=False, index=True)
    period = db.Column(db.String(20), nullable=False)
    preset_code = db.Column(db.String(20), nullable=True)

    # COMPLETED, FAILED
    status = db.Column(db.String(16), nullable=False, index=True)

    source_file_name = db.Column(db.String(255), nullable=True)
    source_file_format = db.Column(db.String(16), nullable=True)  # CSV, EXCEL

    # Row counts
    total_rows = db.Column(db.Integer, nullable=False, default=0)
    accepted_rows = db.Column(db.Integer, nullable=False, default=0)
    skipped_rows = db.Column(db.Integer, nullable=False, default=0)

    # Entity counts sent to the merge step
    location_count = db.Column(db.Integer, nullable=False, default=0)
    terminal_count = db.Column(db.Integer, nullable=False, default=0)
    inserted_transactions = db.Column(db.Integer, nullable=False, default=0)
    ignored_transactions = db.Column(db.Integer, nullable=False, default=0)

    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "period": self.period,
            "preset_code": self.preset_code,
            "status": self.status,
            "source_file_name": self.source_file_name,
            "source_file_format": self.source_file_format,
            "total_rows": self.total_rows,
            "accepted_rows": self.accepted_rows,
            "skipped_rows": self.skipped_rows,
            "location_count": self.location_count,
            "terminal_count": self.terminal_count,
            "inserted_transactions": self.inserted_transactions,
            "ignored_transactions": self.ignored_transactions,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
