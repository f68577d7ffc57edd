# Overview: Service-layer operations for imports; drives detection, mapping, canonicalization and merge.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..models import ImportBatch
from ..time_utils import utcnow
from .batch_reader import BatchFile, read_batch
from .canonicalizer import CanonicalBatch, Canonicalizer
from .import_workflow import ImportWorkflow
from .manual_mapping import map_manual_row
from .normalization import BatchContext
from .presets import PRESETS, ProviderPreset
from .sync_service import SyncError, SyncResult, sync_batch


class IngestError(ValueError):
    """Raised when an import cannot be started."""


@dataclass
class ImportOutcome:
    batch: ImportBatch
    canonical: CanonicalBatch
    sync: SyncResult

    def to_dict(self) -> dict:
        return {
            "batch": self.batch.to_dict(),
            "summary": self.canonical.summary(),
            "sync": self.sync.to_dict(),
            "message": (
                f"Imported {len(self.canonical.transactions)} transactions using "
                f"{self.batch.preset_code + ' Preset' if self.batch.preset_code else 'Manual Mapping'}."
            ),
        }


def list_presets() -> list[dict]:
    return [p.to_dict() for p in PRESETS]


def normalize_rows(
    rows: Iterable[dict[str, Any]],
    *,
    context: BatchContext,
    preset: ProviderPreset | None = None,
    mapping: dict[str, str] | None = None,
) -> CanonicalBatch:
    """Map every row (preset first, manual table otherwise) and canonicalize the batch."""
    if preset is None and not mapping:
        raise IngestError("A preset or a manual column mapping is required")
    canonicalizer = Canonicalizer(context)
    for index, row in enumerate(rows):
        if preset is not None:
            mapped = preset.map_row(row, context)
        else:
            mapped = map_manual_row(row, mapping, context, index)
        canonicalizer.add(mapped, index)
    return canonicalizer.result()


def preview_file(file_name: str, data: bytes, *, preview_rows: int = 5) -> dict:
    """Header detection only; nothing is written."""
    workflow = ImportWorkflow(preview_rows=preview_rows)
    workflow.configure(source="OTHER", year=utcnow().year, quarter="Q1")
    preview = workflow.upload(file_name, data)
    return {
        "file_name": preview.file_name,
        "file_format": preview.file_format,
        "headers": preview.headers,
        "rows": preview.rows,
        "detected_preset": workflow.preset.code if workflow.preset else None,
        "preset_label": workflow.preset.label if workflow.preset else None,
        "mode": workflow.mode,
    }


def _record_batch(
    workflow: ImportWorkflow,
    full: BatchFile,
    canonical: CanonicalBatch,
    *,
    status: str,
    sync: SyncResult | None = None,
    error_message: str | None = None,
) -> ImportBatch:
    batch = ImportBatch(
        source=workflow.config.source,
        period=workflow.config.period,
        preset_code=workflow.preset.code if workflow.preset else None,
        status=status,
        source_file_name=full.file_name,
        source_file_format=full.file_format,
        total_rows=canonical.total_rows,
        accepted_rows=canonical.accepted_rows,
        skipped_rows=canonical.skipped_rows,
        location_count=len(canonical.locations),
        terminal_count=len(canonical.terminals),
        inserted_transactions=sync.transactions_inserted if sync else 0,
        ignored_transactions=sync.transactions_ignored if sync else 0,
        error_message=error_message,
        completed_at=utcnow() if status == "COMPLETED" else None,
    )
    db.session.add(batch)
    db.session.commit()
    return batch


def process(workflow: ImportWorkflow) -> ImportOutcome:
    """
    Run the full-file pass for a reviewed workflow.

    Row problems are counted and skipped. A merge failure rolls back the
    whole batch, is recorded as a FAILED ImportBatch, returns the workflow
    to REVIEW, and re-raises SyncError with the original message.
    """
    workflow.begin_processing()
    config = workflow.config
    full = read_batch(workflow.file_name, workflow.data)
    context = BatchContext(source=config.source, period=config.period, imported_at=utcnow())
    canonical = normalize_rows(full.rows, context=context, preset=workflow.preset, mapping=workflow.mapping)

    current_app.logger.info(
        "Import %s (mode=%s preset=%s, %s): %s accepted, %s skipped",
        full.file_name,
        workflow.mode,
        workflow.preset.code if workflow.preset else "-",
        config.period,
        canonical.accepted_rows,
        canonical.skipped_rows,
    )

    try:
        sync = sync_batch(canonical.locations, canonical.terminals, canonical.transactions)
    except SyncError as exc:
        current_app.logger.error("Import %s failed during merge: %s", full.file_name, exc)
        _record_batch(workflow, full, canonical, status="FAILED", error_message=str(exc))
        workflow.fail(str(exc))
        raise

    batch = _record_batch(workflow, full, canonical, status="COMPLETED", sync=sync)
    outcome = ImportOutcome(batch=batch, canonical=canonical, sync=sync)
    workflow.complete(outcome)
    return outcome


def run_import(
    *,
    file_name: str,
    data: bytes,
    source: str,
    year: int | str,
    quarter: str,
    mapping: dict[str, str] | None = None,
    preview_rows: int = 5,
) -> ImportOutcome:
    """One-shot import: configure, upload, review, process."""
    workflow = ImportWorkflow(preview_rows=preview_rows)
    workflow.configure(source=source, year=year, quarter=quarter)
    workflow.upload(file_name, data)
    if workflow.preset is None:
        if not mapping:
            raise IngestError("Unknown format. Please map headers to system fields.")
        workflow.set_mapping(mapping)
    return process(workflow)


def list_batches(*, limit: int = 50) -> list[ImportBatch]:
    limit = max(1, min(500, int(limit or 50)))
    return (
        db.session.query(ImportBatch)
        .order_by(ImportBatch.created_at.desc(), ImportBatch.id.desc())
        .limit(limit)
        .all()
    )
