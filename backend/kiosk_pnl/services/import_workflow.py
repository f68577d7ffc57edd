# Overview: Finite-state machine for one import: configure, upload, review/map, process, done.

"""
Import workflow

    CONFIGURE --configure()--> UPLOAD --upload()--> REVIEW --begin_processing()--> PROCESSING
                                                      ^                               |
                                                      +---------- fail() -------------+
                                                                                      |
    DONE <------------------------------------------------------ complete() ----------+

Exactly one state is active. Every method checks the current state, so
processing before a file is selected cannot happen. Nothing is persisted
until PROCESSING hands the batch to the merge step; abandoning after the
preview leaves no trace.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .batch_reader import BatchFile, read_batch
from .manual_mapping import validate_mapping
from .presets import ProviderPreset, SOURCES, detect_preset
from .reporting_service import QUARTERS


class WorkflowError(ValueError):
    """Raised on an illegal import workflow transition."""


class ImportState(str, Enum):
    CONFIGURE = "CONFIGURE"
    UPLOAD = "UPLOAD"
    REVIEW = "REVIEW"
    PROCESSING = "PROCESSING"
    DONE = "DONE"


TRANSITIONS: dict[ImportState, frozenset[ImportState]] = {
    ImportState.CONFIGURE: frozenset({ImportState.UPLOAD}),
    ImportState.UPLOAD: frozenset({ImportState.REVIEW}),
    ImportState.REVIEW: frozenset({ImportState.PROCESSING}),
    ImportState.PROCESSING: frozenset({ImportState.REVIEW, ImportState.DONE}),
    ImportState.DONE: frozenset(),
}


@dataclass
class BatchConfig:
    source: str
    year: int
    quarter: str

    @property
    def period(self) -> str:
        return f"{self.year}-{self.quarter}"


class ImportWorkflow:
    def __init__(self, *, preview_rows: int = 5):
        self.preview_rows = preview_rows
        self.state = ImportState.CONFIGURE
        self.config: BatchConfig | None = None
        self.file_name: str | None = None
        self.data: bytes | None = None
        self.preview: BatchFile | None = None
        self.preset: ProviderPreset | None = None
        self.mapping: dict[str, str] = {}
        self.error: str | None = None
        self.result: Any = None

    def _move(self, target: ImportState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise WorkflowError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target

    def _require(self, *states: ImportState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise WorkflowError(f"Action requires state {allowed}; workflow is {self.state.value}")

    def configure(self, *, source: str, year: int | str, quarter: str) -> BatchConfig:
        self._require(ImportState.CONFIGURE)
        source = (source or "").upper()
        if source not in SOURCES:
            raise WorkflowError(f"Unknown source: {source or '(blank)'}")
        try:
            year_value = int(year)
        except (TypeError, ValueError):
            raise WorkflowError("year must be a number")
        quarter = (quarter or "").upper()
        if quarter not in QUARTERS:
            raise WorkflowError("quarter must be Q1, Q2, Q3, or Q4")
        self.config = BatchConfig(source=source, year=year_value, quarter=quarter)
        self._move(ImportState.UPLOAD)
        return self.config

    def upload(self, file_name: str, data: bytes) -> BatchFile:
        """Read headers plus a few rows and run detection. Raises BatchFormatError on unreadable files."""
        self._require(ImportState.UPLOAD)
        preview = read_batch(file_name, data, preview_rows=self.preview_rows)
        self.file_name = file_name
        self.data = data
        self.preview = preview
        self.preset = detect_preset(preview.headers)
        if self.preset is not None:
            # Detected format wins over the operator's source choice
            self.config.source = self.preset.code
        self.error = None
        self._move(ImportState.REVIEW)
        return preview

    def set_mapping(self, mapping: dict[str, str] | None) -> dict[str, str]:
        self._require(ImportState.REVIEW)
        self.mapping = validate_mapping(mapping, self.preview.headers)
        return self.mapping

    def begin_processing(self) -> None:
        self._require(ImportState.REVIEW)
        if self.preset is None and not self.mapping:
            raise WorkflowError("Unknown format: map columns before importing")
        self._move(ImportState.PROCESSING)

    def complete(self, result: Any) -> None:
        self._require(ImportState.PROCESSING)
        self.result = result
        self._move(ImportState.DONE)

    def fail(self, message: str) -> None:
        self._require(ImportState.PROCESSING)
        self.error = message
        self._move(ImportState.REVIEW)

    @property
    def mode(self) -> str | None:
        if self.preset is not None:
            return "PRESET"
        if self.mapping:
            return "MANUAL"
        return None
