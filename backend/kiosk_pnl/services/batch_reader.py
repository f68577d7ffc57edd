# Overview: Parses uploaded provider extracts (CSV or Excel) into a header list and row dicts.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


class BatchFormatError(ValueError):
    """Raised when an upload has no readable header row."""


CSV_EXTENSIONS = {"csv", "txt"}
EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


@dataclass
class BatchFile:
    file_name: str
    file_format: str
    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _is_blank(row: dict[str, str]) -> bool:
    return not any(v for v in row.values())


def _read_csv(data: bytes, preview_rows: int | None) -> tuple[list[str], list[dict[str, str]]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise BatchFormatError("File is not UTF-8 encoded") from exc

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames or not any(h.strip() for h in reader.fieldnames if h):
        raise BatchFormatError("Could not read CSV headers. Is the file empty?")
    headers = [h.strip() if h else "" for h in reader.fieldnames]
    reader.fieldnames = headers

    rows: list[dict[str, str]] = []
    for raw in reader:
        # Overflow cells land under the None key
        row = {k: _cell_text(v) for k, v in raw.items() if k is not None and k != ""}
        if _is_blank(row):
            continue
        rows.append(row)
        if preview_rows is not None and len(rows) >= preview_rows:
            break
    return [h for h in headers if h], rows


def _read_excel(data: bytes, preview_rows: int | None) -> tuple[list[str], list[dict[str, str]]]:
    from openpyxl import load_workbook

    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:  # noqa: BLE001
        raise BatchFormatError("Could not open workbook") from exc

    try:
        values = wb.active.iter_rows(values_only=True)
        first = next(values, None)
        if not first or not any(h is not None and str(h).strip() for h in first):
            raise BatchFormatError("Could not read sheet headers. Is the sheet empty?")
        headers = [_cell_text(h) for h in first]

        rows: list[dict[str, str]] = []
        for record in values:
            row = {headers[i]: _cell_text(record[i]) for i in range(min(len(headers), len(record))) if headers[i]}
            if _is_blank(row):
                continue
            rows.append(row)
            if preview_rows is not None and len(rows) >= preview_rows:
                break
    finally:
        wb.close()
    return [h for h in headers if h], rows


def file_format_for(file_name: str) -> str:
    ext = (file_name or "").rsplit(".", 1)[-1].lower() if "." in (file_name or "") else ""
    if ext in CSV_EXTENSIONS:
        return "CSV"
    if ext in EXCEL_EXTENSIONS:
        return "EXCEL"
    raise BatchFormatError("Please upload a CSV or Excel file.")


def read_batch(file_name: str, data: bytes, *, preview_rows: int | None = None) -> BatchFile:
    """
    Parse an extract. With `preview_rows` only the first rows are read,
    which is enough for header detection.
    """
    file_format = file_format_for(file_name)
    if file_format == "CSV":
        headers, rows = _read_csv(data, preview_rows)
    else:
        headers, rows = _read_excel(data, preview_rows)
    return BatchFile(file_name=file_name, file_format=file_format, headers=headers, rows=rows)
