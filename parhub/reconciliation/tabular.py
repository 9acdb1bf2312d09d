"""
Row readers for spreadsheet exports (``.xlsx``) and their CSV equivalents.

Only the first worksheet is read and its first non-blank row is the header.
Cells are returned as openpyxl gives them (``datetime``, ``float``, ``str``),
so field normalizers see the original types.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from openpyxl import load_workbook

from .errors import ReconciliationError

SPREADSHEET_SUFFIXES = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES = frozenset({".csv"})


class TabularFormatError(ReconciliationError):
    """The file is not a readable spreadsheet or has no header row."""


@dataclass(frozen=True)
class TabularRow:
    sequence_number: int
    source_line: int
    values: dict[str, object | None]


@dataclass
class TabularStatistics:
    rows_read: int = 0
    rows_skipped_blank: int = 0


def _sanitize_header(header: object | None) -> str:
    token = "" if header is None else str(header).strip()
    return token.lstrip("\ufeff")


def _row_is_blank(values) -> bool:
    return all(value is None or (isinstance(value, str) and value.strip() == "") for value in values)


class TabularReader:
    """Stream rows of ``path`` as ``{header: value}`` dicts."""

    def __init__(self, path: str | Path, *, skip_blank_rows: bool = True) -> None:
        self.path = Path(path)
        self.skip_blank_rows = skip_blank_rows
        self.headers: tuple[str, ...] = ()
        self.statistics = TabularStatistics()

    def __iter__(self) -> Iterator[TabularRow]:
        suffix = self.path.suffix.lower()
        if suffix in SPREADSHEET_SUFFIXES:
            return self._iter_workbook()
        if suffix in CSV_SUFFIXES:
            return self._iter_csv()
        raise TabularFormatError(f"Unsupported file type '{self.path.suffix}' for {self.path.name}")

    def _emit(self, headers, cells, sequence_number: int, source_line: int) -> TabularRow | None:
        if self.skip_blank_rows and _row_is_blank(cells):
            self.statistics.rows_skipped_blank += 1
            return None
        values = {header: cells[index] if index < len(cells) else None for index, header in enumerate(headers) if header}
        self.statistics.rows_read += 1
        return TabularRow(sequence_number=sequence_number, source_line=source_line, values=values)

    def _iter_workbook(self) -> Iterator[TabularRow]:
        workbook = load_workbook(self.path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0] if workbook.worksheets else None
            if sheet is None:
                raise TabularFormatError(f"{self.path.name} contains no worksheets")

            rows = sheet.iter_rows(values_only=True)
            headers: tuple[str, ...] = ()
            header_line = 0
            for header_line, cells in enumerate(rows, start=1):
                if not _row_is_blank(cells):
                    headers = tuple(_sanitize_header(cell) for cell in cells)
                    break
            if not headers:
                raise TabularFormatError(f"{self.path.name} has no header row")
            self.headers = headers

            sequence_number = 0
            for source_line, cells in enumerate(rows, start=header_line + 1):
                sequence_number += 1
                row = self._emit(headers, cells, sequence_number, source_line)
                if row is not None:
                    yield row
        finally:
            workbook.close()

    def _iter_csv(self) -> Iterator[TabularRow]:
        with self.path.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.reader(handle)
            headers = next(reader, None)
            if not headers or _row_is_blank(headers):
                raise TabularFormatError(f"{self.path.name} has no header row")
            self.headers = tuple(_sanitize_header(header) for header in headers)
            for sequence_number, cells in enumerate(reader, start=1):
                row = self._emit(self.headers, cells, sequence_number, reader.line_num)
                if row is not None:
                    yield row


def read_tabular_rows(path: str | Path) -> list[dict[str, object | None]]:
    """Every non-blank data row of ``path``."""
    return [row.values for row in TabularReader(path)]
