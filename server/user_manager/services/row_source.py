"""Turn an uploaded CSV or spreadsheet into a stream of header-keyed rows."""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Sequence

import xlrd
from openpyxl import load_workbook

Row = dict[str, str]
RowParser = Callable[[bytes], Iterator[Row]]


class UnsupportedFileType(ValueError):
    """Raised when the file extension has no registered parser."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"Unsupported file type: {extension or '(none)'}")


def parse_csv(data: bytes) -> Iterator[Row]:
    """Yield rows of a delimited text file, keyed by the first row.

    A UTF-8 byte order mark is tolerated since spreadsheet tools like to add one.
    """
    text = data.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text, newline=""))
    for record in reader:
        row = {
            key.strip(): (value or "").strip()
            for key, value in record.items()
            if isinstance(key, str)
        }
        if any(row.values()):
            yield row


def parse_spreadsheet(data: bytes) -> Iterator[Row]:
    """Yield rows from the first worksheet of an .xlsx workbook, keyed by its first row."""
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        yield from _keyed_rows(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()


def parse_xls(data: bytes) -> Iterator[Row]:
    """Yield rows from the first sheet of a legacy .xls workbook, keyed by its first row."""
    workbook = xlrd.open_workbook(file_contents=data, on_demand=True)
    try:
        sheet = workbook.sheet_by_index(0)
        yield from _keyed_rows(sheet.row_values(index) for index in range(sheet.nrows))
    finally:
        workbook.release_resources()


def _keyed_rows(values: Iterable[Sequence[Any]]) -> Iterator[Row]:
    values = iter(values)
    header = next(values, None)
    if header is None:
        return
    keys = [_cell_text(cell) for cell in header]
    for cells in values:
        row = {
            key: _cell_text(cell)
            for key, cell in zip(keys, cells)
            if key
        }
        if any(row.values()):
            yield row


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


PARSERS: dict[str, RowParser] = {
    ".csv": parse_csv,
    ".xlsx": parse_spreadsheet,
    ".xls": parse_xls,
}


@dataclass
class RowSource:
    """A counted, single-pass sequence of rows.

    ``total_rows`` is known up front so progress can be reported as a fraction;
    ``rows`` can only be iterated once.
    """

    total_rows: int
    rows: Iterator[Row]

    def __iter__(self) -> Iterator[Row]:
        return self.rows


def open_rows(data: bytes, extension: str) -> RowSource:
    """Pick a parser for ``extension`` and open the row stream over ``data``.

    Raises:
        UnsupportedFileType: if the extension is not .csv, .xlsx or .xls
    """
    parser = PARSERS.get(extension.lower())
    if parser is None:
        raise UnsupportedFileType(extension)
    total_rows = sum(1 for _ in parser(data))
    return RowSource(total_rows=total_rows, rows=parser(data))
