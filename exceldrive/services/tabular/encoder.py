"""Grid construction and single-sheet workbook serialization."""

# Module responsibilities:
# - Turn records into a header-plus-rows grid of strings using an explicit column mapping.
# - Serialize the grid into an in-memory .xlsx document with every cell typed as text.
# - Read documents back into a grid for verification.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import IllegalCharacterError, InvalidFileException

from exceldrive.core.errors import EmptyInputError, EncodingError
from exceldrive.core.logger import get_logger
from exceldrive.services.records.models import RECORD_COLUMNS, Column

LOGGER = get_logger()

Grid = List[List[str]]

MAX_SHEET_TITLE = 31
DOCUMENT_CREATOR = "exceldrive"
DOCUMENT_TIMESTAMP = datetime(2000, 1, 1)


@dataclass(frozen=True)
class EncodedDocument:
    """Serialized workbook bytes plus a summary of what they hold."""

    data: bytes
    sheet_name: str
    rows: int
    columns: int

    @property
    def size(self) -> int:
        return len(self.data)

    def save(self, path: str | Path) -> Path:
        """Write the document to ``path`` creating parent directories."""

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.data)
        return target


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def build_grid(
    records: Iterable[Any],
    columns: Sequence[Column] = RECORD_COLUMNS,
    *,
    allow_empty: bool = False,
) -> Grid:
    """Build a header row followed by one string row per record.

    Args:
        records: Objects exposing every attribute named in ``columns``.
        columns: Ordered header-to-attribute mapping.
        allow_empty: When True an empty input yields a header-only grid instead
            of raising.

    Returns:
        Rows of cell text; row 0 is the header.

    Raises:
        EmptyInputError: If there are no records and ``allow_empty`` is False.
        EncodingError: If ``columns`` is empty or a record lacks a mapped attribute.
    """

    if not columns:
        raise EncodingError("At least one column is required")
    grid: Grid = [[column.header for column in columns]]
    for position, record in enumerate(records):
        row: List[str] = []
        for column in columns:
            try:
                value = getattr(record, column.field)
            except AttributeError as exc:
                raise EncodingError(
                    f"Record {position} has no attribute '{column.field}' for column '{column.header}'"
                ) from exc
            row.append(_cell_text(value))
        grid.append(row)
    if len(grid) == 1 and not allow_empty:
        raise EmptyInputError("No records to encode")
    return grid


def encode_grid(grid: Grid, *, sheet_name: str) -> EncodedDocument:
    """Serialize ``grid`` into an .xlsx workbook holding one sheet.

    Raises:
        EncodingError: If the sheet name is invalid, a row is ragged, a value
            cannot be stored, or the workbook cannot be written.
    """

    if not grid:
        raise EncodingError("Grid must contain at least a header row")
    if not sheet_name or len(sheet_name) > MAX_SHEET_TITLE:
        raise EncodingError(f"Sheet name must be 1-{MAX_SHEET_TITLE} characters: {sheet_name!r}")
    width = len(grid[0])
    for index, row in enumerate(grid):
        if len(row) != width:
            raise EncodingError(f"Row {index} has {len(row)} cells, expected {width}")

    workbook = Workbook()
    workbook.properties.creator = DOCUMENT_CREATOR
    workbook.properties.created = DOCUMENT_TIMESTAMP
    workbook.properties.modified = DOCUMENT_TIMESTAMP
    sheet = workbook.active
    buffer = BytesIO()
    try:
        sheet.title = sheet_name
        for row_idx, row in enumerate(grid, start=1):
            for col_idx, value in enumerate(row, start=1):
                cell = sheet.cell(row=row_idx, column=col_idx, value=value)
                # Keep text such as "=1+1" or "007" literal.
                cell.data_type = "s"
        workbook.save(buffer)
    except (IllegalCharacterError, ValueError, OSError) as exc:
        raise EncodingError(f"Failed to serialize workbook: {exc}") from exc

    document = EncodedDocument(
        data=buffer.getvalue(),
        sheet_name=sheet_name,
        rows=len(grid),
        columns=width,
    )
    LOGGER.info(
        "tabular.encoder document_encoded sheet=%s rows=%d columns=%d bytes=%d",
        sheet_name,
        document.rows,
        document.columns,
        document.size,
    )
    return document


def encode_records(
    records: Iterable[Any],
    *,
    sheet_name: str,
    columns: Sequence[Column] = RECORD_COLUMNS,
    allow_empty: bool = False,
) -> EncodedDocument:
    """Build the grid for ``records`` and serialize it."""

    grid = build_grid(records, columns, allow_empty=allow_empty)
    return encode_grid(grid, sheet_name=sheet_name)


def decode_document(data: bytes, *, sheet_name: Optional[str] = None) -> Grid:
    """Read an encoded workbook back into a grid of strings.

    Empty cells come back as ``""``. The first sheet is read unless
    ``sheet_name`` is given.
    """

    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError) as exc:
        raise EncodingError(f"Document is not a readable workbook: {exc}") from exc
    try:
        if sheet_name is None:
            sheet = workbook.worksheets[0]
        elif sheet_name in workbook.sheetnames:
            sheet = workbook[sheet_name]
        else:
            raise EncodingError(f"Sheet '{sheet_name}' not found in document")
        return [[_cell_text(value) for value in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


__all__ = [
    "EncodedDocument",
    "Grid",
    "build_grid",
    "decode_document",
    "encode_grid",
    "encode_records",
]
