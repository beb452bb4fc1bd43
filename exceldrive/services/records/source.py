"""Record sources: injected literals or rows loaded from a table file."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol, Sequence

import pandas as pd

from exceldrive.core.errors import ConfigError
from exceldrive.core.logger import get_logger

from .models import RECORD_COLUMNS, Column, Record

LOGGER = get_logger()

SAMPLE_RECORDS: tuple[Record, ...] = (
    Record(id="1001", name="ABCD", city="City1", country="USA"),
    Record(id="1002", name="PQRS", city="City2", country="INDIA"),
    Record(id="1003", name="XYZZ", city="City3", country="CHINA"),
    Record(id="1004", name="LMNO", city="City4", country="UK"),
)


class RecordSource(Protocol):
    """Supplies the ordered records to export."""

    def load(self) -> list[Record]:
        """Return the records in export order."""


class StaticRecordSource:
    """Serve records held in memory."""

    def __init__(self, records: Iterable[Record] = SAMPLE_RECORDS) -> None:
        self._records = tuple(records)

    def load(self) -> list[Record]:
        return list(self._records)


class TableFileRecordSource:
    """Read records from a CSV or Excel file whose header names the columns.

    Every value is read as text; blank cells become empty strings.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        columns: Sequence[Column] = RECORD_COLUMNS,
        sheet: str | int = 0,
    ) -> None:
        self._path = Path(path)
        self._columns = tuple(columns)
        self._sheet = sheet

    def load(self) -> list[Record]:
        frame = self._read_frame()
        resolved = self._resolve_columns(frame)
        records: list[Record] = []
        for row in frame.itertuples(index=False, name=None):
            values = dict(zip(frame.columns, row))
            records.append(
                Record(**{column.field: str(values[resolved[column.field]]) for column in self._columns})
            )
        LOGGER.info("records.source loaded path=%s rows=%d", self._path, len(records))
        return records

    # Internal helpers -------------------------------------------------

    def _read_frame(self) -> pd.DataFrame:
        if not self._path.exists():
            raise FileNotFoundError(f"Record file not found: {self._path}")
        suffix = self._path.suffix.lower()
        if suffix == ".csv":
            return pd.read_csv(self._path, dtype=str, keep_default_na=False)
        if suffix in {".xlsx", ".xlsm"}:
            return pd.read_excel(self._path, sheet_name=self._sheet, dtype=str, keep_default_na=False)
        raise ConfigError(f"Unsupported record file type: {self._path.suffix or '<none>'}")

    def _resolve_columns(self, frame: pd.DataFrame) -> dict[str, str]:
        lookup = {str(name).strip().lower(): name for name in frame.columns}
        resolved: dict[str, str] = {}
        missing: list[str] = []
        for column in self._columns:
            actual = lookup.get(column.header.lower())
            if actual is None:
                missing.append(column.header)
            else:
                resolved[column.field] = actual
        if missing:
            raise ConfigError(f"Record file {self._path} missing columns: {', '.join(missing)}")
        return resolved


__all__ = ["RecordSource", "SAMPLE_RECORDS", "StaticRecordSource", "TableFileRecordSource"]
