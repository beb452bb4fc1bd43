"""Record sources feeding the spreadsheet export."""

from .models import RECORD_COLUMNS, Column, Record
from .source import SAMPLE_RECORDS, RecordSource, StaticRecordSource, TableFileRecordSource

__all__ = [
    "Column",
    "Record",
    "RECORD_COLUMNS",
    "RecordSource",
    "SAMPLE_RECORDS",
    "StaticRecordSource",
    "TableFileRecordSource",
]
