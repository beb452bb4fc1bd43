"""Record model and its column mapping."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Record:
    """A flat customer record exported as one spreadsheet row."""

    id: str
    name: str
    city: str
    country: str


@dataclass(frozen=True, slots=True)
class Column:
    """Maps a spreadsheet column header to a record attribute."""

    header: str
    field: str


RECORD_COLUMNS: tuple[Column, ...] = (
    Column(header="Id", field="id"),
    Column(header="Name", field="name"),
    Column(header="City", field="city"),
    Column(header="Country", field="country"),
)


__all__ = ["Column", "Record", "RECORD_COLUMNS"]
