"""Spreadsheet encoding for record grids."""

from .encoder import EncodedDocument, Grid, build_grid, decode_document, encode_grid, encode_records

__all__ = [
    "EncodedDocument",
    "Grid",
    "build_grid",
    "decode_document",
    "encode_grid",
    "encode_records",
]
