"""Helpers for validating OneDrive item paths and user principals."""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import quote

INVALID_PATH_CHARS = set('"*:<>?\\|')


def normalize_drive_path(path: str) -> str:
    """Validate an absolute drive path such as ``/Folder/Book.xlsx``.

    Raises:
        ValueError: If the path is relative, names a folder, or contains
            empty, relative or invalid segments.
    """

    candidate = path.strip()
    if not candidate.startswith("/"):
        raise ValueError(f"Drive path must be absolute: {path!r}")
    if candidate.endswith("/"):
        raise ValueError(f"Drive path must name a file, not a folder: {path!r}")
    segments = candidate[1:].split("/")
    for segment in segments:
        if segment in {"", ".", ".."}:
            raise ValueError(f"Drive path contains an empty or relative segment: {path!r}")
        if segment != segment.strip():
            raise ValueError(f"Drive path segment has surrounding whitespace: {segment!r}")
        bad = INVALID_PATH_CHARS.intersection(segment)
        if bad:
            raise ValueError(f"Drive path segment {segment!r} contains invalid characters: {''.join(sorted(bad))}")
    return str(PurePosixPath(candidate))


def normalize_upn(upn: str) -> str:
    """Trim a user principal name, rejecting blank values."""

    normalized = upn.strip()
    if not normalized:
        raise ValueError("User principal name must not be empty")
    return normalized


def upload_session_path(upn: str, path: str) -> str:
    """Return the Graph API path creating an upload session for ``path``."""

    return (
        f"/users/{quote(normalize_upn(upn), safe='@')}"
        f"/drive/root:{quote(normalize_drive_path(path), safe='/')}:/createUploadSession"
    )


__all__ = ["normalize_drive_path", "normalize_upn", "upload_session_path"]
