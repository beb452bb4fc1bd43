"""Domain models and exceptions for the OneDrive upload flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from exceldrive.core.errors import ExcelDriveError


class DriveError(ExcelDriveError):
    """Base error raised for Microsoft Graph failures."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class AuthorizationError(DriveError):
    """Raised when the credential is rejected or lacks the required scope."""


class NotFoundError(DriveError):
    """Raised when the user, drive or item cannot be resolved."""


class TransientServiceError(DriveError):
    """Raised for retryable network failures and 429/5xx responses."""


class DriveRequestError(DriveError):
    """Raised for non-retryable HTTP or protocol errors from Graph."""


class SessionExpiredError(DriveError):
    """Raised when the upload session's validity window has elapsed."""


class ChunkUploadError(DriveError):
    """Raised when a chunk submission fails; the upload attempt is over."""

    def __init__(
        self,
        message: str,
        *,
        offset: int,
        index: int,
        cause: BaseException | None = None,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, payload=payload)
        self.offset = offset
        self.index = index
        self.cause = cause


class ChunkStatus(str, Enum):
    INCOMPLETE = "incomplete"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadState(str, Enum):
    """Lifecycle of one upload attempt."""

    IDLE = "idle"
    NEGOTIATING = "negotiating"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class UploadSession:
    """Server-issued upload URL and its validity window."""

    upload_url: str
    expires_at: datetime | None = None
    next_expected_ranges: tuple[str, ...] = ()

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class UploadChunk:
    """A contiguous byte range of the document submitted in one request."""

    index: int
    offset: int
    size: int
    total: int

    @property
    def end(self) -> int:
        """Inclusive offset of the last byte in the chunk."""

        return self.offset + self.size - 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.offset}-{self.end}/{self.total}"


@dataclass(frozen=True, slots=True)
class DriveItemRef:
    """Identity of the item created by a completed upload."""

    id: str
    name: str | None = None
    size: int | None = None
    web_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True, slots=True)
class ChunkResult:
    status: ChunkStatus
    item: DriveItemRef | None = None
    next_expected_ranges: tuple[str, ...] = ()


__all__ = [
    "AuthorizationError",
    "ChunkResult",
    "ChunkStatus",
    "ChunkUploadError",
    "DriveError",
    "DriveItemRef",
    "DriveRequestError",
    "NotFoundError",
    "SessionExpiredError",
    "TransientServiceError",
    "UploadChunk",
    "UploadSession",
    "UploadState",
]
