"""Sequential chunked upload into a Graph upload session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from requests import Response

from exceldrive.core.logger import get_logger

from .config import CHUNK_BOUNDARY, DEFAULT_CHUNK_SIZE
from .http import HttpClient
from .models import (
    ChunkResult,
    ChunkStatus,
    ChunkUploadError,
    DriveError,
    DriveItemRef,
    NotFoundError,
    SessionExpiredError,
    UploadChunk,
    UploadSession,
)
from .utils import utc_now

LOGGER = get_logger()

INCOMPLETE_STATUS = 202
SUCCEEDED_STATUSES = (200, 201)


@dataclass(slots=True)
class UploadProgress:
    """Represents the current upload progress state."""

    index: int
    total: int
    uploaded_bytes: int
    total_bytes: int
    state: ChunkStatus


ProgressCallback = Callable[[UploadProgress], None]
Clock = Callable[[], datetime]


def plan_chunks(total_size: int, chunk_size: int) -> list[UploadChunk]:
    """Split ``total_size`` bytes into contiguous chunks of ``chunk_size``.

    All chunks but the last are exactly ``chunk_size``; the last carries the
    remainder. An empty document yields no chunks.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if total_size < 0:
        raise ValueError("total_size must not be negative")
    chunks: list[UploadChunk] = []
    for index, offset in enumerate(range(0, total_size, chunk_size)):
        chunks.append(
            UploadChunk(
                index=index,
                offset=offset,
                size=min(chunk_size, total_size - offset),
                total=total_size,
            )
        )
    return chunks


def classify_chunk_response(response: Response) -> ChunkResult:
    """Map an upload URL response onto the three chunk outcomes."""

    status = response.status_code
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    if status == INCOMPLETE_STATUS:
        return ChunkResult(
            status=ChunkStatus.INCOMPLETE,
            next_expected_ranges=tuple(str(r) for r in payload.get("nextExpectedRanges") or ()),
        )
    if status in SUCCEEDED_STATUSES and payload.get("id"):
        size = payload.get("size")
        return ChunkResult(
            status=ChunkStatus.SUCCEEDED,
            item=DriveItemRef(
                id=str(payload["id"]),
                name=payload.get("name"),
                size=int(size) if size is not None else None,
                web_url=payload.get("webUrl"),
                extra=payload,
            ),
        )
    return ChunkResult(status=ChunkStatus.FAILED)


class ChunkedUploadDriver:
    """Submit a document to an upload session one chunk at a time.

    Chunks go out strictly in byte order; the service tracks the append
    offset per session. A failed chunk ends the attempt without retries, and
    a fresh attempt needs a new session.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_boundary: int = CHUNK_BOUNDARY,
        clock: Clock = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        if chunk_boundary <= 0 or chunk_size <= 0 or chunk_size % chunk_boundary != 0:
            raise ValueError(
                f"chunk_size must be a positive multiple of {chunk_boundary} bytes, got {chunk_size}"
            )
        self._http = http_client
        self._chunk_size = chunk_size
        self._clock = clock
        self._logger = logger or LOGGER

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def upload(
        self,
        document: bytes,
        session: UploadSession,
        *,
        progress_cb: ProgressCallback | None = None,
    ) -> DriveItemRef:
        """Upload ``document`` and return the item the service assembled.

        Raises:
            ValueError: If the document is empty.
            SessionExpiredError: If the session lapses before the upload finishes.
            ChunkUploadError: If a chunk fails or the service never confirms the item.
        """

        if not document:
            raise ValueError("Cannot upload an empty document")
        chunks = plan_chunks(len(document), self._chunk_size)
        view = memoryview(document)
        uploaded = 0
        self._logger.info(
            "graph.uploader upload_started bytes=%d chunks=%d chunk_size=%d",
            len(document),
            len(chunks),
            self._chunk_size,
        )

        for chunk in chunks:
            if session.is_expired(self._clock()):
                self._logger.error(
                    "graph.uploader session_expired index=%d offset=%d expires_at=%s",
                    chunk.index + 1,
                    chunk.offset,
                    session.expires_at,
                )
                raise SessionExpiredError(
                    f"Upload session expired before chunk {chunk.index + 1} of {len(chunks)}",
                    payload={"offset": chunk.offset},
                )

            result = self._submit(session, view[chunk.offset : chunk.offset + chunk.size], chunk, len(chunks))
            uploaded += chunk.size
            self._logger.info(
                "graph.uploader chunk_uploaded index=%d total=%d offset=%d size=%d state=%s next_ranges=%s",
                chunk.index + 1,
                len(chunks),
                chunk.offset,
                chunk.size,
                result.status.value,
                ",".join(result.next_expected_ranges) or "-",
            )
            self._emit_progress(
                progress_cb,
                UploadProgress(
                    index=chunk.index + 1,
                    total=len(chunks),
                    uploaded_bytes=uploaded,
                    total_bytes=len(document),
                    state=result.status,
                ),
            )
            if result.status is ChunkStatus.SUCCEEDED and result.item is not None:
                self._logger.info(
                    "graph.uploader upload_completed item_id=%s name=%s size=%s",
                    result.item.id,
                    result.item.name,
                    result.item.size,
                )
                return result.item

        last = chunks[-1]
        raise ChunkUploadError(
            "Upload finished without the service confirming the item",
            offset=last.offset,
            index=last.index,
        )

    def cancel(self, session: UploadSession) -> None:
        """Discard an upload session and the bytes it received."""

        self._http.request_upload("DELETE", session.upload_url, expected_status=(204,))
        self._logger.info("graph.uploader session_cancelled")

    # Internal helpers -------------------------------------------------

    def _submit(self, session: UploadSession, data: memoryview, chunk: UploadChunk, total_chunks: int) -> ChunkResult:
        headers = {
            "Content-Length": str(chunk.size),
            "Content-Range": chunk.content_range,
        }
        try:
            response = self._http.request_upload(
                "PUT",
                session.upload_url,
                headers=headers,
                data=data.tobytes(),
                expected_status=(INCOMPLETE_STATUS, *SUCCEEDED_STATUSES),
            )
        except NotFoundError as exc:
            raise SessionExpiredError(
                f"Upload session no longer exists at chunk {chunk.index + 1} of {total_chunks}",
                status_code=exc.status_code,
                payload={"offset": chunk.offset},
            ) from exc
        except DriveError as exc:
            self._logger.error(
                "graph.uploader chunk_failed index=%d total=%d offset=%d error=%s",
                chunk.index + 1,
                total_chunks,
                chunk.offset,
                exc,
            )
            raise ChunkUploadError(
                f"Chunk {chunk.index + 1} of {total_chunks} at offset {chunk.offset} failed: {exc}",
                offset=chunk.offset,
                index=chunk.index,
                cause=exc,
                status_code=exc.status_code,
                payload=exc.payload,
            ) from exc

        result = classify_chunk_response(response)
        if result.status is ChunkStatus.FAILED:
            raise ChunkUploadError(
                f"Chunk {chunk.index + 1} of {total_chunks} at offset {chunk.offset} returned an unusable response",
                offset=chunk.offset,
                index=chunk.index,
                status_code=response.status_code,
            )
        return result

    def _emit_progress(self, callback: ProgressCallback | None, progress: UploadProgress) -> None:
        if callback:
            callback(progress)


__all__ = [
    "ChunkedUploadDriver",
    "ProgressCallback",
    "UploadProgress",
    "classify_chunk_response",
    "plan_chunks",
]
