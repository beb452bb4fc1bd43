from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .logger import get_logger
from exceldrive.services.graph.client import GraphDriveClient
from exceldrive.services.graph.models import DriveItemRef, UploadState
from exceldrive.services.graph.uploader import UploadProgress, plan_chunks
from exceldrive.services.records.source import RecordSource
from exceldrive.services.tabular.encoder import EncodedDocument, encode_records


ProgressCB = Callable[[UploadProgress], None]


@dataclass
class ExportResult:
    item: DriveItemRef
    state: UploadState
    upload_path: str
    document_bytes: int
    rows: int
    chunks: int


class ExportPipeline:
    """Coordinates Load -> Encode -> Negotiate -> Upload for one workbook."""

    def __init__(
        self,
        client: GraphDriveClient,
        *,
        sheet_name: str | None = None,
        upload_path: str | None = None,
        upn: str | None = None,
        logger=None,
    ) -> None:
        self.client = client
        self.sheet_name = sheet_name or client.config.sheet_name
        self.upload_path = upload_path or client.config.upload_path
        self.upn = upn or client.config.upn
        self.logger = logger or get_logger()
        self.state = UploadState.IDLE

    def encode(self, source: RecordSource) -> EncodedDocument:
        records = source.load()
        return encode_records(records, sheet_name=self.sheet_name)

    def run(self, source: RecordSource, progress_cb: ProgressCB | None = None) -> ExportResult:
        if self.state is not UploadState.IDLE:
            raise RuntimeError(f"Pipeline already used (state={self.state.value}); create a new one")

        document = self.encode(source)

        self._transition(UploadState.NEGOTIATING, f"upn={self.upn} path={self.upload_path}")
        try:
            session = self.client.negotiator.create_session(self.upn, self.upload_path)
        except Exception as exc:
            self._transition(UploadState.FAILED, f"negotiation error={type(exc).__name__}")
            raise

        self._transition(UploadState.UPLOADING, f"bytes={document.size}")
        try:
            item = self.client.driver.upload(document.data, session, progress_cb=progress_cb)
        except Exception as exc:
            self._transition(UploadState.FAILED, f"upload error={type(exc).__name__}")
            raise

        self._transition(UploadState.COMPLETED, f"item_id={item.id}")
        return ExportResult(
            item=item,
            state=self.state,
            upload_path=self.upload_path,
            document_bytes=document.size,
            rows=document.rows,
            chunks=len(plan_chunks(document.size, self.client.driver.chunk_size)),
        )

    def _transition(self, state: UploadState, detail: str = "") -> None:
        self.logger.info("pipeline.state %s -> %s %s", self.state.value, state.value, detail)
        self.state = state
