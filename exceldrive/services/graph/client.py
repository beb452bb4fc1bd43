"""Primary client wiring auth, HTTP, negotiation and chunked upload together."""

from __future__ import annotations

import logging

from exceldrive.core.logger import get_logger

from .auth import AuthClient
from .config import GraphConfig
from .http import HttpClient
from .models import DriveItemRef, UploadSession
from .session import UploadSessionNegotiator
from .uploader import ChunkedUploadDriver, ProgressCallback

LOGGER = get_logger()


class GraphDriveClient:
    """OneDrive upload client for one configured application and user."""

    def __init__(
        self,
        config: GraphConfig,
        *,
        http_client: HttpClient | None = None,
        auth: AuthClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or LOGGER
        if http_client is None:
            self._http = HttpClient(config, auth_client=auth, logger=self._logger)
        else:
            self._http = http_client
        self._negotiator = UploadSessionNegotiator(self._http, logger=self._logger)
        self._driver = ChunkedUploadDriver(self._http, chunk_size=config.chunk_size, logger=self._logger)

    @property
    def config(self) -> GraphConfig:
        return self._config

    @property
    def negotiator(self) -> UploadSessionNegotiator:
        return self._negotiator

    @property
    def driver(self) -> ChunkedUploadDriver:
        return self._driver

    def create_upload_session(self, path: str, *, upn: str | None = None) -> UploadSession:
        return self._negotiator.create_session(upn or self._config.upn, path)

    def upload_bytes(
        self,
        document: bytes,
        session: UploadSession,
        *,
        progress_cb: ProgressCallback | None = None,
    ) -> DriveItemRef:
        return self._driver.upload(document, session, progress_cb=progress_cb)

    def cancel_upload(self, session: UploadSession) -> None:
        self._driver.cancel(session)

    def close(self) -> None:
        """Release the underlying HTTP session."""

        self._http.session.close()


__all__ = ["GraphDriveClient"]
