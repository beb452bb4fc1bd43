"""Upload session negotiation against a user's OneDrive."""

from __future__ import annotations

import logging

from exceldrive.core.logger import get_logger

from .http import HttpClient
from .models import DriveRequestError, UploadSession
from .paths import normalize_drive_path, normalize_upn, upload_session_path
from .utils import parse_datetime

LOGGER = get_logger()

CONFLICT_BEHAVIORS = {"replace", "rename", "fail"}


class UploadSessionNegotiator:
    """Request upload sessions; holds no state between calls."""

    def __init__(self, http_client: HttpClient, *, logger: logging.Logger | None = None) -> None:
        self._http = http_client
        self._logger = logger or LOGGER

    def create_session(
        self,
        upn: str,
        path: str,
        *,
        conflict_behavior: str = "replace",
    ) -> UploadSession:
        """Create an upload session for ``path`` in the drive of ``upn``.

        Args:
            upn: User principal name (or object id) owning the target drive.
            path: Absolute item path inside the drive root, e.g. ``/Folder/Book.xlsx``.
            conflict_behavior: ``replace``, ``rename`` or ``fail`` when the item exists.

        Returns:
            The session's upload URL and expiry.

        Raises:
            ValueError: If ``upn``, ``path`` or ``conflict_behavior`` is invalid.
            AuthorizationError: If the credential lacks write access.
            NotFoundError: If the user or drive does not resolve.
            TransientServiceError: If the service kept failing after retries.
            DriveRequestError: If the response is not a usable session.
        """

        if conflict_behavior not in CONFLICT_BEHAVIORS:
            raise ValueError(f"conflict_behavior must be one of {sorted(CONFLICT_BEHAVIORS)}")
        principal = normalize_upn(upn)
        item_path = normalize_drive_path(path)
        body = {"item": {"@microsoft.graph.conflictBehavior": conflict_behavior}}
        response = self._http.request_graph(
            "POST",
            upload_session_path(principal, item_path),
            json_body=body,
            expected_status=(200, 201),
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise DriveRequestError("Upload session response is not JSON", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise DriveRequestError("Upload session response invalid", payload={"body": data})
        upload_url = data.get("uploadUrl")
        if not upload_url:
            raise DriveRequestError("Upload session response missing uploadUrl", payload=data)

        session = UploadSession(
            upload_url=str(upload_url),
            expires_at=parse_datetime(data.get("expirationDateTime")),
            next_expected_ranges=tuple(str(r) for r in data.get("nextExpectedRanges") or ()),
        )
        self._logger.info(
            "graph.session created upn=%s path=%s expires_at=%s next_ranges=%s",
            principal,
            item_path,
            session.expires_at.isoformat() if session.expires_at else "<none>",
            ",".join(session.next_expected_ranges) or "-",
        )
        return session


__all__ = ["UploadSessionNegotiator", "CONFLICT_BEHAVIORS"]
