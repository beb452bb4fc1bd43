"""HTTP utilities for Microsoft Graph drive requests."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, MutableMapping

import requests
from requests import Response
from requests.exceptions import ConnectionError, RequestException, Timeout

from exceldrive import __version__
from exceldrive.core.logger import get_logger

from .auth import AuthClient
from .config import GraphConfig
from .models import (
    AuthorizationError,
    DriveError,
    DriveRequestError,
    NotFoundError,
    TransientServiceError,
)

LOGGER = get_logger()

USER_AGENT = f"exceldrive/{__version__}"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(slots=True)
class RequestDiagnostics:
    """Captured diagnostics for troubleshooting."""

    method: str
    url: str
    status: int | None
    request_id: str | None


class HttpClient:
    """Request helper wrapping retries, auth, and error mapping."""

    def __init__(
        self,
        config: GraphConfig,
        *,
        session: requests.Session | None = None,
        auth_client: AuthClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.verify = config.verify_tls
        self._session.trust_env = config.trust_env
        if config.proxies:
            self._session.proxies.update(config.proxies)
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._auth = auth_client or AuthClient(config, session=self._session)
        self._logger = logger or LOGGER

    @property
    def session(self) -> requests.Session:
        return self._session

    @property
    def auth_client(self) -> AuthClient:
        """Return the authentication helper used by this client."""

        return self._auth

    def request_graph(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Mapping[str, object] | None = None,
        expected_status: Iterable[int] = (200,),
        timeout: float | None = None,
        allow_retry: bool = True,
    ) -> Response:
        """Perform a Graph API request with bearer token injection."""

        return self._request(
            method,
            self._compose_url(path),
            headers=headers,
            json_body=json_body,
            data=None,
            expected_status=expected_status,
            timeout=timeout,
            allow_retry=allow_retry,
            attach_token=True,
        )

    def request_upload(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: object | None = None,
        expected_status: Iterable[int] = (200, 201, 202),
        timeout: float | None = None,
        allow_retry: bool = False,
    ) -> Response:
        """Perform a request against a pre-authenticated upload URL (no token)."""

        return self._request(
            method,
            url,
            headers=headers,
            json_body=None,
            data=data,
            expected_status=expected_status,
            timeout=timeout,
            allow_retry=allow_retry,
            attach_token=False,
        )

    # Internal helpers -------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None,
        json_body: Mapping[str, object] | None,
        data: object | None,
        expected_status: Iterable[int],
        timeout: float | None,
        allow_retry: bool,
        attach_token: bool,
    ) -> Response:
        retry = self._config.retries
        attempts = max(1, retry.max_attempts) if allow_retry else 1
        base_backoff = max(0.05, retry.backoff_ms / 1000.0)
        max_backoff = max(base_backoff, retry.max_backoff_ms / 1000.0)
        timeout_value = timeout or self._config.timeout_sec
        expected = tuple(expected_status)
        redacted = self._redact_url(url)
        refreshed_token = False
        force_refresh = False
        last_error: DriveError | None = None

        attempt = 0
        while attempt < attempts:
            attempt += 1
            request_headers: MutableMapping[str, str] = dict(headers or {})
            if attach_token:
                token = self._auth.get_token(force_refresh=force_refresh)
                request_headers["Authorization"] = f"Bearer {token}"
                force_refresh = False

            try:
                response = self._session.request(
                    method,
                    url,
                    headers=request_headers,
                    json=json_body,
                    data=data,
                    timeout=timeout_value,
                )
            except Timeout as exc:
                last_error = TransientServiceError("Request timed out", payload={"url": redacted})
                self._logger.warning(
                    "graph.http timeout method=%s url=%s attempt=%d",
                    method,
                    redacted,
                    attempt,
                    exc_info=exc,
                )
            except (ConnectionError, RequestException) as exc:
                last_error = TransientServiceError("Request failed", payload={"url": redacted})
                self._logger.warning(
                    "graph.http connection_error method=%s url=%s attempt=%d error=%s",
                    method,
                    redacted,
                    attempt,
                    type(exc).__name__,
                    exc_info=exc,
                )
            else:
                status = response.status_code
                if status in expected:
                    return response

                diagnostics = RequestDiagnostics(
                    method=method,
                    url=redacted,
                    status=status,
                    request_id=response.headers.get("request-id") if response.headers else None,
                )
                payload = self._safe_json(response)
                if status == 401 and attach_token and not refreshed_token:
                    # One forced refresh; a second 401 means the grant itself is missing.
                    self._auth.invalidate()
                    self._logger.info(
                        "graph.http unauthorized method=%s url=%s -- refreshing token",
                        method,
                        redacted,
                    )
                    refreshed_token = True
                    force_refresh = True
                    # The replay does not count against the retry budget.
                    attempt -= 1
                    continue
                if status in (401, 403):
                    self._log_rejected(diagnostics, payload)
                    raise AuthorizationError(
                        self._error_message("Access denied", payload),
                        status_code=status,
                        payload=payload,
                    )
                if status == 404:
                    raise NotFoundError(
                        self._error_message("Resource not found", payload),
                        status_code=status,
                        payload=payload,
                    )
                if status in RETRYABLE_STATUS:
                    self._logger.warning(
                        "graph.http retryable_status method=%s url=%s status=%d attempt=%d request_id=%s",
                        method,
                        redacted,
                        status,
                        attempt,
                        diagnostics.request_id,
                    )
                    last_error = TransientServiceError(
                        self._error_message("Retryable response", payload),
                        status_code=status,
                        payload=payload,
                    )
                else:
                    raise DriveRequestError(
                        self._error_message(f"Unexpected status {status}", payload),
                        status_code=status,
                        payload=payload,
                    )

            if attempt < attempts:
                self._sleep_with_backoff(base_backoff, max_backoff, attempt, last_error)

        if last_error is not None:
            raise last_error
        raise TransientServiceError("Exhausted retries", payload={"url": redacted})  # pragma: no cover

    def _log_rejected(self, diagnostics: RequestDiagnostics, payload: Mapping[str, Any]) -> None:
        hint = "Grant Files.ReadWrite.All application permission and admin consent"
        self._logger.error(
            "graph.http rejected method=%s url=%s status=%s request_id=%s hint=%s code=%s",
            diagnostics.method,
            diagnostics.url,
            diagnostics.status,
            diagnostics.request_id,
            hint,
            self._error_code(payload),
        )

    def _error_code(self, payload: Mapping[str, Any]) -> str | None:
        error = payload.get("error")
        if isinstance(error, Mapping):
            return error.get("code")
        return None

    def _error_message(self, prefix: str, payload: Mapping[str, Any]) -> str:
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return f"{prefix}: {error.get('message')}"
        return prefix

    def _redact_url(self, url: str) -> str:
        if "?" in url:
            return url.split("?")[0]
        return url

    def _compose_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        base = self._config.graph_url.rstrip("/")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base}{path}"

    def _sleep_with_backoff(
        self,
        base: float,
        maximum: float,
        attempt: int,
        error: DriveError | None,
    ) -> None:
        delay = min(maximum, base * (2 ** (attempt - 1)))
        retry_after = self._retry_after(error)
        if retry_after is not None:
            delay = min(maximum, max(delay, retry_after))
        jitter = random.uniform(0, delay / 2)
        time.sleep(delay + jitter)

    def _retry_after(self, error: DriveError | None) -> float | None:
        if error is None:
            return None
        value = error.payload.get("retry_after")
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def _safe_json(self, response: Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            text = response.text
            if len(text) > 200:
                text = text[:200] + "..."
            payload = {"body": text}
        if not isinstance(payload, dict):
            payload = {"body": payload}
        retry_after = response.headers.get("Retry-After") if response.headers else None
        if retry_after:
            payload.setdefault("retry_after", retry_after)
        return payload


__all__ = ["HttpClient", "USER_AGENT"]
