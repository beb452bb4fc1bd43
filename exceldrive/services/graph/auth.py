"""Client-credential token acquisition for Microsoft Graph application permissions."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional

import requests
from requests import Response
from requests.exceptions import RequestException, Timeout

from exceldrive.core.logger import get_logger

from .config import GraphConfig
from .models import AuthorizationError, DriveError, TransientServiceError

LOGGER = get_logger()

REFRESH_MARGIN_SEC = 60.0


@dataclass(slots=True)
class TokenState:
    """Cached access token details."""

    value: str
    expires_at: float


class AuthClient:
    """Fetch and cache app-only access tokens with thread safety."""

    def __init__(
        self,
        config: GraphConfig,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.verify = config.verify_tls
        self._session.trust_env = config.trust_env
        if config.proxies:
            self._session.proxies.update(config.proxies)
        self._lock = threading.RLock()
        self._token_state: TokenState | None = None

    @property
    def session(self) -> requests.Session:
        """Expose the session used for token retrieval."""

        return self._session

    def get_token(self, *, force_refresh: bool = False) -> str:
        """Return a cached access token, refreshing when necessary."""

        with self._lock:
            if (
                not force_refresh
                and self._token_state
                and self._token_state.expires_at - time.monotonic() > REFRESH_MARGIN_SEC
            ):
                return self._token_state.value
            return self._refresh_locked()

    def invalidate(self) -> None:
        """Invalidate the cached token forcing a refresh on next access."""

        with self._lock:
            self._token_state = None

    # Internal helpers -------------------------------------------------

    def _refresh_locked(self) -> str:
        form = {
            "grant_type": "client_credentials",
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "scope": self._config.scope,
        }
        retry = self._config.retries
        attempts = max(1, retry.max_attempts)
        backoff = max(0.05, retry.backoff_ms / 1000.0)
        max_backoff = max(backoff, retry.max_backoff_ms / 1000.0)
        last_error: DriveError | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.post(
                    self._config.token_url,
                    data=form,
                    timeout=self._config.timeout_sec,
                )
            except Timeout as exc:  # pragma: no cover - network failure path
                LOGGER.warning("graph.auth token_request_timeout attempt=%d", attempt, exc_info=exc)
                last_error = TransientServiceError("Timeout while requesting access token")
            except RequestException as exc:  # pragma: no cover - network failure path
                LOGGER.warning(
                    "graph.auth token_request_error attempt=%d error=%s",
                    attempt,
                    type(exc).__name__,
                    exc_info=exc,
                )
                last_error = TransientServiceError("Failed to request access token")
            else:
                try:
                    token_state = self._parse_response(response)
                except TransientServiceError as exc:
                    last_error = exc
                else:
                    self._token_state = token_state
                    LOGGER.info(
                        "graph.auth token_refreshed expires_in=%.0fs attempt=%d",
                        token_state.expires_at - time.monotonic(),
                        attempt,
                    )
                    return token_state.value

            if attempt < attempts:
                sleep_for = min(max_backoff, backoff * (2 ** (attempt - 1)))
                time.sleep(sleep_for)

        if last_error is None:  # pragma: no cover - loop always records an error
            raise TransientServiceError("Unable to obtain access token")
        raise last_error

    def _parse_response(self, response: Response) -> TokenState:
        status = response.status_code
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if status == 429 or status >= 500:
            raise TransientServiceError(
                f"Token endpoint returned HTTP {status}",
                status_code=status,
                payload=payload,
            )
        if status != 200:
            # AADSTS errors: invalid_client, unauthorized_client, invalid_scope...
            description = payload.get("error_description") or payload.get("error") or "unknown error"
            raise AuthorizationError(
                f"Token request rejected: {description}",
                status_code=status,
                payload={"error": payload.get("error")},
            )
        token_value = payload.get("access_token")
        if not token_value:
            raise AuthorizationError("Token response missing access_token", status_code=status)
        expires_in = float(payload.get("expires_in", 3599))
        expires_at = time.monotonic() + max(REFRESH_MARGIN_SEC, expires_in)
        return TokenState(value=str(token_value), expires_at=expires_at)


__all__ = ["AuthClient", "TokenState"]
