from __future__ import annotations

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError

from exceldrive.services.graph.auth import AuthClient
from exceldrive.services.graph.config import RetryConfig
from exceldrive.services.graph.models import (
    AuthorizationError,
    DriveRequestError,
    NotFoundError,
    TransientServiceError,
)

from graph_fakes import UPLOAD_URL, FakeSession, MockResponse, build_config, build_http, token_response


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("exceldrive.services.graph.http.time.sleep", lambda *_: None)
    monkeypatch.setattr("exceldrive.services.graph.auth.time.sleep", lambda *_: None)


def test_auth_client_posts_client_credentials() -> None:
    config = build_config()
    session = FakeSession([token_response("tok")])
    auth = AuthClient(config, session=session)
    assert auth.get_token() == "tok"
    method, url = session.calls[0]
    assert method == "POST"
    assert url == "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    form = session.call_kwargs[0]["data"]
    assert form["grant_type"] == "client_credentials"
    assert form["client_id"] == "client"
    assert form["client_secret"] == "secret"
    assert form["scope"] == "https://graph.microsoft.com/.default"


def test_auth_client_caches_token(monkeypatch: pytest.MonkeyPatch) -> None:
    config = build_config()
    session = FakeSession([token_response("tok1", 120), token_response("tok2", 120)])
    auth = AuthClient(config, session=session)
    clock = {"now": 0.0}
    monkeypatch.setattr("exceldrive.services.graph.auth.time.monotonic", lambda: clock["now"])

    first = auth.get_token()
    clock["now"] = 30.0
    assert auth.get_token() == first
    clock["now"] = 200.0
    third = auth.get_token()
    assert third == "tok2"
    assert auth.get_token() == third
    assert len(session.calls_to("oauth2")) == 2


def test_auth_client_rejected_credentials() -> None:
    session = FakeSession(
        [
            MockResponse(
                status_code=401,
                json_data={"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret"},
            )
        ]
    )
    auth = AuthClient(build_config(), session=session)
    with pytest.raises(AuthorizationError, match="AADSTS7000215"):
        auth.get_token()
    assert len(session.calls) == 1


def test_auth_client_retries_server_errors() -> None:
    session = FakeSession([MockResponse(status_code=503, text_data="busy"), token_response("tok")])
    auth = AuthClient(build_config(), session=session)
    assert auth.get_token() == "tok"
    assert len(session.calls) == 2


def test_auth_client_gives_up_after_max_attempts() -> None:
    session = FakeSession([MockResponse(status_code=500, text_data="down") for _ in range(3)])
    auth = AuthClient(build_config(), session=session)
    with pytest.raises(TransientServiceError):
        auth.get_token()
    assert len(session.calls) == 3


def test_graph_request_attaches_bearer_token() -> None:
    http, session = build_http([token_response("tok"), MockResponse(json_data={"value": []})])
    response = http.request_graph("GET", "/users/u/drive")
    assert response.json() == {"value": []}
    assert session.calls[-1] == ("GET", "https://graph.microsoft.com/v1.0/users/u/drive")
    assert session.call_kwargs[-1]["headers"]["Authorization"] == "Bearer tok"


def test_unauthorized_refreshes_token_once() -> None:
    http, session = build_http(
        [
            token_response("stale"),
            MockResponse(status_code=401, json_data={"error": {"code": "InvalidAuthenticationToken"}}),
            token_response("fresh"),
            MockResponse(json_data={"ok": True}),
        ]
    )
    http.request_graph("GET", "/me")
    assert len(session.calls_to("oauth2")) == 2
    assert session.call_kwargs[-1]["headers"]["Authorization"] == "Bearer fresh"


def test_repeated_unauthorized_is_authorization_error() -> None:
    http, session = build_http(
        [
            token_response("a"),
            MockResponse(status_code=401, json_data={"error": {"code": "InvalidAuthenticationToken"}}),
            token_response("b"),
            MockResponse(status_code=401, json_data={"error": {"code": "InvalidAuthenticationToken"}}),
        ]
    )
    with pytest.raises(AuthorizationError):
        http.request_graph("GET", "/me")


def test_token_refresh_replays_without_spare_attempts() -> None:
    http, session = build_http(
        [
            token_response("stale"),
            MockResponse(status_code=401, json_data={"error": {"code": "InvalidAuthenticationToken"}}),
            token_response("fresh"),
            MockResponse(json_data={"ok": True}),
        ],
        retries=RetryConfig(max_attempts=1, backoff_ms=1, max_backoff_ms=1),
    )
    assert http.request_graph("GET", "/me").json() == {"ok": True}
    assert len(session.calls_to("oauth2")) == 2
    assert session.call_kwargs[-1]["headers"]["Authorization"] == "Bearer fresh"


def test_token_refresh_leaves_retry_budget_intact() -> None:
    http, session = build_http(
        [
            token_response("stale"),
            MockResponse(status_code=401, json_data={"error": {"code": "InvalidAuthenticationToken"}}),
            token_response("fresh"),
            MockResponse(status_code=503, text_data="busy"),
            MockResponse(status_code=503, text_data="busy"),
            MockResponse(json_data={"ok": True}),
        ]
    )
    assert http.request_graph("GET", "/me").json() == {"ok": True}
    assert len(session.calls_to("graph.microsoft.com")) == 4


def test_forbidden_maps_to_authorization_error() -> None:
    http, _ = build_http(
        [
            token_response(),
            MockResponse(status_code=403, json_data={"error": {"code": "accessDenied", "message": "Access denied"}}),
        ]
    )
    with pytest.raises(AuthorizationError) as excinfo:
        http.request_graph("POST", "/users/u/drive/root:/a.xlsx:/createUploadSession")
    assert excinfo.value.status_code == 403


def test_not_found_is_not_retried() -> None:
    http, session = build_http(
        [token_response(), MockResponse(status_code=404, json_data={"error": {"code": "itemNotFound"}})]
    )
    with pytest.raises(NotFoundError):
        http.request_graph("GET", "/users/missing/drive")
    assert len(session.calls) == 2


def test_server_errors_are_retried() -> None:
    http, session = build_http(
        [
            token_response(),
            MockResponse(status_code=503, text_data="unavailable", headers={"Retry-After": "0"}),
            MockResponse(status_code=502, text_data="bad gateway"),
            MockResponse(json_data={"ok": True}),
        ]
    )
    assert http.request_graph("GET", "/me").json() == {"ok": True}
    assert len(session.calls_to("graph.microsoft.com")) == 3


def test_transient_error_surfaces_after_bounded_retries() -> None:
    http, session = build_http(
        [token_response()] + [MockResponse(status_code=500, text_data="boom") for _ in range(3)]
    )
    with pytest.raises(TransientServiceError) as excinfo:
        http.request_graph("GET", "/me")
    assert excinfo.value.status_code == 500
    assert len(session.calls_to("graph.microsoft.com")) == 3


def test_connection_errors_become_transient() -> None:
    http, _ = build_http(
        [token_response()] + [RequestsConnectionError("refused") for _ in range(3)]
    )
    with pytest.raises(TransientServiceError):
        http.request_graph("GET", "/me")


def test_unexpected_status_is_request_error() -> None:
    http, _ = build_http(
        [token_response(), MockResponse(status_code=400, json_data={"error": {"message": "bad request"}})]
    )
    with pytest.raises(DriveRequestError, match="bad request"):
        http.request_graph("GET", "/me")


def test_upload_request_sends_no_token_and_does_not_retry() -> None:
    http, session = build_http([MockResponse(status_code=500, text_data="boom")])
    with pytest.raises(TransientServiceError) as excinfo:
        http.request_upload("PUT", UPLOAD_URL, data=b"abc")
    assert len(session.calls) == 1
    assert "Authorization" not in session.call_kwargs[0]["headers"]
    assert excinfo.value.payload == {"body": "boom"}
    assert "tempauth" not in str(excinfo.value)
