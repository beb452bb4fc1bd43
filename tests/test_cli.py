"""CLI integration tests for the export commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from exceldrive import cli
from exceldrive.services.graph.auth import AuthClient
from exceldrive.services.graph.client import GraphDriveClient
from exceldrive.services.graph.config import GraphConfig
from exceldrive.services.graph.http import HttpClient
from exceldrive.services.tabular import decode_document

from graph_fakes import FakeSession, MockResponse, item_response, session_response, token_response


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def configured_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXCELDRIVE_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("EXCELDRIVE_CLIENT_ID", "client")
    monkeypatch.setenv("EXCELDRIVE_CLIENT_SECRET", "secret")
    monkeypatch.setenv("EXCELDRIVE_TENANT_ID", "tenant")
    monkeypatch.setenv("EXCELDRIVE_UPN", "user@contoso.com")
    monkeypatch.setattr("exceldrive.services.graph.http.time.sleep", lambda *_: None)


def _install_fake_client(monkeypatch: pytest.MonkeyPatch, responses: list[MockResponse]) -> FakeSession:
    session = FakeSession(responses)

    def factory(config: GraphConfig) -> GraphDriveClient:
        auth = AuthClient(config, session=session)
        return GraphDriveClient(config, http_client=HttpClient(config, session=session, auth_client=auth))

    monkeypatch.setattr(cli, "GraphDriveClient", factory)
    return session


def test_run_uploads_and_reports_progress(
    cli_runner: CliRunner, configured_env: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    session = _install_fake_client(
        monkeypatch, [token_response(), session_response(), item_response("item-1", name="Report.xlsx")]
    )
    result = cli_runner.invoke(cli.app, ["run", "--path", "/Reports/Report.xlsx", "--sheet", "Data"])

    assert result.exit_code == 0, result.output
    assert "Uploading chunk 1 out of 1" in result.stdout
    assert "Upload is complete" in result.stdout
    assert "item-1 Report.xlsx" in result.stdout
    assert "/drive/root:/Reports/Report.xlsx:/createUploadSession" in session.calls[1][1]
    assert decode_document(session.call_kwargs[2]["data"], sheet_name="Data")[0] == ["Id", "Name", "City", "Country"]
    assert session.closed is True


def test_run_with_records_file(
    cli_runner: CliRunner, configured_env: None, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    records = tmp_path / "records.csv"
    records.write_text("Id,Name,City,Country\n42,Answer,Deep,Thought\n", encoding="utf-8")
    session = _install_fake_client(monkeypatch, [token_response(), session_response(), item_response()])

    result = cli_runner.invoke(cli.app, ["run", "--records", str(records)])

    assert result.exit_code == 0, result.output
    grid = decode_document(session.call_kwargs[2]["data"])
    assert grid == [["Id", "Name", "City", "Country"], ["42", "Answer", "Deep", "Thought"]]


def test_run_failure_exits_non_zero(
    cli_runner: CliRunner, configured_env: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    _install_fake_client(
        monkeypatch,
        [token_response(), MockResponse(status_code=403, json_data={"error": {"code": "accessDenied"}})],
    )
    result = cli_runner.invoke(cli.app, ["run"])
    assert result.exit_code == cli.EXIT_FAILURE
    assert "Uploading chunk" not in result.stdout


def test_run_without_credentials_is_a_config_error(
    cli_runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("EXCELDRIVE_CONFIG_DIR", str(tmp_path))
    result = cli_runner.invoke(cli.app, ["run"])
    assert result.exit_code == cli.EXIT_CONFIG


def test_encode_writes_workbook(cli_runner: CliRunner, tmp_path: Path) -> None:
    out = tmp_path / "book.xlsx"
    result = cli_runner.invoke(cli.app, ["encode", "--out", str(out), "--sheet", "Local"])
    assert result.exit_code == 0, result.output
    assert "rows=5" in result.stdout
    grid = decode_document(out.read_bytes(), sheet_name="Local")
    assert grid[1] == ["1001", "ABCD", "City1", "USA"]
    assert len(grid) == 5


def test_invalid_log_level(cli_runner: CliRunner, tmp_path: Path) -> None:
    result = cli_runner.invoke(cli.app, ["--log-level", "LOUD", "encode", "--out", str(tmp_path / "b.xlsx")])
    assert result.exit_code != 0
