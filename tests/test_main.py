"""Tests for the command line entry point."""

import json

import httpx
import pytest

from nuget_protocol import main as cli
from nuget_protocol.protocol.v2 import V2Protocol


@pytest.fixture
def feed(monkeypatch):
    """Route the CLI's protocol through an in-memory feed"""
    state = {"exists": False, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append((request.method, request.url.path))
        if request.method == "PUT":
            state["exists"] = True
            return httpx.Response(201)
        if request.method == "DELETE":
            return httpx.Response(204)
        if not state["exists"]:
            return httpx.Response(404)
        return httpx.Response(
            200,
            content=(
                b'<entry xmlns="http://www.w3.org/2005/Atom" '
                b'xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices" '
                b'xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">'
                b"<title>Foo</title><m:properties><d:Version>1.0.0</d:Version>"
                b"</m:properties></entry>"
            ),
        )

    def make_protocol(timeout: float) -> V2Protocol:
        state["timeout"] = timeout
        return V2Protocol(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    monkeypatch.setattr(cli, "V2Protocol", make_protocol)
    return state


def test_exists_prints_not_found(feed, capsys) -> None:
    code = cli.main(["exists", "https://example.org/api/v2", "Foo", "1.0.0"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"status_code": 404, "data": None}


def test_push_and_unlist(feed, capsys, tmp_path, nupkg_factory) -> None:
    package = tmp_path / "Foo.1.0.0.nupkg"
    package.write_bytes(nupkg_factory().getvalue())

    code = cli.main(["push", "https://example.org/api/v2", str(package), "--unlist"])

    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["package_already_exists"] is False
    assert result["package_pushed_successfully"] is True
    assert result["push_status_code"] == 201
    assert result["unlist_status_code"] == 204
    assert [method for method, _ in feed["requests"]] == ["GET", "PUT", "GET", "DELETE"]


def test_unknown_source_exits_with_error(feed) -> None:
    assert cli.main(["metadata", "nowhere"]) == 1
    assert feed["requests"] == []


def test_parse_args_defaults() -> None:
    args = cli.parse_args(["exists", "nuget", "Foo", "1.0.0"])

    assert args.command == "exists"
    assert args.filter == "entry"
    assert args.config is None


def test_zero_timeout_flag_overrides_config(feed, tmp_path) -> None:
    config = tmp_path / "nuget.toml"
    config.write_text("[nuget-protocol]\ntimeout = 30\n", encoding="utf-8")

    cli.main(
        [
            "--config",
            str(config),
            "--timeout",
            "0",
            "exists",
            "https://example.org/api/v2",
            "Foo",
            "1.0.0",
        ]
    )

    assert feed["timeout"] == 0


def test_config_timeout_used_without_flag(feed, tmp_path) -> None:
    config = tmp_path / "nuget.toml"
    config.write_text("[nuget-protocol]\ntimeout = 30\n", encoding="utf-8")

    cli.main(["--config", str(config), "exists", "https://example.org/api/v2", "Foo", "1.0.0"])

    assert feed["timeout"] == 30.0


def test_unknown_log_level_flag_exits_with_error(feed) -> None:
    code = cli.main(["--log-level", "loud", "exists", "https://example.org/api/v2", "Foo", "1.0.0"])

    assert code == 1
    assert feed["requests"] == []


def test_unknown_log_level_in_config_exits_with_error(feed, tmp_path) -> None:
    config = tmp_path / "nuget.toml"
    config.write_text('[nuget-protocol]\nlog_level = "loud"\n', encoding="utf-8")

    code = cli.main(["--config", str(config), "metadata", "nowhere"])

    assert code == 1
    assert feed["requests"] == []
