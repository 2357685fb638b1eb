"""Tests for the apisig CLI."""

import json
import time

import pytest
from click.testing import CliRunner

from apisig.cli import cli
from apisig.common.hmac import sign_request


@pytest.fixture
def runner():
    return CliRunner()


class TestSignCommand:
    def test_sign_json(self, runner):
        result = runner.invoke(
            cli,
            ["sign", "-s", "your_secret_key", "-t", "address=init&linkType=0", "--timestamp", "7", "--json"],
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "apiSig": "kEU67gzX2pYgGlhsHXDxg0YtM7z8YYG6cQI8rl22eF4=",
            "timestamp": "7",
        }

    def test_sign_with_body_file(self, runner, tmp_path):
        body_file = tmp_path / "body.json"
        body_file.write_bytes(b'{"a": 1}')
        result = runner.invoke(
            cli,
            ["sign", "-s", "k", "-X", "POST", "-t", "/items", "--data-file", str(body_file), "--timestamp", "1", "--json"],
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == sign_request("k", "POST", "/items", b'{"a": 1}', timestamp=1)

    def test_sign_get_with_binary_body_file(self, runner, tmp_path):
        body_file = tmp_path / "body.bin"
        body_file.write_bytes(b"\xff\x00\xfe")
        result = runner.invoke(
            cli,
            ["sign", "-s", "k", "-t", "/items?id=1", "--data-file", str(body_file), "--timestamp", "1", "--json"],
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == sign_request("k", "GET", "/items?id=1", timestamp=1)

    def test_secret_from_env(self, runner):
        result = runner.invoke(
            cli,
            ["sign", "-t", "/x", "--timestamp", "1", "--json"],
            env={"APISIG_SECRET_KEY": "envkey"},
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == sign_request("envkey", "GET", "/x", timestamp=1)

    def test_table_output(self, runner):
        result = runner.invoke(cli, ["sign", "-s", "k", "-t", "/x"])
        assert result.exit_code == 0
        assert "apiSig" in result.output
        assert "timestamp" in result.output

    def test_data_and_file_conflict(self, runner, tmp_path):
        body_file = tmp_path / "b"
        body_file.write_text("x")
        result = runner.invoke(
            cli,
            ["sign", "-s", "k", "-X", "POST", "-t", "/x", "-d", "y", "--data-file", str(body_file)],
        )
        assert result.exit_code == 2


class TestVerifyCommand:
    def test_valid(self, runner):
        headers = sign_request("k", "POST", "/items?id=1", b"payload")
        result = runner.invoke(
            cli,
            [
                "verify", "-s", "k", "-X", "POST", "-t", "/items?id=1", "-d", "payload",
                "--signature", headers["apiSig"], "--timestamp", headers["timestamp"],
            ],
        )
        assert result.exit_code == 0
        assert "Signature verified" in result.output

    def test_mismatch(self, runner):
        headers = sign_request("k", "POST", "/items", b"payload")
        result = runner.invoke(
            cli,
            [
                "verify", "-s", "k", "-X", "POST", "-t", "/items", "-d", "tampered",
                "--signature", headers["apiSig"], "--timestamp", headers["timestamp"],
            ],
        )
        assert result.exit_code == 1
        assert "api signature verify error" in result.output

    def test_stale(self, runner):
        headers = sign_request("k", "GET", "/items", timestamp=int(time.time()) - 100)
        result = runner.invoke(
            cli,
            [
                "verify", "-s", "k", "-t", "/items", "--skew", "10",
                "--signature", headers["apiSig"], "--timestamp", headers["timestamp"],
            ],
        )
        assert result.exit_code == 1
        assert "request timeout" in result.output


class _FakeResponse:
    def __init__(self, status, text):
        self.status = status
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    calls = []
    status = 200

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def request(self, method, url, data=None, headers=None):
        self.calls.append({"method": method, "url": url, "data": data, "headers": headers})
        return _FakeResponse(self.status, "echo")


class TestRequestCommand:
    @pytest.fixture(autouse=True)
    def fake_session(self, monkeypatch):
        _FakeSession.calls = []
        _FakeSession.status = 200
        monkeypatch.setattr("apisig.cli.aiohttp.ClientSession", _FakeSession)
        return _FakeSession

    def test_sends_signed_request(self, runner, fake_session):
        result = runner.invoke(
            cli,
            [
                "request", "-s", "k", "-X", "post", "--url", "http://localhost:8080/api/echo?x=1",
                "-d", "hello", "-H", "Content-Type: text/plain",
            ],
        )
        assert result.exit_code == 0
        assert "echo" in result.output

        call = fake_session.calls[0]
        assert call["method"] == "POST"
        assert call["data"] == b"hello"
        headers = call["headers"]
        assert headers["Content-Type"] == "text/plain"
        expected = sign_request("k", "POST", "/api/echo?x=1", b"hello", timestamp=int(headers["timestamp"]))
        assert headers["apiSig"] == expected["apiSig"]

    def test_error_status_exits_non_zero(self, runner, fake_session):
        fake_session.status = 401
        result = runner.invoke(cli, ["request", "-s", "k", "--url", "http://localhost:8080/api/ping"])
        assert result.exit_code == 1
        assert fake_session.calls[0]["data"] is None

    def test_invalid_header(self, runner):
        result = runner.invoke(
            cli,
            ["request", "-s", "k", "--url", "http://localhost/x", "-H", "no-colon"],
        )
        assert result.exit_code == 2
