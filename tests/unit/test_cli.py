"""Tests for the command-line entry point."""

from __future__ import annotations

import socket
from pathlib import Path
from unittest.mock import patch

import pytest

from cmdrelay.cli import main, parse_args
from cmdrelay.config.settings import LogLevel


@pytest.fixture(autouse=True)
def _isolated_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ("CMDRELAY_SERVER__HOST", "CMDRELAY_SERVER__PORT", "CMDRELAY_LOGGING__LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestParseArgs:
    def test_defaults_are_unset(self) -> None:
        args = parse_args([])
        assert args.host is None
        assert args.port is None
        assert args.log is None
        assert args.config is None
        assert args.verbose is False

    def test_values_kept_as_strings(self) -> None:
        args = parse_args(["--host", "0.0.0.0", "--port", "notanumber", "--log", "debug"])
        assert args.host == "0.0.0.0"
        assert args.port == "notanumber"
        assert args.log == "debug"


class TestMain:
    def test_main_serves_with_parsed_settings(self) -> None:
        with patch("cmdrelay.relay.server.serve") as mock_serve:
            main(["--host", "127.0.0.1", "--port", "9000", "--log", "error"])
        settings = mock_serve.call_args.args[0]
        assert settings.server.host == "127.0.0.1"
        assert settings.server.port == 9000
        assert settings.logging.level is LogLevel.ERROR

    def test_invalid_port_still_starts(self, caplog: pytest.LogCaptureFixture) -> None:
        with patch("cmdrelay.relay.server.serve") as mock_serve:
            main(["--port", "99999"])
        settings = mock_serve.call_args.args[0]
        assert settings.server.port == 9772
        assert "Provided invalid value for argument: --port 99999" in caplog.text

    def test_verbose_forces_debug(self) -> None:
        with patch("cmdrelay.relay.server.serve") as mock_serve:
            main(["--log", "silent", "-v"])
        assert mock_serve.call_args.args[0].logging.level is LogLevel.DEBUG

    def test_occupied_port_exits_nonzero(self, caplog: pytest.LogCaptureFixture) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as holder:
            holder.bind(("127.0.0.1", 0))
            holder.listen(1)
            port = holder.getsockname()[1]
            with pytest.raises(SystemExit) as exc_info:
                main(["--host", "127.0.0.1", "--port", str(port), "--log", "error"])
        assert exc_info.value.code == 1
        assert f"cannot listen on 127.0.0.1:{port}" in caplog.text
