"""Tests for the pixelvault command line."""

from pathlib import Path

import pytest

from pixelvault.__main__ import main
from pixelvault.core import get_settings


def test_serve_passes_host_and_port(monkeypatch, tmp_path):
    import pixelvault.api.main as api_main

    calls = []
    monkeypatch.setattr(api_main, "start_api_server", lambda host, port: calls.append((host, port)))

    db = tmp_path / "cli.db"
    assert main(["serve", "--host", "0.0.0.0", "--port", "9000", "--db", str(db)]) == 0
    assert calls == [("0.0.0.0", 9000)]
    assert get_settings().db_path == Path(db)


def test_server_crash_returns_error(monkeypatch, capsys):
    import pixelvault.api.main as api_main

    def boom(host, port):
        raise OSError("address already in use")

    monkeypatch.setattr(api_main, "start_api_server", boom)
    assert main(["serve"]) == 1
    assert "address already in use" in capsys.readouterr().err


def test_command_required():
    with pytest.raises(SystemExit):
        main([])
