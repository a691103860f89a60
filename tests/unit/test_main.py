"""Tests for keygate.__main__ — startup config validation and exit codes."""

import logging
from pathlib import Path

import pytest
from aiohttp import web

from keygate.__main__ import main


@pytest.fixture(autouse=True)
def no_server(monkeypatch) -> list:
    """Record run_app calls instead of binding a port."""
    calls: list = []
    monkeypatch.setattr(web, "run_app", lambda app, port: calls.append((app, port)))
    return calls


class TestMain:
    def test_bad_strategy_exits_1(self, tmp_path: Path, caplog, no_server) -> None:
        config_file = tmp_path / "keygate.yaml"
        config_file.write_text(
            "strategy:\n  name: api-key\n  mode: true\n  key_store: knockknock\n"
        )
        with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file)])
        assert exc_info.value.code == 1
        assert "Unrecognized key store shape" in caplog.text
        assert no_server == []

    def test_missing_key_store_file_exits_1(self, tmp_path: Path, caplog) -> None:
        config_file = tmp_path / "keygate.yaml"
        config_file.write_text(
            f"strategy:\n  name: api-key\n  key_store_path: {tmp_path / 'missing.yaml'}\n"
        )
        with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file)])
        assert exc_info.value.code == 1
        assert "missing.yaml" in caplog.text

    def test_non_mapping_config_exits_1(self, tmp_path: Path, caplog) -> None:
        config_file = tmp_path / "keygate.yaml"
        config_file.write_text("- not\n- a mapping\n")
        with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file)])
        assert exc_info.value.code == 1
        assert "Invalid configuration" in caplog.text

    def test_valid_config_runs_app(self, tmp_path: Path, no_server) -> None:
        config_file = tmp_path / "keygate.yaml"
        config_file.write_text(
            "server:\n  port: 9191\n"
            "strategy:\n  name: api-key\n  mode: true\n"
            "  key_store:\n    knockknock:\n      name: Who Is There\n"
        )
        main(["--config", str(config_file)])
        assert len(no_server) == 1
        app, port = no_server[0]
        assert isinstance(app, web.Application)
        assert port == 9191
