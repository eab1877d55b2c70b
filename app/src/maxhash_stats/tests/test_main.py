from __future__ import annotations

import pytest

from maxhash_stats import __main__ as entrypoint


def test_parse_args_defaults_to_local_config():
    args = entrypoint.parse_args([])

    assert str(args.config) == "config.toml"


def test_invalid_config_exits_with_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[http.cache]\nttl = "0s"\n')

    assert entrypoint.main(["--config", str(path)]) == 1


def test_unbindable_address_exits_with_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(f'[http]\naddr = "localhost:99999"\n[ckpool]\nlog_dir = "{tmp_path}"\n')

    assert entrypoint.main(["--config", str(path)]) == 1


def test_runs_until_stopped(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text(f'[http]\naddr = "127.0.0.1:0"\n[ckpool]\nlog_dir = "{tmp_path}"\n')
    calls = {}

    def fake_run_server(server, stop_event, *, shutdown_grace):
        calls["port"] = server.port
        calls["grace"] = shutdown_grace
        server.server_close()
        return True

    monkeypatch.setattr(entrypoint, "run_server", fake_run_server)
    monkeypatch.setattr(entrypoint.signal, "signal", lambda *args: None)

    assert entrypoint.main(["--config", str(path)]) == 0
    assert calls["port"] > 0
    assert calls["grace"] == 15.0


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    entrypoint.configure_logging("info")
