from __future__ import annotations

import pytest
import tomli

from maxhash_stats.config import DEFAULTS, DashboardConfig, apply_env_overrides, parse_duration


def test_defaults():
    config = DashboardConfig.from_dict({})

    assert config.log_level == "info"
    assert config.http.addr == "[::]:8080"
    assert config.http.shutdown_grace == 15.0
    assert config.http.rate_limiter.enabled is False
    assert config.http.rate_limiter.rps == 5.0
    assert config.http.rate_limiter.burst == 10
    assert config.http.cache.enabled is True
    assert config.http.cache.ttl == 60.0
    assert config.http.proxy.enabled is False
    assert config.http.proxy.target_host_url == "http://main.maxhash.io:8080"
    assert config.http.proxy.connect_timeout == 5.0
    assert config.ckpool.log_dir == "/var/log/ckpool"


@pytest.mark.parametrize(
    ("value", "seconds"),
    [
        (30, 30.0),
        (1.5, 1.5),
        ("45", 45.0),
        ("30s", 30.0),
        ("1m", 60.0),
        ("1h30m", 5400.0),
        ("250ms", 0.25),
        ("1m0.5s", 60.5),
        ("-1s", -1.0),
    ],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value, key="x") == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["", "1d", "m", "10 s", "1m x", True, None, [1]])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ValueError, match="x must be a duration"):
        parse_duration(value, key="x")


def test_partial_sections_keep_other_defaults():
    config = DashboardConfig.from_dict({"http": {"cache": {"ttl": "5s"}}, "log_level": "DEBUG"})

    assert config.log_level == "debug"
    assert config.http.cache.enabled is True
    assert config.http.cache.ttl == 5.0
    assert config.http.addr == "[::]:8080"


@pytest.mark.parametrize("ttl", [0, "0s", -3])
def test_non_positive_cache_ttl_is_rejected_when_enabled(ttl):
    with pytest.raises(ValueError, match="http.cache.ttl must be greater than 0"):
        DashboardConfig.from_dict({"http": {"cache": {"enabled": True, "ttl": ttl}}})


def test_cache_ttl_is_ignored_when_disabled():
    config = DashboardConfig.from_dict({"http": {"cache": {"enabled": False, "ttl": 0}}})

    assert config.http.cache.enabled is False


@pytest.mark.parametrize(
    ("section", "message"),
    [
        ({"enabled": True, "rps": 0}, "rps must be greater than 0"),
        ({"enabled": True, "burst": 0}, "burst must be at least 1"),
        ({"enabled": True, "rps": "fast"}, "rps must be a number"),
        ({"enabled": "yes"}, "enabled must be a boolean"),
    ],
)
def test_rate_limiter_validation(section, message):
    with pytest.raises(ValueError, match=message):
        DashboardConfig.from_dict({"http": {"rate_limiter": section}})


@pytest.mark.parametrize(
    ("target", "message"),
    [
        ("", "http.proxy.target_host_url is not set"),
        ("ftp://main.maxhash.io", "failed to parse target host URL"),
    ],
)
def test_proxy_target_is_validated_when_enabled(target, message):
    with pytest.raises(ValueError, match=message):
        DashboardConfig.from_dict({"http": {"proxy": {"enabled": True, "target_host_url": target}}})


def test_proxy_target_is_not_validated_when_disabled():
    config = DashboardConfig.from_dict({"http": {"proxy": {"enabled": False, "target_host_url": ""}}})

    assert config.http.proxy.target_host_url == ""


def test_empty_log_dir_is_rejected():
    with pytest.raises(ValueError, match="ckpool.log_dir is not set"):
        DashboardConfig.from_dict({"ckpool": {"log_dir": "  "}})


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValueError, match="log_level must be one of"):
        DashboardConfig.from_dict({"log_level": "verbose"})


def test_log_dir_path_expands_home(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))

    config = DashboardConfig.from_dict({"ckpool": {"log_dir": "~/ckpool"}})

    assert config.ckpool.log_dir_path == tmp_path / "ckpool"


def test_load_writes_defaults_when_missing(tmp_path):
    path = tmp_path / "conf" / "config.toml"

    config = DashboardConfig.load(path, environ={})

    assert path.exists()
    with path.open("rb") as f:
        assert tomli.load(f) == DEFAULTS
    assert config == DashboardConfig.from_dict({})


def test_load_reads_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        """
log_level = "warning"

[http]
addr = "127.0.0.1:9090"

[http.rate_limiter]
enabled = true
rps = 1
burst = 3

[ckpool]
log_dir = "/srv/ckpool/logs"
"""
    )

    config = DashboardConfig.load(path, environ={})

    assert config.log_level == "warning"
    assert config.http.addr == "127.0.0.1:9090"
    assert config.http.rate_limiter.enabled is True
    assert config.http.rate_limiter.rps == 1.0
    assert config.http.rate_limiter.burst == 3
    assert config.ckpool.log_dir == "/srv/ckpool/logs"


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[http]\naddr = "127.0.0.1:9090"\n')

    config = DashboardConfig.load(
        path,
        environ={
            "MAXHASH_HTTP_ADDR": "0.0.0.0:8081",
            "MAXHASH_HTTP_CACHE_TTL": "10s",
            "MAXHASH_HTTP_RATE_LIMITER_ENABLED": "true",
            "MAXHASH_HTTP_RATE_LIMITER_BURST": "20",
            "MAXHASH_HTTP_RATE_LIMITER_RPS": "2.5",
            "MAXHASH_CKPOOL_LOG_DIR": "/tmp/ckpool",
            "UNRELATED": "1",
        },
    )

    assert config.http.addr == "0.0.0.0:8081"
    assert config.http.cache.ttl == 10.0
    assert config.http.rate_limiter.enabled is True
    assert config.http.rate_limiter.burst == 20
    assert config.http.rate_limiter.rps == 2.5
    assert config.ckpool.log_dir == "/tmp/ckpool"


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("MAXHASH_HTTP_CACHE_ENABLED", "maybe", "must be a boolean"),
        ("MAXHASH_HTTP_RATE_LIMITER_BURST", "lots", "must be an integer"),
        ("MAXHASH_HTTP_RATE_LIMITER_RPS", "fast", "must be a number"),
    ],
)
def test_bad_environment_values(name, value, message):
    data = {}

    with pytest.raises(ValueError, match=f"{name} {message}"):
        apply_env_overrides(data, {name: value})


def test_invalid_toml_is_reported(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[http\n")

    with pytest.raises(tomli.TOMLDecodeError):
        DashboardConfig.load(path, environ={})
