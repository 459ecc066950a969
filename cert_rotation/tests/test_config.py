"""Tests for WatcherConfig."""

import signal
from pathlib import Path

import pytest

from cert_rotation.lib.config import WatcherConfig, parse_signal


def test_defaults() -> None:
    """Defaults should poll daily after a 30s grace period."""
    config = WatcherConfig.from_env({})

    assert config.poll_interval == 86400
    assert config.startup_grace == 30
    assert config.reload_signal is signal.SIGHUP
    assert config.reload_command == []
    assert config.owner is None
    assert config.verify_pair is False
    assert config.fingerprint_file == Path("/var/lib/postgresql/data/certs/.fingerprints.json")


def test_reads_environment() -> None:
    """CERT_ROTATION_* variables should override defaults."""
    config = WatcherConfig.from_env(
        {
            "CERT_ROTATION_SOURCE_CERT": "/traefik/certs/db.crt",
            "CERT_ROTATION_SOURCE_KEY": "/traefik/certs/db.key",
            "CERT_ROTATION_DEST_DIR": "/data/tls",
            "CERT_ROTATION_STATE_FILE": "/state/fp.json",
            "CERT_ROTATION_POLL_INTERVAL": "3600",
            "CERT_ROTATION_STARTUP_GRACE": "5.5",
            "CERT_ROTATION_OWNER": "postgres",
            "CERT_ROTATION_GROUP": "postgres",
            "CERT_ROTATION_RELOAD_SIGNAL": "USR1",
            "CERT_ROTATION_RELOAD_COMMAND": "psql -U postgres -c 'SELECT pg_reload_conf()'",
            "CERT_ROTATION_VERIFY_PAIR": "yes",
            "CERT_ROTATION_HASH_ALGORITHM": "MD5",
        }
    )

    assert config.source_cert == Path("/traefik/certs/db.crt")
    assert config.dest_cert == Path("/data/tls/server.crt")
    assert config.dest_key == Path("/data/tls/server.key")
    assert config.fingerprint_file == Path("/state/fp.json")
    assert config.poll_interval == 3600
    assert config.startup_grace == 5.5
    assert config.owner == "postgres"
    assert config.reload_signal is signal.SIGUSR1
    assert config.reload_command == ["psql", "-U", "postgres", "-c", "SELECT pg_reload_conf()"]
    assert config.verify_pair is True
    assert config.hash_algorithm == "md5"


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("CERT_ROTATION_POLL_INTERVAL", "daily", "number of seconds"),
        ("CERT_ROTATION_STARTUP_GRACE", "-1", "must not be negative"),
        ("CERT_ROTATION_POLL_INTERVAL", "0", "must be positive"),
        ("CERT_ROTATION_VERIFY_PAIR", "maybe", "must be a boolean"),
        ("CERT_ROTATION_RELOAD_SIGNAL", "SIGNOPE", "unknown signal"),
    ],
)
def test_invalid_values_rejected(name: str, value: str, message: str) -> None:
    """Invalid environment values should raise ValueError."""
    with pytest.raises(ValueError, match=message):
        WatcherConfig.from_env({name: value})


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"poll_interval": -5}, "poll interval must be positive"),
        ({"poll_interval": 0}, "poll interval must be positive"),
        ({"poll_interval": float("nan")}, "poll interval must be positive"),
        ({"startup_grace": -1}, "startup grace must not be negative"),
        ({"shutdown_timeout": -30}, "shutdown timeout must not be negative"),
    ],
)
def test_validate_rejects_bad_timing(overrides: dict, message: str) -> None:
    """Timing values set directly (e.g. from flags) should be checked too."""
    config = WatcherConfig(**overrides)

    with pytest.raises(ValueError, match=message):
        config.validate()


def test_validate_accepts_zero_grace_and_timeout() -> None:
    """No grace period and an immediate kill are allowed."""
    WatcherConfig(poll_interval=0.5, startup_grace=0, shutdown_timeout=0).validate()


@pytest.mark.parametrize("value", ["SIGHUP", "hup", "1"])
def test_parse_signal_forms(value: str) -> None:
    """Signal names with or without SIG prefix, and numbers, should resolve."""
    assert parse_signal(value) is signal.SIGHUP


def test_install_plans_pair_source_with_destination(tmp_path: Path) -> None:
    """Single plan should map source cert/key onto destination names."""
    config = WatcherConfig(
        source_cert=tmp_path / "fullchain.pem",
        source_key=tmp_path / "privkey.pem",
        dest_dir=tmp_path / "data",
    )

    [plan] = config.install_plans()

    assert plan.source.certificate_path == tmp_path / "fullchain.pem"
    assert plan.destination.private_key_path == tmp_path / "data" / "server.key"
    assert plan.role_ids() == ["server.cert", "server.key"]
