"""Watcher configuration dataclass."""

import os
import shlex
import signal
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .models import CredentialPair, InstallPlan

ENV_PREFIX = "CERT_ROTATION_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_seconds(name: str, value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise ValueError(f"{name} must not be negative, got {value!r}")
    return seconds


def parse_signal(value: str) -> signal.Signals:
    """Resolve ``SIGHUP``, ``HUP`` or ``1`` to a signal."""
    text = value.strip().upper()
    if text.isdigit():
        return signal.Signals(int(text))
    if not text.startswith("SIG"):
        text = f"SIG{text}"
    try:
        return signal.Signals[text]
    except KeyError:
        raise ValueError(f"unknown signal: {value!r}") from None


@dataclass
class WatcherConfig:
    """Settings for the rotation watcher.

    Defaults match a database container whose data volume receives the
    certificates a reverse proxy writes to ``/certs``.
    """

    source_cert: Path = Path("/certs/fullchain.pem")
    source_key: Path = Path("/certs/privkey.pem")
    dest_dir: Path = Path("/var/lib/postgresql/data/certs")
    dest_cert_name: str = "server.crt"
    dest_key_name: str = "server.key"
    state_file: Path | None = None
    poll_interval: float = 86400.0
    startup_grace: float = 30.0
    shutdown_timeout: float = 30.0
    owner: str | None = None
    group: str | None = None
    reload_signal: signal.Signals = signal.SIGHUP
    reload_command: list[str] = field(default_factory=list)
    verify_pair: bool = False
    hash_algorithm: str = "sha256"
    log_level: str = "INFO"

    def validate(self) -> None:
        """Check timing values that would otherwise make the loop spin or never stop.

        Raises:
            ValueError: If the poll interval is not positive, or the startup
                grace or shutdown timeout is negative
        """
        if not self.poll_interval > 0:
            raise ValueError(f"poll interval must be positive, got {self.poll_interval}")
        if not self.startup_grace >= 0:
            raise ValueError(f"startup grace must not be negative, got {self.startup_grace}")
        if not self.shutdown_timeout >= 0:
            raise ValueError(
                f"shutdown timeout must not be negative, got {self.shutdown_timeout}"
            )

    @property
    def dest_cert(self) -> Path:
        return self.dest_dir / self.dest_cert_name

    @property
    def dest_key(self) -> Path:
        return self.dest_dir / self.dest_key_name

    @property
    def fingerprint_file(self) -> Path:
        """Fingerprint record location, next to the installed files unless set."""
        if self.state_file is not None:
            return self.state_file
        return self.dest_dir / ".fingerprints.json"

    def install_plans(self) -> list[InstallPlan]:
        """Return the source/destination pairs to keep in sync."""
        return [
            InstallPlan(
                source=CredentialPair(self.source_cert, self.source_key),
                destination=CredentialPair(self.dest_cert, self.dest_key),
            )
        ]

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "WatcherConfig":
        """Build config from ``CERT_ROTATION_*`` variables, falling back to defaults.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        config = cls()

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        if (value := get("SOURCE_CERT")) is not None:
            config.source_cert = Path(value)
        if (value := get("SOURCE_KEY")) is not None:
            config.source_key = Path(value)
        if (value := get("DEST_DIR")) is not None:
            config.dest_dir = Path(value)
        if (value := get("DEST_CERT_NAME")) is not None:
            config.dest_cert_name = value
        if (value := get("DEST_KEY_NAME")) is not None:
            config.dest_key_name = value
        if value := get("STATE_FILE"):
            config.state_file = Path(value)
        if (value := get("POLL_INTERVAL")) is not None:
            config.poll_interval = _parse_seconds(ENV_PREFIX + "POLL_INTERVAL", value)
        if (value := get("STARTUP_GRACE")) is not None:
            config.startup_grace = _parse_seconds(ENV_PREFIX + "STARTUP_GRACE", value)
        if (value := get("SHUTDOWN_TIMEOUT")) is not None:
            config.shutdown_timeout = _parse_seconds(ENV_PREFIX + "SHUTDOWN_TIMEOUT", value)
        if value := get("OWNER"):
            config.owner = value
        if value := get("GROUP"):
            config.group = value
        if value := get("RELOAD_SIGNAL"):
            config.reload_signal = parse_signal(value)
        if value := get("RELOAD_COMMAND"):
            config.reload_command = shlex.split(value)
        if (value := get("VERIFY_PAIR")) is not None:
            config.verify_pair = _parse_bool(ENV_PREFIX + "VERIFY_PAIR", value)
        if value := get("HASH_ALGORITHM"):
            config.hash_algorithm = value.lower()
        if value := get("LOG_LEVEL"):
            config.log_level = value

        config.validate()
        return config
