"""Data models for certificate rotation."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class Role(StrEnum):
    """Logical file role within a credential pair."""

    CERT = "cert"
    KEY = "key"


class ServerState(StrEnum):
    """Lifecycle of the supervised server process."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"


class CycleOutcome(StrEnum):
    """Outcome of a single rotation loop iteration."""

    NO_CHANGE = "no_change"
    INSTALLED = "installed"
    CHECK_FAILED = "check_failed"
    INSTALL_FAILED = "install_failed"
    RELOAD_FAILED = "reload_failed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CredentialPair:
    """A certificate file and the private key belonging to it."""

    certificate_path: Path
    private_key_path: Path
    name: str = "server"

    def path_for(self, role: Role) -> Path:
        """Return the file path holding the given role."""
        return self.certificate_path if role is Role.CERT else self.private_key_path

    def role_id(self, role: Role) -> str:
        """Return the fingerprint record key for a role, e.g. ``server.cert``."""
        return f"{self.name}.{role}"


@dataclass(frozen=True)
class InstallPlan:
    """Where a credential pair is read from and where it is installed to.

    Source and destination share the source pair's name for fingerprint keys.
    """

    source: CredentialPair
    destination: CredentialPair

    @property
    def name(self) -> str:
        return self.source.name

    def role_ids(self) -> list[str]:
        return [self.source.role_id(role) for role in Role]


@dataclass
class InstallResult:
    """Result from a successful credential install."""

    installed_paths: list[Path]
    fingerprints: dict[str, str]


@dataclass
class CycleResult:
    """Result from one rotation loop iteration."""

    outcome: CycleOutcome
    changed_roles: list[str] = field(default_factory=list)
    error: str | None = None
