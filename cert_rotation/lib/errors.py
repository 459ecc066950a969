"""Error taxonomy for certificate rotation."""

from pathlib import Path


class RotationError(Exception):
    """Base class for errors raised by rotation components."""


class FileUnavailable(RotationError):
    """A tracked file is missing or unreadable."""

    def __init__(self, path: Path, reason: str = "") -> None:
        self.path = path
        message = f"file unavailable: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class SourceMissing(RotationError):
    """The source credential set is incomplete, so nothing was installed."""

    def __init__(self, missing: list[Path]) -> None:
        self.missing = missing
        joined = ", ".join(str(p) for p in missing)
        super().__init__(f"source credentials missing: {joined}")


class InstallFailed(RotationError):
    """Copying credentials or applying ownership/permissions failed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"install failed for {path}: {reason}")


class LaunchFailed(RotationError):
    """The supervised server could not be started."""


class ReloadFailed(RotationError):
    """The running server rejected or never received the reload request."""
