"""Asks the running server to re-read its configuration and credentials."""

import signal
import subprocess
from collections.abc import Sequence

from .errors import ReloadFailed
from .logging_config import LOGGER
from .supervisor import ServerHandle


class ReloadTrigger:
    """Sends a reload signal, or runs a reload command, against a running server."""

    def __init__(
        self,
        reload_signal: signal.Signals = signal.SIGHUP,
        command: Sequence[str] | None = None,
        command_timeout: float = 60.0,
    ) -> None:
        """Initialize trigger.

        Args:
            reload_signal: Signal sent to the server when no command is set
            command: Reload command, e.g. ``["pg_ctl", "reload", "-D", "/data"]``
            command_timeout: Seconds before a reload command counts as failed
        """
        self.reload_signal = reload_signal
        self.command = list(command) if command else []
        self.command_timeout = command_timeout

    def reload(self, handle: ServerHandle) -> None:
        """Request an in-place reload.

        Raises:
            ReloadFailed: If the server is not running or the request errors
        """
        if not handle.is_running or handle.process.poll() is not None:
            raise ReloadFailed(f"server pid={handle.pid} is not running ({handle.state})")

        if self.command:
            self._run_command()
        else:
            self._send_signal(handle)

    def _send_signal(self, handle: ServerHandle) -> None:
        try:
            handle.process.send_signal(self.reload_signal)
        except OSError as e:
            raise ReloadFailed(f"cannot send {self.reload_signal.name} to pid={handle.pid}: {e}") from e
        LOGGER.info("Sent %s to server pid=%d", self.reload_signal.name, handle.pid)

    def _run_command(self) -> None:
        try:
            completed = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ReloadFailed(f"reload command failed: {e}") from e

        if completed.returncode != 0:
            output = (completed.stderr or completed.stdout).strip()
            raise ReloadFailed(f"reload command exited with {completed.returncode}: {output}")
        LOGGER.info("Reload command succeeded: %s", " ".join(self.command))
