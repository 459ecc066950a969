"""Lifecycle management for the supervised server process."""

import signal
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .errors import LaunchFailed
from .logging_config import LOGGER
from .models import ServerState


class ChildProcess(Protocol):
    """The subset of ``subprocess.Popen`` the supervisor relies on."""

    pid: int

    def poll(self) -> int | None: ...

    def wait(self, timeout: float | None = None) -> int: ...

    def send_signal(self, sig: int) -> None: ...

    def kill(self) -> None: ...


def _popen(command: Sequence[str]) -> ChildProcess:
    return subprocess.Popen(list(command))


@dataclass
class ServerHandle:
    """Reference to the supervised child process."""

    process: ChildProcess
    command: list[str]
    state: ServerState = ServerState.RUNNING
    exit_status: int | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_running(self) -> bool:
        return self.state is ServerState.RUNNING


class ServerSupervisor:
    """Starts, signals and reaps exactly one server process."""

    def __init__(
        self,
        stop_signal: signal.Signals = signal.SIGTERM,
        shutdown_timeout: float | None = 30.0,
        popen: Callable[[Sequence[str]], ChildProcess] = _popen,
    ) -> None:
        """Initialize supervisor.

        Args:
            stop_signal: Signal requesting a graceful server shutdown
            shutdown_timeout: Seconds to wait after the stop signal before
                killing the server (None waits forever)
            popen: Factory creating the child process
        """
        self.stop_signal = stop_signal
        self.shutdown_timeout = shutdown_timeout
        self._popen = popen
        self.handle: ServerHandle | None = None

    @property
    def state(self) -> ServerState:
        if self.handle is None:
            return ServerState.NOT_STARTED
        return self.handle.state

    def start(self, command: Sequence[str]) -> ServerHandle:
        """Launch the server in the background.

        Raises:
            LaunchFailed: If the executable cannot be started
            RuntimeError: If a server is already supervised
        """
        if self.handle is not None and self.handle.state is not ServerState.EXITED:
            raise RuntimeError(f"server already supervised (pid {self.handle.pid})")
        if not command:
            raise LaunchFailed("no server command given")

        try:
            process = self._popen(command)
        except (OSError, ValueError) as e:
            raise LaunchFailed(f"cannot start {command[0]}: {e}") from e

        self.handle = ServerHandle(process=process, command=list(command))
        LOGGER.info("Started server pid=%d: %s", process.pid, " ".join(command))
        return self.handle

    def poll(self, handle: ServerHandle) -> int | None:
        """Return the exit status if the server has exited, without blocking."""
        status = handle.process.poll()
        if status is not None:
            self._mark_exited(handle, status)
        return status

    def request_shutdown(self, handle: ServerHandle) -> None:
        """Send the graceful stop signal to a running server."""
        with handle._lock:
            if handle.state in (ServerState.SHUTTING_DOWN, ServerState.EXITED):
                return
            handle.state = ServerState.SHUTTING_DOWN

        if self.poll(handle) is not None:
            return
        LOGGER.info("Sending %s to server pid=%d", self.stop_signal.name, handle.pid)
        try:
            handle.process.send_signal(self.stop_signal)
        except ProcessLookupError:
            LOGGER.info("Server pid=%d already gone", handle.pid)

    def await_exit(self, handle: ServerHandle, timeout: float | None = None) -> int:
        """Block until the server exits and return its exit status.

        While shutting down, a server that outlives ``timeout`` (default: the
        supervisor's shutdown timeout) is killed.
        """
        if handle.state is ServerState.EXITED and handle.exit_status is not None:
            return handle.exit_status

        if timeout is None and handle.state is ServerState.SHUTTING_DOWN:
            timeout = self.shutdown_timeout

        try:
            status = handle.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            LOGGER.warning(
                "Server pid=%d did not exit within %ss, killing it", handle.pid, timeout
            )
            handle.process.kill()
            status = handle.process.wait()

        self._mark_exited(handle, status)
        return status

    def _mark_exited(self, handle: ServerHandle, status: int) -> None:
        with handle._lock:
            if handle.state is ServerState.EXITED:
                return
            handle.state = ServerState.EXITED
            handle.exit_status = status
        LOGGER.info("Server pid=%d exited with status %d", handle.pid, status)
