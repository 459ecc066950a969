"""Polling loop keeping installed credentials in sync with their source."""

import threading
import time
from datetime import UTC, datetime

from .checksum_store import ChecksumStore
from .errors import FileUnavailable, ReloadFailed, RotationError
from .installer import CertificateInstaller
from .logging_config import LOGGER
from .models import CycleOutcome, CycleResult, InstallPlan, Role
from .reload_trigger import ReloadTrigger
from .supervisor import ServerHandle

DEFAULT_POLL_INTERVAL = 86400.0
DEFAULT_STARTUP_GRACE = 30.0
DEFAULT_WAKE_INTERVAL = 1.0


class RotationLoop:
    """Detects credential changes, installs them and reloads the server.

    One loop runs per process. Its only blocking points are waits on the
    stop event, sliced into ``wake_interval`` steps so that a stop requested
    from a signal handler through ``request_stop()`` is seen promptly.
    """

    def __init__(
        self,
        plans: list[InstallPlan],
        checksum_store: ChecksumStore,
        installer: CertificateInstaller,
        reload_trigger: ReloadTrigger,
        server_handle: ServerHandle,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        startup_grace: float = DEFAULT_STARTUP_GRACE,
        stop_event: threading.Event | None = None,
        wake_interval: float = DEFAULT_WAKE_INTERVAL,
    ) -> None:
        """Initialize rotation loop.

        Args:
            plans: Credential pairs to keep in sync
            checksum_store: Change detection against the fingerprint record
            installer: Installs all pairs together
            reload_trigger: Reloads the server after an install
            server_handle: The supervised server
            poll_interval: Seconds between checks
            startup_grace: Seconds to let the server start before the first check
            stop_event: Shared event that ends the loop when set
            wake_interval: Longest wait before a signal-requested stop is noticed
        """
        self.plans = plans
        self.checksum_store = checksum_store
        self.installer = installer
        self.reload_trigger = reload_trigger
        self.server_handle = server_handle
        self.poll_interval = poll_interval
        self.startup_grace = startup_grace
        self.stop_event = stop_event or threading.Event()
        self.wake_interval = wake_interval
        self._stop_requested = False
        self.last_check_time: datetime | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_requested or self.stop_event.is_set()

    def stop(self) -> None:
        """Interrupt any wait and end the loop. Not for use in signal handlers."""
        self.stop_event.set()

    def request_stop(self) -> None:
        """End the loop within ``wake_interval``. Safe to call from a signal handler.

        Only a flag is set; ``Event.set`` takes a lock the interrupted main
        thread may already hold.
        """
        self._stop_requested = True

    def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as the loop is stopped."""
        deadline = time.monotonic() + seconds
        while not self.stopped:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.stop_event.wait(min(remaining, self.wake_interval))
        return True

    def run(self) -> None:
        """Poll until stopped, starting after the startup grace period."""
        LOGGER.info(
            "Rotation loop starting in %ss, polling every %ss",
            self.startup_grace,
            self.poll_interval,
        )
        if self._wait(self.startup_grace):
            LOGGER.info("Rotation loop stopped before first check")
            return

        while not self.stopped:
            try:
                self.run_once()
            except Exception:
                LOGGER.exception("Unexpected error during rotation check")
            if self._wait(self.poll_interval):
                break

        LOGGER.info("Rotation loop stopped")

    def run_once(self) -> CycleResult:
        """Run one check/install/reload iteration."""
        if self.stopped:
            return CycleResult(outcome=CycleOutcome.STOPPED)

        self.last_check_time = datetime.now(UTC)

        try:
            changed_roles = self._changed_roles()
        except FileUnavailable as e:
            LOGGER.error("Cannot check credentials: %s", e)
            return CycleResult(outcome=CycleOutcome.CHECK_FAILED, error=str(e))

        if not changed_roles:
            LOGGER.info("No change in credentials")
            return CycleResult(outcome=CycleOutcome.NO_CHANGE)

        LOGGER.info("Credentials changed: %s", ", ".join(changed_roles))

        # The full set is installed even if only one file changed
        try:
            self.installer.install(self.plans)
        except RotationError as e:
            LOGGER.error("Install failed, will retry next cycle: %s", e)
            return CycleResult(
                outcome=CycleOutcome.INSTALL_FAILED, changed_roles=changed_roles, error=str(e)
            )

        try:
            self.reload_trigger.reload(self.server_handle)
        except ReloadFailed as e:
            LOGGER.error("Credentials installed but server reload failed: %s", e)
            return CycleResult(
                outcome=CycleOutcome.RELOAD_FAILED, changed_roles=changed_roles, error=str(e)
            )

        LOGGER.info("Credentials installed and server reloaded")
        return CycleResult(outcome=CycleOutcome.INSTALLED, changed_roles=changed_roles)

    def _changed_roles(self) -> list[str]:
        changed: list[str] = []
        for plan in self.plans:
            for role in Role:
                role_id = plan.source.role_id(role)
                if self.checksum_store.changed(role_id, plan.source.path_for(role)):
                    changed.append(role_id)
        return changed
