#!/usr/bin/env python3
"""Run a server and keep its TLS credentials in sync with an external issuer."""

import argparse
import shlex
import signal
import sys
import threading
from collections.abc import Sequence
from pathlib import Path

from cert_rotation.lib.checksum_store import ChecksumStore, JsonFingerprintRecord
from cert_rotation.lib.config import WatcherConfig
from cert_rotation.lib.errors import LaunchFailed
from cert_rotation.lib.installer import CertificateInstaller
from cert_rotation.lib.logging_config import LOGGER, set_log_level
from cert_rotation.lib.reload_trigger import ReloadTrigger
from cert_rotation.lib.rotation_loop import RotationLoop
from cert_rotation.lib.supervisor import ServerSupervisor

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def run_watcher(
    config: WatcherConfig,
    server_command: Sequence[str],
    supervisor: ServerSupervisor | None = None,
    install_signal_handlers: bool = True,
) -> int:
    """Start the server, run the rotation loop, and shut the server down after it.

    1. Build the fingerprint store, installer and reload trigger
    2. Route SIGTERM/SIGINT to the loop, then launch the server (fatal on failure)
    3. Stop the loop on a signal or when the server exits by itself
    4. Stop the server, wait for it and restore signal handlers before returning

    Args:
        config: Watcher configuration
        server_command: Server executable and arguments
        supervisor: Supervisor to launch the server with
        install_signal_handlers: Route SIGTERM/SIGINT to the loop

    Returns:
        Exit code (0 after a signal-initiated shutdown, the server's status
        if it exited on its own, 1 if it could not be launched)
    """
    checksum_store = ChecksumStore(
        JsonFingerprintRecord(config.fingerprint_file), config.hash_algorithm
    )
    installer = CertificateInstaller(
        checksum_store,
        owner=config.owner,
        group=config.group,
        verify_pair=config.verify_pair,
    )
    reload_trigger = ReloadTrigger(
        reload_signal=config.reload_signal, command=config.reload_command or None
    )
    supervisor = supervisor or ServerSupervisor(shutdown_timeout=config.shutdown_timeout)

    received: list[int] = []
    loop: RotationLoop | None = None

    def _on_signal(signum: int, _frame: object) -> None:
        # Only flags here; the loop notices within its wake interval
        received.append(signum)
        if loop is not None:
            loop.request_stop()

    # Installed before launch so a signal arriving mid-start cannot orphan the server
    previous_handlers = {}
    if install_signal_handlers:
        for sig in SHUTDOWN_SIGNALS:
            previous_handlers[sig] = signal.signal(sig, _on_signal)

    try:
        try:
            handle = supervisor.start(server_command)
        except LaunchFailed as e:
            LOGGER.error("Server launch failed: %s", e)
            return 1

        loop = RotationLoop(
            plans=config.install_plans(),
            checksum_store=checksum_store,
            installer=installer,
            reload_trigger=reload_trigger,
            server_handle=handle,
            poll_interval=config.poll_interval,
            startup_grace=config.startup_grace,
        )
        if received:
            loop.request_stop()

        def _watch_server() -> None:
            supervisor.await_exit(handle)
            loop.stop()

        threading.Thread(target=_watch_server, name="server-watch", daemon=True).start()

        try:
            loop.run()
        finally:
            supervisor.request_shutdown(handle)
            status = supervisor.await_exit(handle)
    finally:
        for sig, previous in previous_handlers.items():
            signal.signal(sig, previous)

    if received:
        LOGGER.info("Shut down after %s", signal.Signals(received[0]).name)
        return 0

    LOGGER.error("Server exited unexpectedly with status %d", status)
    # Negative statuses mean the server was killed by a signal
    return status if status >= 0 else 128 - status


def _apply_args(config: WatcherConfig, args: argparse.Namespace) -> None:
    """Override environment configuration with explicit command line flags."""
    for name in (
        "source_cert",
        "source_key",
        "dest_dir",
        "state_file",
        "poll_interval",
        "startup_grace",
        "shutdown_timeout",
        "owner",
        "group",
        "log_level",
    ):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.reload_command is not None:
        config.reload_command = shlex.split(args.reload_command)
    if args.verify_pair:
        config.verify_pair = True


def main() -> int:
    """Run the certificate rotation watcher.

    Returns:
        Exit code (0 for clean shutdown, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        description="Supervise a server and install renewed TLS credentials into it",
        epilog="Options default to CERT_ROTATION_* environment variables.",
    )
    parser.add_argument("--source-cert", type=Path, help="Full-chain certificate written by the issuer")
    parser.add_argument("--source-key", type=Path, help="Private key written by the issuer")
    parser.add_argument("--dest-dir", type=Path, help="Directory the server reads credentials from")
    parser.add_argument("--state-file", type=Path, help="Fingerprint record (default: <dest-dir>/.fingerprints.json)")
    parser.add_argument("--poll-interval", type=float, help="Seconds between checks (default: 86400)")
    parser.add_argument("--startup-grace", type=float, help="Seconds before the first check (default: 30)")
    parser.add_argument("--shutdown-timeout", type=float, help="Seconds before a stopping server is killed (default: 30)")
    parser.add_argument("--owner", help="Service account owning installed files")
    parser.add_argument("--group", help="Group owning installed files")
    parser.add_argument("--reload-command", help="Command reloading the server instead of sending SIGHUP")
    parser.add_argument("--verify-pair", action="store_true", help="Refuse certificates not matching the key")
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    parser.add_argument("server_command", nargs=argparse.REMAINDER, help="Server command, after --")
    args = parser.parse_args()

    server_command = list(args.server_command)
    if server_command and server_command[0] == "--":
        server_command = server_command[1:]
    if not server_command:
        parser.error("a server command is required, e.g. -- postgres -c ssl=on")

    try:
        config = WatcherConfig.from_env()
        _apply_args(config, args)
        config.validate()
        set_log_level(config.log_level)
        return run_watcher(config, server_command)

    except Exception as e:
        LOGGER.error("Certificate watcher failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
