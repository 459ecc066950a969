"""Test fixtures for cert_rotation tests."""

import signal
import subprocess
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_rotation.lib.checksum_store import ChecksumStore, MemoryFingerprintRecord
from cert_rotation.lib.installer import CertificateInstaller
from cert_rotation.lib.models import CredentialPair, InstallPlan
from cert_rotation.lib.supervisor import ServerHandle


class FakeProcess:
    """Stand-in for subprocess.Popen recording the signals it receives."""

    def __init__(self, pid: int = 4242, exit_on: tuple[int, ...] = (signal.SIGTERM,)) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.signals: list[int] = []
        self.exit_on = exit_on
        self.killed = False
        self._exited = threading.Event()

    def exit(self, status: int) -> None:
        """Make the fake server exit with the given status."""
        self.returncode = status
        self._exited.set()

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("fake-server", timeout)
        assert self.returncode is not None
        return self.returncode

    def send_signal(self, sig: int) -> None:
        if self.returncode is not None:
            raise ProcessLookupError(self.pid)
        self.signals.append(sig)
        if sig in self.exit_on:
            self.exit(-sig)

    def kill(self) -> None:
        self.killed = True
        self.exit(-signal.SIGKILL)


def make_key_and_cert(common_name: str = "db.example.com") -> tuple[bytes, bytes]:
    """Generate an EC private key and a self-signed certificate for it, as PEM."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=90))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return key_pem, cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def key_and_cert() -> tuple[bytes, bytes]:
    """Return a matching (key_pem, cert_pem) pair."""
    return make_key_and_cert()


@pytest.fixture
def source_dir(tmp_path: Path, key_and_cert: tuple[bytes, bytes]) -> Path:
    """Write issuer credentials to a source directory and return it."""
    key_pem, cert_pem = key_and_cert
    directory = tmp_path / "source"
    directory.mkdir()
    (directory / "fullchain.pem").write_bytes(cert_pem)
    (directory / "privkey.pem").write_bytes(key_pem)
    return directory


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    """Return a (not yet existing) destination directory."""
    return tmp_path / "data" / "certs"


@pytest.fixture
def install_plan(source_dir: Path, dest_dir: Path) -> InstallPlan:
    """Return a plan installing the source pair into the destination directory."""
    return InstallPlan(
        source=CredentialPair(source_dir / "fullchain.pem", source_dir / "privkey.pem"),
        destination=CredentialPair(dest_dir / "server.crt", dest_dir / "server.key"),
    )


@pytest.fixture
def record() -> MemoryFingerprintRecord:
    """Return an empty in-memory fingerprint record."""
    return MemoryFingerprintRecord()


@pytest.fixture
def checksum_store(record: MemoryFingerprintRecord) -> ChecksumStore:
    """Return a checksum store backed by the in-memory record."""
    return ChecksumStore(record)


@pytest.fixture
def installer(checksum_store: ChecksumStore) -> CertificateInstaller:
    """Return an installer that leaves ownership unchanged."""
    return CertificateInstaller(checksum_store)


@pytest.fixture
def fake_process() -> FakeProcess:
    """Return a fake running server process."""
    return FakeProcess()


@pytest.fixture
def server_handle(fake_process: FakeProcess) -> ServerHandle:
    """Return a running handle around the fake process."""
    return ServerHandle(process=fake_process, command=["postgres", "-c", "ssl=on"])
