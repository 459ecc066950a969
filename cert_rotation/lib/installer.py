"""Copies source credentials into the server's credential directory."""

import os
import shutil
import tempfile
from pathlib import Path

from .cert_utils import summarize_certificate, verify_key_matches_certificate
from .checksum_store import ChecksumStore
from .errors import InstallFailed, SourceMissing
from .logging_config import LOGGER
from .models import InstallPlan, InstallResult, Role

CERT_MODE = 0o644
KEY_MODE = 0o600


class CertificateInstaller:
    """Installs credential pairs all-or-nothing and records their fingerprints."""

    def __init__(
        self,
        checksum_store: ChecksumStore,
        owner: str | None = None,
        group: str | None = None,
        verify_pair: bool = False,
    ) -> None:
        """Initialize installer.

        Args:
            checksum_store: Store updated after every successful install
            owner: Service account owning installed files (None = leave as is)
            group: Group owning installed files (None = leave as is)
            verify_pair: Refuse to install a certificate whose key does not match
        """
        self.checksum_store = checksum_store
        self.owner = owner
        self.group = group
        self.verify_pair = verify_pair

    def install(self, plans: list[InstallPlan]) -> InstallResult:
        """Install every credential pair and advance the stored fingerprints.

        All sources are read before the first write, so a missing source
        leaves destinations and fingerprints untouched.

        Args:
            plans: Source/destination pairs, always installed together

        Returns:
            InstallResult with destination paths and new fingerprints

        Raises:
            SourceMissing: If any source file is missing or unreadable
            InstallFailed: If verification, a write, chown/chmod or the
                fingerprint update fails
        """
        contents = self._read_sources(plans)

        if self.verify_pair:
            for plan in plans:
                try:
                    verify_key_matches_certificate(
                        contents[plan.source.certificate_path],
                        contents[plan.source.private_key_path],
                    )
                except ValueError as e:
                    raise InstallFailed(plan.source.certificate_path, str(e)) from e

        installed: list[Path] = []
        fingerprints: dict[str, str] = {}
        for plan in plans:
            for role in Role:
                data = contents[plan.source.path_for(role)]
                destination = plan.destination.path_for(role)
                mode = CERT_MODE if role is Role.CERT else KEY_MODE
                self._write_file(destination, data, mode)
                installed.append(destination)
                fingerprints[plan.source.role_id(role)] = self.checksum_store.fingerprint(data)

        try:
            self.checksum_store.store_all(fingerprints)
        except OSError as e:
            record_path = getattr(self.checksum_store.record, "path", Path("<fingerprint record>"))
            raise InstallFailed(record_path, e.strerror or str(e)) from e

        for plan in plans:
            self._log_certificate(plan, contents[plan.source.certificate_path])

        return InstallResult(installed_paths=installed, fingerprints=fingerprints)

    def _read_sources(self, plans: list[InstallPlan]) -> dict[Path, bytes]:
        contents: dict[Path, bytes] = {}
        missing: list[Path] = []
        for plan in plans:
            for role in Role:
                path = plan.source.path_for(role)
                try:
                    contents[path] = path.read_bytes()
                except OSError:
                    missing.append(path)
        if missing:
            raise SourceMissing(missing)
        return contents

    def _write_file(self, destination: Path, data: bytes, mode: int) -> None:
        """Replace destination with data, then apply mode and ownership."""
        tmp_name: str | None = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=destination.parent)
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            # Mode and owner are set before the rename so the key is never exposed
            os.chmod(tmp_name, mode)
            if self.owner is not None or self.group is not None:
                shutil.chown(tmp_name, user=self.owner, group=self.group)
            os.replace(tmp_name, destination)
            tmp_name = None
        except (OSError, LookupError) as e:
            raise InstallFailed(destination, getattr(e, "strerror", None) or str(e)) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def _log_certificate(self, plan: InstallPlan, cert_pem: bytes) -> None:
        try:
            summary = summarize_certificate(cert_pem)
        except ValueError as e:
            LOGGER.warning("Installed %s but could not parse certificate: %s", plan.name, e)
            return
        LOGGER.info(
            "Installed %s certificate subject=%s serial=%s expires=%s",
            plan.name,
            summary["subject"],
            summary["serialNumber"],
            summary["notAfter"],
        )
