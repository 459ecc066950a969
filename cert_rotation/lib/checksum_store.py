"""Content fingerprints of tracked credential files."""

import hashlib
import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from .errors import FileUnavailable
from .logging_config import LOGGER

_CHUNK_SIZE = 64 * 1024


class FingerprintRecord(Protocol):
    """Persisted mapping from role id to last installed fingerprint."""

    def get(self, role: str) -> str | None: ...

    def update(self, fingerprints: Mapping[str, str]) -> None: ...


class MemoryFingerprintRecord:
    """Fingerprint record held in memory only."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self.fingerprints: dict[str, str] = dict(initial or {})

    def get(self, role: str) -> str | None:
        return self.fingerprints.get(role)

    def update(self, fingerprints: Mapping[str, str]) -> None:
        self.fingerprints.update(fingerprints)


class JsonFingerprintRecord:
    """Fingerprint record stored as a JSON object on disk.

    Writes go to a temporary file in the same directory which then replaces
    the record, so readers see either the old or the new mapping.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            # An unreadable record forces a reinstall rather than blocking rotation
            LOGGER.warning("Ignoring unreadable fingerprint record %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Ignoring malformed fingerprint record %s", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get(self, role: str) -> str | None:
        return self._read().get(role)

    def update(self, fingerprints: Mapping[str, str]) -> None:
        data = self._read()
        data.update(fingerprints)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as tmp:
                json.dump(data, tmp, indent=2, sort_keys=True)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def fingerprint_bytes(data: bytes, algorithm: str = "sha256") -> str:
    """Return the hex digest of in-memory content."""
    return hashlib.new(algorithm, data).hexdigest()


class ChecksumStore:
    """Computes file fingerprints and compares them against the record."""

    def __init__(self, record: FingerprintRecord, algorithm: str = "sha256") -> None:
        """Initialize store.

        Args:
            record: Where last installed fingerprints are kept
            algorithm: hashlib algorithm name

        Raises:
            ValueError: If hashlib does not support the algorithm
        """
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"unsupported hash algorithm: {algorithm}")
        self.record = record
        self.algorithm = algorithm

    def compute(self, path: Path) -> str:
        """Fingerprint the current content of a file.

        Raises:
            FileUnavailable: If the file is missing or unreadable
        """
        digest = hashlib.new(self.algorithm)
        try:
            with path.open("rb") as f:
                while chunk := f.read(_CHUNK_SIZE):
                    digest.update(chunk)
        except OSError as e:
            raise FileUnavailable(path, e.strerror or str(e)) from e
        return digest.hexdigest()

    def fingerprint(self, data: bytes) -> str:
        """Fingerprint content already read into memory."""
        return fingerprint_bytes(data, self.algorithm)

    def load(self, role: str) -> str | None:
        """Return the last stored fingerprint for a role, None on first run."""
        return self.record.get(role)

    def store(self, role: str, fingerprint: str) -> None:
        self.record.update({role: fingerprint})

    def store_all(self, fingerprints: Mapping[str, str]) -> None:
        """Persist several roles in one write."""
        self.record.update(fingerprints)

    def changed(self, role: str, current_path: Path) -> bool:
        """Return True if the file differs from the stored fingerprint.

        A role that was never stored always counts as changed.

        Raises:
            FileUnavailable: If the file is missing or unreadable
        """
        current = self.compute(current_path)
        stored = self.load(role)
        return stored is None or current != stored
