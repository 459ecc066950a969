"""Certificate utility functions for inspecting installed credentials."""

from typing import TypedDict

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes


class CertificateSummary(TypedDict):
    """Identity and validity of a leaf certificate, for logging."""

    subject: str
    serialNumber: str
    notBefore: str
    notAfter: str


def deserialize_certificate_chain(pem_data: bytes) -> list[x509.Certificate]:
    """Deserialize every certificate of a PEM bundle (leaf first)."""
    return x509.load_pem_x509_certificates(pem_data)


def deserialize_private_key(pem_data: bytes) -> PrivateKeyTypes:
    """Deserialize an unencrypted private key from PEM bytes."""
    return serialization.load_pem_private_key(pem_data, password=None)


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def summarize_certificate(cert_pem: bytes) -> CertificateSummary:
    """Summarize the leaf certificate of a full-chain PEM file.

    Raises:
        ValueError: If the data holds no parseable certificate
    """
    chain = deserialize_certificate_chain(cert_pem)
    if not chain:
        raise ValueError("no certificate found in PEM data")
    leaf = chain[0]
    return CertificateSummary(
        subject=leaf.subject.rfc4514_string(),
        serialNumber=get_certificate_serial_hex(leaf),
        notBefore=leaf.not_valid_before_utc.isoformat(),
        notAfter=leaf.not_valid_after_utc.isoformat(),
    )


def verify_key_matches_certificate(cert_pem: bytes, key_pem: bytes) -> None:
    """Verify the leaf certificate was issued for the given private key.

    Compares the SubjectPublicKeyInfo of both sides, so any key type works.

    Raises:
        ValueError: If either side cannot be parsed or the keys differ
    """
    chain = deserialize_certificate_chain(cert_pem)
    if not chain:
        raise ValueError("no certificate found in PEM data")
    key = deserialize_private_key(key_pem)

    spki_format = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    cert_public = chain[0].public_key().public_bytes(*spki_format)
    key_public = key.public_key().public_bytes(*spki_format)
    if cert_public != key_public:
        raise ValueError("key-cert mismatch")
