"""Signing certificate files: reading and lookup by package publisher."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from pydantic import BaseModel, ConfigDict

from bundlr.core.errors import BundlrError
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

CERTIFICATE_EXTENSIONS = frozenset({".cer", ".crt", ".pem"})

# RFC 4514 short names that differ from the Windows publisher string convention.
_KEY_ALIASES = {"ST": "S"}


class CertificateError(BundlrError):
    """A certificate file could not be read."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read certificate {path}: {reason}")


class CertificateInfo(BaseModel):
    """Summary of one certificate file.

    ``thumbprint`` is the SHA-1 fingerprint in upper-case hex, as shown by
    the Windows certificate store.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    thumbprint: str
    subject: str

    def matches_publisher(self, publisher: str) -> bool:
        return bool(publisher) and distinguished_name_key(self.subject) == (
            distinguished_name_key(publisher)
        )


def distinguished_name_key(name: str) -> frozenset[tuple[str, str]]:
    """Order-insensitive comparison key for a distinguished name.

    Example:
        >>> distinguished_name_key("CN=Contoso, O=Contoso") == distinguished_name_key(
        ...     "O=Contoso,CN=Contoso")
        True
    """
    parts: set[tuple[str, str]] = set()
    for chunk in name.split(","):
        key, sep, value = chunk.partition("=")
        if not sep:
            continue
        key = key.strip().upper()
        parts.add((_KEY_ALIASES.get(key, key), value.strip().strip('"').lower()))
    return frozenset(parts)


def read_certificate(path: Path | str) -> CertificateInfo:
    """Load a DER or PEM certificate.

    Raises:
        CertificateError: If the file is missing or not a certificate
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise CertificateError(path, str(e)) from e

    try:
        if b"-----BEGIN CERTIFICATE-----" in data:
            cert = x509.load_pem_x509_certificate(data)
        else:
            cert = x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise CertificateError(path, f"not a certificate ({e})") from e

    return CertificateInfo(
        path=str(path),
        thumbprint=cert.fingerprint(hashes.SHA1()).hex().upper(),
        subject=cert.subject.rfc4514_string(),
    )


class CertificateSource(Protocol):
    """Finds the signing certificate for a package. Issuance happens elsewhere."""

    def find(self, package_name: str, publisher: str) -> Path | None: ...


class DirectoryCertificateSource:
    """Looks up certificates in one directory.

    A file whose stem equals the package name wins; otherwise the first
    readable certificate whose subject matches the publisher is used.

    Args:
        directory: Directory holding ``.cer``/``.crt``/``.pem`` files
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p
            for p in self.directory.iterdir()
            if p.is_file() and p.suffix.lower() in CERTIFICATE_EXTENSIONS
        )

    def find(self, package_name: str, publisher: str) -> Path | None:
        files = self.files()
        for path in files:
            if path.stem.lower() == package_name.lower():
                return path
        for path in files:
            try:
                info = read_certificate(path)
            except CertificateError as e:
                logger.debug(f"Skipping {path}: {e.reason}")
                continue
            if info.matches_publisher(publisher):
                return path
        return None
