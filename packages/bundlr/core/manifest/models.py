"""Package identity and manifest record models."""

from __future__ import annotations

import hashlib
import re

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

UNKNOWN = "Unknown"
ZERO_VERSION = "0.0.0.0"
NEUTRAL = "neutral"

# Crockford-style alphabet used for publisher IDs (no i, l, o, u).
_PUBLISHER_ID_ALPHABET = "0123456789abcdefghjkmnpqrstvwxyz"
_VERSION_PART = re.compile(r"^\d{1,5}$")


def normalize_version(value: str | None, default: str = ZERO_VERSION) -> str:
    """Normalize a dotted version to exactly four numeric parts.

    Shorter versions are padded with zeros; anything non-numeric, longer than
    four parts, or out of the 16-bit range yields ``default``.

    Example:
        >>> normalize_version("1.2")
        '1.2.0.0'
        >>> normalize_version("v1")
        '0.0.0.0'
    """
    if value is None:
        return default
    parts = value.strip().split(".")
    if not parts or len(parts) > 4 or not all(_VERSION_PART.match(p) for p in parts):
        return default
    numbers = [int(p) for p in parts]
    if any(n > 65535 for n in numbers):
        return default
    numbers += [0] * (4 - len(numbers))
    return ".".join(str(n) for n in numbers)


def version_key(value: str) -> tuple[int, int, int, int]:
    """Sortable tuple for a version string (invalid versions sort lowest)."""
    a, b, c, d = (int(p) for p in normalize_version(value).split("."))
    return (a, b, c, d)


def publisher_id(publisher: str) -> str:
    """Compute the 13-character publisher ID used in package family names.

    SHA-256 over the UTF-16LE publisher string, first 64 bits, padded to 65
    bits and written as 13 base32 characters.
    """
    digest = hashlib.sha256(publisher.encode("utf-16-le")).digest()
    bits = int.from_bytes(digest[:8], "big") << 1
    return "".join(_PUBLISHER_ID_ALPHABET[(bits >> (5 * (12 - i))) & 0x1F] for i in range(13))


class PackageIdentity(BaseModel):
    """Identity tuple of a package variant.

    ``family_id`` and ``full_id`` are derived on every access, so assigning a
    new name, publisher, version or architecture is reflected immediately.

    Example:
        >>> ident = PackageIdentity(name="Contoso.App", publisher="CN=Contoso", version="1.0")
        >>> ident.version
        '1.0.0.0'
    """

    model_config = ConfigDict(validate_assignment=True)

    name: str = UNKNOWN
    publisher: str = UNKNOWN
    version: str = ZERO_VERSION
    architecture: str = NEUTRAL
    resource_id: str = ""

    @field_validator("version", mode="before")
    @classmethod
    def _normalize_version(cls, value: object) -> str:
        return normalize_version(str(value) if value is not None else None)

    @field_validator("architecture", mode="before")
    @classmethod
    def _normalize_architecture(cls, value: object) -> str:
        text = str(value).strip().lower() if value is not None else ""
        return text or NEUTRAL

    @computed_field  # type: ignore[prop-decorator]
    @property
    def publisher_id(self) -> str:
        return publisher_id(self.publisher)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def family_id(self) -> str:
        return f"{self.name}_{self.publisher_id}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_id(self) -> str:
        return (
            f"{self.name}_{self.version}_{self.architecture}_{self.resource_id}_{self.publisher_id}"
        )

    @property
    def install_id(self) -> str:
        """``name_version_architecture`` identifier used in installation order lists."""
        return f"{self.name}_{self.version}_{self.architecture}"


class DeclaredDependency(BaseModel):
    """A ``PackageDependency`` declared by a manifest."""

    model_config = ConfigDict(frozen=True)

    name: str
    publisher: str = ""
    min_version: str = ZERO_VERSION


class ApplicationEntry(BaseModel):
    """An ``Application`` element: id plus executable and/or entry point."""

    model_config = ConfigDict(frozen=True)

    id: str = UNKNOWN
    executable: str = ""
    entry_point: str = ""


class TargetDeviceFamily(BaseModel):
    """Platform the package targets, with its minimum supported version."""

    model_config = ConfigDict(frozen=True)

    name: str = UNKNOWN
    min_version: str = ZERO_VERSION
    max_version_tested: str = ZERO_VERSION


class ManifestRecord(BaseModel):
    """Normalized view of a package manifest.

    Every field is populated: optional data absent from the document is
    filled with explicit defaults (``"Unknown"``, ``""``, ``"0.0.0.0"``,
    empty lists), so consumers never branch on presence.
    """

    identity: PackageIdentity = Field(default_factory=PackageIdentity)
    display_name: str = UNKNOWN
    publisher_display_name: str = UNKNOWN
    description: str = ""
    logo: str = ""
    is_bundle: bool = False
    is_framework: bool = False
    is_modern_format: bool = False
    dependencies: list[DeclaredDependency] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    applications: list[ApplicationEntry] = Field(default_factory=list)
    target_families: list[TargetDeviceFamily] = Field(default_factory=list)
    source_path: str = ""

    @property
    def minimum_platform_version(self) -> str | None:
        """Lowest ``MinVersion`` across target device families, if any."""
        versions = [f.min_version for f in self.target_families if f.min_version != ZERO_VERSION]
        if not versions:
            return None
        return min(versions, key=version_key)
