"""Shared pytest fixtures for bundlr tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
import pytest

from bundlr.core.dependencies import InstalledPackage, StaticInventory

FOUNDATION_NS = "http://schemas.microsoft.com/appx/manifest/foundation/windows10"
UAP_NS = "http://schemas.microsoft.com/appx/manifest/uap/windows10"
RESCAP_NS = "http://schemas.microsoft.com/appx/manifest/foundation/windows10/restrictedcapabilities"
MICROSOFT_PUBLISHER = (
    "CN=Microsoft Corporation, O=Microsoft Corporation, L=Redmond, S=Washington, C=US"
)
CONTOSO_PUBLISHER = "CN=Contoso, O=Contoso, C=US"

ManifestFactory = Callable[..., str]
PackageFactory = Callable[..., Path]


# ============================================================================
# Manifest Fixtures
# ============================================================================


@pytest.fixture
def manifest_xml() -> ManifestFactory:
    """Factory rendering an AppxManifest.xml document.

    ``dependencies`` is a sequence of ``(name, min_version, publisher)``.
    ``namespace=None`` renders an unqualified (namespace-less) manifest.
    """

    def _render(
        name: str = "Contoso.App",
        version: str = "1.2.0.0",
        publisher: str = CONTOSO_PUBLISHER,
        architecture: str = "x64",
        dependencies: Sequence[tuple[str, str, str]] = (),
        capabilities: Sequence[str] = ("internetClient",),
        namespace: str | None = FOUNDATION_NS,
        logo: str = "Assets\\StoreLogo.png",
        framework: bool = False,
    ) -> str:
        ns_attrs = (
            f' xmlns="{namespace}" xmlns:uap="{UAP_NS}" xmlns:rescap="{RESCAP_NS}"'
            if namespace
            else ""
        )
        uap = "uap:" if namespace else ""
        deps = "\n".join(
            f'    <PackageDependency Name="{dep}" MinVersion="{min_version}" '
            f'Publisher="{dep_publisher}"/>'
            for dep, min_version, dep_publisher in dependencies
        )
        caps = "\n".join(f'    <Capability Name="{cap}"/>' for cap in capabilities)
        return f"""<?xml version="1.0" encoding="utf-8"?>
<Package{ns_attrs}>
  <Identity Name="{name}" Publisher="{publisher}" Version="{version}"
            ProcessorArchitecture="{architecture}"/>
  <Properties>
    <DisplayName>{name} Display</DisplayName>
    <PublisherDisplayName>Contoso Ltd</PublisherDisplayName>
    <Logo>{logo}</Logo>
    <Framework>{str(framework).lower()}</Framework>
  </Properties>
  <Dependencies>
    <TargetDeviceFamily Name="Windows.Desktop" MinVersion="10.0.17763.0"
                        MaxVersionTested="10.0.22621.0"/>
{deps}
  </Dependencies>
  <Capabilities>
{caps}
  </Capabilities>
  <Applications>
    <Application Id="App" Executable="Contoso.exe" EntryPoint="Windows.FullTrustApplication">
      <{uap}VisualElements DisplayName="{name}" Description="app"
          Square150x150Logo="Assets\\Square150x150Logo.png"
          Square44x44Logo="Assets\\Square44x44Logo.png" BackgroundColor="transparent"/>
    </Application>
  </Applications>
</Package>
"""

    return _render


@pytest.fixture
def make_package(tmp_path: Path, manifest_xml: ManifestFactory) -> PackageFactory:
    """Factory writing an unpacked package tree under tmp_path.

    With ``assets=True`` the logo files referenced by the manifest exist.
    """

    def _make(dir_name: str = "Contoso.App", assets: bool = True, **manifest_kwargs) -> Path:
        root = tmp_path / dir_name
        (root / "Assets").mkdir(parents=True, exist_ok=True)
        (root / "AppxManifest.xml").write_text(manifest_xml(**manifest_kwargs), encoding="utf-8")
        (root / "Contoso.exe").write_bytes(b"MZ" + b"\0" * 256)
        if assets:
            for logo in ("StoreLogo.png", "Square150x150Logo.png", "Square44x44Logo.png"):
                (root / "Assets" / logo).write_bytes(b"\x89PNG\r\n")
        return root

    return _make


# ============================================================================
# Inventory Fixtures
# ============================================================================


@pytest.fixture
def installed_package() -> Callable[..., InstalledPackage]:
    """Factory for InstalledPackage records."""

    def _make(
        name: str,
        version: str = "1.0.0.0",
        publisher: str = MICROSOFT_PUBLISHER,
        architecture: str = "x64",
        install_location: Path | str | None = None,
        is_framework: bool = False,
    ) -> InstalledPackage:
        return InstalledPackage(
            name=name,
            version=version,
            publisher=publisher,
            architecture=architecture,
            install_location=str(install_location) if install_location else None,
            is_framework=is_framework,
        )

    return _make


@pytest.fixture
def empty_inventory() -> StaticInventory:
    return StaticInventory([])


@pytest.fixture
def no_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """PATH holds only an empty directory, so no real tool is discovered."""
    empty = tmp_path / "empty-path"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))


# ============================================================================
# Certificate Fixtures
# ============================================================================

_OIDS = {
    "CN": NameOID.COMMON_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "L": NameOID.LOCALITY_NAME,
    "S": NameOID.STATE_OR_PROVINCE_NAME,
    "C": NameOID.COUNTRY_NAME,
}


def _name(distinguished_name: str) -> x509.Name:
    attributes = []
    for chunk in distinguished_name.split(","):
        key, _, value = chunk.partition("=")
        attributes.append(x509.NameAttribute(_OIDS[key.strip()], value.strip()))
    return x509.Name(attributes)


@pytest.fixture(scope="session")
def signing_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def make_certificate(signing_key) -> Callable[..., Path]:
    """Factory writing a self-signed certificate for a publisher string.

    ``pem=False`` writes DER (the usual ``.cer`` encoding).
    """

    def _make(path: Path, subject: str, pem: bool = False) -> Path:
        name = _name(subject)
        now = datetime.now(UTC)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(signing_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=365))
            .sign(signing_key, hashes.SHA256())
        )
        encoding = serialization.Encoding.PEM if pem else serialization.Encoding.DER
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(cert.public_bytes(encoding))
        return path

    return _make
