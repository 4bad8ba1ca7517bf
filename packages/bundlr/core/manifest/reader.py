"""Schema-tolerant reader for package manifests (AppxManifest.xml and bundle manifests)."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
import re
import xml.etree.ElementTree as ET

from bundlr.core.manifest.errors import (
    DocumentNotFoundError,
    IdentityMissingError,
    InvalidDocumentError,
)
from bundlr.core.manifest.models import (
    UNKNOWN,
    ZERO_VERSION,
    ApplicationEntry,
    DeclaredDependency,
    ManifestRecord,
    PackageIdentity,
    TargetDeviceFamily,
    normalize_version,
)
from bundlr.core.manifest.strategies import attr, child_text, find_elements
from bundlr.core.parsers.xml import XMLDocument, XMLParser, local_name
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

PACKAGE_MANIFEST = "AppxManifest.xml"
BUNDLE_MANIFEST = Path("AppxMetadata") / "AppxBundleManifest.xml"
ROOT_ELEMENTS = frozenset({"Package", "Bundle"})

# Namespace fragments only present in Windows 10+ (MSIX-era) manifests.
MODERN_NAMESPACE_MARKERS = ("windows10", "/uap", "rescap", "/desktop", "/com")
_FOUR_PART_VERSION = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


def locate_manifest(package_dir: Path) -> Path | None:
    """Return the manifest file inside an unpacked package directory, if any."""
    for candidate in (package_dir / PACKAGE_MANIFEST, package_dir / BUNDLE_MANIFEST):
        if candidate.is_file():
            return candidate
    return None


def detect_modern_format(namespaces: Iterable[str], raw_version: str | None) -> bool:
    """Best-effort guess whether a manifest is modern (MSIX-era) or legacy.

    Marker namespace tokens or a strict four-part numeric version count as
    modern. This is a classification hint only, never schema information.
    """
    for uri in namespaces:
        lowered = uri.lower()
        if any(marker in lowered for marker in MODERN_NAMESPACE_MARKERS):
            return True
    return bool(raw_version and _FOUR_PART_VERSION.match(raw_version.strip()))


class ManifestReader:
    """Parses package manifests into ManifestRecord.

    Element lookups go through the strategy chain in
    ``bundlr.core.manifest.strategies``; only a missing Identity is fatal.

    Example:
        >>> reader = ManifestReader()
        >>> record = reader.parse("unpacked/AppxManifest.xml")
        >>> record.identity.family_id
        'Contoso.App_8wekyb3d8bbwe'
    """

    def __init__(self, xml_parser: XMLParser | None = None) -> None:
        self._xml_parser = xml_parser or XMLParser()

    def parse(
        self,
        path: Path | str,
        include_dependencies: bool = True,
        include_capabilities: bool = True,
    ) -> ManifestRecord:
        """Parse a manifest file, or the manifest inside a package directory.

        Args:
            path: Manifest file or unpacked package directory
            include_dependencies: Extract PackageDependency entries
            include_capabilities: Extract capability names

        Raises:
            DocumentNotFoundError: If no manifest document exists at path
            InvalidDocumentError: If the document is not a package/bundle manifest
            IdentityMissingError: If no Identity element can be located
        """
        path = Path(path)
        if path.is_dir():
            located = locate_manifest(path)
            if located is None:
                raise DocumentNotFoundError(path / PACKAGE_MANIFEST)
            path = located
        if not path.is_file():
            raise DocumentNotFoundError(path)

        try:
            doc = self._xml_parser.parse(path)
        except ValueError as e:
            raise InvalidDocumentError(str(e), path) from e

        return self._read(doc, path, include_dependencies, include_capabilities)

    def parse_string(
        self,
        xml_content: str | bytes,
        include_dependencies: bool = True,
        include_capabilities: bool = True,
    ) -> ManifestRecord:
        """Parse manifest XML held in memory (e.g. read out of a package archive)."""
        try:
            doc = self._xml_parser.parse_string(xml_content)
        except ValueError as e:
            raise InvalidDocumentError(str(e)) from e
        return self._read(doc, None, include_dependencies, include_capabilities)

    def _read(
        self,
        doc: XMLDocument,
        path: Path | None,
        include_dependencies: bool,
        include_capabilities: bool,
    ) -> ManifestRecord:
        root_name = local_name(doc.root.tag)
        if root_name not in ROOT_ELEMENTS:
            raise InvalidDocumentError(
                f"Unexpected root element <{root_name}> in {path or '<string>'}", path
            )

        identity_lookup = find_elements(doc, ("Identity",))
        identity_el = identity_lookup.first
        if identity_el is None:
            raise IdentityMissingError(path)

        raw_version = identity_el.get("Version")
        identity = _read_identity(identity_el)

        properties = find_elements(doc, ("Properties",)).first
        if properties is None:
            logger.debug(f"No Properties block in {path or '<string>'}, using defaults")

        record = ManifestRecord(
            identity=identity,
            display_name=child_text(properties, "DisplayName", UNKNOWN),
            publisher_display_name=child_text(properties, "PublisherDisplayName", UNKNOWN),
            description=child_text(properties, "Description", ""),
            logo=child_text(properties, "Logo", ""),
            is_bundle=root_name == "Bundle",
            is_framework=child_text(properties, "Framework", "false").lower() == "true",
            is_modern_format=detect_modern_format(
                [*doc.namespaces.values(), doc.default_namespace], raw_version
            ),
            target_families=self._target_families(doc),
            applications=self._applications(doc),
            source_path=str(path) if path else "",
        )
        if include_dependencies:
            record.dependencies = self._dependencies(doc)
        if include_capabilities:
            record.capabilities = self._capabilities(doc)

        logger.debug(
            f"Parsed manifest {identity.name} {identity.version} ({identity.architecture}): "
            f"{len(record.dependencies)} dependencies, {len(record.capabilities)} capabilities"
        )
        return record

    def _dependencies(self, doc: XMLDocument) -> list[DeclaredDependency]:
        lookup = find_elements(doc, ("Dependencies", "PackageDependency"))
        dependencies: list[DeclaredDependency] = []
        seen: set[str] = set()
        for el in lookup.elements:
            name = attr(el, "Name")
            if not name:
                logger.warning("Skipping PackageDependency without a Name attribute")
                continue
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            dependencies.append(
                DeclaredDependency(
                    name=name,
                    publisher=attr(el, "Publisher"),
                    min_version=normalize_version(attr(el, "MinVersion", ZERO_VERSION)),
                )
            )
        return dependencies

    def _target_families(self, doc: XMLDocument) -> list[TargetDeviceFamily]:
        lookup = find_elements(doc, ("Dependencies", "TargetDeviceFamily"))
        return [
            TargetDeviceFamily(
                name=attr(el, "Name", UNKNOWN),
                min_version=normalize_version(attr(el, "MinVersion", ZERO_VERSION)),
                max_version_tested=normalize_version(attr(el, "MaxVersionTested", ZERO_VERSION)),
            )
            for el in lookup.elements
        ]

    def _capabilities(self, doc: XMLDocument) -> list[str]:
        lookup = find_elements(doc, ("Capabilities",))
        names: list[str] = []
        for container in lookup.elements:
            for el in container:
                name = attr(el, "Name")
                if name and name not in names:
                    names.append(name)
        return names

    def _applications(self, doc: XMLDocument) -> list[ApplicationEntry]:
        lookup = find_elements(doc, ("Applications", "Application"))
        return [
            ApplicationEntry(
                id=attr(el, "Id", UNKNOWN),
                executable=attr(el, "Executable"),
                entry_point=attr(el, "EntryPoint"),
            )
            for el in lookup.elements
        ]


def _read_identity(element: ET.Element) -> PackageIdentity:
    return PackageIdentity(
        name=attr(element, "Name", UNKNOWN),
        publisher=attr(element, "Publisher", UNKNOWN),
        version=element.get("Version"),
        architecture=attr(element, "ProcessorArchitecture", "neutral"),
        resource_id=attr(element, "ResourceId", ""),
    )
