"""XML parsing wrapper that also records namespace declarations.

ElementTree drops ``xmlns`` attributes after parsing, but the manifest reader
needs the declared default namespace and prefixes, so documents are read with
``iterparse`` and the ``start-ns`` events are collected on the way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import io
from pathlib import Path
import xml.etree.ElementTree as ET

from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` part of an ElementTree tag."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def namespace_of(tag: str) -> str:
    """Return the namespace URI of a tag, or ``""`` when unqualified."""
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


@dataclass
class XMLDocument:
    """Parsed document plus its namespace declarations (prefix -> URI).

    The default namespace is stored under the empty prefix.
    """

    root: ET.Element
    namespaces: dict[str, str] = field(default_factory=dict)
    source: Path | None = None

    @property
    def default_namespace(self) -> str:
        """Declared default namespace, falling back to the root tag's namespace."""
        return self.namespaces.get("") or namespace_of(self.root.tag)


class XMLParser:
    """XML parser with consistent error handling.

    Example:
        >>> parser = XMLParser()
        >>> doc = parser.parse_string('<Package xmlns="urn:x"><Identity/></Package>')
        >>> doc.default_namespace
        'urn:x'
    """

    def parse(self, file_path: Path | str) -> XMLDocument:
        """Parse an XML file.

        Raises:
            FileNotFoundError: If file does not exist
            ValueError: If XML is malformed or empty
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"XML file does not exist: {path}")

        logger.debug(f"Parsing XML file: {path}")
        with path.open("rb") as handle:
            doc = self._iterparse(handle, str(path))
        doc.source = path
        return doc

    def parse_string(self, xml_str: str | bytes) -> XMLDocument:
        """Parse XML from a string.

        Raises:
            ValueError: If XML is malformed or empty
        """
        data = xml_str.encode("utf-8") if isinstance(xml_str, str) else xml_str
        return self._iterparse(io.BytesIO(data), "<string>")

    def _iterparse(self, handle, label: str) -> XMLDocument:  # type: ignore[no-untyped-def]
        namespaces: dict[str, str] = {}
        root: ET.Element | None = None
        try:
            for event, item in ET.iterparse(handle, events=("start-ns", "start")):
                if event == "start-ns":
                    prefix, uri = item
                    # First declaration of a prefix wins (outermost scope)
                    namespaces.setdefault(prefix, uri)
                elif root is None:
                    root = item
        except ET.ParseError as e:
            raise ValueError(f"Malformed XML in {label}: {e}") from e

        if root is None:
            raise ValueError(f"XML document has no root element: {label}")
        return XMLDocument(root=root, namespaces=namespaces)
