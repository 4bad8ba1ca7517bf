"""Document parsers."""

from bundlr.core.parsers.xml import XMLDocument, XMLParser, local_name, namespace_of

__all__ = ["XMLDocument", "XMLParser", "local_name", "namespace_of"]
