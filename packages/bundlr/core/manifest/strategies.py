"""Ordered element lookup strategies for manifests of varying shape.

Producers emit manifests under different namespace declarations, sometimes
none, sometimes with elements out of place. Each strategy is a pure function
``(document, path) -> Lookup``; ``find_elements`` tries them in order and
stops at the first one that finds something.

1. ``namespaced_query``: qualified query in the document's default namespace
2. ``positional_traversal``: walk the conventional path by local name
3. ``local_name_search``: any descendant with the final local name
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import xml.etree.ElementTree as ET

from bundlr.core.parsers.xml import XMLDocument, local_name
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

ElementPath = tuple[str, ...]


@dataclass(frozen=True)
class Lookup:
    """Outcome of a lookup: either found elements or an explicit miss."""

    found: bool
    elements: tuple[ET.Element, ...] = field(default=())
    strategy: str = ""

    @classmethod
    def hit(cls, elements: Sequence[ET.Element], strategy: str) -> Lookup:
        if not elements:
            return cls.missing(strategy)
        return cls(found=True, elements=tuple(elements), strategy=strategy)

    @classmethod
    def missing(cls, strategy: str = "") -> Lookup:
        return cls(found=False, strategy=strategy)

    @property
    def first(self) -> ET.Element | None:
        return self.elements[0] if self.elements else None


Strategy = Callable[[XMLDocument, ElementPath], Lookup]


def namespaced_query(doc: XMLDocument, path: ElementPath) -> Lookup:
    namespace = doc.default_namespace
    if not namespace:
        return Lookup.missing("namespaced")
    query = "/".join(f"{{{namespace}}}{part}" for part in path)
    return Lookup.hit(doc.root.findall(query), "namespaced")


def positional_traversal(doc: XMLDocument, path: ElementPath) -> Lookup:
    current = [doc.root]
    for part in path:
        current = [
            child for parent in current for child in parent if local_name(child.tag) == part
        ]
        if not current:
            return Lookup.missing("positional")
    return Lookup.hit(current, "positional")


def local_name_search(doc: XMLDocument, path: ElementPath) -> Lookup:
    target = path[-1]
    matches = [el for el in doc.root.iter() if el is not doc.root and local_name(el.tag) == target]
    return Lookup.hit(matches, "local-name")


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    namespaced_query,
    positional_traversal,
    local_name_search,
)


def find_elements(
    doc: XMLDocument,
    path: ElementPath,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Lookup:
    """Run the strategy chain for ``path`` and return the first hit.

    Errors inside a strategy are logged and treated as a miss for that tier.
    """
    label = "/".join(path)
    for strategy in strategies:
        try:
            lookup = strategy(doc, path)
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Lookup {label} via {strategy.__name__} failed: {e}")
            continue
        if lookup.found:
            if lookup.strategy != "namespaced":
                logger.debug(f"Lookup {label} resolved by {lookup.strategy} fallback")
            return lookup
    return Lookup.missing()


def attr(element: ET.Element | None, name: str, default: str = "") -> str:
    """Read an attribute, returning ``default`` when absent or blank."""
    if element is None:
        return default
    value = element.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def child_text(element: ET.Element | None, name: str, default: str = "") -> str:
    """Text of the first direct child with local name ``name``, namespace-agnostic."""
    if element is None:
        return default
    for child in element:
        if local_name(child.tag) == name:
            text = (child.text or "").strip()
            return text or default
    return default
