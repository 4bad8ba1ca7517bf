"""Generation of the ``[Content_Types].xml`` part for package trees."""

from __future__ import annotations

from pathlib import Path
from xml.sax.saxutils import quoteattr

from bundlr.core.utils.fs import iter_files
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

CONTENT_TYPES_FILE = "[Content_Types].xml"
CONTENT_TYPES_NAMESPACE = "http://schemas.openxmlformats.org/package/2006/content-types"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    "xml": "application/vnd.ms-appx.manifest+xml",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "ico": "image/vnd.microsoft.icon",
    "svg": "image/svg+xml",
    "dll": "application/x-msdownload",
    "exe": "application/x-msdownload",
    "winmd": "application/octet-stream",
    "pri": "application/octet-stream",
    "json": "application/json",
    "txt": "text/plain",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "ttf": "application/x-font-ttf",
    "otf": "application/x-font-otf",
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
    "p7x": "application/vnd.ms-appx.signature",
    "cat": "application/vnd.ms-pkiseccatalog",
}


def content_type_for(extension: str) -> str:
    return CONTENT_TYPES.get(extension.lower().lstrip("."), DEFAULT_CONTENT_TYPE)


def build_content_types_xml(root: Path) -> str:
    """Render a content-types document covering every file extension under ``root``.

    Files without an extension are mapped by part name to the default type.
    """
    extensions: set[str] = set()
    overrides: list[str] = []
    for path in iter_files(root):
        if path.name == CONTENT_TYPES_FILE:
            continue
        if path.suffix:
            extensions.add(path.suffix.lower().lstrip("."))
        else:
            overrides.append("/" + path.relative_to(root).as_posix())

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<Types xmlns="{CONTENT_TYPES_NAMESPACE}">',
    ]
    for ext in sorted(extensions):
        content_type = quoteattr(content_type_for(ext))
        lines.append(f"  <Default Extension={quoteattr(ext)} ContentType={content_type}/>")
    for part in overrides:
        default = quoteattr(DEFAULT_CONTENT_TYPE)
        lines.append(f"  <Override PartName={quoteattr(part)} ContentType={default}/>")
    lines.append("</Types>")
    return "\n".join(lines) + "\n"


def ensure_content_types(root: Path) -> bool:
    """Write ``[Content_Types].xml`` into ``root`` if it is absent.

    Returns:
        True if a file was written
    """
    target = root / CONTENT_TYPES_FILE
    if target.exists():
        return False
    target.write_text(build_content_types_xml(root), encoding="utf-8")
    logger.debug(f"Generated {target}")
    return True
