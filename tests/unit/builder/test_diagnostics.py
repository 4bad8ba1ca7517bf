"""Tests for packaging failure diagnostics and content types."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from bundlr.core.builder import (
    CONTENT_TYPES_FILE,
    FAILURE_SIGNATURES,
    build_content_types_xml,
    diagnose,
    diagnosis_for,
    ensure_content_types,
)

CT_NS = "{http://schemas.openxmlformats.org/package/2006/content-types}"


@pytest.mark.parametrize(
    ("output", "kind"),
    [
        ("MakeAppx : error: 0x80080206 - The block map is invalid.", "block_map"),
        ("error C00CE014: App manifest validation error: Line 12, schema", "invalid_schema"),
        ("MakeAppx : error: The manifest is malformed at line 3", "malformed_descriptor"),
        ("MakeAppx : error: 0x80070005 - Access is denied.", "permission_denied"),
        ("The system cannot find the path specified. (0x80070003)", "path_not_found"),
        ("error: 0x80070002 - The system cannot find the file specified.", "file_not_found"),
        ("error: The file C:\\out\\app.msix already exists.", "output_conflict"),
        ("MakeAppx : error: 0x80070057 - The parameter is incorrect.", "invalid_parameter"),
    ],
)
def test_known_failures(output, kind):
    diagnosis = diagnose(output)

    assert diagnosis.kind == kind
    assert diagnosis.matched
    assert diagnosis.message


def test_first_matching_signature_wins():
    # Mentions both the block map and access denied
    assert diagnose("0x80080206 block map mismatch; access denied").kind == "block_map"


def test_unknown_failure_gets_generic_advice():
    diagnosis = diagnose("MakeAppx : error: something new happened")

    assert diagnosis.kind == "unknown"
    assert "unrecognized reason" in diagnosis.message


def test_signature_kinds_are_unique():
    kinds = [s.kind for s in FAILURE_SIGNATURES]

    assert len(kinds) == len(set(kinds))


def test_diagnosis_for_kind():
    assert diagnosis_for("output_conflict").message.startswith("The output file already exists")
    assert diagnosis_for("nope").kind == "unknown"


class TestContentTypes:
    def test_defaults_and_overrides(self, tmp_path):
        (tmp_path / "Assets").mkdir()
        (tmp_path / "Assets" / "Logo.PNG").write_bytes(b"png")
        (tmp_path / "AppxManifest.xml").write_text("<Package/>")
        (tmp_path / "app.exe").write_bytes(b"MZ")
        (tmp_path / "data.custom").write_bytes(b"?")
        (tmp_path / "LICENSE").write_text("MIT")

        root = ET.fromstring(build_content_types_xml(tmp_path))

        defaults = {
            el.get("Extension"): el.get("ContentType") for el in root.iter(f"{CT_NS}Default")
        }
        assert defaults == {
            "custom": "application/octet-stream",
            "exe": "application/x-msdownload",
            "png": "image/png",
            "xml": "application/vnd.ms-appx.manifest+xml",
        }
        overrides = [el.get("PartName") for el in root.iter(f"{CT_NS}Override")]
        assert overrides == ["/LICENSE"]

    def test_ensure_content_types_writes_once(self, tmp_path):
        (tmp_path / "app.exe").write_bytes(b"MZ")

        assert ensure_content_types(tmp_path) is True
        assert (tmp_path / CONTENT_TYPES_FILE).is_file()
        assert ensure_content_types(tmp_path) is False
