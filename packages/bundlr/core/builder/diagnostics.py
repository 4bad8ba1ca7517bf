"""Failure signature table for packaging tool output."""

from __future__ import annotations

from dataclasses import dataclass
import re


@dataclass(frozen=True)
class FailureSignature:
    kind: str
    pattern: re.Pattern[str]
    advice: str


@dataclass(frozen=True)
class Diagnosis:
    kind: str
    message: str
    matched: str = ""


def _sig(kind: str, pattern: str, advice: str) -> FailureSignature:
    return FailureSignature(kind, re.compile(pattern, re.IGNORECASE), advice)


# Ordered: first match wins. Specific HRESULTs come before generic wording.
FAILURE_SIGNATURES: tuple[FailureSignature, ...] = (
    _sig(
        "block_map",
        r"block ?map|0x80080206",
        "The block map does not match the package contents. Remove AppxBlockMap.xml and "
        "AppxSignature.p7x from the source and rebuild.",
    ),
    _sig(
        "invalid_schema",
        r"schema|0xC00CE0\w\w|0x80080204",
        "The manifest does not validate against its schema. Check namespace declarations "
        "and element order, or rebuild with tool validation disabled.",
    ),
    _sig(
        "malformed_descriptor",
        r"manifest.*(malformed|not valid|invalid|could not be (read|parsed))|0x80080203",
        "AppxManifest.xml is malformed. Open it in an XML editor and fix the reported line.",
    ),
    _sig(
        "permission_denied",
        r"access (is )?denied|permission denied|0x80070005",
        "Access denied. Run elevated, or copy the package out of the protected install "
        "directory before packaging.",
    ),
    _sig(
        "path_not_found",
        r"path not found|cannot find the path|0x80070003",
        "A directory in the source or output path does not exist.",
    ),
    _sig(
        "file_not_found",
        r"file not found|cannot find the file|no such file|0x80070002",
        "A file referenced by the manifest or mapping is missing from the source tree.",
    ),
    _sig(
        "output_conflict",
        r"already exists|0x80070050|0x800700B7",
        "The output file already exists. Delete it or build with overwrite enabled.",
    ),
    _sig(
        "invalid_parameter",
        r"parameter is incorrect|invalid (parameter|argument|option)|0x80070057",
        "The packaging tool rejected its arguments. Check the SDK version and the "
        "source/output paths for unusual characters.",
    ),
)

GENERIC_ADVICE = (
    "The packaging tool failed for an unrecognized reason. Inspect the tool output "
    "below and the Windows event log (AppxPackagingOM) for details."
)


def diagnose(output: str) -> Diagnosis:
    """Match tool output against the failure signature table.

    Example:
        >>> diagnose("MakeAppx : error: 0x80070005 - Access is denied.").kind
        'permission_denied'
    """
    for signature in FAILURE_SIGNATURES:
        match = signature.pattern.search(output)
        if match:
            return Diagnosis(signature.kind, signature.advice, match.group(0))
    return Diagnosis("unknown", GENERIC_ADVICE)


def diagnosis_for(kind: str, matched: str = "") -> Diagnosis:
    """Diagnosis for a known failure kind, bypassing output matching."""
    for signature in FAILURE_SIGNATURES:
        if signature.kind == kind:
            return Diagnosis(kind, signature.advice, matched)
    return Diagnosis("unknown", GENERIC_ADVICE, matched)
