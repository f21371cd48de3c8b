"""Artifact reference extraction from finalized assistant messages."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import unquote

ARTIFACT_SECTION_MARKER = "Артефакты:"

_ARTIFACT_LINE = re.compile(r"^-\s*(/artifacts/\S+)")


def extract_artifact_paths(text: str, marker: str = ARTIFACT_SECTION_MARKER) -> list[str]:
    """
    Collect ``- /artifacts/<token>`` bullets that follow the section marker.

    The block starts after the first line whose trimmed text equals the
    marker and ends at the first blank or non-matching line. No marker
    means no artifacts.
    """
    paths: list[str] = []
    in_block = False
    for line in text.splitlines():
        trimmed = line.strip()
        if not in_block:
            in_block = trimmed == marker
            continue
        match = _ARTIFACT_LINE.match(trimmed)
        if not match:
            break
        paths.append(match.group(1))
    return paths


def artifact_filename(path: str) -> str:
    """
    Local file name for an artifact path: last segment, query dropped, URL-decoded.

    Separators that only appear after decoding are not honoured; the name is
    reduced to its final component.

    Raises:
        ValueError: nothing usable is left (empty, ``.`` or ``..``)
    """
    cleaned = path.split("?")[0]
    last = cleaned.split("/")[-1] or cleaned
    name = PurePosixPath(unquote(last).replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise ValueError(f"Unusable artifact name: {path!r}")
    return name


__all__ = ["ARTIFACT_SECTION_MARKER", "artifact_filename", "extract_artifact_paths"]
