"""
Reading and writing SKILL.md documents.

A skill document is a YAML mapping between two ``---`` lines followed by a
free-form body. The body is kept byte-for-byte so a read/write cycle only
changes what the caller changed in the mapping.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .errors import MalformedMetadataError

SKILL_FILENAME = "SKILL.md"
DELIMITER = "---"


def parse_skill_document(text: str, path: Path | None = None) -> tuple[dict[str, Any], str]:
    """Split a skill document into its metadata mapping and body.

    Raises:
        MalformedMetadataError: If the opening or closing delimiter is missing,
            the YAML does not parse, or it does not describe a mapping.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        raise MalformedMetadataError("Missing frontmatter delimiter '---' on the first line", path)

    end_index = None
    for i, line in enumerate(lines[1:], start=1):
        if line.rstrip() == DELIMITER:
            end_index = i
            break
    if end_index is None:
        raise MalformedMetadataError("Missing closing frontmatter delimiter '---'", path)

    header = "".join(lines[1:end_index])
    body = "".join(lines[end_index + 1 :])

    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as e:
        raise MalformedMetadataError(f"Invalid YAML frontmatter: {e}", path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedMetadataError("Frontmatter must be a YAML mapping", path)
    return data, body


def render_skill_document(metadata: dict[str, Any], body: str) -> str:
    # Insertion order is kept so untouched keys stay where the author put them.
    header = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{DELIMITER}\n{header}{DELIMITER}\n{body}"


def read_skill_document(path: Path) -> tuple[dict[str, Any], str]:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedMetadataError(f"{path.name} is not valid UTF-8", path) from e
    return parse_skill_document(text, path)


def write_skill_document(path: Path, metadata: dict[str, Any], body: str) -> None:
    path.write_text(render_skill_document(metadata, body), encoding="utf-8")
