from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import DEFAULT_MANIFEST_FILENAME, DEFAULT_MANIFEST_LINE_WIDTH
from .errors import DuplicateIdError, MissingIdError
from .registry import SkillRecord, scan_registry


@dataclass(frozen=True)
class ManifestEntry:
    id: str
    name: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class ManifestResult:
    path: Path
    entries: tuple[ManifestEntry, ...]
    warnings: tuple[str, ...]


def _entry_for(record: SkillRecord) -> ManifestEntry:
    skill_id = record.metadata.get("id")
    if not isinstance(skill_id, str) or not skill_id.strip():
        raise MissingIdError(record.name)
    return ManifestEntry(id=skill_id, name=record.name, metadata=copy.deepcopy(record.metadata))


def collect_entries(records: tuple[SkillRecord, ...] | list[SkillRecord]) -> list[ManifestEntry]:
    """Sort catalog entries by ``id``.

    The sort is stable so discovery order decides ties, but ties are never
    written: two entries with the same id raise DuplicateIdError.
    """
    entries = sorted((_entry_for(r) for r in records), key=lambda e: e.id)
    for prev, cur in zip(entries, entries[1:]):
        if prev.id == cur.id:
            raise DuplicateIdError(cur.id, prev.name, cur.name)
    return entries


def render_manifest(entries: list[ManifestEntry], *, line_width: int = DEFAULT_MANIFEST_LINE_WIDTH) -> str:
    return yaml.safe_dump(
        {"items": [e.metadata for e in entries]},
        sort_keys=True,
        allow_unicode=True,
        default_flow_style=False,
        width=line_width,
    )


def _write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(path)
    finally:
        if tmp.exists():
            tmp.unlink()


def build_manifest(
    skills_dir: Path,
    *,
    filename: str = DEFAULT_MANIFEST_FILENAME,
    line_width: int = DEFAULT_MANIFEST_LINE_WIDTH,
) -> ManifestResult:
    """Regenerate the aggregate catalog from every skill under ``skills_dir``.

    Nothing is written when an id is missing or duplicated.
    """
    skills_dir = skills_dir.expanduser().resolve()
    scan = scan_registry(skills_dir)
    entries = collect_entries(scan.records)
    path = skills_dir / filename
    _write_text_atomic(path, render_manifest(entries, line_width=line_width))
    return ManifestResult(path=path, entries=tuple(entries), warnings=scan.warnings)
