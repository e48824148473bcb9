from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .errors import IncompleteSourceError, MalformedMetadataError, NoSourceError, SkillMirrorError
from .frontmatter import SKILL_FILENAME, read_skill_document


@dataclass(frozen=True)
class SkillSource:
    """Where a mirrored skill comes from.

    ``repository`` and ``path`` are normalised for fetching; the ``declared_*``
    fields keep the strings as written in SKILL.md so they round-trip unchanged.
    """

    repository: str
    path: str
    declared_repository: str | None = field(default=None, compare=False, repr=False)
    declared_path: str | None = field(default=None, compare=False, repr=False)

    def as_metadata(self) -> dict[str, str]:
        return {
            "repository": self.repository if self.declared_repository is None else self.declared_repository,
            "path": self.path if self.declared_path is None else self.declared_path,
        }


@dataclass
class SkillRecord:
    name: str
    directory: Path
    metadata: dict[str, Any]
    body: str
    source: SkillSource | None = None

    @property
    def metadata_path(self) -> Path:
        return self.directory / SKILL_FILENAME

    @property
    def category(self) -> Any:
        meta = self.metadata.get("metadata")
        if isinstance(meta, dict):
            return meta.get("category")
        return None


@dataclass(frozen=True)
class ScanResult:
    records: tuple[SkillRecord, ...]
    warnings: tuple[str, ...]
    skipped: dict[str, str] = field(default_factory=dict)


def parse_source(metadata: dict[str, Any], path: Path | None = None) -> SkillSource | None:
    """Read ``metadata.source`` from a frontmatter mapping.

    Returns None when no source is declared. A source with only one of
    ``repository``/``path`` set is rejected rather than treated as absent.
    """
    meta = metadata.get("metadata")
    if meta is None:
        return None
    if not isinstance(meta, dict):
        raise MalformedMetadataError("'metadata' must be a mapping", path)

    raw = meta.get("source")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise IncompleteSourceError("metadata.source must be a mapping with repository and path", path)

    repository = raw.get("repository")
    repo_path = raw.get("path")
    has_repository = isinstance(repository, str) and bool(repository.strip())
    has_path = isinstance(repo_path, str) and bool(repo_path.strip())
    if not has_repository and not has_path:
        return None
    if not (has_repository and has_path):
        missing = "path" if has_repository else "repository"
        raise IncompleteSourceError(f"metadata.source is missing {missing!r}", path)
    return SkillSource(
        repository=repository.strip(),
        path=repo_path.strip().strip("/"),
        declared_repository=repository,
        declared_path=repo_path,
    )


def load_skill(directory: Path) -> SkillRecord:
    metadata, body = read_skill_document(directory / SKILL_FILENAME)
    source = parse_source(metadata, directory / SKILL_FILENAME)
    return SkillRecord(name=directory.name, directory=directory, metadata=metadata, body=body, source=source)


def scan_registry(skills_dir: Path, names: Iterable[str] | None = None) -> ScanResult:
    """Discover skill directories directly under ``skills_dir``.

    Hidden directories are ignored. When ``names`` is given only those
    directories are parsed. Directories without SKILL.md, or whose SKILL.md
    does not parse, are reported in ``skipped`` and left out of ``records``.
    """
    wanted = {n for n in (names or ()) if n}
    records: list[SkillRecord] = []
    warnings: list[str] = []
    skipped: dict[str, str] = {}

    if not skills_dir.is_dir():
        raise SkillMirrorError(f"Skills directory does not exist: {skills_dir}")

    seen: set[str] = set()
    for entry in sorted(skills_dir.iterdir(), key=lambda p: p.name):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        if wanted and entry.name not in wanted:
            continue
        seen.add(entry.name)

        if not (entry / SKILL_FILENAME).is_file():
            reason = f"no {SKILL_FILENAME} found"
            warnings.append(f"{entry.name}: {reason}, skipping")
            skipped[entry.name] = reason
            continue

        try:
            record = load_skill(entry)
        except (MalformedMetadataError, OSError) as e:
            warnings.append(f"{entry.name}: {e}, skipping")
            skipped[entry.name] = str(e)
            continue
        records.append(record)

    for name in sorted(wanted - seen):
        warnings.append(f"{name}: no such skill directory")
        skipped[name] = "no such skill directory"

    return ScanResult(records=tuple(records), warnings=tuple(warnings), skipped=skipped)


def select_sync_targets(scan: ScanResult, names: Iterable[str] | None = None) -> tuple[list[SkillRecord], dict[str, str]]:
    """Keep only mirrored skills.

    Skills requested by name that have no source are reported; when no names
    were requested, sourceless skills are dropped silently.
    """
    wanted = {n for n in (names or ()) if n}
    targets: list[SkillRecord] = []
    skipped: dict[str, str] = {}
    for record in scan.records:
        if record.source is not None:
            targets.append(record)
            continue
        if record.name in wanted:
            skipped[record.name] = str(NoSourceError(record.name))
    return targets, skipped
