from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from .errors import MalformedMetadataError, SkillMirrorError, UpstreamPathNotFoundError
from .frontmatter import SKILL_FILENAME, read_skill_document, write_skill_document
from .registry import SkillRecord, SkillSource


def locate_upstream_skill(root: Path, name: str, source: SkillSource) -> Path:
    """Return the directory for ``source.path`` inside a fetched tree.

    Raises:
        UpstreamPathNotFoundError: If the path is missing, escapes the tree,
            or holds no SKILL.md.
    """
    base = root.resolve()
    candidate = (root / source.path).resolve()
    if candidate != base and base not in candidate.parents:
        raise UpstreamPathNotFoundError(name, source.path, source.repository, detail=f'path "{source.path}" escapes the repository')
    if not candidate.is_dir():
        raise UpstreamPathNotFoundError(name, source.path, source.repository)
    if not (candidate / SKILL_FILENAME).is_file():
        raise UpstreamPathNotFoundError(
            name, source.path, source.repository, detail=f"no {SKILL_FILENAME} at upstream path {source.path!r}"
        )
    return candidate


def clear_directory(directory: Path) -> None:
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def apply_metadata_policy(
    upstream: dict[str, Any],
    *,
    source: SkillSource,
    local_category: Any = None,
    default_category: Any = None,
    path: Path | None = None,
) -> dict[str, Any]:
    """Merge locally owned fields into upstream frontmatter.

    Upstream wins for everything except ``metadata.category`` (kept from the
    local copy when upstream has none) and ``metadata.source`` (always the
    repository/path the content was fetched from).
    """
    merged = dict(upstream)
    meta = merged.get("metadata")
    if meta is None:
        meta = {}
    elif isinstance(meta, dict):
        meta = dict(meta)
    else:
        raise MalformedMetadataError("upstream 'metadata' must be a mapping", path)

    if not meta.get("category"):
        if local_category:
            meta["category"] = local_category
        elif default_category is not None:
            meta["category"] = default_category

    meta["source"] = source.as_metadata()
    merged["metadata"] = meta
    return merged


def install_upstream_copy(target: Path, upstream_dir: Path) -> None:
    """Replace everything in ``target`` with the contents of ``upstream_dir``.

    Files that only exist locally are deleted.
    """
    target.mkdir(parents=True, exist_ok=True)
    clear_directory(target)
    shutil.copytree(upstream_dir, target, dirs_exist_ok=True, symlinks=True)


def reconcile_skill(record: SkillRecord, upstream_dir: Path, source: SkillSource) -> SkillRecord:
    """Mirror ``upstream_dir`` into the record's directory and re-apply local metadata.

    The upstream SKILL.md is parsed before anything is replaced, so a
    malformed upstream document leaves the local copy untouched.
    """
    upstream_doc = upstream_dir / SKILL_FILENAME
    if not upstream_doc.is_file():
        raise UpstreamPathNotFoundError(
            record.name, source.path, source.repository, detail=f"no {SKILL_FILENAME} at upstream path {source.path!r}"
        )

    upstream_meta, body = read_skill_document(upstream_doc)
    merged = apply_metadata_policy(upstream_meta, source=source, local_category=record.category, path=upstream_doc)

    install_upstream_copy(record.directory, upstream_dir)
    write_skill_document(record.directory / SKILL_FILENAME, merged, body)

    record.metadata = merged
    record.body = body
    record.source = source
    return record


def adopt_skill(target: Path, upstream_dir: Path, source: SkillSource, *, default_category: str = "unknown") -> SkillRecord:
    """Create a new mirrored skill at ``target`` from a fetched directory."""
    if target.exists():
        raise SkillMirrorError(f"Skill directory already exists: {target}")
    upstream_doc = upstream_dir / SKILL_FILENAME
    upstream_meta, body = read_skill_document(upstream_doc)
    merged = apply_metadata_policy(upstream_meta, source=source, default_category=default_category, path=upstream_doc)
    try:
        shutil.copytree(upstream_dir, target, symlinks=True)
        write_skill_document(target / SKILL_FILENAME, merged, body)
    except Exception:
        shutil.rmtree(target, ignore_errors=True)
        raise
    return SkillRecord(name=target.name, directory=target, metadata=merged, body=body, source=source)
