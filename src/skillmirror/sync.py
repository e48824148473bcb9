from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from .errors import FetchFailureError, NoSourceError, SkillMirrorError
from .fetch import RemoteContentFetcher
from .planner import FetchGroup, group_by_repository
from .reconcile import adopt_skill, locate_upstream_skill, reconcile_skill
from .registry import SkillRecord, scan_registry, select_sync_targets
from .remote import RemoteAddress, resolve_address

Reporter = Callable[[str], None]


@dataclass(frozen=True)
class SyncResult:
    succeeded: tuple[str, ...]
    failed: dict[str, str]
    skipped: dict[str, str]
    warnings: tuple[str, ...]
    repositories: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class AddResult:
    name: str
    directory: Path
    repository: str
    path: str
    category: str | None


def _noop(_: str) -> None:
    return None


class SkillSynchronizer:
    def __init__(self, *, skills_dir: Path, fetcher: RemoteContentFetcher, report: Reporter | None = None) -> None:
        self.skills_dir = skills_dir.expanduser().resolve()
        self.fetcher = fetcher
        self.report = report or _noop

    def sync(self, names: Sequence[str] | None = None) -> SyncResult:
        """Refresh mirrored skills from their upstream repositories.

        With no names every skill that declares ``metadata.source`` is
        refreshed. Failures are collected per skill; a failed fetch marks
        every skill of that repository as failed and moves on.
        """
        scan = scan_registry(self.skills_dir, names)
        targets, no_source = select_sync_targets(scan, names)

        skipped = dict(scan.skipped)
        skipped.update(no_source)
        warnings = list(scan.warnings)
        warnings.extend(f"{name}: {reason}, skipping" for name, reason in no_source.items())

        succeeded: list[str] = []
        failed: dict[str, str] = {}
        groups = group_by_repository(targets)
        for group in groups:
            count = len(group.skills)
            self.report(f"{group.repository} ({count} skill{'s' if count != 1 else ''})")
            ok, errors = self._sync_group(group)
            succeeded.extend(ok)
            failed.update(errors)

        return SyncResult(
            succeeded=tuple(succeeded),
            failed=failed,
            skipped=skipped,
            warnings=tuple(warnings),
            repositories=tuple(g.repository for g in groups),
        )

    def _sync_group(self, group: FetchGroup) -> tuple[list[str], dict[str, str]]:
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        try:
            with self.fetcher.checkout(group.repository, group.paths) as root:
                for skill in group.skills:
                    try:
                        self._sync_skill(skill, root)
                    except (SkillMirrorError, OSError) as e:
                        failed[skill.name] = str(e)
                        self.report(f"  x {skill.name}: {e}")
                        continue
                    succeeded.append(skill.name)
                    self.report(f"  + {skill.name}")
        except (FetchFailureError, OSError) as e:
            for skill in group.skills:
                if skill.name not in succeeded:
                    failed[skill.name] = str(e)
            self.report(f"  x {e}")
        return succeeded, failed

    def _sync_skill(self, skill: SkillRecord, root: Path) -> None:
        if skill.source is None:
            raise NoSourceError(skill.name)
        upstream_dir = locate_upstream_skill(root, skill.name, skill.source)
        reconcile_skill(skill, upstream_dir, skill.source)

    def add(self, address: str | RemoteAddress, path: str | None = None) -> AddResult:
        """Create a new mirrored skill from a GitHub tree/blob URL or a repository/path pair."""
        resolved = resolve_address(address, path)
        name = resolved.skill_name
        if not name or name in {".", ".."} or name.startswith("."):
            raise SkillMirrorError(f"Cannot derive a skill name from path {resolved.path!r}")

        self.skills_dir.mkdir(parents=True, exist_ok=True)
        target = self.skills_dir / name
        if target.exists():
            raise SkillMirrorError(
                f"Skill directory already exists: {target}. Remove it first to re-add the skill."
            )

        source = resolved.to_source()
        self.report(f"Adding skill from {source.repository}:{source.path}")
        with self.fetcher.checkout(source.repository, [source.path]) as root:
            upstream_dir = locate_upstream_skill(root, name, source)
            record = adopt_skill(target, upstream_dir, source)

        category = record.category
        return AddResult(
            name=record.name,
            directory=record.directory,
            repository=source.repository,
            path=source.path,
            category=category if isinstance(category, str) else None,
        )
