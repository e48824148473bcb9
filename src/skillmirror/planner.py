from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .registry import SkillRecord


@dataclass
class FetchGroup:
    repository: str
    skills: list[SkillRecord] = field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        out: list[str] = []
        for skill in self.skills:
            if skill.source is not None and skill.source.path not in out:
                out.append(skill.source.path)
        return out


def group_by_repository(skills: Iterable[SkillRecord]) -> list[FetchGroup]:
    """Batch mirrored skills so each repository is fetched once.

    Groups come out in order of each repository's first appearance and keep
    the input order of their members. Repositories are compared as exact
    strings; ``.../repo`` and ``.../repo.git`` form separate groups.
    """
    groups: dict[str, FetchGroup] = {}
    for skill in skills:
        if skill.source is None:
            continue
        repo = skill.source.repository
        if repo not in groups:
            groups[repo] = FetchGroup(repository=repo)
        groups[repo].skills.append(skill)
    return list(groups.values())
