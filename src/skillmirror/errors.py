from __future__ import annotations

from pathlib import Path


class SkillMirrorError(RuntimeError):
    pass


class MalformedMetadataError(SkillMirrorError):
    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message + (f" (at {path})" if path else ""))


class IncompleteSourceError(MalformedMetadataError):
    pass


class NoSourceError(SkillMirrorError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__("no metadata.source")


class UpstreamPathNotFoundError(SkillMirrorError):
    def __init__(self, name: str, path: str, repository: str, *, detail: str | None = None) -> None:
        self.name = name
        self.path = path
        self.repository = repository
        msg = detail or f'path "{path}" not found in {repository}'
        super().__init__(msg)


class FetchFailureError(SkillMirrorError):
    def __init__(self, repository: str, detail: str) -> None:
        self.repository = repository
        self.detail = detail
        super().__init__(f"Fetch failed for {repository}: {detail}")


class InvalidSourceURLError(SkillMirrorError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            f"Invalid GitHub URL: {url}. "
            "Expected format: https://github.com/owner/repo/tree/branch/path/to/skill"
        )


class ManifestError(SkillMirrorError):
    pass


class DuplicateIdError(ManifestError):
    def __init__(self, skill_id: str, first: str, second: str) -> None:
        self.skill_id = skill_id
        self.skills = (first, second)
        super().__init__(f"Duplicate id {skill_id!r} in skills {first!r} and {second!r}")


class MissingIdError(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"{name}: frontmatter has no 'id' field")
