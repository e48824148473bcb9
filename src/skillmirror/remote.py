"""Remote source addresses for mirrored skills."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

from .errors import InvalidSourceURLError
from .registry import SkillSource

GITHUB_HOSTS = {"github.com", "www.github.com"}


@dataclass(frozen=True)
class ExplicitAddress:
    repository: str
    path: str

    def resolve(self) -> "ExplicitAddress":
        return self

    def to_source(self) -> SkillSource:
        return SkillSource(repository=self.repository, path=self.path)

    @property
    def skill_name(self) -> str:
        return PurePosixPath(self.path).name


@dataclass(frozen=True)
class TreeUrl:
    """``https://github.com/<owner>/<repo>/tree/<ref>/<dir>``"""

    owner: str
    repo: str
    ref: str
    path: str

    def resolve(self) -> ExplicitAddress:
        return ExplicitAddress(repository=f"https://github.com/{self.owner}/{self.repo}", path=self.path)


@dataclass(frozen=True)
class BlobUrl:
    """``https://github.com/<owner>/<repo>/blob/<ref>/<file>``; the skill is the file's directory."""

    owner: str
    repo: str
    ref: str
    file_path: str

    def resolve(self) -> ExplicitAddress:
        parent = str(PurePosixPath(self.file_path).parent)
        return ExplicitAddress(repository=f"https://github.com/{self.owner}/{self.repo}", path=parent)


RemoteAddress = ExplicitAddress | TreeUrl | BlobUrl


def parse_remote_address(url: str) -> TreeUrl | BlobUrl:
    raw = url.strip()
    if raw and "://" not in raw:
        raw = "https://" + raw
    parsed = urlparse(raw)
    if parsed.netloc.lower() not in GITHUB_HOSTS:
        raise InvalidSourceURLError(url)

    parts = [p for p in parsed.path.strip("/").split("/") if p]
    if len(parts) < 5 or parts[2] not in {"tree", "blob"}:
        raise InvalidSourceURLError(url)

    owner, repo, kind, ref = parts[:4]
    rel = "/".join(parts[4:])
    if kind == "tree":
        return TreeUrl(owner=owner, repo=repo, ref=ref, path=rel)
    if len(parts) < 6:
        # blob/<ref>/SKILL.md: the file sits at the repository root, there is no skill directory.
        raise InvalidSourceURLError(url)
    return BlobUrl(owner=owner, repo=repo, ref=ref, file_path=rel)


def resolve_address(value: str | RemoteAddress, path: str | None = None) -> ExplicitAddress:
    """Normalise any accepted address form to an explicit repository/path pair."""
    if isinstance(value, (ExplicitAddress, TreeUrl, BlobUrl)):
        return value.resolve()
    if path is not None:
        repository = value.strip().rstrip("/")
        clean = path.strip().strip("/")
        if not repository or not clean:
            raise InvalidSourceURLError(f"{value} {path}")
        return ExplicitAddress(repository=repository, path=clean)
    return parse_remote_address(value).resolve()


def github_owner_repo(repository: str) -> tuple[str, str] | None:
    parsed = urlparse(repository.strip())
    if parsed.netloc.lower() not in GITHUB_HOSTS:
        return None
    parts = [p for p in parsed.path.strip("/").split("/") if p]
    if len(parts) != 2:
        return None
    owner, repo = parts
    return owner, repo.removesuffix(".git")
