"""
Fetching the upstream subtrees of mirrored skills.

A fetcher materializes only the requested subdirectories of a repository's
default-branch head into a throwaway workspace. ``checkout`` is a context
manager and the workspace is deleted on every exit path.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tarfile
import tempfile
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator, Protocol, Sequence

import httpx

from .config import Config
from .errors import FetchFailureError, SkillMirrorError
from .remote import GITHUB_HOSTS, github_owner_repo

WORKSPACE_PREFIX = "skillmirror-"
GITHUB_API_URL = "https://api.github.com"


class RemoteContentFetcher(Protocol):
    def checkout(self, repository: str, paths: Sequence[str]) -> AbstractContextManager[Path]:
        ...


def _remote_url(repository: str) -> str:
    if repository.endswith(".git") or "://" not in repository:
        return repository
    host = repository.split("://", 1)[1].split("/", 1)[0].lower()
    if host in GITHUB_HOSTS:
        return repository.rstrip("/") + ".git"
    return repository


def _sparse_patterns(paths: Sequence[str]) -> str:
    # Anchored so "skills/foo" does not also match "vendor/skills/foo".
    return "".join(f"/{p.strip('/')}/\n" for p in paths)


@contextmanager
def _workspace(repository: str) -> Iterator[Path]:
    try:
        td = tempfile.TemporaryDirectory(prefix=WORKSPACE_PREFIX)
    except OSError as e:
        raise FetchFailureError(repository, f"Cannot create workspace: {e}") from e
    with td as name:
        yield Path(name)


class GitSparseFetcher:
    """Shallow, sparse ``git fetch`` of ``HEAD`` into a temporary repository."""

    def __init__(self, *, git_executable: str = "git", timeout_s: float | None = None) -> None:
        self.git_executable = git_executable
        self.timeout_s = timeout_s

    def _run(self, repository: str, root: Path, *args: str) -> None:
        cmd = [self.git_executable, "-C", str(root), *args]
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                env=env,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as e:
            raise FetchFailureError(repository, f"git executable not found: {self.git_executable}") from e
        except subprocess.TimeoutExpired as e:
            raise FetchFailureError(repository, f"timed out: {' '.join(args)}") from e
        if result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip()
            raise FetchFailureError(repository, f"git {' '.join(args)} failed: {stderr}")

    @contextmanager
    def checkout(self, repository: str, paths: Sequence[str]) -> Iterator[Path]:
        with _workspace(repository) as root:
            self._run(repository, root, "init", "-q")
            self._run(repository, root, "remote", "add", "origin", _remote_url(repository))
            self._run(repository, root, "config", "core.sparseCheckout", "true")
            sparse_file = root / ".git" / "info" / "sparse-checkout"
            try:
                sparse_file.parent.mkdir(parents=True, exist_ok=True)
                sparse_file.write_text(_sparse_patterns(paths), encoding="utf-8")
            except OSError as e:
                raise FetchFailureError(repository, f"Cannot write sparse-checkout patterns: {e}") from e
            self._run(repository, root, "fetch", "-q", "--depth", "1", "--filter=blob:none", "origin", "HEAD")
            self._run(repository, root, "checkout", "-q", "FETCH_HEAD")
            yield root


def _member_rel_path(name: str) -> PurePosixPath | None:
    parts = PurePosixPath(name).parts
    # GitHub tarballs wrap everything in "<owner>-<repo>-<sha>/".
    if len(parts) < 2:
        return None
    return PurePosixPath(*parts[1:])


def _is_selected(rel: PurePosixPath, paths: Sequence[str]) -> bool:
    s = rel.as_posix()
    for p in paths:
        p = p.strip("/")
        if s == p or s.startswith(p + "/"):
            return True
    return False


class TarballFetcher:
    """Download the default-branch tarball from the GitHub API and keep only the requested paths.

    The API has no subtree endpoint, so the whole tarball is transferred and
    filtered on extraction. Prefer ``GitSparseFetcher`` for large repositories;
    this one is for hosts without a ``git`` executable.
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        timeout_s: float = 60.0,
        api_url: str = GITHUB_API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout_s = timeout_s
        self.api_url = api_url.rstrip("/")
        self._transport = transport

    def _download(self, repository: str, dest: Path) -> None:
        owner_repo = github_owner_repo(repository)
        if owner_repo is None:
            raise FetchFailureError(repository, "tarball fetcher only supports https://github.com/<owner>/<repo>")
        owner, repo = owner_repo

        headers = {"accept": "application/vnd.github+json"}
        if self.token:
            headers["authorization"] = f"Bearer {self.token}"
        url = f"{self.api_url}/repos/{owner}/{repo}/tarball"
        try:
            with httpx.Client(timeout=self.timeout_s, follow_redirects=True, transport=self._transport) as client:
                with client.stream("GET", url, headers=headers) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        raise FetchFailureError(repository, f"HTTP {resp.status_code}: {resp.text.strip()}")
                    with dest.open("wb") as out:
                        for chunk in resp.iter_bytes():
                            out.write(chunk)
        except httpx.HTTPError as e:
            raise FetchFailureError(repository, f"Request failed: {e}") from e

    def _extract(self, repository: str, archive: Path, root: Path, paths: Sequence[str]) -> None:
        try:
            with tarfile.open(archive, "r:*") as tf:
                for member in tf:
                    rel = _member_rel_path(member.name)
                    if rel is None or not _is_selected(rel, paths):
                        continue
                    if member.name.startswith("/") or ".." in rel.parts:
                        raise FetchFailureError(repository, f"Archive contains an invalid path entry: {member.name!r}")
                    target = root.joinpath(*rel.parts)
                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    if not member.isfile():
                        # Links and devices are not materialized.
                        continue
                    src = tf.extractfile(member)
                    if src is None:
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with src, target.open("wb") as out:
                        shutil.copyfileobj(src, out)
        except tarfile.TarError as e:
            raise FetchFailureError(repository, f"Invalid tarball: {e}") from e

    @contextmanager
    def checkout(self, repository: str, paths: Sequence[str]) -> Iterator[Path]:
        with _workspace(repository) as td:
            archive = td / "archive.tar.gz"
            root = td / "tree"
            try:
                root.mkdir()
                self._download(repository, archive)
                self._extract(repository, archive, root, paths)
            except OSError as e:
                raise FetchFailureError(repository, f"Cannot materialize tarball: {e}") from e
            yield root


def make_fetcher(cfg: Config) -> GitSparseFetcher | TarballFetcher:
    if cfg.fetcher == "git":
        return GitSparseFetcher(git_executable=cfg.git_executable, timeout_s=cfg.timeout_s)
    if cfg.fetcher == "tarball":
        return TarballFetcher(token=cfg.github_token, timeout_s=cfg.timeout_s)
    raise SkillMirrorError(f"Unknown fetcher {cfg.fetcher!r}. Expected one of: git, tarball.")
