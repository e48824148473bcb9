import io
import shutil
import subprocess
import tarfile
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

from skillmirror.config import Config
from skillmirror.errors import FetchFailureError, SkillMirrorError
from skillmirror.fetch import GitSparseFetcher, TarballFetcher, _remote_url, _sparse_patterns, make_fetcher


def _git(*args: str, cwd: Path) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


class _RecordingGitFetcher(GitSparseFetcher):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.roots: list[Path] = []

    def _run(self, repository, root, *args):
        self.roots.append(root)
        return super()._run(repository, root, *args)


class TestGitHelpers(unittest.TestCase):
    def test_remote_url(self) -> None:
        self.assertEqual(_remote_url("https://github.com/acme/skills"), "https://github.com/acme/skills.git")
        self.assertEqual(_remote_url("https://github.com/acme/skills.git"), "https://github.com/acme/skills.git")
        self.assertEqual(_remote_url("https://git.example.com/acme/skills"), "https://git.example.com/acme/skills")
        self.assertEqual(_remote_url("/srv/repos/skills"), "/srv/repos/skills")

    def test_sparse_patterns_are_anchored(self) -> None:
        self.assertEqual(_sparse_patterns(["skills/a", "/b/"]), "/skills/a/\n/b/\n")


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestGitSparseFetcher(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.upstream = Path(self._td.name) / "upstream"
        self.upstream.mkdir()
        files = {
            "skills/foo/SKILL.md": "---\nname: foo\n---\n",
            "skills/foo/scripts/run.sh": "echo foo\n",
            "skills/bar/SKILL.md": "---\nname: bar\n---\n",
            "other/big.txt": "x" * 1000,
            "README.md": "# upstream\n",
        }
        for rel, content in files.items():
            p = self.upstream / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")
        _git("init", "-q", cwd=self.upstream)
        _git("add", "-A", cwd=self.upstream)
        _git("commit", "-q", "-m", "initial", cwd=self.upstream)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_materializes_only_requested_paths(self) -> None:
        fetcher = GitSparseFetcher()
        with fetcher.checkout(self.upstream.as_uri(), ["skills/foo"]) as root:
            workspace = root
            self.assertEqual((root / "skills" / "foo" / "SKILL.md").read_text(encoding="utf-8"), "---\nname: foo\n---\n")
            self.assertTrue((root / "skills" / "foo" / "scripts" / "run.sh").is_file())
            self.assertFalse((root / "skills" / "bar").exists())
            self.assertFalse((root / "other").exists())
            self.assertFalse((root / "README.md").exists())
            shallow = subprocess.run(
                ["git", "-C", str(root), "rev-list", "--count", "HEAD"], capture_output=True, text=True, check=True
            )
            self.assertEqual(shallow.stdout.strip(), "1")
        self.assertFalse(workspace.exists())

    def test_union_of_paths(self) -> None:
        with GitSparseFetcher().checkout(self.upstream.as_uri(), ["skills/foo", "skills/bar"]) as root:
            self.assertTrue((root / "skills" / "foo" / "SKILL.md").is_file())
            self.assertTrue((root / "skills" / "bar" / "SKILL.md").is_file())

    def test_unreachable_repository(self) -> None:
        fetcher = _RecordingGitFetcher()
        missing = (Path(self._td.name) / "missing").as_uri()
        with self.assertRaises(FetchFailureError) as ctx:
            with fetcher.checkout(missing, ["skills/foo"]):
                self.fail("checkout should not yield")
        self.assertEqual(ctx.exception.repository, missing)
        self.assertTrue(fetcher.roots)
        self.assertFalse(fetcher.roots[0].exists())

    def test_workspace_removed_when_caller_fails(self) -> None:
        with self.assertRaises(RuntimeError):
            with GitSparseFetcher().checkout(self.upstream.as_uri(), ["skills/foo"]) as root:
                workspace = root
                raise RuntimeError("boom")
        self.assertFalse(workspace.exists())


class TestGitExecutable(unittest.TestCase):
    def test_missing_git_executable(self) -> None:
        fetcher = GitSparseFetcher(git_executable="skillmirror-no-such-git")
        with self.assertRaises(FetchFailureError) as ctx:
            with fetcher.checkout("https://github.com/acme/skills", ["skills/a"]):
                pass
        self.assertIn("not found", str(ctx.exception))


def _tarball(entries: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, content in entries.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class TestTarballFetcher(unittest.TestCase):
    def _fetcher(self, handler, **kwargs) -> TarballFetcher:
        return TarballFetcher(transport=httpx.MockTransport(handler), **kwargs)

    def test_extracts_requested_paths(self) -> None:
        archive = _tarball(
            {
                "acme-skills-abc123/skills/foo/SKILL.md": "---\nname: foo\n---\n",
                "acme-skills-abc123/skills/foo/scripts/run.sh": "echo\n",
                "acme-skills-abc123/skills/foobar/SKILL.md": "---\nname: foobar\n---\n",
                "acme-skills-abc123/README.md": "# readme\n",
            }
        )
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=archive)

        with self._fetcher(handler, token="tok_123").checkout("https://github.com/acme/skills", ["skills/foo"]) as root:
            workspace = root
            self.assertTrue((root / "skills" / "foo" / "SKILL.md").is_file())
            self.assertTrue((root / "skills" / "foo" / "scripts" / "run.sh").is_file())
            self.assertFalse((root / "skills" / "foobar").exists())
            self.assertFalse((root / "README.md").exists())

        self.assertFalse(workspace.exists())
        self.assertEqual(seen[0].url.path, "/repos/acme/skills/tarball")
        self.assertEqual(seen[0].headers["authorization"], "Bearer tok_123")

    def test_http_error(self) -> None:
        fetcher = self._fetcher(lambda request: httpx.Response(404, text="Not Found"))
        with self.assertRaises(FetchFailureError) as ctx:
            with fetcher.checkout("https://github.com/acme/skills", ["skills/foo"]):
                pass
        self.assertIn("HTTP 404", str(ctx.exception))

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(FetchFailureError):
            with self._fetcher(handler).checkout("https://github.com/acme/skills", ["skills/foo"]):
                pass

    def test_rejects_non_github_repository(self) -> None:
        fetcher = self._fetcher(lambda request: httpx.Response(200))
        with self.assertRaises(FetchFailureError):
            with fetcher.checkout("https://gitlab.com/acme/skills", ["skills/foo"]):
                pass

    def test_rejects_escaping_entries(self) -> None:
        archive = _tarball({"acme-skills-abc/skills/foo/../../../evil.txt": "x"})
        fetcher = self._fetcher(lambda request: httpx.Response(200, content=archive))
        with self.assertRaises(FetchFailureError):
            with fetcher.checkout("https://github.com/acme/skills", ["skills/foo"]):
                pass

    def test_local_write_error_becomes_fetch_failure(self) -> None:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tf:
            for name in ("acme-skills-abc/skills/foo", "acme-skills-abc/skills/foo/SKILL.md"):
                info = tarfile.TarInfo(name)
                info.size = 1
                tf.addfile(info, io.BytesIO(b"x"))
        fetcher = self._fetcher(lambda request: httpx.Response(200, content=buf.getvalue()))
        with self.assertRaises(FetchFailureError) as ctx:
            with fetcher.checkout("https://github.com/acme/skills", ["skills/foo"]):
                pass
        self.assertIn("Cannot materialize tarball", str(ctx.exception))

    def test_workspace_creation_error_becomes_fetch_failure(self) -> None:
        fetcher = self._fetcher(lambda request: httpx.Response(200))
        with patch("skillmirror.fetch.tempfile.TemporaryDirectory", side_effect=PermissionError("denied")):
            with self.assertRaises(FetchFailureError) as ctx:
                with fetcher.checkout("https://github.com/acme/skills", ["skills/foo"]):
                    pass
        self.assertIn("Cannot create workspace", str(ctx.exception))

    def test_invalid_archive(self) -> None:
        fetcher = self._fetcher(lambda request: httpx.Response(200, content=b"not a tarball"))
        with self.assertRaises(FetchFailureError):
            with fetcher.checkout("https://github.com/acme/skills", ["skills/foo"]):
                pass


class TestMakeFetcher(unittest.TestCase):
    def test_selects_implementation(self) -> None:
        self.assertIsInstance(make_fetcher(Config()), GitSparseFetcher)
        fetcher = make_fetcher(Config(fetcher="tarball", github_token="t", timeout_s=5.0))
        self.assertIsInstance(fetcher, TarballFetcher)
        self.assertEqual(fetcher.token, "t")

    def test_unknown_fetcher(self) -> None:
        with self.assertRaises(SkillMirrorError):
            make_fetcher(Config(fetcher="svn"))


if __name__ == "__main__":
    unittest.main()
