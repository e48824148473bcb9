from __future__ import annotations

import json
import os
import stat
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_path

DEFAULT_SKILLS_DIR = "skills"
DEFAULT_MANIFEST_FILENAME = "marketplace.yaml"
DEFAULT_MANIFEST_LINE_WIDTH = 120
DEFAULT_TIMEOUT_S = 60.0
FETCHER_CHOICES = ("git", "tarball")


@dataclass(frozen=True)
class Config:
    skills_dir: str = DEFAULT_SKILLS_DIR
    manifest_filename: str = DEFAULT_MANIFEST_FILENAME
    manifest_line_width: int = DEFAULT_MANIFEST_LINE_WIDTH
    fetcher: str = "git"  # "git" (sparse checkout) or "tarball" (GitHub API)
    git_executable: str = "git"
    timeout_s: float = DEFAULT_TIMEOUT_S
    github_token: str | None = None  # only sent by the tarball fetcher


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("SKILLMIRROR_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path("skillmirror") / "config.json"


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return Config()

    allowed = {f.name for f in Config.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered: dict[str, Any] = {k: v for k, v in raw.items() if k in allowed}
    return Config(**filtered)  # type: ignore[arg-type]


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)

    # Best-effort permissions hardening (the GitHub token lives here).
    try:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        pass

    return path


def redact_token(token: str | None) -> str | None:
    if not token:
        return token
    if len(token) <= 10:
        return token[:2] + "..." + token[-2:]
    return token[:6] + "..." + token[-4:]
