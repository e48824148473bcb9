from __future__ import annotations

import argparse
import json
import os
import sys
import textwrap
from dataclasses import replace
from pathlib import Path
from typing import Any

from ._version import __version__
from .config import FETCHER_CHOICES, Config, config_path, load_config, redact_token, save_config
from .errors import SkillMirrorError
from .fetch import make_fetcher
from .manifest import build_manifest
from .registry import scan_registry
from .remote import resolve_address
from .sync import SkillSynchronizer


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    skills_dir = getattr(args, "skills_dir", None) or os.getenv("SKILLMIRROR_SKILLS_DIR") or base.skills_dir
    fetcher = getattr(args, "fetcher", None) or os.getenv("SKILLMIRROR_FETCHER") or base.fetcher
    github_token = os.getenv("GITHUB_TOKEN") or base.github_token
    timeout_s = getattr(args, "timeout_s", None) or os.getenv("SKILLMIRROR_TIMEOUT_S") or base.timeout_s
    try:
        timeout_s_f = float(timeout_s)
    except (TypeError, ValueError):
        timeout_s_f = base.timeout_s

    return replace(
        base,
        skills_dir=skills_dir,
        fetcher=fetcher,
        github_token=github_token,
        timeout_s=timeout_s_f,
    )


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _progress(line: str) -> None:
    print(line, file=sys.stderr)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skillmirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Keep mirrored skills in sync with their upstream repositories.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              SKILLMIRROR_CONFIG_PATH, SKILLMIRROR_SKILLS_DIR, SKILLMIRROR_FETCHER,
              SKILLMIRROR_TIMEOUT_S, GITHUB_TOKEN
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser) -> None:
        # Accepted before and after the subcommand, e.g.:
        #   skillmirror --skills-dir ./skills sync
        #   skillmirror sync --skills-dir ./skills
        parser.add_argument("--skills-dir", default=argparse.SUPPRESS, help="Skills registry directory")
        parser.add_argument("--fetcher", choices=FETCHER_CHOICES, default=argparse.SUPPRESS, help="How upstream content is fetched")
        parser.add_argument("--timeout-s", type=float, default=argparse.SUPPRESS, help="Fetch timeout in seconds")

    _add_runtime_overrides(p)
    p.add_argument("--version", action="version", version=f"skillmirror {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # config
    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config (token redacted)")

    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--skills-dir", dest="set_skills_dir")
    cfg_set.add_argument("--manifest-filename")
    cfg_set.add_argument("--manifest-line-width", type=int)
    cfg_set.add_argument("--fetcher", dest="set_fetcher", choices=FETCHER_CHOICES)
    cfg_set.add_argument("--git-executable")
    cfg_set.add_argument("--timeout-s", dest="set_timeout_s", type=float)
    cfg_set.add_argument("--github-token", help="Token for the GitHub tarball fetcher")

    # list
    lst = sub.add_parser("list", help="List local skills and their upstream source")
    _add_runtime_overrides(lst)
    lst.add_argument("--json", action="store_true", help="Output JSON")

    # resolve
    res = sub.add_parser("resolve", help="Show the repository/path a GitHub tree or blob URL points at")
    res.add_argument("url", help="https://github.com/<owner>/<repo>/tree/<branch>/<path>")
    res.add_argument("--json", action="store_true", help="Output JSON")

    # add
    add = sub.add_parser("add", help="Add a mirrored skill from a GitHub tree/blob URL")
    _add_runtime_overrides(add)
    add.add_argument("url", help="GitHub URL, or a repository URL when --path is given")
    add.add_argument("--path", help="Path inside the repository (when URL is a plain repository address)")
    add.add_argument("--json", action="store_true", help="Output JSON")

    # sync
    sync = sub.add_parser(
        "sync",
        help="Update mirrored skills from their upstream sources",
        description="With no names, updates every skill that has metadata.source.",
    )
    _add_runtime_overrides(sync)
    sync.add_argument("names", nargs="*", help="Skill names to update (default: all mirrored skills)")
    sync.add_argument("--json", action="store_true", help="Output JSON")

    # manifest
    man = sub.add_parser("manifest", help="Regenerate the aggregate skills catalog")
    _add_runtime_overrides(man)
    man.add_argument("--json", action="store_true", help="Output JSON")

    return p


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = load_config()
        d = cfg.__dict__.copy()
        d["github_token"] = redact_token(cfg.github_token)
        _print_json(d)
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        updates: dict[str, Any] = {}
        if args.set_skills_dir is not None:
            updates["skills_dir"] = args.set_skills_dir
        if args.manifest_filename is not None:
            updates["manifest_filename"] = args.manifest_filename
        if args.manifest_line_width is not None:
            updates["manifest_line_width"] = args.manifest_line_width
        if args.set_fetcher is not None:
            updates["fetcher"] = args.set_fetcher
        if args.git_executable is not None:
            updates["git_executable"] = args.git_executable
        if args.set_timeout_s is not None:
            updates["timeout_s"] = args.set_timeout_s
        if args.github_token is not None:
            updates["github_token"] = args.github_token or None
        path = save_config(replace(cfg, **updates))
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


def cmd_list(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    skills_dir = Path(cfg.skills_dir).expanduser()
    scan = scan_registry(skills_dir)

    if args.json:
        _print_json(
            {
                "skills": [
                    {
                        "name": r.name,
                        "category": r.category,
                        "source": r.source.as_metadata() if r.source else None,
                    }
                    for r in scan.records
                ],
                "warnings": list(scan.warnings),
            }
        )
        return 0

    rows = [["NAME", "CATEGORY", "SOURCE"]]
    for r in scan.records:
        source = f"{r.source.repository} {r.source.path}" if r.source else "-"
        rows.append([r.name, str(r.category or "-"), source])
    _print_table(rows)
    for w in scan.warnings:
        print(f"warning: {w}", file=sys.stderr)
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    addr = resolve_address(args.url)
    if args.json:
        _print_json({"repository": addr.repository, "path": addr.path, "name": addr.skill_name})
        return 0
    print(f"repository: {addr.repository}")
    print(f"path: {addr.path}")
    print(f"name: {addr.skill_name}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    skills_dir = Path(cfg.skills_dir).expanduser()
    syncer = SkillSynchronizer(skills_dir=skills_dir, fetcher=make_fetcher(cfg), report=_progress)
    result = syncer.add(args.url, args.path)

    if args.json:
        _print_json(
            {
                "name": result.name,
                "directory": str(result.directory),
                "repository": result.repository,
                "path": result.path,
                "category": result.category,
            }
        )
        return 0

    print(f"added: {result.name}")
    print(f"location: {result.directory}")
    print(f"source: {result.repository} {result.path}")
    print(f"category: {result.category or '-'}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    skills_dir = Path(cfg.skills_dir).expanduser()
    syncer = SkillSynchronizer(
        skills_dir=skills_dir,
        fetcher=make_fetcher(cfg),
        report=None if args.json else _progress,
    )
    if not args.json:
        _progress(f"Updating skills: {', '.join(args.names)}" if args.names else "Updating all skills from upstream sources...")
    result = syncer.sync(args.names or None)
    rc = 0 if result.ok else 1

    if args.json:
        _print_json(
            {
                "ok": result.ok,
                "succeeded": list(result.succeeded),
                "failed": result.failed,
                "skipped": result.skipped,
                "warnings": list(result.warnings),
                "repositories": list(result.repositories),
            }
        )
        return rc

    for w in result.warnings:
        print(f"warning: {w}", file=sys.stderr)
    if not result.repositories:
        print("No skills with metadata.source found to update.")
        return rc

    _print_table(
        [
            ["RESULT", "COUNT"],
            ["updated", str(len(result.succeeded))],
            ["failed", str(len(result.failed))],
            ["skipped", str(len(result.skipped))],
        ]
    )
    for name in result.succeeded:
        print(f"updated: {name}")
    for name, reason in result.failed.items():
        print(f"failed: {name}: {reason}")
    return rc


def cmd_manifest(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    skills_dir = Path(cfg.skills_dir).expanduser()
    result = build_manifest(skills_dir, filename=cfg.manifest_filename, line_width=cfg.manifest_line_width)

    if args.json:
        _print_json(
            {
                "path": str(result.path),
                "count": len(result.entries),
                "ids": [e.id for e in result.entries],
                "warnings": list(result.warnings),
            }
        )
        return 0

    for w in result.warnings:
        print(f"warning: {w}", file=sys.stderr)
    print(f"Generated {result.path} with {len(result.entries)} skills")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd == "list":
            return cmd_list(args)
        if args.cmd == "resolve":
            return cmd_resolve(args)
        if args.cmd == "add":
            return cmd_add(args)
        if args.cmd == "sync":
            return cmd_sync(args)
        if args.cmd == "manifest":
            return cmd_manifest(args)
        raise AssertionError("unreachable")
    except SkillMirrorError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
