#!/usr/bin/env python3
"""prsync CLI - check out, inspect and sync pull request branches."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config_loader import ConfigError
from .errors import PrSyncError
from .models import PullRequestRef
from .observability import configure_logging


def _load_pr(path: str) -> PullRequestRef:
    """Read a GitHub-API-shaped pull request JSON file ('-' for stdin)."""
    try:
        if path == "-":
            data = json.load(sys.stdin)
        else:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        return PullRequestRef.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"❌ Invalid pull request file {path}: {e}", file=sys.stderr)
        sys.exit(2)


def _print_status(status) -> None:
    print(f"Local branches: {', '.join(status.local_branches) or '(none)'}")
    if status.update is not None:
        update = status.update
        print(f"Checked out: ahead {update.commits_ahead}, behind {update.commits_behind}")
        print(f"Pull: {update.pull_disabled_message or 'available'}")
        print(f"Push: {update.push_disabled_message or 'available'}")
    else:
        checkout = status.checkout
        print(checkout.caption)
        if checkout.disabled_message:
            print(checkout.disabled_message)


def _config_show(args) -> None:
    from .config_loader import get_config_paths, load_config

    project_path = Path(args.project_path) if args.project_path else None

    if args.sources:
        paths = get_config_paths(project_path)
        print("Config sources (in priority order):")
        print()
        for name, path in paths.items():
            if path and path.exists():
                print(f"  ✓ {name}: {path}")
            elif path:
                print(f"  ✗ {name}: {path} (not found)")
            else:
                print(f"  - {name}: (not applicable)")
        print()
        print("Environment variables override all file configs.")
        sys.exit(0)

    try:
        config = load_config(project_path)
    except ConfigError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.as_json:
        print(json.dumps(config.model_dump(), indent=2))
        sys.exit(0)

    import tomlkit

    doc = tomlkit.document()
    doc.add(tomlkit.comment(" prsync configuration (resolved)"))
    doc.add(tomlkit.nl())
    for section, values in config.model_dump().items():
        if isinstance(values, dict):
            table = tomlkit.table()
            for key, val in values.items():
                table.add(key, val)
            doc.add(section, table)
        else:
            doc.add(section, values)
    print(tomlkit.dumps(doc))
    sys.exit(0)


async def _run(args) -> int:
    from .service import PullRequestService

    service = PullRequestService.open(args.repo)
    configure_logging(service.session.config.logging)

    if args.cmd == "branches":
        pr = _load_pr(args.pr)
        fork = await service.is_pull_request_from_fork(pr)
        branches = await service.get_local_branches(pr)
        print(f"PR #{pr.number} ({'fork' if fork else 'same repository'})")
        for name in branches:
            print(name)
        return 0

    if args.cmd == "status":
        _print_status(await service.get_status(_load_pr(args.pr)))
        return 0

    if args.cmd == "checkout":
        pr = _load_pr(args.pr)
        if args.name:
            await service.checkout(pr, args.name)
            name = args.name
        else:
            name = await service.checkout_pull_request(pr)
        print(f"✅ Checked out {name}")
        return 0

    if args.cmd == "default-name":
        print(await service.get_default_local_branch_name(args.number, args.title))
        return 0

    if args.cmd == "divergence":
        state = await service.calculate_history_divergence()
        if args.as_json:
            print(json.dumps({"ahead": state.commits_ahead, "behind": state.commits_behind}))
        else:
            print(f"ahead {state.commits_ahead}, behind {state.commits_behind}")
        return 0

    if args.cmd == "pull":
        await service.pull()
        print("✅ Pulled")
        return 0

    if args.cmd == "push":
        await service.push()
        print("✅ Pushed")
        return 0

    if args.cmd == "extract":
        out = await service.extract_file(args.sha, args.path)
        if out is None:
            print(f"{args.path} does not exist at {args.sha}", file=sys.stderr)
            return 1
        print(str(out))
        return 0

    if args.cmd == "diff-files":
        left, right = await service.extract_diff_files(_load_pr(args.pr), args.path)
        print(f"base: {left if left is not None else '(absent)'}")
        print(f"head: {right if right is not None else '(absent)'}")
        return 0

    if args.cmd == "unmark":
        branch = await service.unmark_local_branch()
        if branch is None:
            print("HEAD is detached; nothing to unmark", file=sys.stderr)
            return 1
        print(f"Unmarked {branch}")
        return 0

    if args.cmd == "template":
        text = await service.get_pull_request_template()
        if text is None:
            print("No pull request template found", file=sys.stderr)
            return 1
        sys.stdout.write(text)
        return 0

    raise AssertionError(f"unhandled command {args.cmd}")


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(
        prog="prsync",
        description="Keep local git branches in step with pull requests",
    )
    ap.add_argument("--repo", default=".", help="Working copy to operate on (default: .)")

    sub = ap.add_subparsers(dest="cmd")

    p_branches = sub.add_parser("branches", help="List local branches for a pull request")
    p_branches.add_argument("--pr", required=True, help="Pull request JSON file ('-' for stdin)")

    p_status = sub.add_parser("status", help="Show checkout or pull/push state for a pull request")
    p_status.add_argument("--pr", required=True, help="Pull request JSON file ('-' for stdin)")

    p_checkout = sub.add_parser("checkout", help="Check out a pull request")
    p_checkout.add_argument("--pr", required=True, help="Pull request JSON file ('-' for stdin)")
    p_checkout.add_argument("--name", help="Local branch name (default: existing or pr/<n>-<title>)")

    p_name = sub.add_parser("default-name", help="Print the default local branch name")
    p_name.add_argument("number", type=int)
    p_name.add_argument("title")

    p_div = sub.add_parser("divergence", help="Commits ahead/behind upstream")
    p_div.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")

    sub.add_parser("pull", help="Pull the current branch from its upstream")
    sub.add_parser("push", help="Push the current branch to its upstream")

    p_extract = sub.add_parser("extract", help="Write a file's contents at a commit to the extract cache")
    p_extract.add_argument("sha")
    p_extract.add_argument("path")

    p_diff = sub.add_parser("diff-files", help="Extract base and head versions of a file")
    p_diff.add_argument("--pr", required=True, help="Pull request JSON file ('-' for stdin)")
    p_diff.add_argument("path")

    sub.add_parser("unmark", help="Remove the pull request marker of the current branch")
    sub.add_parser("template", help="Print the repository's pull request template")

    p_config = sub.add_parser("config", help="Configuration management")
    config_sub = p_config.add_subparsers(dest="config_cmd")
    p_config_show = config_sub.add_parser("show", help="Show resolved configuration")
    p_config_show.add_argument("--project-path", help="Project directory for config discovery")
    p_config_show.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    p_config_show.add_argument("--sources", action="store_true", help="Show config source files")

    args = ap.parse_args(argv)

    if not args.cmd:
        ap.print_help()
        sys.exit(0)

    if args.cmd == "config":
        if args.config_cmd != "show":
            print("Usage: prsync config show [--json] [--sources]")
            sys.exit(0)
        _config_show(args)

    try:
        code = asyncio.run(_run(args))
    except (PrSyncError, ConfigError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(code)


if __name__ == "__main__":
    main()
