#!/usr/bin/env python3
"""forkkeeper CLI - git fork maintenance commands."""
from __future__ import annotations

import argparse
import json
import sys
from typing import Callable, Dict

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 10):
    print(f"forkkeeper requires Python 3.10+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)

BOLD = "\033[1m"
GREEN = "\033[1;32m"
YELLOW = "\033[1;33m"
RED = "\033[1;31m"
RESET = "\033[0m"

ALIASES = {
    "checkout-branch": "ensure-branch",
    "update-master-from-upstream": "sync-master",
}


def _color(text: str, code: str) -> str:
    if not sys.stdout.isatty():
        return text
    return f"{code}{text}{RESET}"


def _banner(name: str) -> None:
    print(f"==================== {_color(name.upper(), BOLD)} ====================")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="forkkeeper",
        description="Keep a git fork in step with its upstream",
    )
    ap.add_argument("--fork-dir", help="Fork working copy (default: ./kubespray-fork or $FORKKEEPER_FORK_DIR)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    sub = ap.add_subparsers(dest="cmd")

    sub.add_parser("clone", help="Clone the fork unless its directory exists")
    sub.add_parser("clean", help="Remove the fork directory")
    sub.add_parser("list-remotes", help="List git remotes of the fork")
    sub.add_parser("add-upstream", help="Add the upstream remote if missing")
    sub.add_parser("list-origin-branches", help="List origin branches (as of last fetch)")
    sub.add_parser("list-upstream-branches", help="List upstream branches (as of last fetch)")
    sub.add_parser("list-local-branches", help="List local branches")
    sub.add_parser("fetch-origin", help="Fetch all origin branches")
    sub.add_parser("fetch-upstream", help="Fetch all upstream branches")

    p_ensure = sub.add_parser(
        "ensure-branch",
        aliases=["checkout-branch"],
        help="Check out a branch, pulling from origin if already on it",
    )
    p_ensure.add_argument("branch", nargs="?", help="Branch name (default: master or $BRANCH)")

    p_sync = sub.add_parser(
        "sync-master",
        aliases=["update-master-from-upstream"],
        help="Fast-forward or rebase master onto upstream/master and push to origin",
    )
    p_sync.add_argument(
        "--no-rebase",
        action="store_true",
        help="Fail instead of rebasing when master has diverged from upstream",
    )

    p_all = sub.add_parser("all", help="Clone, add upstream, fetch, list, and check out the default branch")
    p_all.add_argument("branch", nargs="?", help="Branch to check out at the end")

    p_config = sub.add_parser("config", help="Configuration management")
    config_sub = p_config.add_subparsers(dest="config_cmd")
    p_config_show = config_sub.add_parser("show", help="Show resolved configuration")
    p_config_show.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    p_config_show.add_argument("--sources", action="store_true", help="Show config source files")

    return ap


def _cmd_clone(ws, args) -> None:
    if ws.clone():
        print(f"Repository cloned successfully to {ws.path}/")
    else:
        print(f"{ws.path} directory already exists, skipping clone.")


def _cmd_clean(ws, args) -> None:
    if ws.clean():
        print(f"{ws.path} directory removed.")
    else:
        print(f"{ws.path} directory does not exist.")


def _cmd_list_remotes(ws, args) -> None:
    print(f"Git remotes for {ws.path.name}:")
    for name, url, kind in ws.list_remotes():
        print(f"{name}\t{url} ({kind})")


def _cmd_add_upstream(ws, args) -> None:
    if ws.add_upstream():
        print(f"Upstream remote added successfully ({ws.config.fork.upstream_url}).")
    else:
        print("Upstream remote already exists.")


def _list_branches(scope: str) -> Callable:
    def handler(ws, args) -> None:
        branches = ws.list_branches(scope)
        print(_color(f"{scope.capitalize()} branches for {ws.path.name}:", GREEN))
        for name in branches:
            print(f"  {scope}/{name}" if scope != "local" else f"  {name}")
    return handler


def _fetch(remote: str) -> Callable:
    def handler(ws, args) -> None:
        print(_color(f"Fetching {remote} branches...", GREEN))
        ws.fetch(remote)
        print(f"{remote.capitalize()} branches fetched successfully.")
    return handler


def _cmd_ensure_branch(ws, args) -> None:
    from .reconciler import EnsureOutcome

    reconciler = ws.reconciler()
    target = getattr(args, "branch", None) or reconciler.default_branch
    print(f"Target branch: {target}")
    result = reconciler.ensure_branch(target)
    print(f"Previous branch: {result.previous_branch or '(detached)'}")
    messages = {
        EnsureOutcome.PULLED: _color(f"Already on {target}; pulled latest changes from origin/{target}.", YELLOW),
        EnsureOutcome.NOT_ON_ORIGIN: f"Already on {target}; branch {target} does not exist on origin.",
        EnsureOutcome.SWITCHED: _color(f"Switched to existing local branch {target}.", GREEN),
        EnsureOutcome.CREATED_TRACKING: _color(f"Created branch {target} tracking origin/{target}.", GREEN),
    }
    print(messages[result.outcome])


def _cmd_sync_master(ws, args) -> None:
    from .config_schema import DivergencePolicy
    from .reconciler import SyncOutcome

    reconciler = ws.reconciler()
    if getattr(args, "no_rebase", False):
        reconciler.on_diverged = DivergencePolicy.FAIL
    result = reconciler.sync_master_from_upstream()
    if result.upstream_added:
        print("Upstream remote added.")
    print(f"Local {result.branch} resolved via: {result.source.value}")
    if result.outcome is SyncOutcome.FAST_FORWARD:
        print(_color(f"Fast-forwarded {result.branch} to upstream/{result.branch}.", GREEN))
    else:
        print(_color(f"Rebased {result.branch} onto upstream/{result.branch}.", YELLOW))
    print(_color(f"Pushed {result.branch} to origin.", GREEN))


HANDLERS: Dict[str, Callable] = {
    "clone": _cmd_clone,
    "clean": _cmd_clean,
    "list-remotes": _cmd_list_remotes,
    "add-upstream": _cmd_add_upstream,
    "list-origin-branches": _list_branches("origin"),
    "list-upstream-branches": _list_branches("upstream"),
    "list-local-branches": _list_branches("local"),
    "fetch-origin": _fetch("origin"),
    "fetch-upstream": _fetch("upstream"),
    "ensure-branch": _cmd_ensure_branch,
    "checkout-branch": _cmd_ensure_branch,
    "sync-master": _cmd_sync_master,
}


def _cmd_config_show(cfg, args) -> None:
    from .config_loader import get_config_paths

    if args.sources:
        for key, path in get_config_paths().items():
            status = "found" if path and path.exists() else "not found"
            print(f"{key}: {path or '-'} ({status})")
        return
    data = cfg.model_dump(mode="json")
    if args.as_json:
        print(json.dumps(data, indent=2, sort_keys=True))
        return
    for section, values in data.items():
        if isinstance(values, dict):
            print(f"[{section}]")
            for key, value in values.items():
                print(f"{key} = {json.dumps(value)}")
            print()
        else:
            print(f"{section} = {json.dumps(values)}")


def main(argv: list[str] | None = None) -> None:
    ap = build_parser()
    args = ap.parse_args(argv)

    if not args.cmd:
        ap.print_help()
        sys.exit(0)

    from .config_loader import load_config
    from .errors import ConfigError, ForkkeeperError, RebaseConflictError
    from .observability import configure_logging, log_error
    from .workspace import DEFAULT_SEQUENCE, ForkWorkspace

    try:
        cfg = load_config()
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.fork_dir:
        cfg.fork.path = args.fork_dir
    configure_logging(
        level="DEBUG" if args.verbose else cfg.logging.level,
        log_dir=cfg.logging.dir or None,
        disable_file=cfg.logging.disable_file,
    )

    if args.cmd == "config":
        if args.config_cmd != "show":
            ap.parse_args(["config", "--help"])
        _cmd_config_show(cfg, args)
        sys.exit(0)

    ws = ForkWorkspace(cfg)
    cmd = ALIASES.get(args.cmd, args.cmd)
    steps = list(DEFAULT_SEQUENCE) if cmd == "all" else [cmd]

    for step in steps:
        _banner(step)
        try:
            HANDLERS[step](ws, args)
        except ForkkeeperError as exc:
            log_error(f"{step} failed: {exc}", error=type(exc).__name__)
            print(_color(f"ERROR: {exc}", RED), file=sys.stderr)
            if isinstance(exc, RebaseConflictError) and ws.backend().is_rebase_in_progress():
                print(f"The rebase is still in progress in {ws.path}.", file=sys.stderr)
            sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
