# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
RunAlert CLI — watch streamers, inspect status, check config.

Usage:
    runalert watch                    Watch every configured streamer
    runalert watch --once             One discovery-to-notify pass, then exit
    runalert watch --dry-run          Log notifications instead of sending
    runalert watch --force            Notify every resolved split, ignore cutoffs
    runalert watch --no-quiet         Ignore quiet hours
    runalert watch --debug            Per-tick split traces
    runalert status NAME [NAME...]    Live/active flags and last milestone
    runalert profiles NAME [NAME...]  Twitch handle and avatar per streamer
    runalert milestones NAME          Milestone keys in the streamer's latest run
    runalert check-config             Merged rule sets + config warnings
    runalert check-config --init      Write a default config.json if missing
    runalert notify-test              Fire a test desktop notification
    runalert --data-dir PATH          Override data directory
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List


def _watch(args: argparse.Namespace) -> None:
    """Run the watcher in the foreground until Ctrl-C."""
    from daemon.config import setup_logging
    from daemon.watcher import WatchOptions, run_watcher

    setup_logging(debug=args.debug)
    options = WatchOptions(
        once=args.once,
        dry_run=args.dry_run,
        force_send=args.force,
        ignore_quiet=args.no_quiet,
    )
    try:
        asyncio.run(run_watcher(options))
    except KeyboardInterrupt:
        print("\nStopped.")


def _fmt_sec(ms) -> str:
    from daemon.notification_format import ms_to_mmss
    return ms_to_mmss(ms)


def _status(names: List[str], as_json: bool = False) -> None:
    """Print the status summary for each name."""
    from daemon.cache import TTLCache
    from daemon.notification_format import milestone_entered_label
    from daemon.status import collect_statuses
    from interface.paceman import PacemanClient

    async def _collect():
        async with PacemanClient() as client:
            return await collect_statuses(client, names, TTLCache())

    try:
        statuses = asyncio.run(_collect())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if as_json:
        print(json.dumps(
            {name: s.model_dump(by_alias=True) for name, s in statuses.items()}, indent=2,
        ))
        return

    for name, s in statuses.items():
        flag = "LIVE" if s.is_live else ("active" if s.is_active else "idle")
        print(f"{name}: {flag}")
        print(f"  Run:        {s.run_id or '—'}")
        if s.last_milestone:
            print(f"  Last split: {milestone_entered_label(s.last_milestone)} {_fmt_sec(s.last_milestone_ms)} ({s.last_milestone_source})")
        if s.recent_finish_ms is not None:
            print(f"  Finished:   {_fmt_sec(s.recent_finish_ms)} (previous run)")


def _profiles(names: List[str]) -> None:
    from daemon.cache import TTLCache
    from daemon.status import collect_profiles
    from interface.paceman import PacemanClient

    async def _collect():
        async with PacemanClient() as client:
            return await collect_profiles(client, names, TTLCache())

    try:
        profiles = asyncio.run(_collect())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    print(json.dumps(
        {name: p.model_dump(by_alias=True) for name, p in profiles.items()}, indent=2,
    ))


def _milestones(name: str) -> None:
    """List the milestone keys present in the streamer's latest run."""
    from daemon.schemas import UpstreamError
    from daemon.splits import available_milestones
    from interface.paceman import PacemanClient

    async def _fetch():
        async with PacemanClient() as client:
            run_id = await client.get_recent_run_id(name)
            if not run_id:
                return None, []
            return run_id, available_milestones(await client.get_world(run_id))

    try:
        run_id, keys = asyncio.run(_fetch())
    except UpstreamError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if run_id is None:
        print(f"No runs found for {name}")
        return
    print(f"Run {run_id}: {', '.join(keys) or '(no splits yet)'}")


def _check_config(init: bool = False) -> None:
    """Show the merged view of config.json and any warnings."""
    from daemon.config import ConfigSource
    from daemon.milestones import build_rule_sets, describe_rule, validate_config

    source = ConfigSource()
    if init:
        source.write_default()

    config = source.load()
    primary, fallback = config.clocks()
    print(f"Config:       {source.path}{'' if source.path.exists() else ' (missing, using defaults)'}")
    print(f"Clock:        {primary} (fallback {fallback})")
    print(f"Quiet hours:  {', '.join(config.quiet_spans) or 'none'}")
    print(f"Streamers:    {len(config.streamers)}")
    for name, rules in build_rule_sets(config).items():
        print(f"  {name} → {', '.join(describe_rule(m, r) for m, r in rules.items())}")

    warnings = validate_config(config)
    if warnings:
        print(f"\n{len(warnings)} warning(s):")
        for w in warnings:
            print(f"  - {w}")
        sys.exit(1)
    print("\nConfig OK.")


def _notify_test(title: str, message: str) -> None:
    from interface.notify import send

    ok = asyncio.run(send(title, message))
    print("Notification sent." if ok else "Notification failed (see log).")
    if not ok:
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="runalert",
        description="RunAlert — desktop alerts for fast speedrun paces",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Override data directory (default: $RUNALERT_DATA_DIR or ~/.runalert/)",
    )
    parser.add_argument(
        "--version", action="store_true",
        help="Show version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    # watch
    watch_parser = sub.add_parser("watch", help="Watch configured streamers")
    watch_parser.add_argument("--once", action="store_true",
                              help="Single discovery-to-notify pass, then exit")
    watch_parser.add_argument("--dry-run", action="store_true", dest="dry_run",
                              help="Log notifications instead of sending them")
    watch_parser.add_argument("--force", action="store_true",
                              help="Notify every resolved split regardless of cutoff")
    watch_parser.add_argument("--no-quiet", action="store_true", dest="no_quiet",
                              help="Ignore quiet hours")
    watch_parser.add_argument("--debug", action="store_true",
                              help="Verbose per-tick logging")

    # status
    status_parser = sub.add_parser("status", help="Show streamer status")
    status_parser.add_argument("names", nargs="+", help="Streamer names")
    status_parser.add_argument("--json", action="store_true", dest="as_json",
                               help="Print raw JSON")

    # profiles
    profiles_parser = sub.add_parser("profiles", help="Show streamer profiles")
    profiles_parser.add_argument("names", nargs="+", help="Streamer names")

    # milestones
    ms_parser = sub.add_parser("milestones", help="Milestone keys in a streamer's latest run")
    ms_parser.add_argument("name", help="Streamer name")

    # check-config
    check_parser = sub.add_parser("check-config", help="Validate config.json")
    check_parser.add_argument("--init", action="store_true",
                              help="Write a default config.json if missing")

    # notify-test
    nt_parser = sub.add_parser("notify-test", help="Send a test notification")
    nt_parser.add_argument("--title", default="runAlert test")
    nt_parser.add_argument("--message", default="Desktop notifications are working.")

    args = parser.parse_args()

    # --version
    if getattr(args, "version", False):
        try:
            from importlib.metadata import version
            print(f"runalert {version('runalert')}")
        except Exception:
            print("runalert (version unknown — not installed via pip)")
        sys.exit(0)

    # Resolve data dir: flag → env → default (see core.paths)
    if args.data_dir:
        from core.paths import configure
        configure(args.data_dir.expanduser().resolve())

    if args.command == "watch":
        _watch(args)
    elif args.command == "status":
        _status(args.names, as_json=args.as_json)
    elif args.command == "profiles":
        _profiles(args.names)
    elif args.command == "milestones":
        _milestones(args.name)
    elif args.command == "check-config":
        _check_config(init=args.init)
    elif args.command == "notify-test":
        _notify_test(args.title, args.message)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
