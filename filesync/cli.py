#!/usr/bin/env python3
"""
filesync  —  two-way sync of local folders with remote storage
================================================================

Subcommands:
  init      Create a .filesync config file in the current directory.
  sync      Reconcile every configured pair using the nearest .filesync.

Run 'filesync <subcommand> --help' for more details.
"""
import sys
import argparse
from pathlib import Path


def _yq(value: str) -> str:
    """Wrap a string in YAML single quotes, escaping embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


# ── init ─────────────────────────────────────────────────────────────────────

def cmd_init(args):
    """Create a .filesync profile file in the current directory."""
    from filesync import config as _cfg

    target = Path.cwd() / _cfg.CONFIG_FILE_NAME

    if target.exists() and not args.force:
        print(f"error: {_cfg.CONFIG_FILE_NAME} already exists in {Path.cwd()}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        sys.exit(1)

    g_defaults = _cfg.load_global_config().get("defaults", {}) or {}

    provider = (args.provider or g_defaults.get("provider", "sftp")).lower()
    if provider not in _cfg.SUPPORTED_PROVIDERS:
        print(f"error: provider must be one of: {', '.join(_cfg.SUPPORTED_PROVIDERS)}",
              file=sys.stderr)
        sys.exit(1)

    local_root = (args.local or str(Path.cwd())).replace("\\", "/")
    remote_root = args.remote
    if not remote_root:
        default_rr = "/" + Path.cwd().name
        if sys.stdin.isatty():
            entered = input(f"Remote folder [{default_rr}]: ").strip()
            remote_root = entered or default_rr
        else:
            remote_root = default_rr

    profile_name = args.profile or "default"
    lines = [
        "# .filesync — filesync project configuration",
        "#",
        "# profiles: list of sync profiles for this project.",
        "# Each profile names a provider, its credentials and the folder pairs.",
        "# timestamp_strategy: embedded (remote names carry the time) or sidecar",
        "# (a sync_metadata file per remote folder). Never change it afterwards.",
        "profiles:",
        f"  - name: {profile_name}",
        f"    provider: {provider}",
    ]

    if provider == "sftp":
        server = args.server or g_defaults.get("server", "example.com")
        user = args.user or g_defaults.get("user", "root")
        port = args.port or int(g_defaults.get("port", 22))
        lines += [
            f"    server: {_yq(str(server))}",
            f"    port: {port}",
            f"    user: {_yq(str(user))}",
        ]
    else:
        lines += [
            "    dropbox_app_key: ''",
            "    dropbox_app_secret: ''",
            "    dropbox_refresh_token: ''",
        ]

    lines += [
        f"    timestamp_strategy: {_cfg.TIMESTAMP_STRATEGY}",
        f"    workers: {_cfg.WORKERS}",
        f"    remote_timeout: {_cfg.REMOTE_TIMEOUT}",
        "    pairs:",
        f"      - local: {_yq(local_root)}",
        f"        remote: {_yq(remote_root)}",
    ]
    content = "\n".join(lines) + "\n"

    if args.dry_run:
        print(f"[dry-run] Would write {target}:")
        print(content)
        return

    target.write_text(content, encoding="utf-8")
    print(f"Created {target}")
    if args.verbose:
        print(content)


# ── sync ─────────────────────────────────────────────────────────────────────

def cmd_sync(args):
    """Run sync using the nearest .filesync config file."""
    import filesync.config as _cfg
    from filesync.core.sync_engine import run_sync
    from filesync.errors import ConfigError

    config_path = _cfg.find_config()
    if config_path is None:
        print(f"error: no {_cfg.CONFIG_FILE_NAME} file found in this directory or any parent.",
              file=sys.stderr)
        print("Run 'filesync init' to create one.", file=sys.stderr)
        sys.exit(1)

    if args.verbose:
        print(f"[config] Using {config_path}")

    global_path = _cfg.get_global_config_dir() / "config.yaml"
    try:
        _cfg.apply_profile(_cfg.get_profile(_cfg.load_global_config(), args.profile))
    except (ConfigError, ValueError, TypeError) as exc:
        print(f"error: {global_path}: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        data = _cfg.load_config_file(config_path)
        _cfg.apply_profile(_cfg.get_profile(data, args.profile or "default"),
                           base_dir=config_path.parent)
    except (ConfigError, ValueError, TypeError) as exc:
        print(f"error: {config_path}: {exc}", file=sys.stderr)
        sys.exit(1)

    run_sync(
        dry_run=args.dry_run,
        verbose=args.verbose,
        workers=args.workers,
    )


# ── main ──────────────────────────────────────────────────────────────────────

def main():
    """CLI entry point for filesync"""
    parser = argparse.ArgumentParser(
        prog="filesync",
        description="Two-way, timestamp-driven sync of local folders with remote storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # ── init ──────────────────────────────────────────────────────────────────
    init_p = subparsers.add_parser(
        "init",
        help="Create a .filesync config file in the current directory",
        description="Create a .filesync YAML config file for this project.",
    )
    init_p.add_argument("--provider", metavar="NAME",
                        help="Storage provider: sftp or dropbox (default: sftp)")
    init_p.add_argument("--local", metavar="PATH",
                        help="Local folder of the first pair (default: current directory)")
    init_p.add_argument("--remote", metavar="PATH",
                        help="Remote folder of the first pair")
    init_p.add_argument("--server", metavar="HOST",
                        help="SFTP server hostname or IP")
    init_p.add_argument("--user", metavar="NAME",
                        help="SSH username (default: root)")
    init_p.add_argument("--port", type=int, metavar="N",
                        help="SSH port (default: 22)")
    init_p.add_argument("--profile", metavar="NAME", default="default",
                        help="Profile name to create (default: default)")
    init_p.add_argument("--force", action="store_true",
                        help="Overwrite existing .filesync")
    init_p.add_argument("-n", "--dry-run", action="store_true",
                        help="Preview without writing files")
    init_p.add_argument("-v", "--verbose", action="store_true",
                        help="Show extra output")

    # ── sync ──────────────────────────────────────────────────────────────────
    sync_p = subparsers.add_parser(
        "sync",
        help="Reconcile all pairs using the nearest .filesync config",
        description="Sync local and remote folders using settings from .filesync.",
    )
    sync_p.add_argument("--profile", metavar="NAME", default="default",
                        help="Profile to use (default: default)")
    sync_p.add_argument("-n", "--dry-run", action="store_true",
                        help="Show the plan and totals without transferring")
    sync_p.add_argument("-v", "--verbose", action="store_true",
                        help="Show every file, not just actions")
    sync_p.add_argument("--workers", type=int, default=None, metavar="N",
                        help="Pairs applied in parallel (default: from config)")

    args = parser.parse_args()

    if args.command == "init":
        cmd_init(args)
    elif args.command == "sync":
        if args.workers is not None and args.workers < 1:
            sync_p.error("--workers must be at least 1")
        cmd_sync(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
