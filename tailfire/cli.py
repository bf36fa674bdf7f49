"""
Tailfire CLI — entry point for operations.

Usage:
    tailfire version                    # Show version
    tailfire migrate [status|apply]     # Database migrations (--dry-run for apply)
    tailfire serve                      # Start the admin API server
    tailfire credentials status         # Run the startup credential sweep
    tailfire credentials init-key       # Create the encryption master key file
"""

from __future__ import annotations

import argparse
import logging
import sys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tailfire",
        description="Tailfire — encrypted provider credentials and object storage.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Run database migrations")
    migrate_parser.add_argument(
        "action", nargs="?", choices=["status", "apply"], default="apply", help="Default: apply"
    )
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="List pending migrations without executing"
    )

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the admin API server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: TAILFIRE_API_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: TAILFIRE_API_PORT)")

    # credentials
    cred_parser = subparsers.add_parser("credentials", help="Provider credential tools")
    cred_sub = cred_parser.add_subparsers(dest="credentials_command")
    cred_sub.add_parser("status", help="Show which providers resolve from the environment")
    cred_sub.add_parser("init-key", help="Create the encryption master key in the workspace")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version or args.command == "version":
        from tailfire import __version__

        print(f"tailfire {__version__}")
        return 0

    if args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "serve":
        return _cmd_serve(args)
    elif args.command == "credentials":
        return _cmd_credentials(args)

    parser.print_help()
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    from tailfire.db import migrate

    try:
        if args.action == "status":
            rows = migrate.status()
            if not rows:
                print("No migrations found.")
            for row in rows:
                applied_at = row["applied_at"].isoformat() if row["applied_at"] else "-"
                print(f"  {row['version']:<6} {row['status']:<8} {applied_at:<32} {row['filename']}")
            return 1 if any(r["status"] == "DRIFT" for r in rows) else 0

        applied = migrate.apply(dry_run=args.dry_run)
    except ConnectionError as e:
        print(f"Error: {e}")
        return 1

    if not applied:
        print("Database is up to date.")
    elif args.dry_run:
        print(f"Would apply {len(applied)} migration(s): {', '.join(applied)}")
    else:
        print(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from tailfire.api.app import create_app
    from tailfire.config import get_config

    cfg = get_config()
    host = args.host or cfg.api_host
    port = args.port or cfg.api_port
    print(f"Starting Tailfire API on {host}:{port}...")
    uvicorn.run(create_app(), host=host, port=port)
    return 0


def _cmd_credentials(args: argparse.Namespace) -> int:
    if args.credentials_command == "status":
        from tailfire.credentials.resolver import CredentialResolver

        summary = CredentialResolver().validate_startup()
        print(f"{len(summary.available)}/{summary.total} providers available from the environment")
        for provider in summary.available:
            print(f"  ✓ {provider}")
        for provider, missing in summary.missing.items():
            print(f"  ✗ {provider}: missing {', '.join(missing)}")
        return 0

    if args.credentials_command == "init-key":
        from tailfire.config import get_config
        from tailfire.crypto import init_master_key

        path = init_master_key(get_config().workspace)
        print(f"Master key: {path}")
        return 0

    print("Usage: tailfire credentials {status,init-key}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
