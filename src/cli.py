#!/usr/bin/env python3
"""
SongSplit Command Line Interface.

Provides commands for running and operating the royalty ledger:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system information
    - distribute: Record a payment against the persisted ledger
    - balance: Show a contributor's balance
    - backup: Copy the JSON ledger file aside

Usage:
    songsplit serve [--host HOST] [--port PORT] [--debug] [--production]
    songsplit check
    songsplit info
    songsplit distribute --caller deployer --song 1 --amount 1000
    songsplit balance --contributor wallet_1 [--song 1]
    songsplit backup [--output PATH]
    songsplit --version
"""

import argparse
import json
import os
import sys

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "royalty_distributor.py")):
    sys.path.insert(0, os.path.dirname(__file__))

__version__ = "0.1.0"


def cmd_serve(args):
    """Start the SongSplit API server."""
    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = args.port or int(os.getenv("PORT", 5000))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    from api import create_app

    print(f"Starting SongSplit API server on {host}:{port}")

    if args.production:
        # Use gunicorn for production
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install songsplit[production]")
            return 1

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Serves the Flask app through gunicorn with options from a dict."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        # The ledger lives in process memory, so one worker serves it with threads
        options = {
            "bind": f"{host}:{port}",
            "workers": 1,
            "threads": args.workers or int(os.getenv("WORKERS", 4)),
            "worker_class": "gthread",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        StandaloneApplication(create_app(), options).run()
    else:
        # Use Flask development server
        create_app().run(host=host, port=port, debug=debug)
    return 0


def _load_ledger():
    """
    Load the persisted ledger through the configured storage backend.

    Returns None after printing the reason if it can't be loaded.
    """
    from api import state
    from song_catalog import CatalogError
    from storage import StorageError

    try:
        return state.init_ledger()
    except (StorageError, CatalogError, FileNotFoundError) as e:
        print(f"Error: could not load ledger: {e}")
        return None


def cmd_distribute(args):
    """Distribute a payment and persist the result."""
    from api import state
    from monitoring import LoggingContext
    from storage import StorageError

    with LoggingContext(command="distribute", song_id=args.song):
        ledger = _load_ledger()
        if ledger is None:
            return 1

        try:
            response = state.apply_mutation(
                lambda lg: lg.distribute(args.caller, args.song, args.amount)
            )
        except StorageError as e:
            print(f"Error: distribution not saved: {e}")
            return 1

    if not response.ok:
        print(f"Distribution rejected: {response.error.name} ({int(response.error)})")
        return 1

    print(f"Recorded payment {response.value} for song {args.song}")
    for row in ledger.get_song(args.song).contributors:
        balance = ledger.get_contributor_balance(args.song, row.contributor).value
        print(f"  {row.contributor} ({row.percentage}%): balance {balance}")
    return 0


def cmd_backup(args):
    """Copy the JSON ledger file aside."""
    from storage import JSONFileStorage, StorageError, get_storage_backend

    try:
        storage = get_storage_backend()
        if not isinstance(storage, JSONFileStorage):
            print(f"Error: backups need the json backend, not {storage.__class__.__name__}")
            return 1
        path = storage.backup(args.output)
    except StorageError as e:
        print(f"Error: backup failed: {e}")
        return 1

    print(f"Ledger backed up to {path}")
    return 0


def cmd_balance(args):
    """Print a contributor's per-song or aggregate balance."""
    ledger = _load_ledger()
    if ledger is None:
        return 1
    if args.song is not None:
        balance = ledger.get_contributor_balance(args.song, args.contributor).value
        print(f"{args.contributor} on song {args.song}: {balance}")
    else:
        balance = ledger.get_total_balance(args.contributor).value
        print(f"{args.contributor} across all songs: {balance}")
    return 0


def cmd_check(args):
    """Check installation and configuration."""
    print("SongSplit Installation Check")
    print("=" * 40)

    checks = []

    # Check core ledger
    try:
        import royalty_distributor  # noqa: F401

        checks.append(("Royalty ledger", "OK"))
    except ImportError as e:
        checks.append(("Royalty ledger", f"FAIL: {e}"))

    # Check API
    try:
        from api import create_app  # noqa: F401

        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    # Check song catalog
    try:
        from song_catalog import CatalogError, load_configured_catalog

        songs = load_configured_catalog()
        checks.append((f"Song catalog ({len(songs)} songs)", "OK"))
    except ImportError as e:
        checks.append(("Song catalog", f"FAIL: {e}"))
    except (CatalogError, FileNotFoundError) as e:
        checks.append(("Song catalog", f"FAIL: {e}"))

    # Check storage
    try:
        from storage import StorageError, get_storage_backend

        storage = get_storage_backend()
        backend_name = storage.__class__.__name__
        status = "OK" if storage.is_available() else "WARN (not available)"
        checks.append((f"Storage ({backend_name})", status))
    except ImportError as e:
        checks.append(("Storage", f"FAIL: {e}"))
    except StorageError as e:
        checks.append(("Storage", f"FAIL: {e}"))

    # Check optional dependencies
    try:
        import gunicorn  # noqa: F401

        checks.append(("Gunicorn (production)", "OK"))
    except ImportError:
        checks.append(("Gunicorn (production)", "SKIP (gunicorn not installed)"))

    # Print results
    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    print("Some checks failed. See above for details.")
    return 1


def cmd_info(args):
    """Display system information."""
    import platform

    print("SongSplit System Information")
    print("=" * 40)
    print(f"Version: {__version__}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    print(f"  SONGSPLIT_ADMIN: {os.getenv('SONGSPLIT_ADMIN', 'deployer (default)')}")
    print(f"  SONGSPLIT_CATALOG_FILE: {os.getenv('SONGSPLIT_CATALOG_FILE', 'config/songs.yaml (default)')}")
    print(f"  STORAGE_BACKEND: {os.getenv('STORAGE_BACKEND', 'json (default)')}")
    print(f"  SONGSPLIT_API_KEY: {'configured' if os.getenv('SONGSPLIT_API_KEY') else 'not set'}")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")

    print()
    print("Storage:")
    from storage import StorageError, get_storage_backend

    try:
        storage = get_storage_backend()
    except StorageError as e:
        print(f"  Error: {e}")
        return 1
    info = storage.get_info()
    print(json.dumps(info, indent=2))
    return 0


def main(argv=None):
    """Main CLI entry point."""
    from dotenv import load_dotenv

    # Before any project import, so LOG_LEVEL and storage settings from .env apply
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="songsplit",
        description="SongSplit - Song royalty distribution ledger",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument(
        "--production", action="store_true", help="Use gunicorn for production"
    )
    serve_parser.add_argument("--workers", type=int, help="Request threads (production mode)")

    # check command
    subparsers.add_parser("check", help="Check installation and configuration")

    # info command
    subparsers.add_parser("info", help="Display system information")

    # distribute command
    distribute_parser = subparsers.add_parser("distribute", help="Distribute a payment for a song")
    distribute_parser.add_argument("--caller", required=True, help="Identity recorded as distributor")
    distribute_parser.add_argument("--song", type=int, required=True, help="Song id")
    distribute_parser.add_argument("--amount", type=int, required=True, help="Payment amount")

    # balance command
    balance_parser = subparsers.add_parser("balance", help="Show a contributor balance")
    balance_parser.add_argument("--contributor", required=True, help="Contributor identity")
    balance_parser.add_argument("--song", type=int, help="Song id (omit for the aggregate balance)")

    # backup command
    backup_parser = subparsers.add_parser("backup", help="Back up the JSON ledger file")
    backup_parser.add_argument("--output", help="Backup path (default: timestamped copy beside the ledger)")

    args = parser.parse_args(argv)

    commands = {
        "serve": cmd_serve,
        "check": cmd_check,
        "info": cmd_info,
        "distribute": cmd_distribute,
        "balance": cmd_balance,
        "backup": cmd_backup,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    sys.exit(handler(args))


if __name__ == "__main__":
    main()
