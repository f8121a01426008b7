# PixelVault - Command-line entry point
#
#   pixelvault serve [--host HOST] [--port PORT] [--db PATH]

import argparse
import dataclasses
import sys
from pathlib import Path

from . import __version__
from .core import EventSeverity, EventType, get_audit_logger, get_settings, set_settings


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="pixelvault",
        description="PixelVault - two-secret encrypted vault server",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"PixelVault v{__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    serve.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: PIXELVAULT_DB_PATH or data/pixelvault.db)",
    )

    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve(args)
    return 0


def _serve(args) -> int:
    settings = get_settings()
    if args.db is not None:
        set_settings(dataclasses.replace(settings, db_path=args.db))

    # Imported late: the app reads settings (CORS origins) at import time.
    from .api.main import start_api_server

    print(f"PixelVault API on http://{args.host}:{args.port} (Ctrl+C to stop)")
    try:
        start_api_server(host=args.host, port=args.port)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"PixelVault API crashed: {e}",
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
