"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m restroute                       # users API on 127.0.0.1:8080
    python -m restroute --port 3000
    python -m restroute --log-format json --validation-status 400

Settings come from RESTROUTE_* environment variables first (see
AppConfig.from_env); command line flags override them.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .app import Application
from .config import AppConfig
from .handlers import HealthHandler, HealthStatus, create_users_api
from .middleware import LoggingMiddleware


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restroute",
        description="Serve the restroute users reference API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m restroute                          # Run with defaults
  python -m restroute --host 0.0.0.0 -p 8000   # Listen on all interfaces
  python -m restroute --max-upload-size 1000000
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on")

    # ─────────────────────────────────────────────────────────────────────
    # POLICY ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-upload-size",
        type=int,
        help="Largest accepted multipart body in bytes (default: 50000000)",
    )
    parser.add_argument(
        "--validation-status",
        type=int,
        choices=[400, 422],
        help="Status for validation failures (default: 422)",
    )
    parser.add_argument(
        "--oversize-status",
        type=int,
        choices=[400, 413],
        help="Status for oversized uploads (default: 413)",
    )
    parser.add_argument(
        "--no-link-header",
        action="store_true",
        help="Do not emit Link headers on paged lists",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Access log format (default: text)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"restroute {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> AppConfig:
    """Environment first, then any flag that was given."""
    config = AppConfig.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "max_upload_size": args.max_upload_size,
        "validation_status": args.validation_status,
        "oversize_status": args.oversize_status,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    if args.no_link_header:
        config.emit_link_header = False
    return config


def create_app(config: AppConfig) -> Application:
    app = Application(config)
    app.use(LoggingMiddleware(log_format=config.log_format, skip_paths=["/health/live"]))

    store = create_users_api(app)

    health = HealthHandler()
    health.add_check("users_store", lambda: HealthStatus(True, f"{len(store)} users"))
    health.register(app)
    return app


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        app = create_app(config_from_args(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    app.serve()
    return 0


if __name__ == "__main__":
    sys.exit(main())
