"""Create the book-sync tables, indexes and RLS policies in a Postgres database."""

import argparse
import asyncio
import sys

from sync_schema.config import Settings, load_settings, require_database_url
from sync_schema.db.applier import Applier, ApplyResult
from sync_schema.db.session import ConnectResult
from sync_schema.errors import ConfigError, SchemaError
from sync_schema.logging_config import configure_logging, get_logger
from sync_schema.schema.catalog import definitions, render_script

logger = get_logger(__name__)

EXAMPLE_URL = "postgres://postgres:<password>@db.<project-id>.supabase.co:5432/postgres"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sync-schema",
        description="Set up the book-sync schema: tables, indexes and row level security policies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Example:
  %(prog)s --pg-url {EXAMPLE_URL}
        """,
    )
    parser.add_argument(
        "-u",
        "--pg-url",
        dest="database_url",
        metavar="URL",
        help=f"PostgreSQL connection URL (e.g., {EXAMPLE_URL}); defaults to DATABASE_URL",
    )
    parser.add_argument(
        "--if-not-exists",
        action="store_true",
        default=None,
        help="Guard every statement so re-running against a provisioned database is a no-op",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        metavar="SECONDS",
        help="Connection timeout in seconds (default: 10)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the SQL that would be executed and exit without connecting",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Human-readable log output",
    )
    return parser


def report(outcome: ConnectResult | ApplyResult | SchemaError) -> int:
    """Map the outcome of a run to one message and an exit code."""
    if isinstance(outcome, SchemaError):
        error: SchemaError | None = outcome
    else:
        error = outcome.error
    if error is not None:
        print(f"Error: {error}", file=sys.stderr)
        return error.exit_code
    if isinstance(outcome, ApplyResult):
        message = f"Tables, indexes, and RLS policies created successfully ({len(outcome.applied)} statements"
        if outcome.already_exists:
            message += f", {len(outcome.already_exists)} already present"
        print(message + ")")
    return 0


async def bootstrap(settings: Settings) -> ConnectResult | ApplyResult:
    """Connect with settings and apply the whole catalog."""
    url = require_database_url(settings)
    applier = Applier(definitions(), guarded=settings.if_not_exists)
    logger.info("schema_bootstrap_started", units=applier.total, guarded=applier.guarded)
    return await applier.run(url, timeout=settings.connect_timeout)


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run the bootstrap and return the process exit code."""
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(
            database_url=args.database_url,
            if_not_exists=args.if_not_exists,
            connect_timeout=args.connect_timeout,
            debug=args.debug,
        )
        if not args.dry_run:
            require_database_url(settings)
    except ConfigError as e:
        return report(e)
    configure_logging(debug=settings.debug)

    if args.dry_run:
        sys.stdout.write(render_script(guarded=settings.if_not_exists))
        return 0

    try:
        outcome = asyncio.run(bootstrap(settings))
    except KeyboardInterrupt:
        print("Interrupted by user", file=sys.stderr)
        return 1
    return report(outcome)


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
