#!/usr/bin/env python
"""Command line entry point for notegraph."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from notegraph import __version__
from notegraph.config import config
from notegraph.exceptions import NotegraphError
from notegraph.models.db_models import get_session_factory, init_db
from notegraph.observability import configure_logging, metrics
from notegraph.services import build_services


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Notegraph note-link graph engine")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTEGRAPH_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper()
    )
    parser.add_argument(
        "--no-log-file",
        help="Only log to the console",
        action="store_true"
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create the database schema")

    stats = sub.add_parser("stats", help="Print graph statistics of a user as JSON")
    stats.add_argument("--user", required=True, help="User id")

    metrics_cmd = sub.add_parser("metrics", help="Print operation metrics as JSON")
    metrics_cmd.add_argument(
        "--user", help="Run the graph statistics for this user first"
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
        config.database_url = None


def _setup_logging(args) -> logging.Logger:
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    if args.no_log_file:
        logging.basicConfig(level=log_level)
    else:
        try:
            configure_logging(log_dir=config.log_dir, level=log_level, console=True)
        except OSError as e:
            # Fall back to basic console logging if file logging fails
            logging.basicConfig(level=log_level)
            logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
    return logging.getLogger(__name__)


def main(argv=None) -> int:
    """Run a notegraph command."""
    args = parse_args(argv)
    update_config(args)
    logger = _setup_logging(args)

    try:
        logger.info(f"Using database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    if args.command == "init-db":
        print(f"Database ready at {config.get_db_url()}")
        return 0

    services = build_services(get_session_factory(engine))
    try:
        if args.command == "stats":
            print(json.dumps(services.graph.graph_stats(args.user).to_dict(), indent=2))
        elif args.command == "metrics":
            if args.user:
                services.graph.graph_stats(args.user)
            print(json.dumps(
                {"summary": metrics.get_summary(), "operations": metrics.get_metrics()},
                indent=2,
            ))
    except NotegraphError as e:
        logger.error(str(e))
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
