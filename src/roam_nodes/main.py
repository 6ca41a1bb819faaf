#!/usr/bin/env python
"""Main entry point for the roam-nodes MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from roam_nodes import __version__
from roam_nodes.config import config
from roam_nodes.models.db_models import init_db
from roam_nodes.observability import configure_logging
from roam_nodes.server.mcp_server import RoamMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Roam node selection MCP server")
    parser.add_argument(
        "--directory",
        help="Knowledge-base root directory",
        type=str,
        default=os.environ.get("ROAM_DIRECTORY")
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("ROAM_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("ROAM_LOG_LEVEL", "INFO")
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def build_settings(args):
    """Derive the server configuration from command line arguments."""
    updates = {}
    if args.directory:
        updates["directory"] = Path(args.directory)
    if args.database_path:
        updates["database_path"] = Path(args.database_path)
    return config.model_copy(update=updates)


def main(argv=None):
    """Run the roam-nodes MCP server."""
    args = parse_args(argv)
    settings = build_settings(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        logger.info(f"Using SQLite database: {settings.get_db_url()}")
        engine = init_db(settings.get_db_url())
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting roam-nodes MCP server")
        server = RoamMcpServer(settings=settings, engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
