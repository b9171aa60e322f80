#!/usr/bin/env python
"""Main entry point for the Storm Notes MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from storm_notes.config import StormConfig, config
from storm_notes.exceptions import ConfigurationError
from storm_notes.models.db_models import init_db
from storm_notes.observability import DEFAULT_METRICS_FILE, configure_logging, metrics
from storm_notes.server.mcp_server import StormMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Storm Notes MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("STORM_DATABASE_PATH")
    )
    parser.add_argument(
        "--in-memory",
        help="Keep everything in memory; nothing is written to disk",
        action="store_true",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("STORM_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments.

    Raises:
        ConfigurationError: If the resulting configuration is invalid.
    """
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.in_memory:
        config.in_memory_store = True
    # Assignment is not validated; re-run the validators on the result
    try:
        StormConfig.model_validate(config.model_dump())
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main():
    """Run the Storm Notes MCP server."""
    args = parse_args()

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        update_config(args)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(2)

    metrics.use_file(DEFAULT_METRICS_FILE)
    atexit.register(_save_metrics_on_exit)

    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting Storm Notes MCP server")
        server = StormMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
