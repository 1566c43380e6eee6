#!/usr/bin/env python
"""Main entry point for the Notetaker MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from notetaker.config import STORAGE_BACKENDS, config
from notetaker.observability import configure_logging, metrics
from notetaker.server.mcp_server import NotetakerMcpServer
from notetaker.services.note_service import NoteService
from notetaker.storage import create_store


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Notetaker MCP Server")
    parser.add_argument(
        "--storage-backend",
        help="Where notes are kept",
        choices=STORAGE_BACKENDS,
        default=os.environ.get("NOTETAKER_STORAGE_BACKEND"),
    )
    parser.add_argument(
        "--notes-dir",
        help="Directory for markdown note files",
        type=str,
        default=os.environ.get("NOTETAKER_NOTES_DIR"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path (implies a file-backed database)",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTETAKER_LOG_LEVEL", "INFO"),
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.storage_backend:
        config.storage_backend = args.storage_backend.lower()
    if args.notes_dir:
        config.notes_dir = Path(args.notes_dir)
    if args.database_path:
        config.database_path = Path(args.database_path)
        config.in_memory_db = False


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv=None):
    """Run the Notetaker MCP server."""
    args = parse_args(argv)
    update_config(args)

    # Console + persistent file logging with rotation
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    metrics.metrics_file = config.get_absolute_path(config.metrics_file)
    atexit.register(_save_metrics_on_exit)

    try:
        store = create_store(config)
        logger.info(f"Using {config.storage_backend} storage")
    except Exception as e:
        logger.error(f"Failed to initialize storage: {e}")
        sys.exit(1)

    try:
        logger.info("Starting Notetaker MCP server")
        server = NotetakerMcpServer(note_service=NoteService(store=store))
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
