"""
app/cli.py

Purpose: Command-line entry point (`sarafan-bot`)

- Loads configuration from an env file
- Applies or reverts index migrations
- Serves the bot and the HTTP API under uvicorn
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from app.core.config import load_settings, settings
from app.core.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sarafan-bot",
        description="Referral consultation bot with a document callback API"
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="Env file with settings (default: .env)"
    )
    parser.add_argument(
        "--migrate",
        choices=["up", "down"],
        default=None,
        help="Create (up) or drop (down) database indexes, then exit"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging"
    )
    return parser


async def run_migration(direction: str) -> None:
    from app.db.mongo import connect_to_mongo, close_mongo_connection
    from app.db.indexes import create_indexes, drop_all_indexes

    await connect_to_mongo()
    try:
        if direction == "up":
            await create_indexes()
        else:
            await drop_all_indexes()
    finally:
        await close_mongo_connection()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        load_settings(args.config)
    except Exception as e:
        print(f"❌ Failed to load configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(verbose=args.verbose)

    if args.migrate:
        logger.info(f"Running migration: {args.migrate}")
        try:
            asyncio.run(run_migration(args.migrate))
        except Exception as e:
            logger.critical(f"Migration failed: {e}", exc_info=True)
            return 1
        logger.info("✅ Migration finished")
        return 0

    import uvicorn
    from app.main import app

    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
        log_level=settings.LOG_LEVEL.lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
