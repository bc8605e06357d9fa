"""
Remove expired draft trails from the configured store.

Lookups and listings already purge lazily; run this from cron (or any
scheduler) to reclaim space from drafts nobody touches again.

Usage:
    python -m scripts.sweep_expired
"""

import asyncio
import logging
import sys

from trailkeeper.core.clock import SystemClock
from trailkeeper.core.config import get_config
from trailkeeper.core.db.engine import init_models
from trailkeeper.main import build_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("sweep_expired")


async def sweep() -> int:
    config = get_config()
    store, engine = build_store(config, SystemClock())
    try:
        if engine is not None and config.db_auto_create:
            await init_models(engine)
        return await store.sweep_expired()
    finally:
        await store.close()


def main() -> None:
    logger.info("🧹 Starting cleanup of expired draft trails...")
    removed = asyncio.run(sweep())
    logger.info("✅ Cleaned up %d expired draft trail(s)", removed)


if __name__ == "__main__":
    main()
