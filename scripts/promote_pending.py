"""
Script to promote the oldest pending ingested deals into the catalog
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.logging import setup_logging
from ingestion.promotion import PromotionEngine

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Promote pending ingested deals")
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.PROMOTION_BATCH_LIMIT,
        help="Maximum number of pending rows to promote"
    )
    return parser.parse_args(argv)


async def promote_pending(limit: int):
    """Run one promotion batch and report its stats"""
    try:
        async with async_session_maker() as session:
            stats = await PromotionEngine(session).promote_pending_ingested_deals(limit=limit)

        logger.info(
            f"Promotion completed: Fetched={stats.fetched}, "
            f"Promoted={stats.promoted}, Errors={stats.errors}"
        )
        return stats

    except Exception as e:
        logger.error(f"Promotion failed: {str(e)}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    asyncio.run(promote_pending(args.limit))
