import asyncio
import logging
import sys

from votebot.config import get_settings
from votebot.db.gateway import PersistenceGateway


async def main():
    """Create or open the database file and make sure its schema exists."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logger = logging.getLogger(__name__)

    async with PersistenceGateway(settings.db.path, timeout=settings.db.timeout):
        logger.info("Database %s is ready", settings.db.path)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Stopped.")
