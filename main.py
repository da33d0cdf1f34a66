import asyncio
import logging
from shopcore.config import setup_logging
from shopcore.database.database import Database

async def main():
    # Setup logging
    setup_logging()
    logger = logging.getLogger(__name__)

    db = Database()
    try:
        # Connecting applies any pending migrations
        logger.info("Applying migrations...")
        await db.connect()
        logger.info("Database schema is up to date")
    except Exception as e:
        logger.error(f"Error preparing database: {e}", exc_info=True)
        raise
    finally:
        await db.close()

if __name__ == "__main__":
    asyncio.run(main())
