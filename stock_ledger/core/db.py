import logging
from logging import INFO

from tortoise import Tortoise

from stock_ledger.core.config import DB_URL

log = logging.getLogger(__name__)

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)

MODELS_MODULES = [
    "stock_ledger.models.order",
    "stock_ledger.models.dish",
    "stock_ledger.models.inventory",
    "stock_ledger.models.outbox",
    "stock_ledger.models.processed_event",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
            use_tz=True,
        )
        if generate_schemas:
            await Tortoise.generate_schemas()
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.critical(f"Could not connect to database at {db_url}. Error: {e}")
        # Refuse to start without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
