import logging
from logging import INFO

from tortoise import Tortoise

from payrecon.core.config import DB_URL

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)
log = logging.getLogger("payrecon.db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "payrecon.models.order",
    "payrecon.models.refund",
    "payrecon.models.dispute",
    "payrecon.models.supplier",
    "payrecon.models.ledger",
    "payrecon.models.inbound_event",
    "payrecon.models.dead_letter",
    "payrecon.models.job_lease",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
            use_tz=True,
            timezone="UTC",
        )
        if generate_schemas:
            # Generate the database schema (create tables)
            await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established and schemas generated.")
    except Exception:
        log.critical(f"Could not connect to database at {db_url}.", exc_info=True)
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
