"""
app/db/indexes.py

Purpose: Database index management (schema migrations)

- Creates unique and performance indexes ("up")
- Drops custom indexes ("down")
- Enforces one active order per client at the store level
"""

from app.db.mongo import get_users_collection, get_orders_collection
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_user_indexes(users):
    # Unique index on chat_id (primary identifier)
    await users.create_index("chat_id", unique=True, name="chat_id_unique")
    logger.debug("Created unique index on users.chat_id")

    # Referral codes are unique only once assigned
    await users.create_index(
        "referral_code",
        unique=True,
        partialFilterExpression={"referral_code": {"$exists": True}},
        name="referral_code_unique",
    )
    logger.debug("Created partial unique index on users.referral_code")


async def create_order_indexes(orders):
    # At most one non-terminal order per client
    await orders.create_index(
        "client_id",
        unique=True,
        partialFilterExpression={"active": True},
        name="one_active_order_per_client",
    )
    logger.debug("Created partial unique index on orders.client_id")

    # One full consultation recorded per predecessor order
    await orders.create_index(
        "upgrade_of",
        unique=True,
        partialFilterExpression={"upgrade_of": {"$exists": True}},
        name="one_upgrade_per_order",
    )
    logger.debug("Created partial unique index on orders.upgrade_of")

    # Client history, newest first
    await orders.create_index(
        [("client_id", 1), ("created_at", -1)],
        name="client_orders_idx"
    )
    logger.debug("Created compound index on orders.client_id + created_at")

    # Reminder sweep
    await orders.create_index(
        [("status", 1), ("reminder_sent", 1), ("taken_at", 1)],
        name="reminder_sweep_idx"
    )
    logger.debug("Created compound index on orders.status + reminder_sent + taken_at")


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        users = get_users_collection()
        orders = get_orders_collection()

        logger.info("Creating database indexes...")

        await create_user_indexes(users)
        await create_order_indexes(orders)

        logger.info("✅ All database indexes created successfully")

        user_indexes = await users.index_information()
        order_indexes = await orders.index_information()

        logger.info(
            f"Index summary: Users={len(user_indexes)}, "
            f"Orders={len(order_indexes)}"
        )

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


async def drop_all_indexes():
    """
    Drops all custom indexes (keeps _id index).
    Use with caution! Only for maintenance/migration.
    """
    try:
        users = get_users_collection()
        orders = get_orders_collection()

        logger.warning("Dropping all database indexes...")

        await users.drop_indexes()
        await orders.drop_indexes()

        logger.info("✅ All indexes dropped successfully")

    except Exception as e:
        logger.error(f"Failed to drop indexes: {str(e)}", exc_info=True)
        raise
