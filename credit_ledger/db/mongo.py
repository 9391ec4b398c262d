import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from credit_ledger.core.config import settings

logger = logging.getLogger(__name__)

class MongoDatabase:
    """MongoDB connection manager for the allocation journal."""
    
    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB when the allocation journal is enabled."""
    if not settings.JOURNAL_ENABLED:
        logger.info("Allocation journal disabled; not connecting to MongoDB")
        return

    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]
    
    # Create indexes
    await create_indexes()
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is None:
        return
    mongodb.client.close()
    mongodb.client = None
    mongodb.db = None
    logger.info("Disconnected from MongoDB")

async def create_indexes():
    """Create database indexes."""
    # Intents of one allocation are read together
    await mongodb.db["allocation_intents"].create_index("allocation_id")
    # Reconciliation scans unfinished intents oldest first
    await mongodb.db["allocation_intents"].create_index([("status", 1), ("created_at", 1)])
    await mongodb.db["allocation_intents"].create_index("sale_id")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
