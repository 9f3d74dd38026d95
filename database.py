from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from dotenv import load_dotenv
from contextlib import asynccontextmanager
import logging
import os

load_dotenv()

logger = logging.getLogger(__name__)

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
DATABASE_NAME = os.getenv("DATABASE_NAME", "medical_marketplace")
# multi-document transactions need a replica set; disable for a standalone server
MONGO_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "true").lower() in ("1", "true", "yes")

client = AsyncIOMotorClient(MONGO_URI)
db = client[DATABASE_NAME]

HOSPITALS = "hospitals"
DELIVERY_ADDRESSES = "delivery_addresses"
PRODUCTS = "products"
OFFERS = "offers"
CARTS = "carts"
ORDERS = "orders"
WALLET_TRANSACTIONS = "wallet_transactions"

def get_database():
    return db


@asynccontextmanager
async def transaction(database):
    """
    Open a session with a running transaction and yield it.
    Yields None when transactions are disabled; callers then undo their own
    partial writes.
    """
    if not MONGO_TRANSACTIONS:
        yield None
        return
    async with await database.client.start_session() as session:
        async with session.start_transaction():
            yield session


async def connect_to_mongo():
    """Ensures MongoDB is connected."""
    try:
        await db.command('ping')
        logger.info("Connected to MongoDB")
    except Exception as e:
        logger.error(f"MongoDB Connection Error: {e}")
        raise


async def ensure_indexes(database):
    """Create the indexes the services rely on for uniqueness."""
    await database[HOSPITALS].create_index("owner_id", unique=True, sparse=True)
    await database[DELIVERY_ADDRESSES].create_index("hospital_id")
    await database[PRODUCTS].create_index(
        [("seller_id", ASCENDING), ("code", ASCENDING), ("lot_number", ASCENDING)],
        unique=True
    )
    # one PENDING offer per (creator, hospital); the key is removed on leaving PENDING
    await database[OFFERS].create_index("pending_key", unique=True, sparse=True)
    await database[OFFERS].create_index([("creator_id", ASCENDING), ("created_at", DESCENDING)])
    await database[OFFERS].create_index([("hospital_id", ASCENDING), ("status", ASCENDING)])
    await database[CARTS].create_index("hospital_id", unique=True)
    await database[ORDERS].create_index([("hospital_id", ASCENDING), ("created_at", DESCENDING)])
    await database[ORDERS].create_index("items.seller_id")
    await database[WALLET_TRANSACTIONS].create_index(
        [("hospital_id", ASCENDING), ("sequence", DESCENDING)],
        unique=True
    )
    await database[WALLET_TRANSACTIONS].create_index("order_id")
    logger.info("MongoDB indexes ensured")
