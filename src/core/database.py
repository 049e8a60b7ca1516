import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .config import settings
from src.utils.api_error import StoreConnectionError

logger = logging.getLogger(__name__)


class MongoDB:
    client: AsyncIOMotorClient = None
    db = None

mongodb = MongoDB()


async def connect_to_mongo(uri: str = None, db_name: str = None):
    """
    Open the client and ping the server.

    Raises StoreConnectionError when the server can't be reached, so the app
    never starts serving without its store.
    """
    uri = uri or settings.MONGO_URI
    db_name = db_name or settings.MONGO_DB

    client = AsyncIOMotorClient(uri, serverSelectionTimeoutMS=5000)
    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        logger.error("MongoDB connection failed: %s", e)
        raise StoreConnectionError(
            message="MongoDB connection failed",
            errors=[str(e)],
        ) from e

    mongodb.client = client
    mongodb.db = client[db_name]
    logger.info("Connected to MongoDB database %s", db_name)
    return mongodb.db


async def close_mongo_connection():
    if mongodb.client is None:
        return
    mongodb.client.close()
    mongodb.client = None
    mongodb.db = None
    logger.info("MongoDB connection closed")
