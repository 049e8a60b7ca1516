from src.core.database import mongodb
from src.utils.api_error import StoreConnectionError

VIDEOS_COLLECTION = "videos"
USERS_COLLECTION = "users"


def _require_db():
    if mongodb.db is None:
        raise StoreConnectionError(message="MongoDB not initialized")
    return mongodb.db


def get_videos_collection():
    return _require_db()[VIDEOS_COLLECTION]


def get_users_collection():
    return _require_db()[USERS_COLLECTION]
