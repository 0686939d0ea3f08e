"""
MongoDB client singleton for the vector index and recommendation cache.
Provides connection management and collection access.
"""

import logging
import threading
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from carrierfit.config import get_settings
from carrierfit.core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_client_lock = threading.Lock()


def get_mongodb_client() -> MongoClient:
    """
    Get MongoDB client singleton.

    Raises:
        ConfigurationError: if no MongoDB URI is configured
    """
    global _client
    with _client_lock:
        if _client is None:
            settings = get_settings()
            if not settings.mongodb_uri:
                raise ConfigurationError("CARRIERFIT_MONGODB_URI is not set")
            _client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=5000)
            logger.info("MongoDB client created")
    return _client


def get_database() -> Database:
    """Get the configured database."""
    client = get_mongodb_client()
    settings = get_settings()
    return client[settings.mongodb_database]


def get_collection(collection_name: str) -> Collection:
    """Get a specific collection from the database."""
    db = get_database()
    return db[collection_name]


def close_mongodb_client() -> None:
    """Close the MongoDB client connection."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
            _client = None


# Collection names as constants
class Collections:
    """MongoDB collection names."""
    RECOMMENDATIONS = "recommendations"
