"""
MongoDB connection shared by the whole process.

The client is opened once at startup (see ``connect``) and handed to request
handlers through the ``get_db`` dependency. Collections:
- "users": one document per registered user, unique on email
- "projects": one container document per user holding its projects and tasks
"""
import logging
from typing import Optional

from fastapi import HTTPException
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import settings

logger = logging.getLogger(__name__)

USERS = "users"
PROJECTS = "projects"

_client: Optional[MongoClient] = None
db: Optional[Database] = None


def ensure_indexes(database: Database) -> None:
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[PROJECTS].create_index([("owner_id", ASCENDING)], unique=True)


def connect(url: str = None, name: str = None) -> Database:
    """Open the client, ping the server and create indexes.

    Any failure is logged and re-raised so the app never starts against a
    store it cannot reach.
    """
    global _client, db
    url = url or settings.DATABASE_URL
    name = name or settings.DATABASE_NAME
    client = MongoClient(url, serverSelectionTimeoutMS=settings.DATABASE_TIMEOUT_MS)
    try:
        client.admin.command("ping")
        ensure_indexes(client[name])
    except PyMongoError:
        logger.exception("MongoDB connection error")
        client.close()
        raise
    _client = client
    db = client[name]
    logger.info("Connected to MongoDB database %s", name)
    return db


def close() -> None:
    global _client, db
    if _client is not None:
        _client.close()
    _client = None
    db = None


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def ping(database: Database) -> bool:
    try:
        database.client.admin.command("ping")
    except PyMongoError as e:
        logger.warning("Database ping failed: %s", e)
        return False
    return True


def create_document(database: Database, collection_name: str, data: dict) -> str:
    """Insert a document and return its id as a string."""
    result = database[collection_name].insert_one(dict(data))
    return str(result.inserted_id)
