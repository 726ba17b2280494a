"""
MongoDB connection helper.
Provides get_db() for use by services and ensure_indexes() for startup.
"""

import os
import logging
from typing import Optional
from urllib.parse import quote_plus

from pymongo import MongoClient, ASCENDING
from pymongo.database import Database
from dotenv import load_dotenv

# Load .env variables from the project root
load_dotenv()

DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_HOST = os.getenv("DB_HOST", "cluster0.mongodb.net")
DB_NAME = os.getenv("DB_NAME", "EventsDB")

_client: Optional[MongoClient] = None


def build_mongo_uri() -> str:
    """
    Build the connection string from the environment.

    MONGODB_URI wins if set. Otherwise DB_USER/DB_PASS are used against the
    Atlas cluster in DB_HOST, falling back to a local server.

    Returns:
        str: A MongoDB connection string.
    """
    explicit = os.getenv("MONGODB_URI")
    if explicit:
        return explicit

    if DB_USER and DB_PASS:
        return (
            f"mongodb+srv://{quote_plus(DB_USER)}:{quote_plus(DB_PASS)}"
            f"@{DB_HOST}/?retryWrites=true&w=majority"
        )

    return "mongodb://localhost:27017"


def get_client() -> MongoClient:
    """
    Return the shared MongoClient, creating it on first use.

    MongoClient keeps its own connection pool and does not connect until
    the first operation, so creating it never blocks startup.
    """
    global _client
    if _client is None:
        _client = MongoClient(build_mongo_uri(), serverSelectionTimeoutMS=5000)
    return _client


def get_db() -> Database:
    """
    Returns the application database.

    Usage:
        db = get_db()
        db["events"].find_one({...})

    Returns:
        pymongo.database.Database: The EventsDB database handle.
    """
    return get_client()[DB_NAME]


def ensure_indexes(db: Optional[Database] = None) -> None:
    """
    Create the unique indexes the handlers rely on.

    - users.email: one user per email address
    - likedEvents.username: one favorites document per user
    - payments.transactionId: one payment record per order

    Raises:
        pymongo.errors.PyMongoError: If the server is unreachable.
    """
    db = db if db is not None else get_db()
    db["users"].create_index([("email", ASCENDING)], unique=True)
    db["likedEvents"].create_index([("username", ASCENDING)], unique=True)
    db["payments"].create_index([("transactionId", ASCENDING)], unique=True)
    db["events"].create_index([("status", ASCENDING)])
    logging.info("MongoDB indexes ensured on %s", db.name)
