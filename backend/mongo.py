import logging
import os
from typing import Any
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError
from pymongo.server_api import ServerApi

logger = logging.getLogger(__name__)

_client: MongoClient | None = None

def connect(timeout_ms: int = 5000) -> Any:
    global _client
    uri = os.getenv("MONGO_URI")
    db_name = os.getenv("MONGO_DB")

    if not uri:
        raise RuntimeError("MONGO_URI environment variable is not set")
    if not db_name:
        raise RuntimeError("MONGO_DB environment variable is not set")

    if _client is None:
        _client = MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            server_api=ServerApi('1')
        )
        try:
            _client.admin.command("ping")
        except ServerSelectionTimeoutError as exc:
            _client = None
            raise RuntimeError("Unable to connect to MongoDB") from exc
        logger.info("Connected to MongoDB database %s", db_name)

    db = _client[db_name]
    ensure_indexes(db)
    return db

def ensure_indexes(db: Any) -> None:
    try:
        db.questions.create_index([("sourceLabel", ASCENDING), ("createdAt", ASCENDING)])
        db.submissions.create_index([("questionId", ASCENDING), ("submittedAt", ASCENDING)])
    except PyMongoError as exc:
        logger.warning("Could not create MongoDB indexes: %s", exc)
