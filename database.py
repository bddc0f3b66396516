"""
MongoDB access for the storefront API.

`db` is None when DATABASE_URL is not configured; routes check for that and
answer 500 instead of crashing.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel
from pymongo import MongoClient

from settings import get_settings

logger = structlog.get_logger(__name__)

_client: Optional[MongoClient] = None
db = None


def connect(url: Optional[str] = None, name: Optional[str] = None):
    global _client, db
    settings = get_settings()
    url = url or settings.database_url
    if not url:
        logger.warning("DATABASE_URL not set, running without a database")
        return None
    _client = MongoClient(url)
    db = _client[name or settings.database_name]
    logger.info("Connected to MongoDB", database=db.name)
    return db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if db is None:
        raise RuntimeError("Database not configured")
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if db is None:
        raise RuntimeError("Database not configured")
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


connect()
