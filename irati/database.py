"""
MongoDB binding.

Collections are named after the tables of the hosted backend the app used to
talk to. Cross references are stored as the string form of the referenced
ObjectId; dates as ISO strings so that sorting on them is chronological.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from irati.errors import InvalidRequestError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "iratidb")

PROFILES = "profiles"
USER_ROLES = "user_roles"
AUTH_SESSIONS = "auth_sessions"
COURSES = "courses"
COURSE_SESSIONS = "course_sessions"
ENROLLMENTS = "enrollments"
ATTENDANCE = "attendance"
MONITOR_ASSIGNMENTS = "monitor_assignments"
INTERVIEWS = "interviews"

_client: Optional[MongoClient] = None


def get_db() -> Database:
    """FastAPI dependency returning the configured database (connects lazily)."""
    global _client
    if _client is None:
        _client = MongoClient(DATABASE_URL)
    return _client[DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db[USER_ROLES].create_index([("user_id", ASCENDING), ("role", ASCENDING)], unique=True)
    db[AUTH_SESSIONS].create_index("token", unique=True)
    db[ENROLLMENTS].create_index([("user_id", ASCENDING), ("course_id", ASCENDING)], unique=True)
    db[ENROLLMENTS].create_index("course_id")
    db[ATTENDANCE].create_index([("session_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    db[MONITOR_ASSIGNMENTS].create_index([("monitor_id", ASCENDING), ("socio_id", ASCENDING)], unique=True)
    db[COURSE_SESSIONS].create_index([("course_id", ASCENDING), ("session_date", ASCENDING)])
    db[INTERVIEWS].create_index("scheduled_date")
    logger.info("Indexes ensured on database %s", db.name)


def utcnow() -> datetime:
    # BSON drops tzinfo on the way back, so keep everything naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidRequestError(f"Invalid id format: {id_str!r}")


def create_document(db: Database, collection: str, data: Dict[str, Any]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    res = db[collection].insert_one(doc)
    return str(res.inserted_id)


def find_by_id(db: Database, collection: str, id_str: str) -> Optional[Dict[str, Any]]:
    return db[collection].find_one({"_id": to_object_id(id_str)})
