"""
MongoDB Connection Utility

MongoDB is the only store. Collections:
- users, colleges, companies, students: tenants and their profiles
- jobs, applications: the placement pipeline
- notifications, activity_logs: outbound collaborator records
- platform_settings: singleton runtime configuration

Uniqueness (email, college code, roll number per college, one application
per student per job) is enforced by unique indexes, never by a prior lookup.
"""
import logging

from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from placement_portal.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        )
    return _client


def get_mongo_db() -> Database:
    """Get the placement database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "users": "users",
    "colleges": "colleges",
    "companies": "companies",
    "students": "students",
    "jobs": "jobs",
    "applications": "applications",
    "notifications": "notifications",
    "activity_logs": "activity_logs",
    "platform_settings": "platform_settings",
}


def init_mongo_indexes(db: Database = None):
    """
    Create indexes for uniqueness and query performance.
    Call this once during app startup.
    """
    db = db if db is not None else get_mongo_db()

    db[COLLECTIONS["users"]].create_index("email", unique=True)
    db[COLLECTIONS["users"]].create_index([("role", ASCENDING), ("is_approved", ASCENDING)])

    db[COLLECTIONS["colleges"]].create_index("code", unique=True)
    db[COLLECTIONS["colleges"]].create_index("is_verified")

    db[COLLECTIONS["companies"]].create_index("user")
    db[COLLECTIONS["companies"]].create_index([("type", ASCENDING), ("is_approved", ASCENDING)])

    # One roll number per college, one email platform-wide
    db[COLLECTIONS["students"]].create_index("email", unique=True)
    db[COLLECTIONS["students"]].create_index(
        [("college", ASCENDING), ("roll_number", ASCENDING)], unique=True
    )
    db[COLLECTIONS["students"]].create_index([("college", ASCENDING), ("department", ASCENDING)])
    db[COLLECTIONS["students"]].create_index("placement_status")

    db[COLLECTIONS["jobs"]].create_index([("company", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["jobs"]].create_index([("status", ASCENDING), ("application_deadline", ASCENDING)])
    db[COLLECTIONS["jobs"]].create_index("eligibility.allowed_departments")

    # The canonical duplicate-application detector
    db[COLLECTIONS["applications"]].create_index(
        [("student", ASCENDING), ("job", ASCENDING)], unique=True
    )
    db[COLLECTIONS["applications"]].create_index([("job", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["applications"]].create_index([("company", ASCENDING), ("status", ASCENDING)])

    db[COLLECTIONS["notifications"]].create_index(
        [("recipient", ASCENDING), ("is_read", ASCENDING), ("created_at", DESCENDING)]
    )
    db[COLLECTIONS["activity_logs"]].create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    db[COLLECTIONS["activity_logs"]].create_index([("target_model", ASCENDING), ("target_id", ASCENDING)])

    logger.info("MongoDB indexes created successfully")
