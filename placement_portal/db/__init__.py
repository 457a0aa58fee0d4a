"""
Database module - MongoDB connection and collection helpers.
"""
from placement_portal.db.mongodb import get_mongo_db, test_mongo_connection, COLLECTIONS

__all__ = [
    "get_mongo_db",
    "test_mongo_connection",
    "COLLECTIONS"
]
