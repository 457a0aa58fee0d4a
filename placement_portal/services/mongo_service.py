"""
MongoDB Service - repositories for the document collections.

Collections in this database:
1. users          - identities (one per account, role is immutable)
2. colleges       - college tenants, owned by one college_admin user
3. companies      - companies and placement agencies, owned by one user
4. students       - student profiles, each belongs to exactly one college
5. jobs           - postings, optionally scoped to a college (placement drive)
6. applications   - the student x job join, unique per pair
7. notifications / activity_logs - collaborator records

Every repository applies the lifecycle (soft delete) filter unless told not
to, and every read goes through the ownership filter built by the policy.
"""

from datetime import datetime
from math import ceil
from typing import Optional, List, Dict, Any, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from placement_portal.core.errors import NotFoundError
from placement_portal.core.policy import AuthorizationContext, scoped_query, visibility_filter
from placement_portal.db.mongodb import get_mongo_db, COLLECTIONS
from placement_portal.utils.timeutils import utcnow


# ============================================================
# HELPER: Convert ObjectId to string for JSON serialization
# ============================================================

def serialize_doc(doc: Any) -> Any:
    """Convert MongoDB document (recursively) to a JSON-serializable value."""
    if doc is None:
        return None
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, dict):
        return {k: serialize_doc(v) for k, v in doc.items() if k != "password_hash"}
    if isinstance(doc, (list, tuple)):
        return [serialize_doc(v) for v in doc]
    return doc


def serialize_docs(docs: list) -> list:
    """Convert list of MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc) for doc in docs]


def to_object_id(value: Any, label: str = "Resource") -> ObjectId:
    """Parse an id from the API; malformed ids are reported as not found."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def new_lifecycle() -> Dict[str, Any]:
    return {"is_deleted": False, "deleted_at": None, "deleted_by": None}


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": ceil(total / limit) if limit else 0}


# ============================================================
# BASE REPOSITORY
# ============================================================

class BaseRepository:
    """
    Thin wrapper around one collection.

    Methods taking a `ctx` apply ownership scoping and soft-delete
    visibility for that context; the unscoped variants are for internal
    bookkeeping (stats, cascades) that runs after authorization.
    """

    collection_key: str = ""
    label: str = "Resource"
    soft_delete: bool = True

    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_mongo_db()
        self.collection: Collection = self.db[COLLECTIONS[self.collection_key]]

    # ---------- scoped reads ----------

    def query_for(self, ctx: Optional[AuthorizationContext], query: Optional[dict] = None) -> dict:
        if ctx is None:
            base = dict(query or {})
            if self.soft_delete:
                base.update(visibility_filter())
            return base
        return scoped_query(ctx, self.collection_key, query, soft_delete=self.soft_delete)

    def get(self, ctx: Optional[AuthorizationContext], doc_id: Any, query: Optional[dict] = None) -> dict:
        """Fetch one record in scope or raise NotFound (never Forbidden)."""
        oid = to_object_id(doc_id, self.label)
        doc = self.collection.find_one(self.query_for(ctx, {"_id": oid, **(query or {})}))
        if doc is None:
            raise NotFoundError(f"{self.label} not found")
        return doc

    def find_one(self, ctx: Optional[AuthorizationContext], query: dict, **kwargs) -> Optional[dict]:
        return self.collection.find_one(self.query_for(ctx, query), **kwargs)

    def list(self, ctx: Optional[AuthorizationContext], query: Optional[dict] = None, page: int = 1,
             limit: int = 10, sort: Optional[List[Tuple[str, int]]] = None,
             projection: Optional[dict] = None) -> Tuple[List[dict], Dict[str, int]]:
        full_query = self.query_for(ctx, query)
        total = self.collection.count_documents(full_query)
        cursor = self.collection.find(full_query, projection)
        cursor = cursor.sort(sort or [("created_at", DESCENDING)])
        docs = list(cursor.skip((page - 1) * limit).limit(limit))
        return docs, pagination(page, limit, total)

    def count(self, ctx: Optional[AuthorizationContext], query: Optional[dict] = None) -> int:
        return self.collection.count_documents(self.query_for(ctx, query))

    # ---------- writes ----------

    def insert(self, doc: dict) -> dict:
        now = utcnow()
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        if self.soft_delete:
            doc.setdefault("lifecycle", new_lifecycle())
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def update_by_id(self, doc_id: ObjectId, update: dict, query: Optional[dict] = None,
                     return_before: bool = False) -> Optional[dict]:
        """
        Atomic single-document update.

        `query` adds compare-and-set guards; returns None when the guard did
        not match.
        """
        update = dict(update)
        update.setdefault("$set", {})
        update["$set"] = {**update["$set"], "updated_at": utcnow()}
        return self.collection.find_one_and_update(
            {"_id": doc_id, **(query or {})},
            update,
            return_document=ReturnDocument.BEFORE if return_before else ReturnDocument.AFTER,
        )

    def soft_delete_by_id(self, doc_id: ObjectId, actor_id: ObjectId, extra: Optional[dict] = None) -> Optional[dict]:
        """Mark deleted; returns the pre-image, or None if already deleted."""
        return self.update_by_id(
            doc_id,
            {"$set": {
                "lifecycle.is_deleted": True,
                "lifecycle.deleted_at": utcnow(),
                "lifecycle.deleted_by": actor_id,
                **(extra or {}),
            }},
            query={"lifecycle.is_deleted": {"$ne": True}},
            return_before=True,
        )


# ============================================================
# USERS
# ============================================================

class UserRepository(BaseRepository):
    collection_key = "users"
    label = "User"
    soft_delete = False

    def by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email.lower()})


# ============================================================
# COLLEGES
# ============================================================

class CollegeRepository(BaseRepository):
    collection_key = "colleges"
    label = "College"

    def by_code(self, code: str) -> Optional[dict]:
        return self.collection.find_one({"code": code.upper(), **visibility_filter()})


# ============================================================
# COMPANIES
# ============================================================

class CompanyRepository(BaseRepository):
    collection_key = "companies"
    label = "Company"

    def has_approved_access(self, company_id: ObjectId, college_id: ObjectId) -> bool:
        return self.collection.count_documents({
            "_id": company_id,
            "college_access": {"$elemMatch": {"college": college_id, "status": "approved"}},
        }) > 0


# ============================================================
# STUDENTS
# ============================================================

class StudentRepository(BaseRepository):
    collection_key = "students"
    label = "Student"


# ============================================================
# JOBS
# ============================================================

class JobRepository(BaseRepository):
    collection_key = "jobs"
    label = "Job"


# ============================================================
# APPLICATIONS
# ============================================================

class ApplicationRepository(BaseRepository):
    """Applications are never deleted; history is append-only."""
    collection_key = "applications"
    label = "Application"
    soft_delete = False

    def applied_job_ids(self, student_id: ObjectId, job_ids: List[ObjectId]) -> set:
        if not job_ids:
            return set()
        return set(self.collection.distinct("job", {"student": student_id, "job": {"$in": job_ids}}))


# ============================================================
# NOTIFICATIONS
# ============================================================

class NotificationRepository(BaseRepository):
    collection_key = "notifications"
    label = "Notification"
    soft_delete = False

    def mark_read(self, recipient: ObjectId, notification_id: Any) -> dict:
        oid = to_object_id(notification_id, self.label)
        doc = self.collection.find_one_and_update(
            {"_id": oid, "recipient": recipient},
            {"$set": {"is_read": True, "read_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError("Notification not found")
        return doc


# ============================================================
# ACTIVITY LOGS
# ============================================================

class ActivityLogRepository(BaseRepository):
    collection_key = "activity_logs"
    label = "Activity log"
    soft_delete = False

    def search(self, user: Optional[ObjectId] = None, action: Optional[str] = None,
               target_model: Optional[str] = None, target_ids: Optional[List[ObjectId]] = None,
               start: Optional[datetime] = None, end: Optional[datetime] = None,
               page: int = 1, limit: int = 50) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if user:
            query["user"] = user
        if action:
            query["action"] = action
        if target_model:
            query["target_model"] = target_model
        if target_ids is not None:
            query["target_id"] = {"$in": target_ids}
        if start or end:
            query["created_at"] = {}
            if start:
                query["created_at"]["$gte"] = start
            if end:
                query["created_at"]["$lte"] = end
        return self.list(None, query, page=page, limit=limit)
