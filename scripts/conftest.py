"""
Shared fixtures.

Every test gets a fresh mongomock database swapped in for the module-level
handle in placement_portal.db.mongodb, with the real indexes created on it,
so services, repositories and the FastAPI app all talk to the same store.
"""

from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from placement_portal.core.auth import create_access_token
from placement_portal.core.policy import Actor, AuthorizationContext
from placement_portal.db import mongodb
from placement_portal.services.college_service import new_student_doc
from placement_portal.services.events import StatsProjector, StudentAdded
from placement_portal.services.job_service import JobService
from placement_portal.services.mongo_service import (
    CollegeRepository, CompanyRepository, StudentRepository, UserRepository
)
from placement_portal.services.settings_service import PlatformSettings
from placement_portal.utils.timeutils import utcnow


@pytest.fixture
def db(monkeypatch):
    client = mongomock.MongoClient()
    database = client["placement_portal_test"]
    monkeypatch.setattr(mongodb, "_client", client)
    monkeypatch.setattr(mongodb, "_db", database)
    mongodb.init_mongo_indexes(database)
    return database


@pytest.fixture
def platform():
    return PlatformSettings()


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def client(db):
    from placement_portal.main import app
    with TestClient(app) as test_client:
        yield test_client


def ctx_for(actor: Actor, include_deleted: bool = False) -> AuthorizationContext:
    return AuthorizationContext(actor=actor, include_deleted=include_deleted)


def auth_header(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(actor.id)})}"}


class Seed:
    """Builds tenants, students and jobs directly in the test database."""

    def __init__(self, db):
        self.db = db
        self.users = UserRepository(db)
        self.colleges = CollegeRepository(db)
        self.companies = CompanyRepository(db)
        self.students = StudentRepository(db)
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: str, approved: bool = True, active: bool = True, **profiles) -> Actor:
        n = self._next()
        doc = {
            "email": f"{role}{n}@example.com",
            "password_hash": "not-a-real-hash",
            "role": role,
            "is_approved": approved,
            "is_active": active,
            "college_profile": profiles.get("college_profile"),
            "company_profile": profiles.get("company_profile"),
            "student_profile": profiles.get("student_profile"),
        }
        self.users.insert(doc)
        return Actor.from_user(doc)

    def super_admin(self) -> Actor:
        return self.user("super_admin")

    def college(self, verified: bool = True, departments=("CSE", "ECE")):
        n = self._next()
        doc = {
            "name": f"College {n}",
            "code": f"COL{n}",
            "departments": list(departments),
            "admin": None,
            "is_verified": verified,
            "is_rejected": False,
            "is_active": True,
            "stats": {"total_students": 0, "verified_students": 0, "placed_students": 0},
            "settings": {"allow_student_self_signup": True},
        }
        self.colleges.insert(doc)
        admin = self.user("college_admin", approved=verified, college_profile=doc["_id"])
        self.colleges.collection.update_one({"_id": doc["_id"]}, {"$set": {"admin": admin.id}})
        return doc, admin

    def company(self, company_type: str = "company", approved: bool = True, suspended: bool = False):
        n = self._next()
        doc = {
            "name": f"Company {n}",
            "type": company_type,
            "industry": "Software",
            "user": None,
            "is_approved": approved,
            "is_rejected": False,
            "is_active": True,
            "is_suspended": suspended,
            "college_access": [],
            "download_tracking": None,
            "stats": {"total_jobs_posted": 0, "active_jobs": 0, "total_hires": 0},
        }
        self.companies.insert(doc)
        actor = self.user("company", approved=approved, company_profile=doc["_id"])
        self.companies.collection.update_one({"_id": doc["_id"]}, {"$set": {"user": actor.id}})
        return doc, actor

    def grant_access(self, company: dict, college: dict, status: str = "approved") -> None:
        self.companies.collection.update_one(
            {"_id": company["_id"]},
            {"$push": {"college_access": {
                "college": college["_id"], "status": status, "requested_at": utcnow(),
                "responded_at": utcnow(), "responded_by": None,
            }}},
        )

    def student(self, college: dict, verified: bool = True, department: str = "CSE", batch: int = 2025,
                cgpa=8.0, active_backlogs: int = 0, with_user: bool = True):
        n = self._next()
        doc = new_student_doc(
            {
                "first_name": "Student", "last_name": str(n), "email": f"student{n}@example.com",
                "phone": "9999999999", "department": department, "batch": batch,
                "roll_number": f"R{n:04d}", "cgpa": cgpa, "backlogs": {"active": active_backlogs, "history": 0},
                "skills": ["python"], "resume_url": f"https://files.example.com/resume{n}.pdf",
            },
            college["_id"], None, "manual", verified,
        )
        self.students.insert(doc)
        StatsProjector(self.db).apply([StudentAdded(doc["_id"], college["_id"], is_verified=verified)])

        actor = None
        if with_user:
            actor = self.user("student", approved=verified, student_profile=doc["_id"])
            self.students.collection.update_one({"_id": doc["_id"]}, {"$set": {"user": actor.id}})
            doc["user"] = actor.id
        return doc, actor

    def job(self, company_actor: Actor, departments=("CSE",), batches=(2025,), min_cgpa: float = 6.0,
            max_backlogs=None, deadline_days: int = 30, college_id=None, status: str = "open") -> dict:
        data = {
            "title": f"Engineer {self._next()}",
            "description": "Build things",
            "type": "full_time",
            "locations": ["Remote"],
            "salary": None,
            "eligibility": {
                "min_cgpa": min_cgpa,
                "max_backlogs": max_backlogs,
                "allowed_departments": list(departments),
                "allowed_batches": list(batches),
            },
            "application_deadline": utcnow() + timedelta(days=deadline_days),
            "status": status,
        }
        if college_id is not None:
            data["college_id"] = str(college_id)
        return JobService(self.db).create(ctx_for(company_actor), data).doc
