"""
Company Service - profile, college access, student search and resume
downloads for companies and placement agencies.

Student data visibility follows the platform data-visibility settings:
whether companies/agencies may search at all, and which fields
(contact info, resume) they get. Agencies only see students of colleges
that approved their access.
"""

import logging
import re
from datetime import timedelta
from typing import Optional, List, Dict, Any, Tuple

from bson import ObjectId

from placement_portal.core.errors import AuthorizationError, ConflictError, NotFoundError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.mongo_service import (
    ApplicationRepository, CollegeRepository, CompanyRepository, StudentRepository, to_object_id
)
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 50
DEFAULT_MONTHLY_LIMIT = 500
DAILY_WINDOW = timedelta(hours=24)
MONTHLY_WINDOW = timedelta(days=30)

# Never shown to companies
_INTERNAL_STUDENT_FIELDS = {
    "user": 0, "added_by": 0, "verified_by": 0, "rejected_by": 0, "rejected_at": 0,
    "rejection_reason": 0, "lifecycle": 0,
}


def new_download_tracking(now) -> dict:
    return {
        "daily_limit": DEFAULT_DAILY_LIMIT,
        "monthly_limit": DEFAULT_MONTHLY_LIMIT,
        "daily_count": 0,
        "monthly_count": 0,
        "last_daily_reset": now,
        "last_monthly_reset": now,
        "total_downloads": 0,
    }


class CompanyService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.companies = CompanyRepository(self.db)
        self.colleges = CollegeRepository(self.db)
        self.students = StudentRepository(self.db)
        self.applications = ApplicationRepository(self.db)

    def _company(self, ctx: AuthorizationContext) -> dict:
        company = self.companies.find_one(None, {"_id": ctx.actor.company_profile})
        if company is None:
            raise NotFoundError("Company profile not found")
        return company

    # ============================================================
    # PROFILE / DASHBOARD
    # ============================================================

    def profile(self, ctx: AuthorizationContext) -> dict:
        return self._company(ctx)

    def update_profile(self, ctx: AuthorizationContext, changes: Dict[str, Any]) -> dict:
        company = self._company(ctx)
        updates = {k: v for k, v in changes.items() if v is not None}
        if "contact_person" in updates:
            updates["contact_person.name"] = updates.pop("contact_person")
        if not updates:
            return company
        updated = self.companies.update_by_id(company["_id"], {"$set": updates})
        self.activity.log(ctx.actor.id, "update_company_profile", "Company", company["_id"],
                          {"fields": sorted(updates)})
        return updated

    def dashboard(self, ctx: AuthorizationContext) -> dict:
        company = self._company(ctx)
        by_status = {
            row["_id"]: row["count"]
            for row in self.applications.collection.aggregate([
                {"$match": {"company": company["_id"]}},
                {"$group": {"_id": "$status", "count": {"$sum": 1}}},
            ])
        }
        return {
            "company": {"id": company["_id"], "name": company.get("name"), "type": company.get("type")},
            "stats": company.get("stats") or {},
            "applications_by_status": by_status,
            "downloads": self.download_status(ctx),
        }

    # ============================================================
    # COLLEGE ACCESS
    # ============================================================

    def request_access(self, ctx: AuthorizationContext, college_id: Any) -> dict:
        """Ask a college for access; a rejected request may be sent again."""
        company = self._company(ctx)
        college = self.colleges.get(None, college_id)
        now = utcnow()
        entry = {"college": college["_id"], "status": "pending", "requested_at": now,
                 "responded_at": None, "responded_by": None}

        access = company.get("college_access") or []
        existing = next((a for a in access if a.get("college") == college["_id"]), None)
        if existing is not None and existing.get("status") != "rejected":
            raise ConflictError(f"Request already exists with status: {existing.get('status')}",
                                field="college_access")

        if existing is None:
            updated = self.companies.update_by_id(
                company["_id"], {"$push": {"college_access": entry}},
                query={"college_access.college": {"$ne": college["_id"]}},
            )
        else:
            changed = [entry if a.get("college") == college["_id"] else a for a in access]
            updated = self.companies.update_by_id(
                company["_id"], {"$set": {"college_access": changed}}, query={"college_access": access}
            )
        if updated is None:
            raise ConflictError("Access request changed concurrently. Reload and try again.",
                                field="college_access")

        logger.info("Company %s requested access to college %s", company["_id"], college["_id"])
        self.activity.log(ctx.actor.id, "request_college_access", "College", college["_id"])
        return {"college_id": college["_id"], "status": "pending"}

    def list_access(self, ctx: AuthorizationContext) -> List[dict]:
        company = self._company(ctx)
        access = company.get("college_access") or []
        names = {c["_id"]: c for c in self.colleges.collection.find(
            {"_id": {"$in": [a["college"] for a in access]}}, {"name": 1, "code": 1}
        )}
        return [{**a, "college_info": names.get(a["college"])} for a in access]

    def list_colleges(self, ctx: AuthorizationContext, page: int = 1, limit: int = 20) -> Tuple[List[dict], Dict[str, int]]:
        """Verified, active colleges a company can request access to."""
        return self.colleges.list(
            None, {"is_verified": True, "is_active": {"$ne": False}}, page, limit,
            sort=[("name", 1)], projection={"name": 1, "code": 1, "address": 1, "departments": 1},
        )

    # ============================================================
    # STUDENT SEARCH
    # ============================================================

    def _check_visibility(self, company: dict) -> None:
        policy = self.platform.data_visibility
        if company.get("type") == "placement_agency":
            if not policy.student_data_visible_to_agencies:
                raise AuthorizationError("Student data is currently not visible to placement agencies")
        elif not policy.student_data_visible_to_companies:
            raise AuthorizationError("Student data is currently not visible to companies")

    def _projection(self) -> Dict[str, int]:
        fields = self.platform.data_visibility.visible_fields
        projection = dict(_INTERNAL_STUDENT_FIELDS)
        if not fields.contact_info:
            projection.update({"email": 0, "phone": 0})
        if not fields.resume:
            projection["resume_url"] = 0
        return projection

    def _visible_colleges(self, company: dict) -> List:
        approved = [a["college"] for a in company.get("college_access") or [] if a.get("status") == "approved"]
        if company.get("type") == "placement_agency":
            return approved
        return self.colleges.collection.distinct(
            "_id", {"is_verified": True, "is_active": {"$ne": False}, "lifecycle.is_deleted": {"$ne": True}}
        )

    def _student_scope(self, company: dict) -> Dict[str, Any]:
        return {
            "is_verified": True,
            "is_rejected": {"$ne": True},
            "college": {"$in": self._visible_colleges(company)},
        }

    def search_students(self, ctx: AuthorizationContext, college_id: Optional[Any] = None,
                        department: Optional[str] = None, batch: Optional[int] = None,
                        min_cgpa: Optional[float] = None, max_backlogs: Optional[int] = None,
                        skills: Optional[List[str]] = None, placement_status: Optional[str] = None,
                        star_only: bool = False, search: Optional[str] = None,
                        page: int = 1, limit: int = 12) -> Tuple[List[dict], Dict[str, int]]:
        company = self._company(ctx)
        self._check_visibility(company)

        clauses: List[Dict[str, Any]] = [self._student_scope(company)]
        if college_id:
            clauses.append({"college": to_object_id(college_id, "College")})
        if department:
            clauses.append({"department": {"$in": department.split(",")}})
        if batch:
            clauses.append({"batch": batch})
        if min_cgpa is not None:
            clauses.append({"cgpa": {"$gte": min_cgpa}})
        if max_backlogs is not None:
            clauses.append({"$or": [
                {"backlogs.active": {"$lte": max_backlogs}},
                {"backlogs.active": None},
            ]})
        if skills:
            clauses.append({"skills": {"$in": [re.compile(re.escape(s.strip()), re.IGNORECASE) for s in skills]}})
        if placement_status:
            clauses.append({"placement_status": placement_status})
        if star_only:
            clauses.append({"is_star_student": True})
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            clauses.append({"$or": [
                {"name.first_name": pattern}, {"name.last_name": pattern},
                {"department": pattern}, {"skills": pattern},
            ]})

        return self.students.list(ctx, {"$and": clauses}, page, limit,
                                  sort=[("cgpa", -1)], projection=self._projection())

    def view_student(self, ctx: AuthorizationContext, student_id: Any) -> dict:
        company = self._company(ctx)
        self._check_visibility(company)
        return self._visible_student(ctx, company, student_id)

    def visible_student_id(self, ctx: AuthorizationContext, student_id: Any) -> ObjectId:
        """Id of a student the current company may see; NotFoundError otherwise."""
        company = self._company(ctx)
        self._check_visibility(company)
        return self._visible_student(ctx, company, student_id)["_id"]

    def _visible_student(self, ctx: AuthorizationContext, company: dict, student_id: Any) -> dict:
        oid = to_object_id(student_id, "Student")
        student = self.students.find_one(ctx, {"_id": oid, **self._student_scope(company)},
                                         projection=self._projection())
        if student is None:
            raise NotFoundError("Student not found")
        return student

    # ============================================================
    # DOWNLOADS
    # ============================================================

    def _tracking(self, company: dict) -> dict:
        """Current download tracking with rolling resets applied."""
        now = utcnow()
        tracking = company.get("download_tracking")
        if not tracking:
            self.companies.collection.update_one(
                {"_id": company["_id"], "download_tracking": None},
                {"$set": {"download_tracking": new_download_tracking(now)}},
            )
            return self.companies.collection.find_one({"_id": company["_id"]})["download_tracking"]

        # each reset is guarded on the timestamp it replaces, so racing requests reset once
        if now - tracking["last_daily_reset"] >= DAILY_WINDOW:
            self.companies.collection.update_one(
                {"_id": company["_id"], "download_tracking.last_daily_reset": tracking["last_daily_reset"]},
                {"$set": {"download_tracking.daily_count": 0, "download_tracking.last_daily_reset": now}},
            )
        if now - tracking["last_monthly_reset"] >= MONTHLY_WINDOW:
            self.companies.collection.update_one(
                {"_id": company["_id"], "download_tracking.last_monthly_reset": tracking["last_monthly_reset"]},
                {"$set": {"download_tracking.monthly_count": 0, "download_tracking.last_monthly_reset": now}},
            )
        return self.companies.collection.find_one({"_id": company["_id"]})["download_tracking"]

    def _daily_limit(self, tracking: dict) -> int:
        return min(tracking["daily_limit"], self.platform.data_visibility.max_downloads_per_day)

    def _limits(self, tracking: dict) -> dict:
        daily_limit = self._daily_limit(tracking)
        return {
            "daily_limit": daily_limit,
            "daily_count": tracking["daily_count"],
            "daily_remaining": max(daily_limit - tracking["daily_count"], 0),
            "monthly_limit": tracking["monthly_limit"],
            "monthly_count": tracking["monthly_count"],
            "monthly_remaining": max(tracking["monthly_limit"] - tracking["monthly_count"], 0),
            "total_downloads": tracking.get("total_downloads", 0),
            "can_download": tracking["daily_count"] < daily_limit
                            and tracking["monthly_count"] < tracking["monthly_limit"],
        }

    def download_status(self, ctx: AuthorizationContext) -> dict:
        return self._limits(self._tracking(self._company(ctx)))

    def record_download(self, ctx: AuthorizationContext, student_id: Any, download_type: str = "resume") -> dict:
        """Count one student-data download against the daily and monthly limits."""
        company = self._company(ctx)
        self._check_visibility(company)
        student = self._visible_student(ctx, company, student_id)
        if download_type == "resume" and not self.platform.data_visibility.visible_fields.resume:
            raise AuthorizationError("Resumes are currently not visible to companies")

        tracking = self._tracking(company)
        updated = self.companies.update_by_id(
            company["_id"],
            {"$inc": {
                "download_tracking.daily_count": 1,
                "download_tracking.monthly_count": 1,
                "download_tracking.total_downloads": 1,
            }},
            query={
                "download_tracking.daily_count": {"$lt": self._daily_limit(tracking)},
                "download_tracking.monthly_count": {"$lt": tracking["monthly_limit"]},
            },
        )
        if updated is None:
            raise AuthorizationError("Download limit reached. Daily or monthly limit exceeded.")

        self.activity.log(ctx.actor.id, "download_student_data", "Student", student["_id"],
                          {"company": company["_id"], "download_type": download_type})
        return {
            "student_id": student["_id"],
            "resume_url": student.get("resume_url"),
            "limits": self._limits(updated["download_tracking"]),
        }
