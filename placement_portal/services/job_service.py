"""
Job Service - postings owned by a company, optionally scoped to one college
as a placement drive.

Status changes are compare-and-set on the status that was read, so moving
an open job to any non-open status emits exactly one JobClosed (and one
`active_jobs` decrement) no matter how many requests race.
"""

import logging
import re
from typing import Optional, List, Dict, Any, Tuple

from placement_portal.core.errors import AuthorizationError, ConflictError, NotFoundError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.events import Outcome, JobPosted, JobOpened, JobClosed
from placement_portal.services.mongo_service import (
    CollegeRepository, CompanyRepository, JobRepository, to_object_id
)
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ("closed", "filled", "cancelled")


class JobService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.jobs = JobRepository(self.db)
        self.companies = CompanyRepository(self.db)
        self.colleges = CollegeRepository(self.db)

    # ---------- helpers ----------

    def _company(self, ctx: AuthorizationContext) -> dict:
        company = self.companies.find_one(None, {"_id": ctx.actor.company_profile})
        if company is None:
            raise NotFoundError("Company profile not found")
        return company

    def _check_posting_allowed(self, company: dict) -> None:
        if company.get("is_suspended"):
            raise AuthorizationError("Company account is suspended")
        policy = self.platform.job_posting
        if company.get("type") == "placement_agency" and not policy.allow_agencies:
            raise AuthorizationError("Job posting by placement agencies is currently disabled")
        if company.get("type") != "placement_agency" and not policy.allow_companies:
            raise AuthorizationError("Job posting by companies is currently disabled")

    def _drive_college(self, company: dict, college_id: Any):
        """Resolve the college of a placement drive; requires approved access."""
        college = self.colleges.find_one(None, {"_id": to_object_id(college_id, "College")})
        if college is None:
            raise NotFoundError("College not found")
        if not self.companies.has_approved_access(company["_id"], college["_id"]):
            raise AuthorizationError("You do not have approved access to create placement drives for this college")
        return college["_id"]

    # ---------- create ----------

    def create(self, ctx: AuthorizationContext, data: Dict[str, Any]) -> Outcome:
        company = self._company(ctx)
        self._check_posting_allowed(company)

        data = dict(data)
        college_id = data.pop("college_id", None)
        college = self._drive_college(company, college_id) if college_id else None

        now = utcnow()
        doc = {
            **data,
            "company": company["_id"],
            "college": college,
            "is_placement_drive": college is not None,
            "published_at": now if data.get("status") == "open" else None,
            "closed_at": None,
            "stats": {"total_applications": 0, "shortlisted": 0, "hired": 0},
            "created_by": ctx.actor.id,
        }
        self.jobs.insert(doc)

        logger.info("Job %s posted by company %s", doc["_id"], company["_id"])
        self.activity.log(ctx.actor.id, "create_job", "Job", doc["_id"], {"title": doc.get("title")})
        return self._commit(Outcome(doc, [JobPosted(doc["_id"], company["_id"], doc["status"] == "open")]))

    # ---------- reads ----------

    def list_own(self, ctx: AuthorizationContext, status: Optional[str] = None, job_type: Optional[str] = None,
                 page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if job_type:
            query["type"] = job_type
        return self.jobs.list(ctx, query, page, limit)

    def get(self, ctx: AuthorizationContext, job_id: Any) -> dict:
        job = self.jobs.get(ctx, job_id)
        company = self.companies.collection.find_one(
            {"_id": job["company"]}, {"name": 1, "type": 1, "industry": 1, "logo": 1}
        )
        job["company_info"] = company
        return job

    def public_jobs(self, job_type: Optional[str] = None, department: Optional[str] = None,
                    batch: Optional[str] = None, search: Optional[str] = None,
                    page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {"status": "open", "application_deadline": {"$gte": utcnow()}}
        if job_type:
            query["type"] = job_type
        if department:
            query["eligibility.allowed_departments"] = {"$in": department.split(",")}
        if batch:
            query["eligibility.allowed_batches"] = {"$in": [int(b) for b in batch.split(",") if b.strip().isdigit()]}
        if search:
            query["title"] = {"$regex": re.escape(search), "$options": "i"}
        return self.jobs.list(None, query, page, limit, sort=[("published_at", -1)],
                              projection={"created_by": 0})

    # ---------- updates ----------

    def update(self, ctx: AuthorizationContext, job_id: Any, changes: Dict[str, Any]) -> Outcome:
        """
        `changes` holds only the fields the caller sent. A `college_id` of
        None or "" detaches the placement drive.
        """
        job = self.jobs.get(ctx, job_id)
        changes = dict(changes)
        updates: Dict[str, Any] = {}

        if "college_id" in changes:
            college_id = changes.pop("college_id")
            if college_id:
                updates["college"] = self._drive_college(self._company(ctx), college_id)
                updates["is_placement_drive"] = True
            else:
                updates["college"] = None
                updates["is_placement_drive"] = False

        updates.update({k: v for k, v in changes.items() if v is not None})
        new_status = updates.get("status", job["status"])
        if new_status == "open" and not job.get("published_at"):
            updates["published_at"] = utcnow()
        if new_status in CLOSED_STATUSES and job["status"] not in CLOSED_STATUSES:
            updates["closed_at"] = utcnow()

        updated = self._write_guarded(job, updates)
        events = self._status_events(job, updated)
        self.activity.log(ctx.actor.id, "update_job", "Job", job["_id"], {"fields": sorted(updates)})
        return self._commit(Outcome(updated, events))

    def close(self, ctx: AuthorizationContext, job_id: Any, status: str = "closed") -> Outcome:
        job = self.jobs.get(ctx, job_id)
        if job["status"] in CLOSED_STATUSES:
            raise ConflictError(f"Job is already {job['status']}", field="status")

        updated = self._write_guarded(job, {"status": status, "closed_at": utcnow()})
        self.activity.log(ctx.actor.id, "close_job", "Job", job["_id"], {"status": status})
        return self._commit(Outcome(updated, self._status_events(job, updated)))

    def delete(self, ctx: AuthorizationContext, job_id: Any) -> Outcome:
        """Soft delete; the job is forced to `cancelled`."""
        job = self.jobs.get(ctx, job_id)
        before = self.jobs.soft_delete_by_id(
            job["_id"], ctx.actor.id, extra={"status": "cancelled", "closed_at": utcnow()}
        )
        if before is None:
            raise NotFoundError("Job not found")

        events = []
        if before.get("status") == "open":
            events.append(JobClosed(job["_id"], job["company"], "cancelled"))
        self.activity.log(ctx.actor.id, "delete_job", "Job", job["_id"])
        return self._commit(Outcome({**before, "status": "cancelled"}, events))

    # ---------- internals ----------

    def _write_guarded(self, job: dict, updates: Dict[str, Any]) -> dict:
        updated = self.jobs.update_by_id(
            job["_id"], {"$set": updates},
            query={"status": job["status"], "lifecycle.is_deleted": {"$ne": True}},
        )
        if updated is None:
            raise ConflictError("Job was updated by another request. Reload and try again.", field="status")
        return updated

    @staticmethod
    def _status_events(before: dict, after: dict) -> list:
        was_open = before["status"] == "open"
        is_open = after["status"] == "open"
        if was_open and not is_open:
            return [JobClosed(after["_id"], after["company"], after["status"])]
        if is_open and not was_open:
            return [JobOpened(after["_id"], after["company"])]
        return []
