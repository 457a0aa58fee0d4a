"""
Student Service - a student's own view: profile, eligible jobs, job detail
with an eligibility verdict, and notifications. Applying, withdrawing and
answering offers live in ApplicationService.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

from placement_portal.core.errors import NotFoundError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.eligibility import can_apply, eligible_jobs_filter
from placement_portal.services.mongo_service import (
    ApplicationRepository, CompanyRepository, JobRepository, NotificationRepository, StudentRepository
)
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class StudentService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.students = StudentRepository(self.db)
        self.jobs = JobRepository(self.db)
        self.companies = CompanyRepository(self.db)
        self.applications = ApplicationRepository(self.db)
        self.notifications = NotificationRepository(self.db)

    def profile(self, ctx: AuthorizationContext) -> dict:
        if ctx.actor.student_profile is None:
            raise NotFoundError("Student profile not found")
        return self.students.get(ctx, ctx.actor.student_profile)

    def update_profile(self, ctx: AuthorizationContext, changes: Dict[str, Any]) -> dict:
        """Only self-editable fields arrive here; academic records belong to the college."""
        student = self.profile(ctx)
        updates = {k: v for k, v in changes.items() if v is not None}
        if not updates:
            return student
        updated = self.students.update_by_id(student["_id"], {"$set": updates},
                                             query={"lifecycle.is_deleted": {"$ne": True}})
        if updated is None:
            raise NotFoundError("Student profile not found")
        self.activity.log(ctx.actor.id, "update_student_profile", "Student", student["_id"],
                          {"fields": sorted(updates)})
        return updated

    def dashboard(self, ctx: AuthorizationContext) -> dict:
        student = self.profile(ctx)
        by_status = {
            row["_id"]: row["count"]
            for row in self.applications.collection.aggregate([
                {"$match": {"student": student["_id"]}},
                {"$group": {"_id": "$status", "count": {"$sum": 1}}},
            ])
        }
        return {
            "placement_status": student.get("placement_status"),
            "placement_details": student.get("placement_details"),
            "is_verified": student.get("is_verified", False),
            "applications_by_status": by_status,
            "eligible_jobs": self.jobs.collection.count_documents(eligible_jobs_filter(student)),
            "unread_notifications": self.notifications.collection.count_documents(
                {"recipient": ctx.actor.id, "is_read": False}
            ),
        }

    # ============================================================
    # JOBS
    # ============================================================

    def eligible_jobs(self, ctx: AuthorizationContext, job_type: Optional[str] = None,
                      page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        """Jobs the student may apply to, flagged with `has_applied` rather than hidden."""
        student = self.profile(ctx)
        query = eligible_jobs_filter(student, utcnow())
        if job_type:
            query = {"$and": [query, {"type": job_type}]}

        jobs, pager = self.jobs.list(ctx, query, page, limit, sort=[("application_deadline", 1)],
                                     projection={"created_by": 0})
        applied = self.applications.applied_job_ids(student["_id"], [j["_id"] for j in jobs])
        names = {c["_id"]: c for c in self.companies.collection.find(
            {"_id": {"$in": list({j["company"] for j in jobs})}}, {"name": 1, "logo": 1, "industry": 1}
        )}
        for job in jobs:
            job["has_applied"] = job["_id"] in applied
            job["company_info"] = names.get(job["company"])
        return jobs, pager

    def job_detail(self, ctx: AuthorizationContext, job_id: Any) -> dict:
        student = self.profile(ctx)
        job = self.jobs.get(ctx, job_id)
        application = self.applications.find_one(None, {"student": student["_id"], "job": job["_id"]},
                                                 projection={"status": 1, "applied_at": 1})
        verdict = can_apply(student, job, has_applied=application is not None)
        job["company_info"] = self.companies.collection.find_one(
            {"_id": job["company"]}, {"name": 1, "logo": 1, "industry": 1, "website": 1}
        )
        job["eligibility_check"] = {
            "eligible": verdict.allowed,
            "reason": verdict.reason.value if verdict.reason else None,
            "message": verdict.message,
        }
        job["application"] = application
        return job

    # ============================================================
    # NOTIFICATIONS
    # ============================================================

    def notifications_for(self, ctx: AuthorizationContext, unread_only: bool = False,
                          page: int = 1, limit: int = 20) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {"recipient": ctx.actor.id}
        if unread_only:
            query["is_read"] = False
        return self.notifications.list(None, query, page, limit)

    def mark_read(self, ctx: AuthorizationContext, notification_id: Any) -> dict:
        return self.notifications.mark_read(ctx.actor.id, notification_id)

    def mark_all_read(self, ctx: AuthorizationContext) -> int:
        result = self.notifications.collection.update_many(
            {"recipient": ctx.actor.id, "is_read": False},
            {"$set": {"is_read": True, "read_at": utcnow()}},
        )
        return result.modified_count
