"""
Super Admin Service - platform governance.

Approving or rejecting a college/company clears the opposite state and
mirrors the decision onto the owning user's `is_approved`. Deleting a
college or company is a soft delete that also deactivates the owner.
"""

import logging
import re
from typing import Optional, List, Dict, Any, Tuple

from bson import ObjectId

from placement_portal.core.errors import ConflictError, NotFoundError, ValidationError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.events import Outcome, JobClosed
from placement_portal.services.mongo_service import (
    ActivityLogRepository, CollegeRepository, CompanyRepository, JobRepository, StudentRepository,
    UserRepository, to_object_id
)
from placement_portal.services.stats_service import StatsReconciler
from placement_portal.utils.timeutils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)


class AdminService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.users = UserRepository(self.db)
        self.colleges = CollegeRepository(self.db)
        self.companies = CompanyRepository(self.db)
        self.students = StudentRepository(self.db)
        self.jobs = JobRepository(self.db)
        self.logs = ActivityLogRepository(self.db)

    # ============================================================
    # DASHBOARD
    # ============================================================

    def dashboard(self, ctx: AuthorizationContext) -> dict:
        not_deleted = {"lifecycle.is_deleted": {"$ne": True}}
        colleges = self.colleges.collection
        companies = self.companies.collection
        students = self.students.collection
        jobs = self.jobs.collection

        return {
            "stats": {
                "users": self.users.collection.count_documents({}),
                "colleges": {
                    "total": colleges.count_documents(not_deleted),
                    "pending": colleges.count_documents(
                        {**not_deleted, "is_verified": {"$ne": True}, "is_rejected": {"$ne": True}}),
                },
                "companies": {
                    "total": companies.count_documents(not_deleted),
                    "pending": companies.count_documents(
                        {**not_deleted, "is_approved": {"$ne": True}, "is_rejected": {"$ne": True}}),
                },
                "students": {
                    "total": students.count_documents(not_deleted),
                    "placed": students.count_documents({**not_deleted, "placement_status": "placed"}),
                },
                "jobs": {
                    "total": jobs.count_documents(not_deleted),
                    "active": jobs.count_documents({**not_deleted, "status": "open"}),
                },
            },
            "recent": {
                "colleges": list(colleges.find(not_deleted, {"name": 1, "code": 1, "is_verified": 1, "created_at": 1})
                                 .sort("created_at", -1).limit(5)),
                "companies": list(companies.find(not_deleted, {"name": 1, "type": 1, "is_approved": 1, "created_at": 1})
                                  .sort("created_at", -1).limit(5)),
            },
        }

    # ============================================================
    # COLLEGES
    # ============================================================

    def list_colleges(self, ctx: AuthorizationContext, status: Optional[str] = None,
                      search: Optional[str] = None, page: int = 1,
                      limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if status == "pending":
            query.update({"is_verified": {"$ne": True}, "is_rejected": {"$ne": True}})
        elif status == "approved":
            query["is_verified"] = True
        elif status == "rejected":
            query["is_rejected"] = True
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"code": pattern}]
        return self.colleges.list(ctx, query, page, limit)

    def get_college(self, ctx: AuthorizationContext, college_id: Any) -> dict:
        college = self.colleges.get(ctx, college_id)
        college["admin_user"] = self.users.collection.find_one(
            {"_id": college.get("admin")}, {"email": 1, "is_active": 1, "is_approved": 1}
        )
        return college

    def decide_college(self, ctx: AuthorizationContext, college_id: Any, approved: bool,
                       reason: Optional[str] = None) -> dict:
        college = self.colleges.get(ctx, college_id)
        now = utcnow()
        if approved:
            updates = {"is_verified": True, "verified_at": now, "verified_by": ctx.actor.id,
                       "is_rejected": False, "rejected_at": None, "rejected_by": None, "rejection_reason": None}
        else:
            updates = {"is_rejected": True, "rejected_at": now, "rejected_by": ctx.actor.id,
                       "rejection_reason": reason,
                       "is_verified": False, "verified_at": None, "verified_by": None}
        updated = self.colleges.update_by_id(college["_id"], {"$set": updates})

        self._mirror_approval(college.get("admin"), approved, "college", reason)
        self.activity.log(ctx.actor.id, "approve_college" if approved else "reject_college",
                          "College", college["_id"], {"reason": reason})
        return updated

    def delete_college(self, ctx: AuthorizationContext, college_id: Any) -> dict:
        college = self.colleges.get(ctx, college_id)
        before = self.colleges.soft_delete_by_id(college["_id"], ctx.actor.id, extra={"is_active": False})
        if before is None:
            raise NotFoundError("College not found")
        if before.get("admin"):
            self.users.update_by_id(before["admin"], {"$set": {"is_active": False}})
        logger.info("College %s deleted by %s", college["_id"], ctx.actor.id)
        self.activity.log(ctx.actor.id, "delete_college", "College", college["_id"])
        return before

    # ============================================================
    # COMPANIES
    # ============================================================

    def list_companies(self, ctx: AuthorizationContext, status: Optional[str] = None,
                       company_type: Optional[str] = None, search: Optional[str] = None,
                       page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if status == "pending":
            query.update({"is_approved": {"$ne": True}, "is_rejected": {"$ne": True}})
        elif status == "approved":
            query["is_approved"] = True
        elif status == "rejected":
            query["is_rejected"] = True
        if company_type:
            query["type"] = company_type
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"industry": pattern}]
        return self.companies.list(ctx, query, page, limit)

    def decide_company(self, ctx: AuthorizationContext, company_id: Any, approved: bool,
                       reason: Optional[str] = None) -> dict:
        company = self.companies.get(ctx, company_id)
        now = utcnow()
        if approved:
            updates = {"is_approved": True, "approved_at": now, "approved_by": ctx.actor.id,
                       "is_rejected": False, "rejected_at": None, "rejection_reason": None}
        else:
            updates = {"is_rejected": True, "rejected_at": now, "rejection_reason": reason,
                       "is_approved": False, "approved_at": None, "approved_by": None}
        updated = self.companies.update_by_id(company["_id"], {"$set": updates})

        self._mirror_approval(company.get("user"), approved, company.get("type", "company").replace("_", " "), reason)
        self.activity.log(ctx.actor.id, "approve_company" if approved else "reject_company",
                          "Company", company["_id"], {"reason": reason})
        return updated

    def suspend_company(self, ctx: AuthorizationContext, company_id: Any, suspended: bool,
                        reason: Optional[str] = None) -> dict:
        company = self.companies.get(ctx, company_id)
        updated = self.companies.update_by_id(
            company["_id"],
            {"$set": {"is_suspended": suspended, "suspension_reason": reason if suspended else None}},
            query={"is_suspended": {"$ne": suspended}} if suspended else {"is_suspended": True},
        )
        if updated is None:
            raise ConflictError(f"Company is already {'suspended' if suspended else 'active'}", field="is_suspended")
        self.activity.log(ctx.actor.id, "suspend_company" if suspended else "unsuspend_company",
                          "Company", company["_id"], {"reason": reason})
        return updated

    def delete_company(self, ctx: AuthorizationContext, company_id: Any) -> Outcome:
        """Soft delete the company, cancel its open jobs and deactivate its user."""
        company = self.companies.get(ctx, company_id)
        before = self.companies.soft_delete_by_id(company["_id"], ctx.actor.id, extra={"is_active": False})
        if before is None:
            raise NotFoundError("Company not found")

        events = []
        for job in self.jobs.collection.find({"company": company["_id"], "status": "open",
                                              "lifecycle.is_deleted": {"$ne": True}}, {"_id": 1}):
            closed = self.jobs.update_by_id(
                job["_id"], {"$set": {"status": "cancelled", "closed_at": utcnow()}}, query={"status": "open"}
            )
            if closed is not None:
                events.append(JobClosed(job["_id"], company["_id"], "cancelled"))

        if before.get("user"):
            self.users.update_by_id(before["user"], {"$set": {"is_active": False}})
        logger.info("Company %s deleted by %s; %d open jobs cancelled", company["_id"], ctx.actor.id, len(events))
        self.activity.log(ctx.actor.id, "delete_company", "Company", company["_id"])
        return self._commit(Outcome(before, events))

    # ============================================================
    # USERS
    # ============================================================

    def list_users(self, ctx: AuthorizationContext, role: Optional[str] = None, status: Optional[str] = None,
                   page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role
        if status == "active":
            query["is_active"] = True
        elif status == "inactive":
            query["is_active"] = False
        return self.users.list(ctx, query, page, limit, projection={"password_hash": 0})

    def toggle_user(self, ctx: AuthorizationContext, user_id: Any) -> dict:
        user = self.users.get(None, user_id)
        if user["_id"] == ctx.actor.id:
            raise ValidationError("Cannot deactivate your own account")
        active = not user.get("is_active", True)
        updated = self.users.update_by_id(user["_id"], {"$set": {"is_active": active}},
                                          query={"is_active": user.get("is_active", True)})
        if updated is None:
            raise ConflictError("User was updated by another request. Reload and try again.")
        self.activity.log(ctx.actor.id, "activate_user" if active else "deactivate_user", "User", user["_id"])
        return {"id": user["_id"], "is_active": active}

    # ============================================================
    # STATS / AUDIT
    # ============================================================

    def reconcile_stats(self, ctx: AuthorizationContext) -> dict:
        corrected = StatsReconciler(self.db).reconcile_all()
        self.activity.log(ctx.actor.id, "reconcile_stats", metadata=corrected)
        return corrected

    def activity_logs(self, ctx: AuthorizationContext, user: Optional[Any] = None, action: Optional[str] = None,
                      target_model: Optional[str] = None, start=None, end=None,
                      page: int = 1, limit: int = 50) -> Tuple[List[dict], Dict[str, int]]:
        """Super admins see everything; a college admin sees activity on their own students."""
        target_ids = None
        if not ctx.actor.is_super_admin:
            target_model = "Student"
            target_ids = self.students.collection.distinct("_id", {"college": ctx.actor.college_profile})
        user_id = to_object_id(user, "User") if user else None
        return self.logs.search(user_id, action, target_model, target_ids,
                                to_naive_utc(start), to_naive_utc(end), page, limit)

    # ---------- internals ----------

    def _mirror_approval(self, user_id: Optional[ObjectId], approved: bool, role_label: str,
                         reason: Optional[str]) -> None:
        if user_id is None:
            return
        self.users.update_by_id(user_id, {"$set": {"is_approved": approved}})
        self.notifier.notify(
            user_id,
            "account_approved" if approved else "account_rejected",
            {"role": role_label, "reason": reason or ""},
        )
