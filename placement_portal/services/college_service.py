"""
College Service - what a college admin manages for their own college:
students (add, bulk add, edit, soft delete, verify/reject, star, placement
override), company access requests, and the dashboard.

A super admin may act on any college's students; everyone else only ever
sees students of `actor.college_profile` (enforced by the repository scope).
"""

import logging
import re
from typing import Optional, List, Dict, Any, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from placement_portal.core.errors import ConflictError, NotFoundError, ValidationError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.events import (
    Outcome, StudentAdded, StudentVerified, StudentUnverified, StudentRemoved, StudentPlacementChanged
)
from placement_portal.services.mongo_service import (
    ApplicationRepository, CollegeRepository, CompanyRepository, StudentRepository, UserRepository,
    to_object_id
)
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


def new_student_doc(data: Dict[str, Any], college_id: ObjectId, added_by: Optional[ObjectId],
                    source: str, verified: bool) -> dict:
    """Build a student document from validated StudentCreate fields."""
    now = utcnow()
    backlogs = data.get("backlogs") or {}
    return {
        "name": {"first_name": data["first_name"], "last_name": data["last_name"]},
        "email": data["email"].lower(),
        "phone": data.get("phone"),
        "college": college_id,
        "department": data.get("department"),
        "batch": data.get("batch"),
        "roll_number": data.get("roll_number"),
        "cgpa": data.get("cgpa"),
        "backlogs": {"active": backlogs.get("active", 0), "history": backlogs.get("history", 0)},
        "skills": list(data.get("skills") or []),
        "resume_url": data.get("resume_url"),
        "placement_status": "not_placed",
        "placement_details": None,
        "is_verified": verified,
        "verified_at": now if verified else None,
        "verified_by": added_by if verified else None,
        "is_rejected": False,
        "rejected_at": None,
        "rejected_by": None,
        "rejection_reason": None,
        "is_star_student": False,
        "user": None,
        "added_by": added_by,
        "source": source,
    }


class CollegeService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.colleges = CollegeRepository(self.db)
        self.students = StudentRepository(self.db)
        self.companies = CompanyRepository(self.db)
        self.applications = ApplicationRepository(self.db)
        self.users = UserRepository(self.db)

    # ============================================================
    # HELPERS
    # ============================================================

    def _own_college(self, ctx: AuthorizationContext) -> dict:
        college_id = ctx.actor.college_profile
        college = self.colleges.find_one(None, {"_id": college_id}) if college_id else None
        if college is None:
            raise NotFoundError("College profile not found")
        return college

    def _student_conflict(self, college_id: ObjectId, email: Optional[str],
                          roll_number: Optional[str], exclude: Optional[ObjectId] = None) -> ConflictError:
        """Name the field behind a DuplicateKeyError on students."""
        taken = {"college": college_id, "roll_number": roll_number}
        if exclude is not None:
            taken["_id"] = {"$ne": exclude}
        if roll_number is not None and self.students.collection.count_documents(taken):
            return ConflictError(f"Roll number {roll_number} already exists in this college", field="roll_number")
        return ConflictError(f"A student with email {email} already exists", field="email")

    # ============================================================
    # DASHBOARD
    # ============================================================

    def dashboard(self, ctx: AuthorizationContext) -> dict:
        college = self._own_college(ctx)
        base = {"college": college["_id"], "lifecycle.is_deleted": {"$ne": True}}
        count = self.students.collection.count_documents

        by_department = list(self.students.collection.aggregate([
            {"$match": base},
            {"$group": {
                "_id": "$department",
                "total": {"$sum": 1},
                "placed": {"$sum": {"$cond": [{"$eq": ["$placement_status", "placed"]}, 1, 0]}},
            }},
            {"$sort": {"total": -1}},
        ]))

        return {
            "college": {"id": college["_id"], "name": college.get("name"), "code": college.get("code")},
            "stats": college.get("stats") or {},
            "pending_verification": count({**base, "is_verified": {"$ne": True}, "is_rejected": {"$ne": True}}),
            "in_process": count({**base, "placement_status": "in_process"}),
            "star_students": count({**base, "is_star_student": True}),
            "department_stats": by_department,
        }

    # ============================================================
    # STUDENTS
    # ============================================================

    def list_students(self, ctx: AuthorizationContext, college_id: Optional[Any] = None,
                      department: Optional[str] = None, batch: Optional[int] = None,
                      is_verified: Optional[bool] = None, placement_status: Optional[str] = None,
                      search: Optional[str] = None, page: int = 1,
                      limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if college_id and ctx.actor.is_super_admin:
            query["college"] = to_object_id(college_id, "College")
        if department:
            query["department"] = department
        if batch:
            query["batch"] = batch
        if is_verified is not None:
            query["is_verified"] = is_verified
        if placement_status:
            query["placement_status"] = placement_status
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [
                {"name.first_name": pattern},
                {"name.last_name": pattern},
                {"roll_number": pattern},
                {"email": pattern},
            ]
        return self.students.list(ctx, query, page, limit)

    def get_student(self, ctx: AuthorizationContext, student_id: Any) -> dict:
        student = self.students.get(ctx, student_id)
        recent, _ = self.applications.list(None, {"student": student["_id"]}, 1, 10, sort=[("applied_at", -1)])
        student["applications"] = recent
        return student

    def add_student(self, ctx: AuthorizationContext, data: Dict[str, Any]) -> Outcome:
        """Students added by their college admin start verified."""
        college = self._own_college(ctx)
        doc = new_student_doc(data, college["_id"], ctx.actor.id, "manual", verified=True)
        try:
            self.students.insert(doc)
        except DuplicateKeyError:
            raise self._student_conflict(college["_id"], doc["email"], doc["roll_number"])

        self.activity.log(ctx.actor.id, "add_student", "Student", doc["_id"])
        return self._commit(Outcome(doc, [StudentAdded(doc["_id"], college["_id"], is_verified=True)]))

    def bulk_add_students(self, ctx: AuthorizationContext, rows: List[Dict[str, Any]]) -> dict:
        """Insert rows one by one; a failed row is reported and the rest continue."""
        college = self._own_college(ctx)
        results: Dict[str, list] = {"success": [], "failed": []}
        events = []

        for row in rows:
            doc = new_student_doc(row, college["_id"], ctx.actor.id, "bulk_upload", verified=True)
            name = f"{doc['name']['first_name']} {doc['name']['last_name']}"
            try:
                self.students.insert(doc)
            except DuplicateKeyError:
                error = self._student_conflict(college["_id"], doc["email"], doc["roll_number"])
                results["failed"].append({"roll_number": doc["roll_number"], "name": name, "error": error.message})
                continue
            events.append(StudentAdded(doc["_id"], college["_id"], is_verified=True))
            results["success"].append({"id": doc["_id"], "roll_number": doc["roll_number"], "name": name})

        logger.info("Bulk upload for college %s: %d added, %d failed",
                    college["_id"], len(results["success"]), len(results["failed"]))
        self.activity.log(ctx.actor.id, "bulk_upload_students", "College", college["_id"],
                          {"added": len(results["success"]), "failed": len(results["failed"])})
        self._commit(Outcome(results, events))
        return results

    def update_student(self, ctx: AuthorizationContext, student_id: Any, changes: Dict[str, Any]) -> dict:
        student = self.students.get(ctx, student_id)

        updates: Dict[str, Any] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key in ("first_name", "last_name"):
                updates[f"name.{key}"] = value
            else:
                updates[key] = value
        if not updates:
            return student

        try:
            updated = self.students.update_by_id(
                student["_id"], {"$set": updates}, query={"lifecycle.is_deleted": {"$ne": True}}
            )
        except DuplicateKeyError:
            raise self._student_conflict(student["college"], student.get("email"),
                                         updates.get("roll_number"), exclude=student["_id"])
        if updated is None:
            raise NotFoundError("Student not found")

        self.activity.log(ctx.actor.id, "update_student", "Student", student["_id"], {"fields": sorted(updates)})
        return updated

    def delete_student(self, ctx: AuthorizationContext, student_id: Any) -> Outcome:
        student = self.students.get(ctx, student_id)
        before = self.students.soft_delete_by_id(student["_id"], ctx.actor.id)
        if before is None:
            raise NotFoundError("Student not found")

        if before.get("user"):
            self.users.update_by_id(before["user"], {"$set": {"is_active": False}})

        self.activity.log(ctx.actor.id, "delete_student", "Student", student["_id"])
        return self._commit(Outcome(before, [StudentRemoved(
            student["_id"], before["college"],
            was_verified=bool(before.get("is_verified")),
            was_placed=before.get("placement_status") == "placed",
        )]))

    def verify_student(self, ctx: AuthorizationContext, student_id: Any) -> Outcome:
        student = self.students.get(ctx, student_id)
        updated = self.students.update_by_id(
            student["_id"],
            {"$set": {
                "is_verified": True, "verified_at": utcnow(), "verified_by": ctx.actor.id,
                "is_rejected": False, "rejected_at": None, "rejected_by": None, "rejection_reason": None,
            }},
            query={"is_verified": {"$ne": True}, "lifecycle.is_deleted": {"$ne": True}},
        )
        if updated is None:
            raise ConflictError("Student is already verified", field="is_verified")

        if updated.get("user"):
            self.users.update_by_id(updated["user"], {"$set": {"is_approved": True}})
            self.notifier.notify(updated["user"], "student_verified", related_model="Student",
                                 related_id=updated["_id"])

        self.activity.log(ctx.actor.id, "verify_student", "Student", updated["_id"])
        return self._commit(Outcome(updated, [StudentVerified(updated["_id"], updated["college"])]))

    def reject_student(self, ctx: AuthorizationContext, student_id: Any, reason: Optional[str] = None) -> Outcome:
        student = self.students.get(ctx, student_id)
        before = self.students.update_by_id(
            student["_id"],
            {"$set": {
                "is_rejected": True, "rejected_at": utcnow(), "rejected_by": ctx.actor.id,
                "rejection_reason": reason,
                "is_verified": False, "verified_at": None, "verified_by": None,
            }},
            query={"is_rejected": {"$ne": True}, "lifecycle.is_deleted": {"$ne": True}},
            return_before=True,
        )
        if before is None:
            raise ConflictError("Student is already rejected", field="is_rejected")

        if before.get("user"):
            self.users.update_by_id(before["user"], {"$set": {"is_approved": False}})

        events = [StudentUnverified(before["_id"], before["college"])] if before.get("is_verified") else []
        self.activity.log(ctx.actor.id, "reject_student", "Student", before["_id"], {"reason": reason})
        updated = self.students.find_one(None, {"_id": before["_id"]})
        return self._commit(Outcome(updated, events))

    def toggle_star(self, ctx: AuthorizationContext, student_id: Any) -> dict:
        student = self.students.get(ctx, student_id)
        starred = not student.get("is_star_student", False)
        updated = self.students.update_by_id(
            student["_id"], {"$set": {"is_star_student": starred}},
            query={"is_star_student": student.get("is_star_student", False)},
        )
        if updated is None:
            raise ConflictError("Student was updated by another request. Reload and try again.")
        self.activity.log(ctx.actor.id, "star_student", "Student", student["_id"], {"starred": starred})
        return updated

    def override_placement(self, ctx: AuthorizationContext, student_id: Any, placement_status: str,
                           company: Optional[str] = None, role: Optional[str] = None,
                           package: Optional[float] = None) -> Outcome:
        """Administrative correction of placement status, outside the application pipeline."""
        student = self.students.get(ctx, student_id)
        current = student.get("placement_status", "not_placed")

        updates: Dict[str, Any] = {"placement_status": placement_status}
        if placement_status == "placed":
            updates["placement_details"] = {
                "company": company, "role": role, "package": package, "placed_at": utcnow(),
            }
        elif current == "placed":
            updates["placement_details"] = None

        updated = self.students.update_by_id(
            student["_id"], {"$set": updates}, query={"placement_status": current}
        )
        if updated is None:
            raise ConflictError("Student was updated by another request. Reload and try again.")

        events = []
        if (current == "placed") != (placement_status == "placed"):
            events.append(StudentPlacementChanged(student["_id"], student["college"], placement_status == "placed"))
        self.activity.log(ctx.actor.id, "override_placement", "Student", student["_id"],
                          {"from": current, "to": placement_status})
        return self._commit(Outcome(updated, events))

    # ============================================================
    # COMPANY ACCESS REQUESTS
    # ============================================================

    def access_requests(self, ctx: AuthorizationContext, status: Optional[str] = None) -> List[dict]:
        college = self._own_college(ctx)
        match: Dict[str, Any] = {"college": college["_id"]}
        if status:
            match["status"] = status

        companies = self.companies.collection.find(
            {"college_access": {"$elemMatch": match}, "lifecycle.is_deleted": {"$ne": True}},
            {"name": 1, "type": 1, "industry": 1, "contact_person": 1, "college_access": 1},
        )
        requests = []
        for company in companies:
            entry = next(a for a in company["college_access"] if a["college"] == college["_id"])
            requests.append({
                "company": {k: company.get(k) for k in ("_id", "name", "type", "industry", "contact_person")},
                "status": entry.get("status"),
                "requested_at": entry.get("requested_at"),
                "responded_at": entry.get("responded_at"),
            })
        return requests

    def respond_access(self, ctx: AuthorizationContext, company_id: Any, approved: bool) -> dict:
        """Approve or reject a company's access request; approving a rejected entry is allowed."""
        college = self._own_college(ctx)
        company = self.companies.get(None, company_id)

        access = company.get("college_access") or []
        if not any(a.get("college") == college["_id"] for a in access):
            raise NotFoundError("Access request not found")

        new_status = "approved" if approved else "rejected"
        now = utcnow()
        changed = [
            {**a, "status": new_status, "responded_at": now, "responded_by": ctx.actor.id}
            if a.get("college") == college["_id"] else a
            for a in access
        ]
        updated = self.companies.update_by_id(
            company["_id"], {"$set": {"college_access": changed}}, query={"college_access": access}
        )
        if updated is None:
            raise ConflictError("Access entries changed while responding. Reload and try again.")

        self.activity.log(ctx.actor.id, "respond_college_access", "Company", company["_id"],
                          {"college": college["_id"], "status": new_status})
        return updated

    # ============================================================
    # PROFILE
    # ============================================================

    def profile(self, ctx: AuthorizationContext) -> dict:
        return self._own_college(ctx)

    def update_settings(self, ctx: AuthorizationContext, allow_student_self_signup: bool) -> dict:
        college = self._own_college(ctx)
        if not isinstance(allow_student_self_signup, bool):
            raise ValidationError("allow_student_self_signup must be a boolean")
        return self.colleges.update_by_id(
            college["_id"], {"$set": {"settings.allow_student_self_signup": allow_student_self_signup}}
        )
