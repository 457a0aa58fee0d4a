"""
Application Service - the apply / shortlist / status pipeline.

Every status write is a find_one_and_update guarded on the status the
caller observed, so two racing requests cannot both win; the loser gets a
ConflictError and no events. Creating an application relies on the unique
(student, job) index alone to detect duplicates.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from placement_portal.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.base_service import DomainService
from placement_portal.services.company_service import CompanyService
from placement_portal.services.eligibility import Eligibility, IneligibilityReason, can_apply
from placement_portal.services.events import (
    Outcome, ApplicationCreated, ApplicationShortlisted, ApplicationHired
)
from placement_portal.services.mongo_service import (
    ApplicationRepository, CompanyRepository, JobRepository, StudentRepository
)
from placement_portal.services.state_machine import history_entry, validate_transition
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Status reached -> notification type sent to the student
_STATUS_NOTIFICATIONS = {
    "shortlisted": "shortlisted",
    "interview_scheduled": "interview_scheduled",
    "offered": "offer_received",
}


def ensure_eligible(verdict: Eligibility) -> None:
    """Turn an eligibility denial into the API error."""
    if verdict.allowed:
        return
    if verdict.reason == IneligibilityReason.ALREADY_APPLIED:
        raise ConflictError(verdict.message, field="application")
    raise AuthorizationError(verdict.message)


class ApplicationService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.applications = ApplicationRepository(self.db)
        self.jobs = JobRepository(self.db)
        self.students = StudentRepository(self.db)
        self.companies = CompanyRepository(self.db)

    # ============================================================
    # STUDENT: APPLY
    # ============================================================

    def current_student(self, ctx: AuthorizationContext) -> dict:
        if ctx.actor.student_profile is None:
            raise NotFoundError("Student profile not found")
        student = self.students.find_one(None, {"_id": ctx.actor.student_profile})
        if student is None:
            raise NotFoundError("Student profile not found")
        return student

    def apply(self, ctx: AuthorizationContext, job_id: Any, cover_letter: Optional[str] = None) -> Outcome:
        student = self.current_student(ctx)
        job = self.jobs.get(ctx, job_id)

        ensure_eligible(can_apply(student, job))

        now = utcnow()
        doc = self._new_application(ctx, student, job, "apply", now)
        doc["cover_letter"] = cover_letter
        try:
            self.applications.insert(doc)
        except DuplicateKeyError:
            raise ConflictError("You have already applied for this job", field="application")

        logger.info("Student %s applied to job %s", student["_id"], job["_id"])
        self.activity.log(ctx.actor.id, "apply_job", "Application", doc["_id"], {"job": job["_id"]})
        return self._commit(Outcome(doc, [ApplicationCreated(doc["_id"], job["_id"])]))

    # ============================================================
    # COMPANY: SHORTLIST
    # ============================================================

    def shortlist(self, ctx: AuthorizationContext, student_id: Any, job_id: Any,
                  notes: Optional[str] = None) -> Outcome:
        """
        Create a shortlisted application, or advance an existing one.

        Job ownership and student visibility are checked before anything is
        written; a student the company may not see is reported as not found.
        A new application goes through the same eligibility rules as an
        apply; advancing an existing one does not re-check them.
        """
        job = self.jobs.get(ctx, job_id)
        visible_id = CompanyService(self.db, self.platform).visible_student_id(ctx, student_id)
        student = self.students.get(None, visible_id)

        existing = self.applications.find_one(None, {"student": student["_id"], "job": job["_id"]})
        if existing is None:
            outcome = self._create_shortlisted(ctx, student, job, notes)
        else:
            outcome = self._advance_to_shortlist(ctx, existing, notes)

        # informational; never overwrites in_process or placed
        self.students.update_by_id(
            student["_id"],
            {"$set": {"placement_status": "in_process"}},
            query={"placement_status": "not_placed"},
        )

        company = self.companies.find_one(None, {"_id": job["company"]}) or {}
        self.notifier.notify(
            student.get("user"), "shortlisted",
            {"company_name": company.get("name", ""), "job_title": job.get("title", "")},
            related_model="Application", related_id=outcome.doc["_id"],
        )
        self.activity.log(ctx.actor.id, "shortlist_student", "Student", student["_id"], {"job": job["_id"]})
        return self._commit(outcome)

    def _create_shortlisted(self, ctx, student: dict, job: dict, notes: Optional[str]) -> Outcome:
        ensure_eligible(can_apply(student, job))

        doc = self._new_application(ctx, student, job, "shortlist", utcnow(), status="shortlisted")
        doc["company_notes"] = notes
        try:
            self.applications.insert(doc)
        except DuplicateKeyError:
            raise ConflictError("Student is already shortlisted for this job", field="application")
        return Outcome(doc, [
            ApplicationCreated(doc["_id"], job["_id"]),
            ApplicationShortlisted(doc["_id"], job["_id"]),
        ])

    def _advance_to_shortlist(self, ctx, application: dict, notes: Optional[str]) -> Outcome:
        if application["status"] == "shortlisted":
            raise ConflictError("Student is already shortlisted for this job", field="application")
        extra = {"company_notes": notes} if notes is not None else None
        updated = self._transition(ctx, application, "shortlisted", remarks=notes, extra_set=extra)
        return Outcome(updated, [ApplicationShortlisted(updated["_id"], updated["job"])])

    # ============================================================
    # COMPANY / SUPER ADMIN: STATUS UPDATES
    # ============================================================

    def update_status(self, ctx: AuthorizationContext, application_id: Any, status: str,
                      remarks: Optional[str] = None, interview: Optional[dict] = None,
                      offer: Optional[dict] = None) -> Outcome:
        application = self.applications.get(ctx, application_id)

        if status == "withdrawn":
            raise AuthorizationError("Only the student can withdraw an application")

        extra: Dict[str, Any] = {}
        push: Dict[str, Any] = {}
        if interview:
            push["interviews"] = interview
        if status == "offered":
            extra["offer"] = {
                "package": None, "role": None, "joining_date": None, "offer_letter_url": None,
                **(offer or {}),
                "offered_at": utcnow(),
                "responded_at": None,
                "response": "pending",
            }

        updated = self._transition(ctx, application, status, remarks, extra_set=extra, push=push)

        events = []
        if status == "shortlisted":
            events.append(ApplicationShortlisted(updated["_id"], updated["job"]))
        if status == "hired":
            events.append(self._record_hire(updated))

        self._notify_status(updated, status, interview)
        self.activity.log(ctx.actor.id, status if status == "hired" else "update_application_status",
                          "Application", updated["_id"], {"status": status})
        return self._commit(Outcome(updated, events))

    def _record_hire(self, application: dict) -> ApplicationHired:
        """Mark the student placed unless already placed; the counters follow from the returned event."""
        job = self.jobs.collection.find_one({"_id": application["job"]}) or {}
        company = self.companies.collection.find_one({"_id": application["company"]}) or {}
        offer = application.get("offer") or {}

        details = {
            "company": company.get("name", "Unknown Company"),
            "role": offer.get("role") or job.get("title"),
            "package": offer.get("package"),
            "placed_at": utcnow(),
        }
        before = self.students.update_by_id(
            application["student"],
            {"$set": {"placement_status": "placed", "placement_details": details}},
            query={"placement_status": {"$ne": "placed"}},
            return_before=True,
        )
        # None: already placed, the first placement's details stay
        first_placement = before is not None and not (before.get("lifecycle") or {}).get("is_deleted")
        college_id = (before or {}).get("college") or application.get("college")
        logger.info("Application %s hired; student %s placed at %s",
                    application["_id"], application["student"], details["company"])
        return ApplicationHired(
            application["_id"], application["job"], application["student"],
            application["company"], college_id, first_placement,
        )

    # ============================================================
    # STUDENT: WITHDRAW / RESPOND TO OFFER
    # ============================================================

    def withdraw(self, ctx: AuthorizationContext, application_id: Any) -> Outcome:
        application = self.applications.get(ctx, application_id)
        updated = self._transition(ctx, application, "withdrawn", remarks="Withdrawn by student")
        self.activity.log(ctx.actor.id, "withdraw_application", "Application", updated["_id"])
        return self._commit(Outcome(updated))

    def respond_to_offer(self, ctx: AuthorizationContext, application_id: Any, accept: bool) -> Outcome:
        application = self.applications.get(ctx, application_id)
        if application["status"] != "offered" or not application.get("offer"):
            raise ValidationError("There is no pending offer on this application")

        target = "offer_accepted" if accept else "withdrawn"
        updated = self._transition(
            ctx, application, target,
            remarks="Offer accepted" if accept else "Offer declined",
            extra_set={
                "offer.response": "accepted" if accept else "rejected",
                "offer.responded_at": utcnow(),
            },
        )
        self.activity.log(ctx.actor.id, "respond_to_offer", "Application", updated["_id"], {"accepted": accept})
        return self._commit(Outcome(updated))

    # ============================================================
    # LISTINGS
    # ============================================================

    def list_for_student(self, ctx: AuthorizationContext, status: Optional[str] = None,
                         page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query = {"status": status} if status else {}
        docs, pager = self.applications.list(ctx, query, page, limit, sort=[("applied_at", -1)])
        return self._attach_jobs(docs), pager

    def list_for_company(self, ctx: AuthorizationContext, job_id: Optional[Any] = None,
                         status: Optional[str] = None, page: int = 1,
                         limit: int = 10) -> Tuple[List[dict], Dict[str, int]]:
        query: Dict[str, Any] = {}
        if job_id:
            query["job"] = self.jobs.get(ctx, job_id)["_id"]
        if status:
            query["status"] = status
        docs, pager = self.applications.list(ctx, query, page, limit, sort=[("applied_at", -1)])
        return self._attach_students(self._attach_jobs(docs)), pager

    # ============================================================
    # INTERNALS
    # ============================================================

    def _new_application(self, ctx, student: dict, job: dict, source: str, now,
                         status: str = "applied") -> dict:
        return {
            "student": student["_id"],
            "job": job["_id"],
            "company": job["company"],
            "college": student.get("college"),
            "status": status,
            "status_history": [history_entry(status, ctx.actor.id, changed_at=now)],
            "interviews": [],
            "offer": None,
            "company_notes": None,
            "resume_snapshot": {
                "url": student.get("resume_url"),
                "cgpa": student.get("cgpa"),
                "skills": list(student.get("skills") or []),
            },
            "source": source,
            "applied_at": now,
            "last_updated_by": ctx.actor.id,
        }

    def _transition(self, ctx, application: dict, target: str, remarks: Optional[str] = None,
                    extra_set: Optional[dict] = None, push: Optional[dict] = None) -> dict:
        """Compare-and-set status write with its history entry."""
        current = application["status"]
        validate_transition(current, target)

        update = {
            "$set": {"status": target, "last_updated_by": ctx.actor.id, **(extra_set or {})},
            "$push": {"status_history": history_entry(target, ctx.actor.id, remarks), **(push or {})},
        }
        updated = self.applications.update_by_id(application["_id"], update, query={"status": current})
        if updated is None:
            raise ConflictError("Application was updated by another request. Reload and try again.",
                                field="status")
        return updated

    def _notify_status(self, application: dict, status: str, interview: Optional[dict]) -> None:
        student = self.students.collection.find_one({"_id": application["student"]}, {"user": 1}) or {}
        job = self.jobs.collection.find_one({"_id": application["job"]}, {"title": 1}) or {}
        company = self.companies.collection.find_one({"_id": application["company"]}, {"name": 1}) or {}
        scheduled = (interview or {}).get("scheduled_at")
        self.notifier.notify(
            student.get("user"),
            _STATUS_NOTIFICATIONS.get(status, "application_status"),
            {
                "company_name": company.get("name", ""),
                "job_title": job.get("title", ""),
                "status": status.replace("_", " "),
                "date": scheduled.strftime("%d %b %Y %H:%M") if scheduled else "to be announced",
            },
            related_model="Application", related_id=application["_id"],
        )

    def _attach_jobs(self, docs: List[dict]) -> List[dict]:
        job_ids = list({d["job"] for d in docs})
        jobs = {j["_id"]: j for j in self.jobs.collection.find(
            {"_id": {"$in": job_ids}},
            {"title": 1, "type": 1, "company": 1, "application_deadline": 1, "status": 1},
        )}
        company_ids = list({j["company"] for j in jobs.values()})
        names = {c["_id"]: c.get("name") for c in self.companies.collection.find(
            {"_id": {"$in": company_ids}}, {"name": 1, "logo": 1}
        )}
        for doc in docs:
            job = jobs.get(doc["job"])
            if job is not None:
                doc["job_summary"] = {**job, "company_name": names.get(job["company"])}
        return docs

    def _attach_students(self, docs: List[dict]) -> List[dict]:
        student_ids = list({d["student"] for d in docs})
        students = {s["_id"]: s for s in self.students.collection.find(
            {"_id": {"$in": student_ids}},
            {"name": 1, "email": 1, "department": 1, "batch": 1, "cgpa": 1, "college": 1},
        )}
        for doc in docs:
            if doc["student"] in students:
                doc["student_summary"] = students[doc["student"]]
        return docs
