"""
Eligibility Evaluator

Decides whether a student may apply to a job. The same predicates exist in
two encodings that must always agree:

    can_apply(student, job)           - evaluated in Python at apply time
    eligible_jobs_filter(student)     - a MongoDB query for the job listing

A job hidden from a student's listing must be rejected at apply time and
vice versa. The only difference is ALREADY_APPLIED, which the listing shows
as a `has_applied` flag instead of excluding the job.

Normalization shared by both encodings:
- missing student cgpa or active backlogs count as 0
- missing job min_cgpa counts as 0, missing max_backlogs means unlimited
- an empty allowed_departments / allowed_batches list admits nobody
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from placement_portal.utils.timeutils import utcnow


class IneligibilityReason(str, Enum):
    JOB_CLOSED = "JobClosed"
    DEPARTMENT_MISMATCH = "DepartmentMismatch"
    BATCH_MISMATCH = "BatchMismatch"
    CGPA_TOO_LOW = "CgpaTooLow"
    TOO_MANY_BACKLOGS = "TooManyBacklogs"
    WRONG_COLLEGE_DRIVE = "WrongCollegeDrive"
    PROFILE_NOT_VERIFIED = "ProfileNotVerified"
    ALREADY_APPLIED = "AlreadyApplied"


@dataclass(frozen=True)
class Eligibility:
    allowed: bool
    reason: Optional[IneligibilityReason] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Eligibility(True)


def _deny(reason: IneligibilityReason, message: str) -> Eligibility:
    return Eligibility(False, reason, message)


def _student_cgpa(student: dict) -> float:
    return student.get("cgpa") or 0


def _student_backlogs(student: dict) -> int:
    return (student.get("backlogs") or {}).get("active") or 0


def job_is_open(job: dict, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if (job.get("lifecycle") or {}).get("is_deleted"):
        return False
    deadline = job.get("application_deadline")
    return job.get("status") == "open" and deadline is not None and now <= deadline


def can_apply(student: dict, job: dict, now: Optional[datetime] = None,
              has_applied: bool = False) -> Eligibility:
    """
    Checks run in a fixed order and stop at the first failure; the order
    only decides which message the student sees.
    """
    if not job_is_open(job, now):
        return _deny(IneligibilityReason.JOB_CLOSED, "This job is no longer accepting applications")

    rules = job.get("eligibility") or {}

    if student.get("department") not in (rules.get("allowed_departments") or []):
        return _deny(IneligibilityReason.DEPARTMENT_MISMATCH,
                     "You are not eligible for this job (department mismatch)")

    if student.get("batch") not in (rules.get("allowed_batches") or []):
        return _deny(IneligibilityReason.BATCH_MISMATCH,
                     "You are not eligible for this job (batch mismatch)")

    min_cgpa = rules.get("min_cgpa") or 0
    if _student_cgpa(student) < min_cgpa:
        return _deny(IneligibilityReason.CGPA_TOO_LOW, f"Minimum CGPA required: {min_cgpa}")

    max_backlogs = rules.get("max_backlogs")
    if max_backlogs is not None and _student_backlogs(student) > max_backlogs:
        return _deny(IneligibilityReason.TOO_MANY_BACKLOGS,
                     f"Too many active backlogs. Maximum allowed: {max_backlogs}")

    if job.get("is_placement_drive") and job.get("college") is not None:
        if student.get("college") != job.get("college"):
            return _deny(IneligibilityReason.WRONG_COLLEGE_DRIVE,
                         "This placement drive is restricted to students of a specific college")

    if not student.get("is_verified"):
        return _deny(IneligibilityReason.PROFILE_NOT_VERIFIED,
                     "Your profile must be verified by college admin before applying")

    if has_applied:
        return _deny(IneligibilityReason.ALREADY_APPLIED, "You have already applied for this job")

    return ALLOWED


def eligible_jobs_filter(student: dict, now: Optional[datetime] = None) -> Dict[str, Any]:
    """MongoDB query matching exactly the jobs for which can_apply() allows `student`."""
    now = now or utcnow()

    if not student.get("is_verified"):
        # unverified students are eligible for nothing
        return {"_id": {"$in": []}}

    return {"$and": [
        {"status": "open"},
        {"application_deadline": {"$gte": now}},
        {"lifecycle.is_deleted": {"$ne": True}},
        {"eligibility.allowed_departments": student.get("department")},
        {"eligibility.allowed_batches": student.get("batch")},
        {"$or": [
            {"eligibility.min_cgpa": None},
            {"eligibility.min_cgpa": {"$lte": _student_cgpa(student)}},
        ]},
        {"$or": [
            {"eligibility.max_backlogs": None},
            {"eligibility.max_backlogs": {"$gte": _student_backlogs(student)}},
        ]},
        {"$or": [
            {"is_placement_drive": {"$ne": True}},
            {"college": None},
            {"college": student.get("college")},
        ]},
    ]}
