"""
Student Routes

GET /student/profile - Get own profile
PUT /student/profile - Update self-editable profile fields
GET /student/dashboard - Application and placement summary
GET /student/jobs - Jobs the student is eligible for
GET /student/jobs/{job_id} - Job details with eligibility verdict
POST /student/jobs/{job_id}/apply - Apply to a job
GET /student/applications - Own applications
PUT /student/applications/{application_id}/withdraw - Withdraw an application
PUT /student/applications/{application_id}/offer - Accept or decline an offer
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import (
    ApplicationCreate, ApplicationStatus, JobType, OfferResponse, StudentSelfUpdate
)
from placement_portal.services.application_service import ApplicationService
from placement_portal.services.student_service import StudentService

router = APIRouter(prefix="/student", tags=["Students"])


# ============================================================
# PROFILE
# ============================================================

@router.get("/profile")
async def get_profile(ctx: AuthorizationContext = Depends(require("view_student_profile"))):
    """Get the current student's profile."""
    return ok(StudentService().profile(ctx))


@router.put("/profile")
async def update_profile(body: StudentSelfUpdate,
                         ctx: AuthorizationContext = Depends(require("update_student_profile"))):
    """Update contact details, links and skills. Academic records are managed by the college."""
    student = StudentService().update_profile(ctx, body.model_dump(exclude_unset=True))
    return ok(student, "Profile updated successfully")


@router.get("/dashboard")
async def dashboard(ctx: AuthorizationContext = Depends(require("view_student_profile"))):
    """Placement status, applications by status and unread notifications."""
    return ok(StudentService().dashboard(ctx))


# ============================================================
# JOBS
# ============================================================

@router.get("/jobs")
async def eligible_jobs(
    type: Optional[JobType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_eligible_jobs")),
):
    """Open jobs matching the student's department, batch and academic record."""
    docs, pager = StudentService().eligible_jobs(ctx, type.value if type else None, page, limit)
    return paged(docs, pager)


@router.get("/jobs/{job_id}")
async def job_detail(job_id: str, ctx: AuthorizationContext = Depends(require("list_eligible_jobs"))):
    """Job details with whether (and why not) the student can apply."""
    return ok(StudentService().job_detail(ctx, job_id))


@router.post("/jobs/{job_id}/apply", status_code=201)
async def apply(job_id: str, body: Optional[ApplicationCreate] = None,
                ctx: AuthorizationContext = Depends(require("apply_job"))):
    """Apply to a job."""
    outcome = ApplicationService().apply(ctx, job_id, body.cover_letter if body else None)
    return ok(outcome.doc, "Application submitted successfully")


# ============================================================
# APPLICATIONS
# ============================================================

@router.get("/applications")
async def my_applications(
    status: Optional[ApplicationStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_own_applications")),
):
    """The student's own applications with job summaries."""
    docs, pager = ApplicationService().list_for_student(ctx, status.value if status else None, page, limit)
    return paged(docs, pager)


@router.put("/applications/{application_id}/withdraw")
async def withdraw(application_id: str, ctx: AuthorizationContext = Depends(require("withdraw_application"))):
    """Withdraw an application that is still in progress."""
    outcome = ApplicationService().withdraw(ctx, application_id)
    return ok(outcome.doc, "Application withdrawn")


@router.put("/applications/{application_id}/offer")
async def respond_to_offer(application_id: str, body: OfferResponse,
                           ctx: AuthorizationContext = Depends(require("respond_to_offer"))):
    """Accept or decline an offer."""
    outcome = ApplicationService().respond_to_offer(ctx, application_id, body.accept)
    return ok(outcome.doc, "Offer accepted" if body.accept else "Offer declined")
