"""
Company Routes (companies and placement agencies)

GET /company/profile - Get company profile
PUT /company/profile - Update company profile
GET /company/dashboard - Hiring stats and download usage
GET /company/colleges - Colleges open for access requests
GET /company/college-access - Own access requests
POST /company/college-access - Request access to a college
GET /company/students - Search visible students
GET /company/students/{student_id} - View one visible student
POST /company/downloads - Record a student data download
GET /company/downloads - Download usage and limits
POST /company/shortlist - Shortlist a student for an owned job
GET /company/applications - Applications on owned jobs
PUT /company/applications/{application_id}/status - Advance an application
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import get_platform_settings, require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import (
    ApplicationStatus, ApplicationStatusUpdate, CollegeAccessRequest, CompanyUpdate, DownloadRequest,
    PlacementStatus, ShortlistRequest
)
from placement_portal.services.application_service import ApplicationService
from placement_portal.services.company_service import CompanyService
from placement_portal.services.settings_service import PlatformSettings

router = APIRouter(prefix="/company", tags=["Companies"])


# ============================================================
# PROFILE
# ============================================================

@router.get("/profile")
async def get_profile(ctx: AuthorizationContext = Depends(require("view_company_profile"))):
    """Get the current company's profile."""
    return ok(CompanyService().profile(ctx))


@router.put("/profile")
async def update_profile(body: CompanyUpdate,
                         ctx: AuthorizationContext = Depends(require("update_company_profile"))):
    """Update the current company's profile."""
    company = CompanyService().update_profile(ctx, body.model_dump(exclude_unset=True))
    return ok(company, "Profile updated successfully")


@router.get("/dashboard")
async def dashboard(ctx: AuthorizationContext = Depends(require("view_company_stats")),
                    platform: PlatformSettings = Depends(get_platform_settings)):
    """Jobs, hires, applications by status and download usage."""
    return ok(CompanyService(platform=platform).dashboard(ctx))


# ============================================================
# COLLEGE ACCESS
# ============================================================

@router.get("/colleges")
async def list_colleges(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("request_college_access")),
):
    """Verified colleges on the platform."""
    docs, pager = CompanyService().list_colleges(ctx, page, limit)
    return paged(docs, pager)


@router.get("/college-access")
async def list_access(ctx: AuthorizationContext = Depends(require("request_college_access"))):
    """Access requests sent by this company."""
    return ok(CompanyService().list_access(ctx))


@router.post("/college-access", status_code=201)
async def request_access(body: CollegeAccessRequest,
                         ctx: AuthorizationContext = Depends(require("request_college_access"))):
    """Ask a college for access to its students."""
    return ok(CompanyService().request_access(ctx, body.college_id), "Access request sent")


# ============================================================
# STUDENTS
# ============================================================

@router.get("/students")
async def search_students(
    college_id: Optional[str] = None,
    department: Optional[str] = None,
    batch: Optional[int] = None,
    min_cgpa: Optional[float] = Query(None, ge=0, le=10),
    max_backlogs: Optional[int] = Query(None, ge=0),
    skills: List[str] = Query([]),
    placement_status: Optional[PlacementStatus] = None,
    star_only: bool = False,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("search_students")),
    platform: PlatformSettings = Depends(get_platform_settings),
):
    """Search verified students subject to the data-visibility policy."""
    docs, pager = CompanyService(platform=platform).search_students(
        ctx, college_id, department, batch, min_cgpa, max_backlogs, skills,
        placement_status.value if placement_status else None, star_only, search, page, limit,
    )
    return paged(docs, pager)


@router.get("/students/{student_id}")
async def view_student(student_id: str, ctx: AuthorizationContext = Depends(require("search_students")),
                       platform: PlatformSettings = Depends(get_platform_settings)):
    """One visible student, with fields projected per the visibility policy."""
    return ok(CompanyService(platform=platform).view_student(ctx, student_id))


@router.post("/downloads")
async def record_download(body: DownloadRequest,
                          ctx: AuthorizationContext = Depends(require("download_student_data")),
                          platform: PlatformSettings = Depends(get_platform_settings)):
    """Count a download against the rolling limits and return the resume URL."""
    return ok(CompanyService(platform=platform).record_download(ctx, body.student_id, body.download_type))


@router.get("/downloads")
async def download_status(ctx: AuthorizationContext = Depends(require("download_student_data")),
                          platform: PlatformSettings = Depends(get_platform_settings)):
    """Current download counts and limits."""
    return ok(CompanyService(platform=platform).download_status(ctx))


# ============================================================
# APPLICATIONS
# ============================================================

@router.post("/shortlist", status_code=201)
async def shortlist(body: ShortlistRequest, ctx: AuthorizationContext = Depends(require("shortlist_student"))):
    """Shortlist a student for one of this company's jobs."""
    outcome = ApplicationService().shortlist(ctx, body.student_id, body.job_id, body.notes)
    return ok(outcome.doc, "Student shortlisted successfully")


@router.get("/applications")
async def list_applications(
    job_id: Optional[str] = None,
    status: Optional[ApplicationStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("view_applicants")),
):
    """Applications on this company's jobs."""
    docs, pager = ApplicationService().list_for_company(ctx, job_id, status.value if status else None, page, limit)
    return paged(docs, pager)


@router.put("/applications/{application_id}/status")
async def update_application_status(application_id: str, body: ApplicationStatusUpdate,
                                    ctx: AuthorizationContext = Depends(require("update_application_status"))):
    """Move an application forward in the pipeline or reject it."""
    outcome = ApplicationService().update_status(
        ctx, application_id, body.status, body.remarks,
        body.interview.model_dump() if body.interview else None,
        body.offer.model_dump() if body.offer else None,
    )
    return ok(outcome.doc, f"Application status updated to {body.status}")
