"""
Job Routes

POST /jobs - Create job posting (company only)
GET /jobs - List the company's own jobs
GET /jobs/public - List open jobs (no auth)
GET /jobs/{job_id} - Get job details
PUT /jobs/{job_id} - Update job (company only)
PUT /jobs/{job_id}/close - Close, fill or cancel a job
DELETE /jobs/{job_id} - Soft delete a job
GET /jobs/{job_id}/applicants - Applications for a job
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import get_platform_settings, require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import (
    ApplicationStatus, JobCloseRequest, JobCreate, JobStatus, JobType, JobUpdate
)
from placement_portal.services.application_service import ApplicationService
from placement_portal.services.job_service import JobService
from placement_portal.services.settings_service import PlatformSettings

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("", status_code=201)
async def create_job(body: JobCreate, ctx: AuthorizationContext = Depends(require("post_job")),
                     platform: PlatformSettings = Depends(get_platform_settings)):
    """Create a new job posting, optionally as a placement drive for one college."""
    outcome = JobService(platform=platform).create(ctx, body.model_dump())
    return ok(outcome.doc, "Job created successfully")


@router.get("")
async def list_own_jobs(
    status: Optional[JobStatus] = None,
    type: Optional[JobType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_own_jobs")),
):
    """List jobs posted by the current company."""
    docs, pager = JobService().list_own(ctx, status.value if status else None, type.value if type else None,
                                        page, limit)
    return paged(docs, pager)


@router.get("/public")
async def public_jobs(
    type: Optional[JobType] = None,
    department: Optional[str] = Query(None, description="Comma-separated departments"),
    batch: Optional[str] = Query(None, description="Comma-separated batches"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Open jobs with an application deadline in the future."""
    docs, pager = JobService().public_jobs(type.value if type else None, department, batch, search, page, limit)
    return paged(docs, pager)


@router.get("/{job_id}")
async def get_job(job_id: str, ctx: AuthorizationContext = Depends(require("view_job"))):
    """Get job details with company info."""
    return ok(JobService().get(ctx, job_id))


@router.put("/{job_id}")
async def update_job(job_id: str, body: JobUpdate, ctx: AuthorizationContext = Depends(require("update_job")),
                     platform: PlatformSettings = Depends(get_platform_settings)):
    """Update a job. Only fields present in the request body change."""
    outcome = JobService(platform=platform).update(ctx, job_id, body.model_dump(exclude_unset=True))
    return ok(outcome.doc, "Job updated successfully")


@router.put("/{job_id}/close")
async def close_job(job_id: str, body: JobCloseRequest,
                    ctx: AuthorizationContext = Depends(require("close_job"))):
    """Close, fill or cancel an open job."""
    outcome = JobService().close(ctx, job_id, body.status)
    return ok(outcome.doc, f"Job marked as {body.status}")


@router.delete("/{job_id}")
async def delete_job(job_id: str, ctx: AuthorizationContext = Depends(require("delete_job"))):
    """Soft delete a job; it is cancelled."""
    JobService().delete(ctx, job_id)
    return ok(None, "Job deleted successfully")


@router.get("/{job_id}/applicants")
async def job_applicants(
    job_id: str,
    status: Optional[ApplicationStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("view_applicants")),
):
    """Applications received for one of the company's jobs."""
    docs, pager = ApplicationService().list_for_company(ctx, job_id, status.value if status else None, page, limit)
    return paged(docs, pager)
