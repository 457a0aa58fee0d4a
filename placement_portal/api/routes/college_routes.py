"""
College Admin Routes

GET /college/dashboard - Placement statistics for the admin's college
GET /college/profile - College profile
PUT /college/settings - College-level settings
GET /college/students - List students with filters
POST /college/students - Add a student
POST /college/students/bulk - Add many students, per-row results
GET /college/students/{student_id} - Student details with recent applications
PUT /college/students/{student_id} - Update a student
DELETE /college/students/{student_id} - Soft delete a student
PUT /college/students/{student_id}/verify - Verify a student
PUT /college/students/{student_id}/reject - Reject (unverify) a student
PUT /college/students/{student_id}/star - Toggle star student
PUT /college/students/{student_id}/placement - Override placement status
GET /college/access-requests - Company access requests
PUT /college/access-requests/{company_id} - Approve or reject a request
GET /college/activity-logs - Activity on this college's students
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import (
    AccessStatus, CollegeAccessDecision, CollegeSettingsUpdate, PlacementOverride, PlacementStatus,
    StudentBulkCreate, StudentCreate, StudentRejectRequest, StudentUpdate
)
from placement_portal.services.admin_service import AdminService
from placement_portal.services.college_service import CollegeService

router = APIRouter(prefix="/college", tags=["College Admin"])


@router.get("/dashboard")
async def dashboard(ctx: AuthorizationContext = Depends(require("view_college_stats"))):
    """Department-wise placement stats and pending work."""
    return ok(CollegeService().dashboard(ctx))


@router.get("/profile")
async def get_profile(ctx: AuthorizationContext = Depends(require("view_college_profile"))):
    """The admin's own college."""
    return ok(CollegeService().profile(ctx))


@router.put("/settings")
async def update_settings(body: CollegeSettingsUpdate,
                          ctx: AuthorizationContext = Depends(require("update_college_settings"))):
    """Toggle student self-registration for this college."""
    college = CollegeService().update_settings(ctx, body.allow_student_self_signup)
    return ok(college, "Settings updated")


# ============================================================
# STUDENTS
# ============================================================

@router.get("/students")
async def list_students(
    college_id: Optional[str] = Query(None, description="Super admin only"),
    department: Optional[str] = None,
    batch: Optional[int] = None,
    is_verified: Optional[bool] = None,
    placement_status: Optional[PlacementStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_students")),
):
    """List students of the admin's college."""
    docs, pager = CollegeService().list_students(
        ctx, college_id, department, batch, is_verified,
        placement_status.value if placement_status else None, search, page, limit,
    )
    return paged(docs, pager)


@router.post("/students", status_code=201)
async def add_student(body: StudentCreate, ctx: AuthorizationContext = Depends(require("add_student"))):
    """Add a single student; students added by the college start verified."""
    outcome = CollegeService().add_student(ctx, body.model_dump())
    return ok(outcome.doc, "Student added successfully")


@router.post("/students/bulk", status_code=201)
async def bulk_add_students(body: StudentBulkCreate,
                            ctx: AuthorizationContext = Depends(require("add_student"))):
    """Add students from JSON rows; failures are reported per row."""
    results = CollegeService().bulk_add_students(ctx, [row.model_dump() for row in body.students])
    return ok(results, f"{len(results['success'])} students added, {len(results['failed'])} failed")


@router.get("/students/{student_id}")
async def get_student(student_id: str, ctx: AuthorizationContext = Depends(require("view_student"))):
    """Student details with recent applications."""
    return ok(CollegeService().get_student(ctx, student_id))


@router.put("/students/{student_id}")
async def update_student(student_id: str, body: StudentUpdate,
                         ctx: AuthorizationContext = Depends(require("update_student"))):
    """Update a student's academic or contact details."""
    student = CollegeService().update_student(ctx, student_id, body.model_dump(exclude_unset=True))
    return ok(student, "Student updated successfully")


@router.delete("/students/{student_id}")
async def delete_student(student_id: str, ctx: AuthorizationContext = Depends(require("delete_student"))):
    """Soft delete a student and deactivate their login."""
    CollegeService().delete_student(ctx, student_id)
    return ok(None, "Student deleted successfully")


@router.put("/students/{student_id}/verify")
async def verify_student(student_id: str, ctx: AuthorizationContext = Depends(require("verify_student"))):
    """Verify a student profile."""
    outcome = CollegeService().verify_student(ctx, student_id)
    return ok(outcome.doc, "Student verified successfully")


@router.put("/students/{student_id}/reject")
async def reject_student(student_id: str, body: StudentRejectRequest,
                         ctx: AuthorizationContext = Depends(require("verify_student"))):
    """Reject a student profile."""
    outcome = CollegeService().reject_student(ctx, student_id, body.reason)
    return ok(outcome.doc, "Student rejected")


@router.put("/students/{student_id}/star")
async def toggle_star(student_id: str, ctx: AuthorizationContext = Depends(require("star_student"))):
    """Mark or unmark a star student."""
    student = CollegeService().toggle_star(ctx, student_id)
    return ok(student, "Star status updated")


@router.put("/students/{student_id}/placement")
async def override_placement(student_id: str, body: PlacementOverride,
                             ctx: AuthorizationContext = Depends(require("override_placement"))):
    """Correct a student's placement status outside the application pipeline."""
    outcome = CollegeService().override_placement(
        ctx, student_id, body.placement_status, body.company, body.role, body.package
    )
    return ok(outcome.doc, "Placement status updated")


# ============================================================
# COMPANY ACCESS
# ============================================================

@router.get("/access-requests")
async def access_requests(status: Optional[AccessStatus] = None,
                          ctx: AuthorizationContext = Depends(require("manage_college_access"))):
    """Companies that asked to see this college's students."""
    return ok(CollegeService().access_requests(ctx, status.value if status else None))


@router.put("/access-requests/{company_id}")
async def respond_access(company_id: str, body: CollegeAccessDecision,
                         ctx: AuthorizationContext = Depends(require("manage_college_access"))):
    """Approve or reject a company's access request."""
    CollegeService().respond_access(ctx, company_id, body.approved)
    return ok(None, "Access approved" if body.approved else "Access rejected")


# ============================================================
# ACTIVITY
# ============================================================

@router.get("/activity-logs")
async def activity_logs(
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthorizationContext = Depends(require("view_activity_logs")),
):
    """Activity on this college's students."""
    docs, pager = AdminService().activity_logs(ctx, None, action, "Student", start, end, page, limit)
    return paged(docs, pager)
