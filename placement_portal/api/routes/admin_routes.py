"""
Super Admin Routes

GET /admin/dashboard - Platform statistics
GET /admin/colleges - List colleges (pending / approved / rejected)
GET /admin/colleges/{college_id} - College details
PUT /admin/colleges/{college_id}/approval - Approve or reject a college
DELETE /admin/colleges/{college_id} - Soft delete a college
GET /admin/companies - List companies and agencies
PUT /admin/companies/{company_id}/approval - Approve or reject a company
PUT /admin/companies/{company_id}/suspension - Suspend or reinstate a company
DELETE /admin/companies/{company_id} - Soft delete a company
GET /admin/users - List users
PUT /admin/users/{user_id}/toggle-status - Activate / deactivate a user
GET /admin/settings - Platform settings
PUT /admin/settings - Update platform settings
POST /admin/settings/reset - Reset platform settings to defaults
POST /admin/stats/reconcile - Recompute denormalized counters
GET /admin/activity-logs - Audit trail
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import (
    ApprovalDecision, ApprovalFilter, CompanyType, SettingsUpdate, SuspensionRequest, UserRole
)
from placement_portal.services.admin_service import AdminService
from placement_portal.services.settings_service import SettingsService

router = APIRouter(prefix="/admin", tags=["Super Admin"])


@router.get("/dashboard")
async def dashboard(ctx: AuthorizationContext = Depends(require("view_platform_stats"))):
    """Counts across the platform plus recent registrations."""
    return ok(AdminService().dashboard(ctx))


# ============================================================
# COLLEGES
# ============================================================

@router.get("/colleges")
async def list_colleges(
    status: Optional[ApprovalFilter] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_colleges")),
):
    """List colleges with approval filter and name/code search."""
    docs, pager = AdminService().list_colleges(ctx, status.value if status else None, search, page, limit)
    return paged(docs, pager)


@router.get("/colleges/{college_id}")
async def get_college(college_id: str, ctx: AuthorizationContext = Depends(require("list_colleges"))):
    """College details with its admin account."""
    return ok(AdminService().get_college(ctx, college_id))


@router.put("/colleges/{college_id}/approval")
async def decide_college(college_id: str, body: ApprovalDecision,
                         ctx: AuthorizationContext = Depends(require("approve_college"))):
    """Approve or reject a college registration."""
    college = AdminService().decide_college(ctx, college_id, body.approved, body.reason)
    return ok(college, "College approved" if body.approved else "College rejected")


@router.delete("/colleges/{college_id}")
async def delete_college(college_id: str, ctx: AuthorizationContext = Depends(require("delete_college"))):
    """Soft delete a college and deactivate its admin."""
    AdminService().delete_college(ctx, college_id)
    return ok(None, "College deleted")


# ============================================================
# COMPANIES
# ============================================================

@router.get("/companies")
async def list_companies(
    status: Optional[ApprovalFilter] = None,
    type: Optional[CompanyType] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_companies")),
):
    """List companies and placement agencies."""
    docs, pager = AdminService().list_companies(
        ctx, status.value if status else None, type.value if type else None, search, page, limit
    )
    return paged(docs, pager)


@router.put("/companies/{company_id}/approval")
async def decide_company(company_id: str, body: ApprovalDecision,
                         ctx: AuthorizationContext = Depends(require("approve_company"))):
    """Approve or reject a company or agency registration."""
    company = AdminService().decide_company(ctx, company_id, body.approved, body.reason)
    return ok(company, "Company approved" if body.approved else "Company rejected")


@router.put("/companies/{company_id}/suspension")
async def suspend_company(company_id: str, body: SuspensionRequest,
                          ctx: AuthorizationContext = Depends(require("suspend_company"))):
    """Suspend a company (blocks job posting) or lift the suspension."""
    company = AdminService().suspend_company(ctx, company_id, body.suspended, body.reason)
    return ok(company, "Company suspended" if body.suspended else "Company reinstated")


@router.delete("/companies/{company_id}")
async def delete_company(company_id: str, ctx: AuthorizationContext = Depends(require("delete_company"))):
    """Soft delete a company, cancel its open jobs and deactivate its user."""
    outcome = AdminService().delete_company(ctx, company_id)
    return ok({"cancelled_jobs": len(outcome.events)}, "Company deleted")


# ============================================================
# USERS
# ============================================================

@router.get("/users")
async def list_users(
    role: Optional[UserRole] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("list_users")),
):
    """List user accounts."""
    docs, pager = AdminService().list_users(ctx, role.value if role else None, status, page, limit)
    return paged(docs, pager)


@router.put("/users/{user_id}/toggle-status")
async def toggle_user(user_id: str, ctx: AuthorizationContext = Depends(require("toggle_user_status"))):
    """Flip a user's active flag."""
    result = AdminService().toggle_user(ctx, user_id)
    return ok(result, "User activated" if result["is_active"] else "User deactivated")


# ============================================================
# SETTINGS
# ============================================================

@router.get("/settings")
async def get_settings(ctx: AuthorizationContext = Depends(require("manage_settings"))):
    """Current platform settings."""
    return ok(SettingsService().load().model_dump())


@router.put("/settings")
async def update_settings(body: SettingsUpdate, request: Request,
                          ctx: AuthorizationContext = Depends(require("manage_settings"))):
    """Merge changes into the platform settings and reload them for this process."""
    updated = SettingsService().update(body.model_dump(exclude_none=True), ctx.actor.id)
    request.app.state.platform_settings = updated
    AdminService().activity.log(ctx.actor.id, "update_settings", "PlatformSettings",
                                metadata={"sections": sorted(body.model_dump(exclude_none=True))})
    return ok(updated.model_dump(), "Settings updated")


@router.post("/settings/reset")
async def reset_settings(request: Request, ctx: AuthorizationContext = Depends(require("manage_settings"))):
    """Restore default platform settings."""
    updated = SettingsService().reset(ctx.actor.id)
    request.app.state.platform_settings = updated
    return ok(updated.model_dump(), "Settings reset to defaults")


# ============================================================
# STATS / AUDIT
# ============================================================

@router.post("/stats/reconcile")
async def reconcile_stats(ctx: AuthorizationContext = Depends(require("reconcile_stats"))):
    """Recompute job, company and college counters from source records."""
    return ok(AdminService().reconcile_stats(ctx), "Stats reconciled")


@router.get("/activity-logs")
async def activity_logs(
    user: Optional[str] = None,
    action: Optional[str] = None,
    target_model: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthorizationContext = Depends(require("view_activity_logs")),
):
    """Audit trail; college admins only see activity on their own students."""
    docs, pager = AdminService().activity_logs(ctx, user, action, target_model, start, end, page, limit)
    return paged(docs, pager)
