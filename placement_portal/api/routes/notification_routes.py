"""
Notification Routes (any college admin, company or student account)

GET /notifications - Own notifications
PUT /notifications/read-all - Mark all notifications read
PUT /notifications/{notification_id}/read - Mark one notification read
"""

from fastapi import APIRouter, Depends, Query

from placement_portal.api.responses import ok, paged
from placement_portal.core.auth import require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.services.student_service import StudentService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: AuthorizationContext = Depends(require("view_notifications")),
):
    """Own notifications, newest first."""
    docs, pager = StudentService().notifications_for(ctx, unread_only, page, limit)
    return paged(docs, pager)


@router.put("/read-all")
async def mark_all_read(ctx: AuthorizationContext = Depends(require("view_notifications"))):
    """Mark every unread notification read."""
    return ok({"updated": StudentService().mark_all_read(ctx)})


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, ctx: AuthorizationContext = Depends(require("view_notifications"))):
    """Mark one notification read."""
    return ok(StudentService().mark_read(ctx, notification_id))
