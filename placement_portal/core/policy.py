"""
Authorization Policy

Pure decision functions over an explicit AuthorizationContext:

    check(ctx, operation, settings)  -> Decision      (role/approval/active/maintenance)
    scope_filter(ctx, collection)    -> Mongo filter  (ownership)
    visibility_filter(ctx)           -> Mongo filter  (soft-delete visibility)

Nothing here touches the database. Callers turn a denial into an exception
with ensure(); an ownership miss is always reported as NotFound so a caller
cannot probe for records that belong to another tenant.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, FrozenSet, Dict, Any

from bson import ObjectId

from placement_portal.core.errors import (
    AuthenticationError, AuthorizationError, NotFoundError, ServiceUnavailableError
)
from placement_portal.schemas.schemas import UserRole


SUPER_ADMIN = UserRole.super_admin.value
COLLEGE_ADMIN = UserRole.college_admin.value
COMPANY = UserRole.company.value
STUDENT = UserRole.student.value

ALL_ROLES = frozenset({SUPER_ADMIN, COLLEGE_ADMIN, COMPANY, STUDENT})


@dataclass(frozen=True)
class Actor:
    """Authenticated identity supplied by the authentication collaborator."""
    id: ObjectId
    email: str
    role: str
    is_approved: bool = False
    is_active: bool = True
    college_profile: Optional[ObjectId] = None
    company_profile: Optional[ObjectId] = None
    student_profile: Optional[ObjectId] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    @classmethod
    def from_user(cls, user: dict) -> "Actor":
        return cls(
            id=user["_id"],
            email=user.get("email", ""),
            role=user["role"],
            is_approved=bool(user.get("is_approved")),
            is_active=user.get("is_active", True),
            college_profile=user.get("college_profile"),
            company_profile=user.get("company_profile"),
            student_profile=user.get("student_profile"),
        )


@dataclass(frozen=True)
class AuthorizationContext:
    actor: Actor
    include_deleted: bool = False


@dataclass(frozen=True)
class Operation:
    name: str
    roles: FrozenSet[str]
    requires_approval: bool = True


class DenialReason(str, Enum):
    FORBIDDEN = "Forbidden"
    PENDING_APPROVAL = "PendingApproval"
    ACCOUNT_DEACTIVATED = "AccountDeactivated"
    MAINTENANCE = "Maintenance"
    NOT_FOUND = "NotFound"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None
    message: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenialReason, message: str) -> "Decision":
        return cls(False, reason, message)


def _op(name: str, *roles: str, requires_approval: bool = True) -> Operation:
    return Operation(name, frozenset(roles), requires_approval)


# Every endpoint declares one of these
OPERATIONS: Dict[str, Operation] = {op.name: op for op in [
    # any authenticated account
    _op("view_own_account", *ALL_ROLES, requires_approval=False),
    _op("change_password", *ALL_ROLES, requires_approval=False),

    # super admin
    _op("view_platform_stats", SUPER_ADMIN),
    _op("list_colleges", SUPER_ADMIN),
    _op("approve_college", SUPER_ADMIN),
    _op("delete_college", SUPER_ADMIN),
    _op("list_companies", SUPER_ADMIN),
    _op("approve_company", SUPER_ADMIN),
    _op("suspend_company", SUPER_ADMIN),
    _op("delete_company", SUPER_ADMIN),
    _op("list_users", SUPER_ADMIN),
    _op("toggle_user_status", SUPER_ADMIN),
    _op("manage_settings", SUPER_ADMIN),
    _op("reconcile_stats", SUPER_ADMIN),
    _op("view_activity_logs", SUPER_ADMIN, COLLEGE_ADMIN),

    # college admin (super admin may act on any college)
    _op("view_college_stats", COLLEGE_ADMIN),
    _op("list_students", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("view_student", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("add_student", COLLEGE_ADMIN),
    _op("update_student", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("delete_student", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("verify_student", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("star_student", COLLEGE_ADMIN),
    _op("override_placement", COLLEGE_ADMIN, SUPER_ADMIN),
    _op("manage_college_access", COLLEGE_ADMIN),
    _op("view_college_profile", COLLEGE_ADMIN, requires_approval=False),
    _op("update_college_settings", COLLEGE_ADMIN),

    # company / agency
    _op("view_company_profile", COMPANY, requires_approval=False),
    _op("update_company_profile", COMPANY, requires_approval=False),
    _op("view_company_stats", COMPANY),
    _op("request_college_access", COMPANY),
    _op("search_students", COMPANY),
    _op("download_student_data", COMPANY),
    _op("post_job", COMPANY),
    _op("list_own_jobs", COMPANY),
    _op("view_job", COMPANY, SUPER_ADMIN),
    _op("update_job", COMPANY),
    _op("close_job", COMPANY),
    _op("delete_job", COMPANY, SUPER_ADMIN),
    _op("view_applicants", COMPANY, SUPER_ADMIN),
    _op("shortlist_student", COMPANY),
    _op("update_application_status", COMPANY, SUPER_ADMIN),

    # student
    _op("view_student_profile", STUDENT),
    _op("update_student_profile", STUDENT),
    _op("list_eligible_jobs", STUDENT),
    _op("apply_job", STUDENT),
    _op("list_own_applications", STUDENT),
    _op("withdraw_application", STUDENT),
    _op("respond_to_offer", STUDENT),
    _op("view_notifications", COLLEGE_ADMIN, COMPANY, STUDENT, requires_approval=False),
]}


def get_operation(name: str) -> Operation:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise KeyError(f"Unknown operation: {name}") from None


def check(ctx: AuthorizationContext, operation: Operation, settings: Any = None) -> Decision:
    """
    Role, approval, active and maintenance gates, in that order.

    `settings` is the loaded PlatformSettings (or None to skip the
    maintenance gate).
    """
    actor = ctx.actor

    if actor.role not in operation.roles:
        return Decision.deny(
            DenialReason.FORBIDDEN,
            f"Access denied. Required roles: {', '.join(sorted(operation.roles))}",
        )

    if operation.requires_approval and not actor.is_super_admin and not actor.is_approved:
        return Decision.deny(
            DenialReason.PENDING_APPROVAL,
            "Account pending approval. Please wait for admin verification.",
        )

    if not actor.is_active:
        return Decision.deny(
            DenialReason.ACCOUNT_DEACTIVATED,
            "Account is deactivated. Please contact support.",
        )

    maintenance = getattr(settings, "maintenance_mode", None)
    if maintenance is not None and maintenance.enabled and not actor.is_super_admin:
        if actor.role not in maintenance.allowed_roles:
            return Decision.deny(DenialReason.MAINTENANCE, maintenance.message)

    if ctx.include_deleted and not actor.is_super_admin:
        return Decision.deny(
            DenialReason.FORBIDDEN,
            "Only super admins may view deleted records",
        )

    return Decision.allow()


def ensure(decision: Decision) -> None:
    """Raise the taxonomy error matching a denial."""
    if decision.allowed:
        return
    if decision.reason == DenialReason.ACCOUNT_DEACTIVATED:
        raise AuthenticationError(decision.message)
    if decision.reason == DenialReason.MAINTENANCE:
        raise ServiceUnavailableError(decision.message)
    if decision.reason == DenialReason.NOT_FOUND:
        raise NotFoundError(decision.message or None)
    raise AuthorizationError(decision.message)


def authorize(ctx: AuthorizationContext, operation_name: str, settings: Any = None) -> None:
    ensure(check(ctx, get_operation(operation_name), settings))


# ============================================================
# OWNERSHIP SCOPING
# ============================================================

def visibility_filter(ctx: Optional[AuthorizationContext] = None) -> Dict[str, Any]:
    """Default soft-delete filter; only a super admin may lift it."""
    if ctx is not None and ctx.include_deleted and ctx.actor.is_super_admin:
        return {}
    return {"lifecycle.is_deleted": {"$ne": True}}


def _impossible() -> Dict[str, Any]:
    return {"_id": {"$in": []}}


def scope_filter(ctx: AuthorizationContext, collection: str) -> Dict[str, Any]:
    """
    Ownership filter to AND into every query on `collection`.

    - super_admin: unscoped
    - college_admin: students of own college; jobs that are open to all
      colleges or are drives for own college; applications of own students
    - company: own jobs and applications on own jobs; students unscoped
      (visibility is governed by the data-visibility policy instead)
    - student: own record and own applications; jobs are filtered by the
      eligibility evaluator rather than here
    """
    actor = ctx.actor
    if actor.is_super_admin:
        return {}

    if actor.role == COLLEGE_ADMIN:
        if actor.college_profile is None:
            return _impossible()
        if collection == "students":
            return {"college": actor.college_profile}
        if collection == "applications":
            return {"college": actor.college_profile}
        if collection == "jobs":
            return {"$or": [
                {"is_placement_drive": {"$ne": True}},
                {"college": actor.college_profile},
            ]}
        if collection == "colleges":
            return {"_id": actor.college_profile}
        return _impossible()

    if actor.role == COMPANY:
        if actor.company_profile is None:
            return _impossible()
        if collection in ("jobs", "applications"):
            return {"company": actor.company_profile}
        if collection == "companies":
            return {"_id": actor.company_profile}
        if collection == "students":
            return {}
        return _impossible()

    if actor.role == STUDENT:
        if actor.student_profile is None:
            return _impossible()
        if collection == "students":
            return {"_id": actor.student_profile}
        if collection == "applications":
            return {"student": actor.student_profile}
        if collection == "jobs":
            return {}
        return _impossible()

    return _impossible()


def scoped_query(ctx: AuthorizationContext, collection: str, query: Optional[dict] = None,
                 soft_delete: bool = True) -> Dict[str, Any]:
    """Combine a caller query with ownership and soft-delete filters."""
    clauses = [c for c in (
        query or {},
        scope_filter(ctx, collection),
        visibility_filter(ctx) if soft_delete else {},
    ) if c]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}
