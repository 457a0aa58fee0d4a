"""
Auth Service - registration, login and password changes.

Registration creates the user and its role profile (College, Company or
Student). The user insert comes first so the unique email index decides
races; if the profile insert then fails on its own unique index the user
is removed again.
"""

import logging
from typing import Optional, Dict, Any, List

from pymongo.errors import DuplicateKeyError

from placement_portal.core.auth import create_access_token, hash_password, verify_password
from placement_portal.core.errors import (
    AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
)
from placement_portal.core.policy import Actor
from placement_portal.services.base_service import DomainService
from placement_portal.services.college_service import new_student_doc
from placement_portal.services.events import Outcome, StudentAdded
from placement_portal.services.mongo_service import (
    CollegeRepository, CompanyRepository, StudentRepository, UserRepository
)
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = {
    "college_admin": ["college_name", "college_code"],
    "company": ["company_name"],
    "student": ["college_code", "first_name", "last_name", "department", "batch", "roll_number", "phone"],
}

_PROFILE_FIELD = {
    "college_admin": "college_profile",
    "company": "company_profile",
    "student": "student_profile",
}


def _missing(data: Dict[str, Any], fields: List[str]) -> List[str]:
    return [f for f in fields if data.get(f) in (None, "")]


class AuthService(DomainService):

    def __init__(self, db=None, platform=None):
        super().__init__(db, platform)
        self.users = UserRepository(self.db)
        self.colleges = CollegeRepository(self.db)
        self.companies = CompanyRepository(self.db)
        self.students = StudentRepository(self.db)

    # ============================================================
    # REGISTER
    # ============================================================

    def register(self, data: Dict[str, Any]) -> dict:
        role = data["role"]
        if role == "super_admin":
            raise AuthorizationError("Super admin accounts cannot be registered")

        missing = _missing(data, _REQUIRED_FIELDS[role])
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        self._check_registration_open(role, data)
        college = self._signup_college(data) if role == "student" else None

        approved = self.platform.auto_approves(role, data.get("company_type"))
        user = {
            "email": data["email"].lower(),
            "password_hash": hash_password(data["password"]),
            "role": role,
            "is_approved": approved,
            "is_active": True,
            "college_profile": None,
            "company_profile": None,
            "student_profile": None,
            "last_login": None,
        }
        try:
            self.users.insert(user)
        except DuplicateKeyError:
            raise ConflictError("User with this email already exists", field="email")

        try:
            outcome = self._create_profile(user, data, approved, college)
        except (ConflictError, DuplicateKeyError):
            self.users.collection.delete_one({"_id": user["_id"]})
            raise

        profile = outcome.doc
        profile_field = _PROFILE_FIELD[role]
        user = self.users.update_by_id(user["_id"], {"$set": {profile_field: profile["_id"]}})
        self._commit(outcome)

        logger.info("Registered %s account %s (approved=%s)", role, user["email"], approved)
        self.activity.log(user["_id"], "register", role, profile["_id"])
        return {
            "token": create_access_token({"sub": str(user["_id"])}),
            "user": self._public_user(user),
            "profile": profile,
            "message": "Registration successful" if approved else "Registration successful. Awaiting approval.",
        }

    def _check_registration_open(self, role: str, data: Dict[str, Any]) -> None:
        reg = self.platform.registration
        if role == "college_admin" and not reg.colleges_enabled:
            raise AuthorizationError("College registration is currently disabled")
        if role == "company":
            if data.get("company_type") == "placement_agency":
                if not reg.agencies_enabled:
                    raise AuthorizationError("Placement agency registration is currently disabled")
            elif not reg.companies_enabled:
                raise AuthorizationError("Company registration is currently disabled")
        if role == "student" and not self.platform.student_self_signup.enabled:
            raise AuthorizationError("Student self-registration is currently disabled")

    def _signup_college(self, data: Dict[str, Any]) -> dict:
        college = self.colleges.by_code(data["college_code"])
        if college is None or not college.get("is_verified") or college.get("is_active") is False:
            raise NotFoundError("College not found")
        if not (college.get("settings") or {}).get("allow_student_self_signup", True):
            raise AuthorizationError("This college does not allow student self-registration")
        return college

    def _create_profile(self, user: dict, data: Dict[str, Any], approved: bool,
                        college: Optional[dict]) -> Outcome:
        role = user["role"]
        if role == "college_admin":
            doc = {
                "name": data["college_name"],
                "code": data["college_code"].upper(),
                "university": data.get("university"),
                "address": {"city": data.get("city"), "state": data.get("state")},
                "contact_email": user["email"],
                "phone": data.get("phone"),
                "admin": user["_id"],
                "is_verified": approved,
                "verified_at": utcnow() if approved else None,
                "is_rejected": False,
                "is_active": True,
                "departments": list(data.get("departments") or []),
                "stats": {"total_students": 0, "verified_students": 0, "placed_students": 0},
                "settings": {"allow_student_self_signup": True},
            }
            try:
                self.colleges.insert(doc)
            except DuplicateKeyError:
                raise ConflictError("College code already exists", field="code")
            return Outcome(doc)

        if role == "company":
            doc = {
                "name": data["company_name"],
                "type": data.get("company_type") or "company",
                "industry": data.get("industry"),
                "website": data.get("website"),
                "contact_person": {"name": data.get("contact_person"), "email": user["email"],
                                   "phone": data.get("phone")},
                "user": user["_id"],
                "is_approved": approved,
                "is_rejected": False,
                "is_active": True,
                "is_suspended": False,
                "college_access": [],
                "download_tracking": None,
                "stats": {"total_jobs_posted": 0, "active_jobs": 0, "total_hires": 0},
            }
            self.companies.insert(doc)
            return Outcome(doc)

        doc = new_student_doc({**data, "email": user["email"]}, college["_id"], None,
                              "self_registration", verified=approved)
        doc["user"] = user["_id"]
        try:
            self.students.insert(doc)
        except DuplicateKeyError:
            raise ConflictError("A student with this email or roll number already exists in this college",
                                field="roll_number")
        return Outcome(doc, [StudentAdded(doc["_id"], college["_id"], is_verified=approved)])

    def create_super_admin(self, email: str, password: str) -> dict:
        """Bootstrap path for the first platform administrator."""
        user = {
            "email": email.lower(),
            "password_hash": hash_password(password),
            "role": "super_admin",
            "is_approved": True,
            "is_active": True,
            "college_profile": None,
            "company_profile": None,
            "student_profile": None,
            "last_login": None,
        }
        try:
            return self.users.insert(user)
        except DuplicateKeyError:
            raise ConflictError("User with this email already exists", field="email")

    # ============================================================
    # LOGIN / PROFILE / PASSWORD
    # ============================================================

    def login(self, email: str, password: str) -> dict:
        user = self.users.by_email(email)
        if user is None or not verify_password(password, user.get("password_hash", "")):
            raise AuthenticationError("Invalid credentials")
        if not user.get("is_active", True):
            raise AuthenticationError("Account is deactivated. Please contact support.")

        user = self.users.update_by_id(user["_id"], {"$set": {"last_login": utcnow()}})
        return {
            "token": create_access_token({"sub": str(user["_id"])}),
            "user": self._public_user(user),
            "profile": self._profile(user),
        }

    def me(self, actor: Actor) -> dict:
        user = self.users.get(None, actor.id)
        return {"user": self._public_user(user), "profile": self._profile(user)}

    def change_password(self, actor: Actor, current_password: str, new_password: str) -> None:
        user = self.users.get(None, actor.id)
        if not verify_password(current_password, user.get("password_hash", "")):
            raise ValidationError("Current password is incorrect")
        self.users.update_by_id(user["_id"], {"$set": {"password_hash": hash_password(new_password)}})
        self.activity.log(user["_id"], "change_password", "User", user["_id"])

    # ---------- internals ----------

    @staticmethod
    def _public_user(user: dict) -> dict:
        return {
            "id": user["_id"],
            "email": user["email"],
            "role": user["role"],
            "is_approved": user.get("is_approved", False),
            "is_active": user.get("is_active", True),
            "last_login": user.get("last_login"),
            "created_at": user.get("created_at"),
        }

    def _profile(self, user: dict) -> Optional[dict]:
        role = user["role"]
        if role == "college_admin":
            return self.colleges.find_one(None, {"_id": user.get("college_profile")})
        if role == "company":
            return self.companies.find_one(None, {"_id": user.get("company_profile")})
        if role == "student":
            return self.students.find_one(None, {"_id": user.get("student_profile")})
        return None
