"""
Platform Settings

A singleton document holding the admin-editable runtime toggles. It is
loaded once before the app starts serving, kept on `app.state`, passed
explicitly into the policy and services, and reloaded only when a super
admin changes it.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, ClassVar, Tuple

from bson import ObjectId
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

from placement_portal.core.errors import ValidationError
from placement_portal.db.mongodb import get_mongo_db, COLLECTIONS
from placement_portal.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SETTINGS_KEY = "platform"


class StudentSelfSignup(BaseModel):
    enabled: bool = True
    require_approval: bool = True


class Registration(BaseModel):
    colleges_enabled: bool = True
    companies_enabled: bool = True
    agencies_enabled: bool = True


class ApprovalRules(BaseModel):
    auto_approve_colleges: bool = False
    auto_approve_companies: bool = False
    auto_approve_agencies: bool = False
    auto_approve_students: bool = False


class MaintenanceMode(BaseModel):
    enabled: bool = False
    message: str = "System is under maintenance. Please check back later."
    allowed_roles: List[str] = ["super_admin"]


class VisibleFields(BaseModel):
    contact_info: bool = True
    resume: bool = True


class DataVisibility(BaseModel):
    student_data_visible_to_companies: bool = True
    student_data_visible_to_agencies: bool = True
    visible_fields: VisibleFields = VisibleFields()
    max_downloads_per_day: int = Field(100, ge=0)


class JobPosting(BaseModel):
    allow_companies: bool = True
    allow_agencies: bool = True


class PlatformSettings(BaseModel):
    student_self_signup: StudentSelfSignup = StudentSelfSignup()
    registration: Registration = Registration()
    approval_rules: ApprovalRules = ApprovalRules()
    maintenance_mode: MaintenanceMode = MaintenanceMode()
    data_visibility: DataVisibility = DataVisibility()
    job_posting: JobPosting = JobPosting()
    version: str = "1.0.0"
    updated_at: Optional[datetime] = None

    SECTIONS: ClassVar[Tuple[str, ...]] = (
        "student_self_signup", "registration", "approval_rules",
        "maintenance_mode", "data_visibility", "job_posting",
    )

    def auto_approves(self, role: str, company_type: Optional[str] = None) -> bool:
        rules = self.approval_rules
        if role == "college_admin":
            return rules.auto_approve_colleges
        if role == "company":
            if company_type == "placement_agency":
                return rules.auto_approve_agencies
            return rules.auto_approve_companies
        if role == "student":
            return rules.auto_approve_students or not self.student_self_signup.require_approval
        return role == "super_admin"


class SettingsService:
    """Loads and updates the singleton settings document."""

    def __init__(self, db: Optional[Database] = None):
        db = db if db is not None else get_mongo_db()
        self.collection = db[COLLECTIONS["platform_settings"]]

    def load(self) -> PlatformSettings:
        """Fetch the singleton, creating it with defaults on first access."""
        defaults = PlatformSettings().model_dump(exclude={"updated_at"})
        doc = self.collection.find_one_and_update(
            {"key": SETTINGS_KEY},
            {"$setOnInsert": {"key": SETTINGS_KEY, **defaults, "updated_at": utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        doc.pop("_id", None)
        doc.pop("key", None)
        doc.pop("updated_by", None)
        return PlatformSettings.model_validate(doc)

    def update(self, changes: Dict[str, Dict[str, Any]], actor_id: ObjectId) -> PlatformSettings:
        """Merge per-section changes, validate the result, persist, return it."""
        current = self.load().model_dump()
        for section, values in changes.items():
            if values is None:
                continue
            if section not in PlatformSettings.SECTIONS:
                raise ValidationError(f"Unknown settings section: {section}")
            current[section] = _deep_merge(current[section], values)
        try:
            updated = PlatformSettings.model_validate(current)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e.errors()[0].get('msg')}")

        payload = updated.model_dump(exclude={"updated_at"})
        payload["updated_at"] = utcnow()
        payload["updated_by"] = actor_id
        self.collection.update_one({"key": SETTINGS_KEY}, {"$set": payload}, upsert=True)
        logger.info("Platform settings updated by %s: %s", actor_id, sorted(k for k, v in changes.items() if v))
        return self.load()

    def reset(self, actor_id: ObjectId) -> PlatformSettings:
        payload = PlatformSettings().model_dump(exclude={"updated_at"})
        payload["updated_at"] = utcnow()
        payload["updated_by"] = actor_id
        self.collection.update_one({"key": SETTINGS_KEY}, {"$set": payload}, upsert=True)
        return self.load()


def _deep_merge(base: dict, changes: dict) -> dict:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
