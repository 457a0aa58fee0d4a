"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum

from placement_portal.utils.timeutils import to_naive_utc


class BaseModel(PydanticBaseModel):
    # enum fields hold plain strings so documents and messages carry values
    model_config = ConfigDict(use_enum_values=True, validate_default=True)


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    super_admin = "super_admin"
    college_admin = "college_admin"
    company = "company"
    student = "student"


class CompanyType(str, Enum):
    company = "company"
    placement_agency = "placement_agency"


class AccessStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class JobType(str, Enum):
    internship = "internship"
    full_time = "full_time"
    part_time = "part_time"
    contract = "contract"


class JobStatus(str, Enum):
    draft = "draft"
    open = "open"
    closed = "closed"
    filled = "filled"
    cancelled = "cancelled"


class ApplicationStatus(str, Enum):
    applied = "applied"
    under_review = "under_review"
    shortlisted = "shortlisted"
    interview_scheduled = "interview_scheduled"
    interviewed = "interviewed"
    offered = "offered"
    offer_accepted = "offer_accepted"
    hired = "hired"
    rejected = "rejected"
    withdrawn = "withdrawn"


class PlacementStatus(str, Enum):
    not_placed = "not_placed"
    in_process = "in_process"
    placed = "placed"
    not_interested = "not_interested"
    higher_studies = "higher_studies"


class InterviewMode(str, Enum):
    online = "online"
    in_person = "in_person"
    phone = "phone"


class DownloadType(str, Enum):
    resume = "resume"
    profile_data = "profile_data"
    csv_export = "csv_export"


class ApprovalFilter(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# ============================================================
# AUTH SCHEMAS
# ============================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: UserRole

    # college_admin
    college_name: Optional[str] = None
    college_code: Optional[str] = None
    university: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    departments: List[str] = []

    # company
    company_name: Optional[str] = None
    company_type: CompanyType = CompanyType.company
    industry: Optional[str] = None
    contact_person: Optional[str] = None
    website: Optional[str] = None

    # student self-registration
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    department: Optional[str] = None
    batch: Optional[int] = Field(None, ge=2000, le=2100)
    roll_number: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


# ============================================================
# STUDENT SCHEMAS
# ============================================================

class Backlogs(BaseModel):
    active: int = Field(0, ge=0)
    history: int = Field(0, ge=0)


class StudentCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str
    department: str
    batch: int = Field(..., ge=2000, le=2100)
    roll_number: str = Field(..., min_length=1)
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    backlogs: Backlogs = Backlogs()
    skills: List[str] = []
    resume_url: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class StudentUpdate(BaseModel):
    """Fields a college admin may edit. College membership is never editable."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    batch: Optional[int] = Field(None, ge=2000, le=2100)
    roll_number: Optional[str] = None
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    backlogs: Optional[Backlogs] = None
    skills: Optional[List[str]] = None
    resume_url: Optional[str] = None


class StudentSelfUpdate(BaseModel):
    """Fields a student may edit on their own profile."""
    phone: Optional[str] = None
    skills: Optional[List[str]] = None
    resume_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None
    about: Optional[str] = Field(None, max_length=1000)


class StudentBulkCreate(BaseModel):
    students: List[StudentCreate] = Field(..., min_length=1, max_length=500)


class StudentRejectRequest(BaseModel):
    reason: Optional[str] = None


class PlacementOverride(BaseModel):
    placement_status: PlacementStatus
    company: Optional[str] = None
    role: Optional[str] = None
    package: Optional[float] = Field(None, ge=0)


class CollegeSettingsUpdate(BaseModel):
    allow_student_self_signup: bool


# ============================================================
# COMPANY SCHEMAS
# ============================================================

class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    industry: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    contact_person: Optional[str] = None
    preferred_departments: Optional[List[str]] = None


class CollegeAccessRequest(BaseModel):
    college_id: str


class CollegeAccessDecision(BaseModel):
    approved: bool


class DownloadRequest(BaseModel):
    student_id: str
    download_type: DownloadType = DownloadType.resume


# ============================================================
# JOB SCHEMAS
# ============================================================

class Eligibility(BaseModel):
    min_cgpa: float = Field(0, ge=0, le=10)
    max_backlogs: Optional[int] = Field(None, ge=0)
    allowed_departments: List[str] = []
    allowed_batches: List[int] = []


class Salary(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = "INR"


class JobCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=1)
    type: JobType
    locations: List[str] = []
    salary: Optional[Salary] = None
    eligibility: Eligibility = Eligibility()
    application_deadline: datetime
    college_id: Optional[str] = None
    status: JobStatus = JobStatus.open

    @field_validator("application_deadline")
    @classmethod
    def naive_deadline(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @field_validator("status")
    @classmethod
    def initial_status(cls, v: JobStatus) -> JobStatus:
        if v not in (JobStatus.draft, JobStatus.open):
            raise ValueError("A new job must start as draft or open")
        return v


class JobUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = None
    type: Optional[JobType] = None
    locations: Optional[List[str]] = None
    salary: Optional[Salary] = None
    eligibility: Optional[Eligibility] = None
    application_deadline: Optional[datetime] = None
    status: Optional[JobStatus] = None
    # "" or null detaches the drive; omitted leaves it unchanged
    college_id: Optional[str] = None

    @field_validator("application_deadline")
    @classmethod
    def naive_deadline(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class JobCloseRequest(BaseModel):
    status: JobStatus = JobStatus.closed

    @field_validator("status")
    @classmethod
    def closing_status(cls, v: JobStatus) -> JobStatus:
        if v not in (JobStatus.closed, JobStatus.filled, JobStatus.cancelled):
            raise ValueError("Closing status must be closed, filled or cancelled")
        return v


# ============================================================
# APPLICATION SCHEMAS
# ============================================================

class ApplicationCreate(BaseModel):
    cover_letter: Optional[str] = None


class InterviewDetails(BaseModel):
    round: Optional[int] = Field(None, ge=1)
    scheduled_at: Optional[datetime] = None
    mode: InterviewMode = InterviewMode.online
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    feedback: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)

    @field_validator("scheduled_at")
    @classmethod
    def naive_schedule(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class OfferDetails(BaseModel):
    package: Optional[float] = Field(None, ge=0)
    role: Optional[str] = None
    joining_date: Optional[datetime] = None
    offer_letter_url: Optional[str] = None

    @field_validator("joining_date")
    @classmethod
    def naive_joining(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus
    remarks: Optional[str] = None
    interview: Optional[InterviewDetails] = None
    offer: Optional[OfferDetails] = None


class ShortlistRequest(BaseModel):
    student_id: str
    job_id: str
    notes: Optional[str] = None


class OfferResponse(BaseModel):
    accept: bool


# ============================================================
# SUPER ADMIN SCHEMAS
# ============================================================

class ApprovalDecision(BaseModel):
    approved: bool
    reason: Optional[str] = None


class SuspensionRequest(BaseModel):
    suspended: bool
    reason: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Partial update: section name -> fields to change."""
    student_self_signup: Optional[Dict[str, Any]] = None
    registration: Optional[Dict[str, Any]] = None
    approval_rules: Optional[Dict[str, Any]] = None
    maintenance_mode: Optional[Dict[str, Any]] = None
    data_visibility: Optional[Dict[str, Any]] = None
    job_posting: Optional[Dict[str, Any]] = None
