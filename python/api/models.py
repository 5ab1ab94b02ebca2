"""
Pydantic request/response schemas for the DocVerify API

Record payloads are built from DocumentVerification.to_dict(), so requester
metadata (ip_address, user_agent) never reaches a response.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from database.models import ensure_utc


# ============================================
# AUTH
# ============================================

class LoginRequest(BaseModel):
    """Request schema for admin login."""
    email: str = Field(..., min_length=3, max_length=255, description="Admin email")
    password: str = Field(..., min_length=1, max_length=256, description="Admin password")


class AdminResponse(BaseModel):
    """Admin account as returned to superadmins and to the account owner."""
    id: str
    email: str
    name: str
    role: str
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    is_active: bool = True
    last_login: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_admin(cls, admin) -> "AdminResponse":
        return cls(
            id=str(admin.id),
            email=admin.email,
            name=admin.name,
            role=admin.role.value,
            phone=admin.phone,
            department=admin.department,
            designation=admin.designation,
            is_active=admin.is_active,
            last_login=_iso(admin.last_login),
            created_by=str(admin.created_by) if admin.created_by else None,
            created_at=_iso(admin.created_at),
        )


class TokenResponse(BaseModel):
    """Response schema for a successful login."""
    access_token: str = Field(..., description="Bearer token")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., ge=1, description="Token lifetime in seconds")
    admin: AdminResponse


class MessageResponse(BaseModel):
    message: str


# ============================================
# ADMIN MANAGEMENT
# ============================================

class AdminCreate(BaseModel):
    """Request schema for creating an admin (superadmin only)."""
    name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)
    phone: str = Field(..., max_length=20)
    role: str = Field(default="admin", description="admin or superadmin")
    department: Optional[str] = Field(default=None, max_length=100)
    designation: Optional[str] = Field(default=None, max_length=100)


class AdminUpdate(BaseModel):
    """Partial update; only the fields present in the body are changed."""
    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=256)
    phone: Optional[str] = Field(default=None, max_length=20)
    role: Optional[str] = None
    department: Optional[str] = Field(default=None, max_length=100)
    designation: Optional[str] = Field(default=None, max_length=100)
    is_active: Optional[bool] = None


class AdminListResponse(BaseModel):
    items: List[AdminResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)


# ============================================
# AUDIT TRAIL
# ============================================

class AuditLogResponse(BaseModel):
    """One audit entry; details follow the per-action keys of AUDIT_DETAIL_KEYS."""
    id: str
    timestamp: Optional[str] = None
    action: str
    target_type: str
    target_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)


# ============================================
# VERIFICATIONS
# ============================================

class VerificationResponse(BaseModel):
    """Verification record (public view)."""
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    id_number: str
    job_title: str
    department: str
    start_date: str
    end_date: Optional[str] = None
    employment_status: str
    document_url: str
    document_type: str
    document_size: int
    document_mime_type: str
    status: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    notes: Optional[str] = None
    created_by: str
    submitted_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class VerificationListResponse(BaseModel):
    items: List[VerificationResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)


class ReviewRequest(BaseModel):
    """Request schema for setting a review status."""
    status: str = Field(..., description="pending, approved or rejected")
    notes: Optional[str] = Field(default=None, max_length=500, description="Reviewer notes")


class EmploymentRequest(BaseModel):
    """Request schema for changing the employment sub-state."""
    employment_status: str = Field(..., description="active or former")
    end_date: Optional[str] = Field(
        default=None,
        description="End date in ISO 8601 format; defaults to now when moving to former"
    )

    @field_validator('end_date')
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class DeleteResponse(BaseModel):
    message: str
    document_deleted: bool = Field(..., description="Whether the stored document was removed")


class StatusCounts(BaseModel):
    total: int = Field(..., ge=0)
    pending: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)


class StatsResponse(BaseModel):
    stats: StatusCounts
    recent: List[VerificationResponse] = Field(default_factory=list)


class TrendPointResponse(BaseModel):
    date: str
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0


class TrendResponse(BaseModel):
    period: str = Field(..., description="7d, 30d, 90d or 1y")
    start_date: str
    series: List[TrendPointResponse] = Field(default_factory=list)


class ProcessingMetrics(BaseModel):
    """Hours from submission to review."""
    average_hours: float
    min_hours: float
    max_hours: float
    total_processed: int = Field(..., ge=0)


class OutcomeMetrics(BaseModel):
    approval_rate: int = Field(..., ge=0, le=100, description="Approved share in percent")
    pending: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class PerformanceResponse(BaseModel):
    period: str = Field(..., description="7d, 30d, 90d or 1y")
    start_date: str
    processing: ProcessingMetrics
    outcomes: OutcomeMetrics


class ReviewerActivityResponse(BaseModel):
    reviewer_id: str
    reviewer_email: Optional[str] = None
    actions: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)


class ActivityResponse(BaseModel):
    period: str = Field(..., description="7d, 30d, 90d or 1y")
    start_date: str
    reviewers: List[ReviewerActivityResponse] = Field(default_factory=list)


# ============================================
# PUBLIC LOOKUP
# ============================================

class VerifiedIdentity(BaseModel):
    id_number: str
    name: str
    email: str
    phone: Optional[str] = None
    document_type: str
    verified_at: Optional[str] = None
    submitted_at: Optional[str] = None
    status: str


class IdVerificationResponse(BaseModel):
    """Answer to "is this ID number verified?"."""
    verified: bool
    data: Optional[VerifiedIdentity] = None
    message: Optional[str] = None


class StatusLookupResponse(BaseModel):
    """Review status of the latest submission for an ID number."""
    id_number: str
    name: str
    status: str
    message: str
    submitted_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    notes: Optional[str] = Field(default=None, description="Present only when rejected")


# ============================================
# SYSTEM
# ============================================

class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(default="healthy", description="Service status")
    database: str = Field(..., description="Database connectivity: ok or unavailable")
    version: str = Field(..., description="API version")
    uptime_seconds: Optional[int] = Field(default=None, description="Server uptime in seconds")


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    field: Optional[str] = Field(default=None, description="Field that caused error")
    suggestion: Optional[str] = Field(default=None, description="How to fix the error")
    timestamp: str = Field(..., description="Error timestamp (ISO 8601)")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: ErrorDetail


def _iso(value) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None
