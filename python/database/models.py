"""
SQLAlchemy ORM Models for the DocVerify document verification service

Tables:
1. admins - Administrator accounts (roles, lockout counters, profile)
2. document_verifications - Submitted identity/employment documents and
   their review state
3. audit_logs - Append-only trail of state-changing operations

Column types are dialect-neutral (Uuid, JSON) so the same schema runs on
PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional, Dict, Any

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Text, ForeignKey, Index, Enum, JSON, Uuid
)
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy.sql import func

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================
# ENUMS
# ============================================

class AdminRole(str, PyEnum):
    """Administrator role"""
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class VerificationStatus(str, PyEnum):
    """Review status of a verification record"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EmploymentStatus(str, PyEnum):
    """Employment sub-state of a verification record"""
    ACTIVE = "active"
    FORMER = "former"


class DocumentType(str, PyEnum):
    """Type of identity document (inferred from filename)"""
    PASSPORT = "passport"
    DRIVER_LICENSE = "driver_license"
    NATIONAL_ID = "national_id"
    OTHER = "other"


class AuditAction(str, PyEnum):
    """Type of audit action"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UPLOAD = "upload"
    RESTORE = "restore"
    LOGIN = "login"
    LOGOUT = "logout"


class AuditTargetType(str, PyEnum):
    """Kind of resource an audit entry refers to"""
    USER = "User"
    ADMIN = "Admin"
    CERTIFICATE = "Certificate"
    VERIFICATION = "DocumentVerification"


# Documented (not enforced) shape of AuditLog.details per action.
AUDIT_DETAIL_KEYS: Dict[str, tuple] = {
    "upload": ("name", "id_number", "document_type", "channel"),
    "update:verification_status": ("old_status", "new_status", "notes"),
    "update:employment_status": ("field", "from", "to", "end_date"),
    "update:admin": ("changed",),
    "delete:verification": ("name", "id_number", "document_deleted"),
    "delete:admin": ("email",),
    "create:admin": ("email", "role"),
    "login": ("email",),
    "logout": ("email",),
}


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )


# ============================================
# IDENTITY MODELS
# ============================================

class Admin(Base, TimestampMixin):
    """
    Administrator account.

    Admins are never hard-deleted; deactivation flips is_active. Failed
    logins increment login_attempts until the account is locked.
    """
    __tablename__ = "admins"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Stored lowercase; uniqueness is therefore case-insensitive
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[AdminRole] = mapped_column(
        Enum(AdminRole),
        nullable=False,
        default=AdminRole.ADMIN,
        index=True
    )

    # Account state
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Profile
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    designation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Null for the bootstrap superadmin
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """True while lock_until lies in the future"""
        lock_until = ensure_utc(self.lock_until)
        return lock_until is not None and lock_until > (now or utcnow())

    @property
    def is_superadmin(self) -> bool:
        return self.role == AdminRole.SUPERADMIN

    def __repr__(self) -> str:
        return f"<Admin(id={self.id}, email='{self.email}', role={self.role})>"


# ============================================
# VERIFICATION MODELS
# ============================================

class DocumentVerification(Base, TimestampMixin):
    """
    A submitted identity/employment document and its review state.

    Invariants maintained by the lifecycle service:
    - status == pending  <=>  reviewed_by is None  <=>  reviewed_at is None
    - employment_status == former  =>  end_date is not None
    - employment_status == active  =>  end_date is None
    - created_by is set once on insert and is the ownership key
    """
    __tablename__ = "document_verifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Subject
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    id_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Employment
    job_title: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    employment_status: Mapped[EmploymentStatus] = mapped_column(
        Enum(EmploymentStatus),
        nullable=False,
        default=EmploymentStatus.ACTIVE
    )

    # Document
    document_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    document_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType),
        nullable=False,
        default=DocumentType.OTHER
    )
    document_size: Mapped[int] = mapped_column(Integer, nullable=False)
    document_mime_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Review
    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus),
        nullable=False,
        default=VerificationStatus.PENDING,
        index=True
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("admins.id"),
        nullable=True
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Ownership (isolation key)
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("admins.id"),
        nullable=False,
        index=True
    )

    # Request metadata, never exposed
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_verification_owner_created', 'created_by', 'created_at'),
        Index('ix_verification_id_number_status', 'id_number', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Public representation (ip_address and user_agent omitted)"""
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "id_number": self.id_number,
            "job_title": self.job_title,
            "department": self.department,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "employment_status": _value(self.employment_status),
            "document_url": self.document_url,
            "document_type": _value(self.document_type),
            "document_size": self.document_size,
            "document_mime_type": self.document_mime_type,
            "status": _value(self.status),
            "reviewed_by": str(self.reviewed_by) if self.reviewed_by else None,
            "reviewed_at": _iso(self.reviewed_at),
            "notes": self.notes,
            "created_by": str(self.created_by),
            "submitted_at": _iso(self.submitted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<DocumentVerification(id={self.id}, id_number='{self.id_number}', status={self.status})>"


# ============================================
# AUDIT MODELS
# ============================================

class AuditLog(Base):
    """
    Append-only audit trail.

    One entry per state-changing operation. See AUDIT_DETAIL_KEYS for the
    expected keys of `details` per action.
    """
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # No updated_at: audit logs are immutable
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True
    )

    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False, index=True)

    target_type: Mapped[AuditTargetType] = mapped_column(Enum(AuditTargetType), nullable=False)
    target_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    actor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index('ix_audit_target', 'target_type', 'target_id'),
        Index('ix_audit_actor_timestamp', 'actor_id', 'timestamp'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "timestamp": _iso(self.timestamp),
            "action": _value(self.action),
            "target_type": _value(self.target_type),
            "target_id": self.target_id,
            "actor_id": self.actor_id,
            "actor_email": self.actor_email,
            "details": self.details or {},
            "ip_address": self.ip_address,
        }

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, target='{self.target_type}')>"


# ============================================
# HELPER FUNCTIONS
# ============================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def _value(enum_member) -> Optional[str]:
    return enum_member.value if enum_member is not None else None
