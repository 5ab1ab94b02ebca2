"""
Repository Pattern for DocVerify Database Operations

Provides clean data access layer with proper typing and error handling.
Repositories hold no business rules beyond persistence concerns: callers pass
already-scoped filters (see database.access_policy) and already-validated
values.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple
from uuid import UUID

from sqlalchemy import select, func, and_, or_, Select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError

from database.access_policy import VerificationFilter, AdminFilter
from database.models import (
    Admin,
    AdminRole,
    AuditAction,
    AuditLog,
    AuditTargetType,
    DocumentVerification,
    VerificationStatus,
    ensure_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGE_SIZE = 100

# Columns covered by the free-text search
SEARCH_COLUMNS = (
    DocumentVerification.name,
    DocumentVerification.email,
    DocumentVerification.id_number,
    DocumentVerification.job_title,
    DocumentVerification.department,
)

# Columns that must never change after insert
IMMUTABLE_VERIFICATION_FIELDS = frozenset({"id", "created_by", "submitted_at", "created_at"})


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""
    pass


class DuplicateEntityError(RepositoryError):
    """Raised when attempting to create a duplicate entity."""
    pass


class ConcurrentModificationError(RepositoryError):
    """Raised when a row changed between read and write (version mismatch)."""
    pass


@dataclass
class Page:
    """One page of a paginated query"""
    items: List[Any] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size else 0


def normalize_pagination(
    page: Optional[int],
    page_size: Optional[int],
    default_page_size: int = 10,
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
) -> Tuple[int, int]:
    """Clamp a 1-indexed page number and page size into valid bounds"""
    page = page if page and page > 0 else 1
    page_size = page_size if page_size and page_size > 0 else default_page_size
    return page, min(page_size, max_page_size)


# ============================================
# VERIFICATION REPOSITORY
# ============================================

class VerificationRepository:
    """Repository for document verification records."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _conditions(criteria: VerificationFilter) -> list:
        conditions = []
        if criteria.record_id is not None:
            conditions.append(DocumentVerification.id == criteria.record_id)
        if criteria.id_number is not None:
            conditions.append(DocumentVerification.id_number == criteria.id_number)
        if criteria.status is not None:
            conditions.append(DocumentVerification.status == criteria.status)
        if criteria.created_by is not None:
            conditions.append(DocumentVerification.created_by == criteria.created_by)
        if criteria.created_since is not None:
            conditions.append(DocumentVerification.created_at >= criteria.created_since)
        if criteria.reviewed_since is not None:
            conditions.append(DocumentVerification.reviewed_at >= criteria.reviewed_since)
        if criteria.search:
            term = criteria.search.strip()
            if term:
                conditions.append(or_(*[
                    column.icontains(term, autoescape=True) for column in SEARCH_COLUMNS
                ]))
        return conditions

    def _select(self, criteria: VerificationFilter) -> Select:
        query = select(DocumentVerification)
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))
        return query

    def create(self, data: Dict[str, Any]) -> DocumentVerification:
        """
        Insert a new verification record.

        Args:
            data: Column values (already validated)

        Returns:
            Created DocumentVerification
        """
        record = DocumentVerification(**data)
        self.session.add(record)
        self.session.flush()
        logger.debug("Created verification: %s (owner %s)", record.id, record.created_by)
        return record

    def get_by_id(self, record_id: UUID) -> Optional[DocumentVerification]:
        return self.session.get(DocumentVerification, record_id)

    def find_one(
        self,
        criteria: VerificationFilter,
        order_by: Optional[list] = None
    ) -> Optional[DocumentVerification]:
        """
        First record matching the filter.

        Args:
            criteria: Filter (scoped by the caller where required)
            order_by: Ordering; defaults to newest first
        """
        query = self._select(criteria)
        query = query.order_by(*(order_by or [DocumentVerification.created_at.desc()])).limit(1)
        return self.session.execute(query).scalars().first()

    def find_many(
        self,
        criteria: VerificationFilter,
        page: int = 1,
        page_size: int = 10,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    ) -> Page:
        """
        Paginated records matching the filter, newest first.

        Args:
            criteria: Filter (scoped by the caller)
            page: 1-indexed page number
            page_size: Page size, capped at max_page_size

        Returns:
            Page of DocumentVerification
        """
        page, page_size = normalize_pagination(page, page_size, max_page_size=max_page_size)
        total = self.count_matching(criteria)

        query = self._select(criteria).order_by(
            DocumentVerification.created_at.desc()
        ).offset((page - 1) * page_size).limit(page_size)

        items = list(self.session.execute(query).scalars().all())
        return Page(items=items, total=total, page=page, page_size=page_size)

    def count_matching(self, criteria: VerificationFilter) -> int:
        query = select(func.count()).select_from(DocumentVerification)
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))
        return self.session.execute(query).scalar_one()

    def update(self, record: DocumentVerification, patch: Dict[str, Any]) -> DocumentVerification:
        """
        Apply a patch to a loaded record.

        Raises:
            RepositoryError: If the patch touches an immutable column
            ConcurrentModificationError: If the row changed since it was read
        """
        forbidden = IMMUTABLE_VERIFICATION_FIELDS.intersection(patch)
        if forbidden:
            raise RepositoryError(f"Immutable fields cannot be updated: {sorted(forbidden)}")

        for key, value in patch.items():
            if not hasattr(record, key):
                raise RepositoryError(f"Unknown field: {key}")
            setattr(record, key, value)

        try:
            self.session.flush()
        except StaleDataError as e:
            self.session.rollback()
            raise ConcurrentModificationError(f"Verification {record.id} was modified concurrently") from e
        return record

    def delete(self, record: DocumentVerification) -> None:
        """Hard-delete a record."""
        self.session.delete(record)
        try:
            self.session.flush()
        except StaleDataError as e:
            self.session.rollback()
            raise ConcurrentModificationError(f"Verification {record.id} was modified concurrently") from e

    def aggregate_by_status(self, criteria: VerificationFilter) -> Dict[str, int]:
        """
        Count records per status.

        Returns:
            {"total", "pending", "approved", "rejected"}
        """
        query = select(
            DocumentVerification.status,
            func.count(DocumentVerification.id)
        ).group_by(DocumentVerification.status)
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))

        counts = {status.value: 0 for status in VerificationStatus}
        for status, count in self.session.execute(query):
            counts[status.value] = count
        counts["total"] = sum(counts.values())
        return counts

    def daily_counts(self, criteria: VerificationFilter) -> List[Tuple[str, VerificationStatus, int]]:
        """
        Record counts grouped by creation day and status.

        Returns:
            List of (YYYY-MM-DD, status, count)
        """
        day = func.date(DocumentVerification.created_at)
        query = select(day, DocumentVerification.status, func.count(DocumentVerification.id))
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.group_by(day, DocumentVerification.status).order_by(day)

        return [(str(row[0]), row[1], row[2]) for row in self.session.execute(query)]

    def processing_hours(self, criteria: VerificationFilter) -> List[float]:
        """
        Hours from submission to review for every reviewed record.

        Computed from the fetched timestamp pairs; date arithmetic differs
        between SQLite and PostgreSQL.
        """
        query = select(DocumentVerification.created_at, DocumentVerification.reviewed_at).where(
            DocumentVerification.reviewed_at.is_not(None),
            DocumentVerification.status.in_([VerificationStatus.APPROVED, VerificationStatus.REJECTED]),
        )
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))

        return [
            (ensure_utc(reviewed_at) - ensure_utc(created_at)).total_seconds() / 3600
            for created_at, reviewed_at in self.session.execute(query)
        ]

    def reviewer_counts(
        self,
        criteria: VerificationFilter
    ) -> List[Tuple[UUID, Optional[str], VerificationStatus, int]]:
        """
        Reviewed record counts grouped by reviewer and status.

        Returns:
            List of (reviewer id, reviewer email, status, count)
        """
        query = (
            select(
                DocumentVerification.reviewed_by,
                Admin.email,
                DocumentVerification.status,
                func.count(DocumentVerification.id)
            )
            .outerjoin(Admin, Admin.id == DocumentVerification.reviewed_by)
            .where(DocumentVerification.reviewed_by.is_not(None))
        )
        conditions = self._conditions(criteria)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.group_by(DocumentVerification.reviewed_by, Admin.email, DocumentVerification.status)

        return [(row[0], row[1], row[2], row[3]) for row in self.session.execute(query)]


# ============================================
# ADMIN REPOSITORY
# ============================================

class AdminRepository:
    """Repository for admin accounts."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _conditions(criteria: AdminFilter) -> list:
        conditions = []
        if criteria.admin_id is not None:
            conditions.append(Admin.id == criteria.admin_id)
        if criteria.email is not None:
            conditions.append(Admin.email == criteria.email.strip().lower())
        if not criteria.include_inactive:
            conditions.append(Admin.is_active == True)  # noqa: E712
        if criteria.created_by is not None:
            conditions.append(Admin.created_by == criteria.created_by)
        return conditions

    def create(self, data: Dict[str, Any]) -> Admin:
        """
        Create an admin account.

        Raises:
            DuplicateEntityError: If the email is already registered
        """
        data = dict(data)
        data["email"] = data["email"].strip().lower()
        try:
            admin = Admin(**data)
            self.session.add(admin)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateEntityError(f"Admin already exists: {data['email']}") from e

        logger.debug("Created admin: %s (%s)", admin.id, admin.role)
        return admin

    def get_by_id(self, admin_id: UUID) -> Optional[Admin]:
        return self.session.get(Admin, admin_id)

    def get_by_email(self, email: str) -> Optional[Admin]:
        """Case-insensitive email lookup (active or not)"""
        query = select(Admin).where(Admin.email == (email or "").strip().lower())
        return self.session.execute(query).scalar_one_or_none()

    def find_many(
        self,
        criteria: AdminFilter,
        page: int = 1,
        page_size: int = 10,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    ) -> Page:
        """Paginated admins matching the filter, newest first."""
        page, page_size = normalize_pagination(page, page_size, max_page_size=max_page_size)
        conditions = self._conditions(criteria)

        count_query = select(func.count()).select_from(Admin)
        if conditions:
            count_query = count_query.where(and_(*conditions))
        total = self.session.execute(count_query).scalar_one()

        query = select(Admin)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Admin.created_at.desc()).offset((page - 1) * page_size).limit(page_size)

        items = list(self.session.execute(query).scalars().all())
        return Page(items=items, total=total, page=page, page_size=page_size)

    def update(self, admin: Admin, patch: Dict[str, Any]) -> Admin:
        """
        Apply a patch to a loaded admin.

        Raises:
            DuplicateEntityError: If the new email is taken
        """
        for key, value in patch.items():
            if key in ("id", "created_by") or not hasattr(admin, key):
                raise RepositoryError(f"Field cannot be updated: {key}")
            setattr(admin, key, value)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateEntityError(f"Admin already exists: {admin.email}") from e
        return admin

    def first_with_role(self, role: AdminRole) -> Optional[Admin]:
        """Oldest admin holding the role, active or not"""
        query = select(Admin).where(Admin.role == role).order_by(Admin.created_at).limit(1)
        return self.session.execute(query).scalars().first()


# ============================================
# AUDIT REPOSITORY
# ============================================

class AuditRepository:
    """Repository for audit log operations (append and search only)."""

    def __init__(self, session: Session):
        self.session = session

    def log(
        self,
        action: AuditAction,
        target_type: AuditTargetType,
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_email: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: Type of action
            target_type: Type of resource affected
            target_id: ID of resource
            actor_id: Acting admin id
            actor_email: Acting admin email
            details: Per-action details (see models.AUDIT_DETAIL_KEYS)
            ip_address: Requester IP
            user_agent: Requester user agent

        Returns:
            Created AuditLog
        """
        log = AuditLog(
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            actor_id=str(actor_id) if actor_id is not None else None,
            actor_email=actor_email,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent
        )

        self.session.add(log)
        self.session.flush()
        return log

    def search(
        self,
        action: Optional[AuditAction] = None,
        target_type: Optional[AuditTargetType] = None,
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 100
    ) -> Tuple[List[AuditLog], int]:
        """
        Search audit logs with filters.

        Returns:
            Tuple of (logs list, total count)
        """
        conditions = []

        if action:
            conditions.append(AuditLog.action == action)
        if target_type:
            conditions.append(AuditLog.target_type == target_type)
        if target_id:
            conditions.append(AuditLog.target_id == str(target_id))
        if actor_id:
            conditions.append(AuditLog.actor_id == str(actor_id))
        if start_date:
            conditions.append(AuditLog.timestamp >= start_date)
        if end_date:
            conditions.append(AuditLog.timestamp <= end_date)

        count_query = select(func.count()).select_from(AuditLog)
        if conditions:
            count_query = count_query.where(and_(*conditions))
        total = self.session.execute(count_query).scalar_one()

        query = select(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(AuditLog.timestamp.desc()).offset(offset).limit(limit)

        logs = list(self.session.execute(query).scalars().all())
        return logs, total
