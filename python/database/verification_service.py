"""
Verification Lifecycle Service for DocVerify

Owns the review state machine and the employment sub-state of document
verification records, and runs every read and mutation through the data
isolation policy.

Review status:
    (none)   --submit-->              pending
    any      --review(approved)-->    approved   (reviewed_by/at = actor/now)
    any      --review(rejected)-->    rejected   (reviewed_by/at = actor/now)
    any      --review(pending)/reset--> pending  (reviewed_by/at cleared)

Employment status:
    active   --former(end_date?)-->   former     (end_date defaults to now)
    former   --active-->              active     (end_date cleared)

Usage:
    with db_provider.session_scope() as session:
        service = VerificationService(session, storage, config)
        record = service.submit(fields, upload, actor)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config_manager import ConfigManager, get_config
from database.access_policy import ActorContext, VerificationFilter, scope_filter, parse_status
from database.audit_trail import RequestMeta, append_audit
from database.models import (
    AuditAction,
    AuditTargetType,
    DocumentVerification,
    EmploymentStatus,
    VerificationStatus,
    ensure_utc,
    utcnow,
)
from database.repositories import ConcurrentModificationError, Page, VerificationRepository
from document_storage import DocumentStorage
from errors import (
    ConflictError,
    NotFoundOrForbiddenError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from security_logger import SecurityLogger, get_security_logger
from validation import (
    DocumentUpload,
    VerificationInput,
    parse_datetime,
    sanitize_for_logging,
    validate_document,
    validate_notes,
    validate_verification_input,
)

logger = logging.getLogger(__name__)

DOCUMENT_FOLDER = "documents"

TREND_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
ACTIVITY_REVIEWER_LIMIT = 10


@dataclass
class TrendPoint:
    """Submissions created on one day, split by current status"""
    date: str
    pending: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "pending": self.pending,
            "approved": self.approved,
            "rejected": self.rejected,
            "total": self.total,
        }


@dataclass
class TrendReport:
    period: str
    start_date: str
    points: List[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "start_date": self.start_date,
            "series": [p.to_dict() for p in self.points],
        }


@dataclass
class PerformanceReport:
    """Review turnaround and outcome split over a period"""
    period: str
    start_date: str
    processed: int = 0
    average_hours: float = 0.0
    min_hours: float = 0.0
    max_hours: float = 0.0
    pending: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected

    @property
    def approval_rate(self) -> int:
        """Approved share of submissions in the period, as a whole percentage"""
        return round(self.approved * 100 / self.total) if self.total else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "start_date": self.start_date,
            "processing": {
                "average_hours": round(self.average_hours, 2),
                "min_hours": round(self.min_hours, 2),
                "max_hours": round(self.max_hours, 2),
                "total_processed": self.processed,
            },
            "outcomes": {
                "approval_rate": self.approval_rate,
                "pending": self.pending,
                "approved": self.approved,
                "rejected": self.rejected,
                "total": self.total,
            },
        }


@dataclass
class ReviewerActivity:
    reviewer_id: str
    reviewer_email: Optional[str] = None
    approved: int = 0
    rejected: int = 0

    @property
    def actions(self) -> int:
        return self.approved + self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviewer_id": self.reviewer_id,
            "reviewer_email": self.reviewer_email,
            "actions": self.actions,
            "approved": self.approved,
            "rejected": self.rejected,
        }


@dataclass
class ActivityReport:
    period: str
    start_date: str
    reviewers: List[ReviewerActivity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "start_date": self.start_date,
            "reviewers": [r.to_dict() for r in self.reviewers],
        }


def _period_days(period: str) -> int:
    days = TREND_PERIODS.get(period)
    if days is None:
        raise ValidationError(
            f"Invalid period: {sanitize_for_logging(period)}",
            field="period",
            code="INVALID_PERIOD",
            suggestion=f"Use one of: {', '.join(TREND_PERIODS)}"
        )
    return days


def _strict_status(value: Union[str, VerificationStatus, None]) -> VerificationStatus:
    status = parse_status(value)
    if status is None:
        raise ValidationError(
            "Invalid status",
            field="status",
            code="INVALID_STATUS",
            suggestion="Use one of: pending, approved, rejected"
        )
    return status


def _strict_employment_status(value: Union[str, EmploymentStatus, None]) -> EmploymentStatus:
    if isinstance(value, EmploymentStatus):
        return value
    try:
        return EmploymentStatus(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(
            "Invalid employment status",
            field="employment_status",
            code="INVALID_STATUS",
            suggestion="Use one of: active, former"
        )


class VerificationService:
    """
    Lifecycle operations over document verification records.

    Every lookup goes through scope_filter; a scoped miss raises
    NotFoundOrForbiddenError whether the record is absent or owned by
    someone else.
    """

    def __init__(
        self,
        session: Session,
        storage: DocumentStorage,
        config: Optional[ConfigManager] = None,
        security_log: Optional[SecurityLogger] = None
    ):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy database session
            storage: Document storage backend
            config: Optional ConfigManager instance
            security_log: Optional security logger (global instance if omitted)
        """
        self.session = session
        self.storage = storage
        self.config = config or get_config()
        self._records = VerificationRepository(session)
        self._security_log = security_log

    @property
    def security_log(self) -> SecurityLogger:
        if self._security_log is None:
            self._security_log = get_security_logger(self.config.logging.security_log_dir)
        return self._security_log

    # ============================================
    # INTERNAL HELPERS
    # ============================================

    def _scoped_lookup(self, actor: ActorContext, record_id: UUID) -> DocumentVerification:
        criteria = scope_filter(actor, VerificationFilter(record_id=record_id))
        record = self._records.find_one(criteria)
        if record is None:
            logger.info("Scoped lookup miss: record=%s actor=%s", record_id, actor.id)
            raise NotFoundOrForbiddenError()
        return record

    def _apply(self, record: DocumentVerification, patch: Dict[str, Any]) -> DocumentVerification:
        try:
            self._records.update(record, patch)
            self.session.commit()
        except ConcurrentModificationError as e:
            raise ConflictError(
                "Verification was modified by another request",
                suggestion="Reload the record and try again"
            ) from e
        return record

    def _discard_document(self, url: str) -> bool:
        """Best-effort removal of a stored document; never raises"""
        try:
            return self.storage.delete(url)
        except (StorageError, OSError) as e:
            logger.warning("Could not delete stored document %s: %s", sanitize_for_logging(url), e)
            return False

    # ============================================
    # SUBMISSION
    # ============================================

    def submit(
        self,
        fields: VerificationInput,
        document: Optional[DocumentUpload],
        actor: ActorContext,
        channel: str = "admin",
        meta: Optional[RequestMeta] = None
    ) -> DocumentVerification:
        """
        Validate, store the document, and create a pending record.

        Args:
            fields: Subject/employment fields
            document: Uploaded document
            actor: Owner of the new record
            channel: "admin" or "public" (recorded in the audit entry)
            meta: Requester ip/user agent

        Returns:
            The created record

        Raises:
            ValidationError / UnsupportedMediaTypeError / PayloadTooLargeError:
                before anything is written
            StorageError: if the document could not be stored (no record created)
        """
        if actor is None:
            raise PermissionDeniedError("Authentication required")
        meta = meta or RequestMeta()

        values = validate_verification_input(fields)
        try:
            document_type = validate_document(document, self.config)
        except ValidationError as e:
            self.security_log.log_validation_failure(
                field="document",
                error_code=e.code,
                input_value=document.filename if document else "",
                source="submit",
                additional_context={
                    "content_type": document.content_type if document else None,
                    "size": document.size if document else 0,
                }
            )
            raise

        mime_type = document.content_type.split(";")[0].strip().lower()
        document_url = self.storage.put(document.data, mime_type, DOCUMENT_FOLDER)

        try:
            record = self._records.create({
                **values,
                "document_url": document_url,
                "document_type": document_type,
                "document_size": document.size,
                "document_mime_type": mime_type,
                "status": VerificationStatus.PENDING,
                "employment_status": EmploymentStatus.ACTIVE,
                "end_date": None,
                "created_by": actor.id,
                "ip_address": meta.ip_address,
                "user_agent": meta.user_agent,
            })
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Verification insert failed; removing stored document")
            self._discard_document(document_url)
            raise

        append_audit(
            self.session,
            AuditAction.UPLOAD,
            AuditTargetType.VERIFICATION,
            target_id=record.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={
                "name": record.name,
                "id_number": record.id_number,
                "document_type": document_type.value,
                "channel": channel,
            },
            meta=meta
        )
        logger.info("Verification submitted: id=%s owner=%s channel=%s", record.id, actor.id, channel)
        return record

    # ============================================
    # REVIEW
    # ============================================

    def review(
        self,
        record_id: UUID,
        new_status: Union[str, VerificationStatus],
        actor: ActorContext,
        notes: Optional[str] = None,
        meta: Optional[RequestMeta] = None
    ) -> DocumentVerification:
        """
        Set the review status of a record the actor can see.

        Moving to pending clears reviewed_by/reviewed_at; any other status
        stamps them with the actor and now. Notes are replaced only when
        supplied.
        """
        status = _strict_status(new_status)
        notes = validate_notes(notes)
        record = self._scoped_lookup(actor, record_id)
        return self._transition(record, status, actor, notes=notes, clear_notes=False, meta=meta)

    def reset(
        self,
        record_id: UUID,
        actor: ActorContext,
        meta: Optional[RequestMeta] = None
    ) -> DocumentVerification:
        """Return a record to pending and clear its review notes."""
        record = self._scoped_lookup(actor, record_id)
        return self._transition(record, VerificationStatus.PENDING, actor, clear_notes=True, meta=meta)

    def _transition(
        self,
        record: DocumentVerification,
        status: VerificationStatus,
        actor: ActorContext,
        notes: Optional[str] = None,
        clear_notes: bool = False,
        meta: Optional[RequestMeta] = None
    ) -> DocumentVerification:
        old_status = record.status
        patch: Dict[str, Any] = {"status": status}
        if status == VerificationStatus.PENDING:
            patch["reviewed_by"] = None
            patch["reviewed_at"] = None
        else:
            patch["reviewed_by"] = actor.id
            patch["reviewed_at"] = utcnow()
        if clear_notes:
            patch["notes"] = None
        elif notes is not None:
            patch["notes"] = notes

        self._apply(record, patch)

        append_audit(
            self.session,
            AuditAction.UPDATE,
            AuditTargetType.VERIFICATION,
            target_id=record.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={
                "old_status": old_status.value,
                "new_status": status.value,
                "notes": record.notes,
            },
            meta=meta
        )
        logger.info(
            "Verification %s status %s -> %s by %s",
            record.id, old_status.value, status.value, actor.id
        )
        return record

    # ============================================
    # EMPLOYMENT
    # ============================================

    def set_employment_status(
        self,
        record_id: UUID,
        new_status: Union[str, EmploymentStatus],
        actor: ActorContext,
        end_date: Union[str, datetime, None] = None,
        meta: Optional[RequestMeta] = None
    ) -> DocumentVerification:
        """
        Move a record between active and former employment.

        former: end_date is the supplied value, else the existing one, else now.
        active: end_date is cleared.
        """
        status = _strict_employment_status(new_status)
        parsed_end = parse_datetime(end_date, "end_date") if end_date not in (None, "") else None
        record = self._scoped_lookup(actor, record_id)
        old_status = record.employment_status

        if status == EmploymentStatus.FORMER:
            effective_end = parsed_end or ensure_utc(record.end_date) or utcnow()
            if effective_end < ensure_utc(record.start_date):
                raise ValidationError(
                    "End date cannot be before start date",
                    field="end_date",
                    code="INVALID_DATE_RANGE"
                )
            patch = {"employment_status": status, "end_date": effective_end}
        else:
            patch = {"employment_status": status, "end_date": None}

        self._apply(record, patch)

        append_audit(
            self.session,
            AuditAction.UPDATE,
            AuditTargetType.VERIFICATION,
            target_id=record.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={
                "field": "employment_status",
                "from": old_status.value,
                "to": status.value,
                "end_date": ensure_utc(record.end_date).isoformat() if record.end_date else None,
            },
            meta=meta
        )
        return record

    # ============================================
    # DELETION
    # ============================================

    def delete(
        self,
        record_id: UUID,
        actor: ActorContext,
        meta: Optional[RequestMeta] = None
    ) -> bool:
        """
        Hard-delete a record, then remove its document best-effort.

        Returns:
            True if the stored document was also removed
        """
        record = self._scoped_lookup(actor, record_id)
        snapshot = {"id": record.id, "name": record.name, "id_number": record.id_number}
        document_url = record.document_url

        try:
            self._records.delete(record)
            self.session.commit()
        except ConcurrentModificationError as e:
            raise ConflictError("Verification was modified by another request") from e

        document_deleted = self._discard_document(document_url)
        if not document_deleted:
            logger.warning("Document for verification %s was not removed from storage", snapshot["id"])

        append_audit(
            self.session,
            AuditAction.DELETE,
            AuditTargetType.VERIFICATION,
            target_id=snapshot["id"],
            actor_id=actor.id,
            actor_email=actor.email,
            details={
                "name": snapshot["name"],
                "id_number": snapshot["id_number"],
                "document_deleted": document_deleted,
            },
            meta=meta
        )
        logger.info("Verification deleted: id=%s by %s", snapshot["id"], actor.id)
        return document_deleted

    # ============================================
    # QUERIES
    # ============================================

    def list_verifications(
        self,
        actor: ActorContext,
        status: Union[str, VerificationStatus, None] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page:
        """
        Scoped, paginated listing (newest first).

        An unrecognised status is ignored rather than rejected.
        """
        base = VerificationFilter(status=parse_status(status), search=search or None)
        criteria = scope_filter(actor, base)
        return self._records.find_many(
            criteria,
            page=page,
            page_size=page_size or self.config.verification.default_page_size,
            max_page_size=self.config.verification.max_page_size
        )

    def get(self, record_id: UUID, actor: ActorContext) -> DocumentVerification:
        return self._scoped_lookup(actor, record_id)

    def get_stats(self, actor: ActorContext) -> Dict[str, int]:
        """Scoped {total, pending, approved, rejected}"""
        return self._records.aggregate_by_status(scope_filter(actor, VerificationFilter()))

    def recent(self, actor: ActorContext, limit: Optional[int] = None) -> List[DocumentVerification]:
        """Latest scoped submissions"""
        limit = limit or self.config.verification.recent_limit
        criteria = scope_filter(actor, VerificationFilter())
        return self._records.find_many(criteria, page=1, page_size=limit).items

    def trends(self, actor: ActorContext, period: str = "30d") -> TrendReport:
        """
        Scoped daily submission counts per status for the period.

        Raises:
            ValidationError: If the period is not one of 7d, 30d, 90d, 1y
        """
        days = _period_days(period)

        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        start = today - timedelta(days=days - 1)
        criteria = scope_filter(actor, VerificationFilter(created_since=start))

        points = {
            (start + timedelta(days=offset)).date().isoformat(): TrendPoint(
                date=(start + timedelta(days=offset)).date().isoformat()
            )
            for offset in range(days)
        }
        for day, status, count in self._records.daily_counts(criteria):
            point = points.get(day)
            if point is not None:
                setattr(point, status.value, getattr(point, status.value) + count)

        return TrendReport(period=period, start_date=start.date().isoformat(), points=list(points.values()))

    def performance(self, actor: ActorContext, period: str = "30d") -> PerformanceReport:
        """
        Scoped review turnaround (hours from submission to review) for
        records reviewed in the period, and the status split of records
        submitted in the period.

        Raises:
            ValidationError: If the period is not one of 7d, 30d, 90d, 1y
        """
        start = utcnow() - timedelta(days=_period_days(period))
        report = PerformanceReport(period=period, start_date=start.date().isoformat())

        hours = self._records.processing_hours(scope_filter(actor, VerificationFilter(reviewed_since=start)))
        if hours:
            report.processed = len(hours)
            report.average_hours = sum(hours) / len(hours)
            report.min_hours = min(hours)
            report.max_hours = max(hours)

        counts = self._records.aggregate_by_status(scope_filter(actor, VerificationFilter(created_since=start)))
        report.pending = counts["pending"]
        report.approved = counts["approved"]
        report.rejected = counts["rejected"]
        return report

    def reviewer_activity(self, actor: ActorContext, period: str = "7d") -> ActivityReport:
        """
        Approvals and rejections per reviewer over the period, busiest first.

        Only records in the actor's scope are counted, whoever reviewed them.

        Raises:
            ValidationError: If the period is not one of 7d, 30d, 90d, 1y
        """
        start = utcnow() - timedelta(days=_period_days(period))
        criteria = scope_filter(actor, VerificationFilter(reviewed_since=start))

        reviewers: Dict[UUID, ReviewerActivity] = {}
        for reviewer_id, email, status, count in self._records.reviewer_counts(criteria):
            entry = reviewers.setdefault(reviewer_id, ReviewerActivity(str(reviewer_id), email))
            if status == VerificationStatus.APPROVED:
                entry.approved += count
            elif status == VerificationStatus.REJECTED:
                entry.rejected += count

        ranked = sorted(reviewers.values(), key=lambda r: (-r.actions, r.reviewer_email or ""))
        return ActivityReport(
            period=period,
            start_date=start.date().isoformat(),
            reviewers=ranked[:ACTIVITY_REVIEWER_LIMIT]
        )
