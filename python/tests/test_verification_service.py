"""
Tests for the verification lifecycle service.

Covers submission, the review state machine, employment sub-state,
deletion, data isolation between admins and the scoped analytics.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import make_input, make_upload, PNG_BYTES
from database.models import (
    AuditAction,
    AuditLog,
    DocumentType,
    DocumentVerification,
    EmploymentStatus,
    VerificationStatus,
    ensure_utc,
    utcnow,
)
from database.repositories import ConcurrentModificationError, VerificationRepository
from errors import (
    ConflictError,
    NotFoundOrForbiddenError,
    PayloadTooLargeError,
    StorageError,
    UnsupportedMediaTypeError,
    ValidationError,
)


def count_records(session) -> int:
    return len(session.execute(select(DocumentVerification)).scalars().all())


def age(session, record, hours):
    """Backdate a record's submission time"""
    record.created_at = utcnow() - timedelta(hours=hours)
    session.commit()
    return record


def audit_entries(session, action=None):
    query = select(AuditLog).order_by(AuditLog.timestamp)
    if action is not None:
        query = query.where(AuditLog.action == action)
    return session.execute(query).scalars().all()


class TestSubmit:
    """Submission validation and persistence."""

    def test_creates_pending_active_record(self, submit, actor_a, storage):
        record = submit(actor_a)

        assert record.status == VerificationStatus.PENDING
        assert record.employment_status == EmploymentStatus.ACTIVE
        assert record.end_date is None
        assert record.reviewed_by is None
        assert record.reviewed_at is None
        assert record.created_by == actor_a.id
        assert record.email == "jane.doe@example.com"
        assert record.document_type == DocumentType.PASSPORT
        assert record.document_mime_type == "application/pdf"
        assert record.document_url in storage.objects

    def test_writes_upload_audit(self, submit, actor_a, session):
        record = submit(actor_a)

        entries = audit_entries(session, AuditAction.UPLOAD)
        assert len(entries) == 1
        assert entries[0].target_id == str(record.id)
        assert entries[0].actor_id == str(actor_a.id)
        assert entries[0].details["id_number"] == "ID-12345"
        assert entries[0].details["channel"] == "admin"

    def test_text_plain_rejected_without_side_effects(self, verification_service, actor_a, storage, session):
        upload = make_upload(filename="notes.txt", content_type="text/plain", data=b"hello")

        with pytest.raises(UnsupportedMediaTypeError):
            verification_service.submit(make_input(), upload, actor_a)

        assert count_records(session) == 0
        assert storage.objects == {}

    def test_oversize_document_rejected(self, verification_service, actor_a, storage, config):
        config.upload.max_file_size_bytes = 16
        upload = make_upload(data=b"%PDF-" + b"0" * 64)

        with pytest.raises(PayloadTooLargeError):
            verification_service.submit(make_input(), upload, actor_a)
        assert storage.objects == {}

    def test_content_mismatch_rejected(self, verification_service, actor_a):
        upload = make_upload(filename="id.png", content_type="image/png", data=b"%PDF-1.4 not a png")

        with pytest.raises(UnsupportedMediaTypeError) as exc_info:
            verification_service.submit(make_input(), upload, actor_a)
        assert exc_info.value.code == "CONTENT_TYPE_MISMATCH"

    def test_missing_document_rejected(self, verification_service, actor_a):
        with pytest.raises(ValidationError):
            verification_service.submit(make_input(), None, actor_a)

    @pytest.mark.parametrize("field,value", [
        ("name", ""),
        ("email", "not-an-email"),
        ("id_number", "ID 123!"),
        ("job_title", ""),
        ("start_date", "31/01/2022"),
        ("phone", "12"),
    ])
    def test_invalid_fields_rejected_before_storage(self, verification_service, actor_a, storage, field, value):
        with pytest.raises(ValidationError) as exc_info:
            verification_service.submit(make_input(**{field: value}), make_upload(), actor_a)

        assert exc_info.value.field == field
        assert storage.objects == {}

    def test_rejected_upload_is_security_logged(self, verification_service, actor_a, security_log_path):
        upload = make_upload(filename="evil.exe", content_type="application/x-msdownload", data=b"MZ")

        with pytest.raises(UnsupportedMediaTypeError):
            verification_service.submit(make_input(), upload, actor_a)

        content = security_log_path.read_text(encoding="utf-8")
        assert "VALIDATION_FAILED" in content
        assert "UNSUPPORTED_MEDIA_TYPE" in content

    def test_storage_failure_creates_no_record(self, verification_service, actor_a, storage, session):
        storage.fail_put = True

        with pytest.raises(StorageError):
            verification_service.submit(make_input(), make_upload(), actor_a)
        assert count_records(session) == 0

    def test_insert_failure_discards_stored_document(self, verification_service, actor_a, storage):
        with patch.object(VerificationRepository, "create", side_effect=OperationalError("INSERT", {}, Exception("db down"))):
            with pytest.raises(OperationalError):
                verification_service.submit(make_input(), make_upload(), actor_a)
        assert storage.objects == {}

    def test_document_type_from_filename(self, submit, actor_a):
        record = submit(actor_a, upload=make_upload(filename="scan.png", content_type="image/png", data=PNG_BYTES))
        assert record.document_type == DocumentType.OTHER


class TestReview:
    """Review state machine."""

    def test_approve_stamps_reviewer(self, submit, verification_service, actor_a):
        record = submit(actor_a)

        reviewed = verification_service.review(record.id, "approved", actor_a, notes="Looks good")

        assert reviewed.status == VerificationStatus.APPROVED
        assert reviewed.reviewed_by == actor_a.id
        assert reviewed.reviewed_at is not None
        assert reviewed.notes == "Looks good"

    def test_back_to_pending_clears_review(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        verification_service.review(record.id, "rejected", actor_a, notes="Blurry scan")

        pending = verification_service.review(record.id, "pending", actor_a)

        assert pending.status == VerificationStatus.PENDING
        assert pending.reviewed_by is None
        assert pending.reviewed_at is None
        assert pending.notes == "Blurry scan"

    def test_reset_clears_notes(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        verification_service.review(record.id, "rejected", actor_a, notes="Blurry scan")

        reset = verification_service.reset(record.id, actor_a)

        assert reset.status == VerificationStatus.PENDING
        assert reset.reviewed_by is None
        assert reset.notes is None

    def test_re_review_is_idempotent_but_restamps(self, submit, verification_service, actor_a, super_actor, session):
        record = submit(actor_a)
        first = verification_service.review(record.id, "approved", actor_a)
        first_reviewed_at = ensure_utc(first.reviewed_at)

        second = verification_service.review(record.id, "approved", super_actor)

        assert second.status == VerificationStatus.APPROVED
        assert second.reviewed_by == super_actor.id
        assert ensure_utc(second.reviewed_at) >= first_reviewed_at
        assert len(audit_entries(session, AuditAction.UPDATE)) == 2

    def test_review_audit_records_transition(self, submit, verification_service, actor_a, session):
        record = submit(actor_a)
        verification_service.review(record.id, "rejected", actor_a, notes="Expired document")

        entry = audit_entries(session, AuditAction.UPDATE)[-1]
        assert entry.details == {
            "old_status": "pending",
            "new_status": "rejected",
            "notes": "Expired document",
        }

    def test_invalid_status_rejected(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        with pytest.raises(ValidationError):
            verification_service.review(record.id, "archived", actor_a)

    def test_notes_too_long_rejected(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        with pytest.raises(ValidationError):
            verification_service.review(record.id, "approved", actor_a, notes="x" * 501)

    def test_concurrent_modification_is_conflict(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        with patch.object(
            VerificationRepository, "update",
            side_effect=ConcurrentModificationError("stale")
        ):
            with pytest.raises(ConflictError):
                verification_service.review(record.id, "approved", actor_a)


class TestEmploymentStatus:
    """Employment sub-state transitions."""

    def test_former_without_end_date_uses_now(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        before = utcnow()

        updated = verification_service.set_employment_status(record.id, "former", actor_a)

        assert updated.employment_status == EmploymentStatus.FORMER
        assert before - timedelta(seconds=1) <= ensure_utc(updated.end_date) <= utcnow() + timedelta(seconds=1)

    def test_active_clears_end_date(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        verification_service.set_employment_status(record.id, "former", actor_a)

        updated = verification_service.set_employment_status(record.id, "active", actor_a)

        assert updated.employment_status == EmploymentStatus.ACTIVE
        assert updated.end_date is None

    def test_former_with_explicit_end_date(self, submit, verification_service, actor_a):
        record = submit(actor_a)

        updated = verification_service.set_employment_status(record.id, "former", actor_a, end_date="2023-06-30")

        assert ensure_utc(updated.end_date) == datetime(2023, 6, 30, tzinfo=timezone.utc)

    def test_former_keeps_existing_end_date(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        verification_service.set_employment_status(record.id, "former", actor_a, end_date="2023-06-30")

        updated = verification_service.set_employment_status(record.id, "former", actor_a)

        assert ensure_utc(updated.end_date) == datetime(2023, 6, 30, tzinfo=timezone.utc)

    def test_end_date_before_start_rejected(self, submit, verification_service, actor_a):
        record = submit(actor_a, start_date="2022-01-10")
        with pytest.raises(ValidationError):
            verification_service.set_employment_status(record.id, "former", actor_a, end_date="2021-12-31")

    def test_invalid_employment_status_rejected(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        with pytest.raises(ValidationError):
            verification_service.set_employment_status(record.id, "retired", actor_a)

    def test_non_owner_cannot_change_employment(self, submit, verification_service, actor_a, actor_b):
        record = submit(actor_a)
        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.set_employment_status(record.id, "former", actor_b)

    def test_employment_audit_details(self, submit, verification_service, actor_a, session):
        record = submit(actor_a)
        verification_service.set_employment_status(record.id, "former", actor_a, end_date="2023-06-30")

        entry = audit_entries(session, AuditAction.UPDATE)[-1]
        assert entry.details["field"] == "employment_status"
        assert entry.details["from"] == "active"
        assert entry.details["to"] == "former"
        assert entry.details["end_date"].startswith("2023-06-30")


class TestDelete:
    """Hard deletion with best-effort document removal."""

    def test_non_owner_delete_is_not_found_and_record_survives(self, submit, verification_service, actor_a, actor_b, session):
        record = submit(actor_a)

        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.delete(record.id, actor_b)

        session.expire_all()
        survivor = session.get(DocumentVerification, record.id)
        assert survivor is not None
        assert survivor.status == VerificationStatus.PENDING

    def test_superadmin_delete_removes_record_and_document(self, submit, verification_service, actor_a, super_actor, storage, session):
        record = submit(actor_a)

        document_deleted = verification_service.delete(record.id, super_actor)

        assert document_deleted is True
        assert storage.objects == {}
        assert session.get(DocumentVerification, record.id) is None
        entry = audit_entries(session, AuditAction.DELETE)[-1]
        assert entry.details["document_deleted"] is True
        assert entry.details["id_number"] == "ID-12345"

    def test_storage_failure_does_not_block_delete(self, submit, verification_service, actor_a, storage, session):
        record = submit(actor_a)
        storage.fail_delete = True

        document_deleted = verification_service.delete(record.id, actor_a)

        assert document_deleted is False
        assert session.get(DocumentVerification, record.id) is None

    def test_unknown_record_is_not_found(self, verification_service, super_actor):
        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.delete(uuid.uuid4(), super_actor)


class TestIsolation:
    """Non-superadmins only ever see their own records."""

    def test_list_is_scoped_to_owner(self, submit, verification_service, actor_a, actor_b, super_actor):
        submit(actor_a, name="Asha", id_number="ID-1")

        assert verification_service.list_verifications(actor_b).total == 0
        everything = verification_service.list_verifications(super_actor)
        assert [r.name for r in everything.items] == ["Asha"]

    def test_get_and_review_are_scoped(self, submit, verification_service, actor_a, actor_b):
        record = submit(actor_a)

        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.get(record.id, actor_b)
        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.review(record.id, "approved", actor_b)
        with pytest.raises(NotFoundOrForbiddenError):
            verification_service.reset(record.id, actor_b)

    def test_stats_are_scoped(self, submit, verification_service, actor_a, actor_b, super_actor):
        record = submit(actor_a)
        submit(actor_b, id_number="ID-2")
        verification_service.review(record.id, "approved", actor_a)

        assert verification_service.get_stats(actor_a) == {"total": 1, "pending": 0, "approved": 1, "rejected": 0}
        assert verification_service.get_stats(actor_b) == {"total": 1, "pending": 1, "approved": 0, "rejected": 0}
        assert verification_service.get_stats(super_actor)["total"] == 2

    def test_recent_is_scoped_and_newest_first(self, submit, verification_service, actor_a, actor_b):
        submit(actor_a, id_number="ID-1")
        submit(actor_a, id_number="ID-2")
        submit(actor_b, id_number="ID-3")

        recent = verification_service.recent(actor_a)
        assert [r.id_number for r in recent] == ["ID-2", "ID-1"]


class TestListing:
    """Filtering, search and pagination."""

    def test_status_filter(self, submit, verification_service, actor_a):
        approved = submit(actor_a, id_number="ID-1")
        submit(actor_a, id_number="ID-2")
        verification_service.review(approved.id, "approved", actor_a)

        page = verification_service.list_verifications(actor_a, status="approved")
        assert [r.id_number for r in page.items] == ["ID-1"]

    def test_unknown_status_filter_is_ignored(self, submit, verification_service, actor_a):
        submit(actor_a)
        assert verification_service.list_verifications(actor_a, status="bogus").total == 1

    def test_search_is_case_insensitive_across_fields(self, submit, verification_service, actor_a):
        submit(actor_a, name="Asha Patel", id_number="ID-1", department="Finance")
        submit(actor_a, name="Ben Okafor", id_number="ID-2", department="Platform")

        assert [r.name for r in verification_service.list_verifications(actor_a, search="asha").items] == ["Asha Patel"]
        assert [r.name for r in verification_service.list_verifications(actor_a, search="FINANCE").items] == ["Asha Patel"]
        assert verification_service.list_verifications(actor_a, search="id-").total == 2

    def test_search_treats_wildcards_literally(self, submit, verification_service, actor_a):
        submit(actor_a)
        assert verification_service.list_verifications(actor_a, search="%").total == 0

    def test_pagination(self, submit, verification_service, actor_a):
        for n in range(5):
            submit(actor_a, id_number=f"ID-{n}")

        page = verification_service.list_verifications(actor_a, page=2, page_size=2)

        assert page.total == 5
        assert page.pages == 3
        assert [r.id_number for r in page.items] == ["ID-2", "ID-1"]

    def test_page_size_is_capped(self, submit, verification_service, actor_a, config):
        config.verification.max_page_size = 3
        for n in range(4):
            submit(actor_a, id_number=f"ID-{n}")

        page = verification_service.list_verifications(actor_a, page_size=50)
        assert page.page_size == 3
        assert len(page.items) == 3


class TestTrends:
    """Daily submission counts."""

    def test_series_is_zero_filled(self, verification_service, actor_a):
        report = verification_service.trends(actor_a, "7d")

        series = report.to_dict()["series"]
        assert len(series) == 7
        assert all(point["total"] == 0 for point in series)
        assert series[-1]["date"] == utcnow().date().isoformat()

    def test_counts_today_by_status(self, submit, verification_service, actor_a, actor_b):
        approved = submit(actor_a, id_number="ID-1")
        submit(actor_a, id_number="ID-2")
        submit(actor_b, id_number="ID-3")
        verification_service.review(approved.id, "approved", actor_a)

        today = verification_service.trends(actor_a, "30d").to_dict()["series"][-1]

        assert today == {
            "date": utcnow().date().isoformat(),
            "pending": 1,
            "approved": 1,
            "rejected": 0,
            "total": 2,
        }

    def test_invalid_period_rejected(self, verification_service, actor_a):
        with pytest.raises(ValidationError):
            verification_service.trends(actor_a, "2w")


class TestPerformance:
    """Review turnaround and outcome split."""

    def test_processing_hours(self, submit, verification_service, actor_a, session):
        fast = age(session, submit(actor_a, id_number="ID-1"), 2)
        slow = age(session, submit(actor_a, id_number="ID-2"), 10)
        submit(actor_a, id_number="ID-3")
        verification_service.review(fast.id, "approved", actor_a)
        verification_service.review(slow.id, "rejected", actor_a, notes="Expired document")

        processing = verification_service.performance(actor_a, "7d").to_dict()["processing"]

        assert processing["total_processed"] == 2
        assert processing["min_hours"] == pytest.approx(2, abs=0.1)
        assert processing["max_hours"] == pytest.approx(10, abs=0.1)
        assert processing["average_hours"] == pytest.approx(6, abs=0.1)

    def test_outcomes_and_approval_rate(self, submit, verification_service, actor_a):
        for i in range(3):
            record = submit(actor_a, id_number=f"ID-{i}")
            if i < 2:
                verification_service.review(record.id, "approved", actor_a)

        outcomes = verification_service.performance(actor_a).to_dict()["outcomes"]

        assert outcomes == {"approval_rate": 67, "pending": 1, "approved": 2, "rejected": 0, "total": 3}

    def test_no_reviews_reports_zeroes(self, verification_service, actor_a):
        report = verification_service.performance(actor_a, "90d").to_dict()

        assert report["processing"] == {
            "average_hours": 0.0,
            "min_hours": 0.0,
            "max_hours": 0.0,
            "total_processed": 0,
        }
        assert report["outcomes"]["approval_rate"] == 0

    def test_reset_record_is_not_processed(self, submit, verification_service, actor_a):
        record = submit(actor_a)
        verification_service.review(record.id, "approved", actor_a)
        verification_service.reset(record.id, actor_a)

        assert verification_service.performance(actor_a).processed == 0

    def test_scoped_to_owner(self, submit, verification_service, actor_a, actor_b, super_actor):
        mine = submit(actor_a, id_number="ID-1")
        theirs = submit(actor_b, id_number="ID-2")
        verification_service.review(mine.id, "approved", actor_a)
        verification_service.review(theirs.id, "rejected", actor_b)

        report_a = verification_service.performance(actor_a)
        report_b = verification_service.performance(actor_b)

        assert (report_a.processed, report_a.approved, report_a.rejected) == (1, 1, 0)
        assert (report_b.processed, report_b.approved, report_b.rejected) == (1, 0, 1)
        assert verification_service.performance(super_actor).processed == 2

    def test_invalid_period_rejected(self, verification_service, actor_a):
        with pytest.raises(ValidationError) as exc_info:
            verification_service.performance(actor_a, "2w")
        assert exc_info.value.code == "INVALID_PERIOD"


class TestReviewerActivity:
    """Approvals and rejections per reviewer."""

    def test_counts_per_reviewer(self, submit, verification_service, actor_a, super_actor):
        records = [submit(actor_a, id_number=f"ID-{i}") for i in range(3)]
        verification_service.review(records[0].id, "approved", actor_a)
        verification_service.review(records[1].id, "rejected", actor_a, notes="Blurry scan")
        verification_service.review(records[2].id, "approved", super_actor)

        reviewers = verification_service.reviewer_activity(super_actor).to_dict()["reviewers"]

        assert reviewers == [
            {"reviewer_id": str(actor_a.id), "reviewer_email": "alice@example.com",
             "actions": 2, "approved": 1, "rejected": 1},
            {"reviewer_id": str(super_actor.id), "reviewer_email": "root@example.com",
             "actions": 1, "approved": 1, "rejected": 0},
        ]

    def test_scope_follows_record_owner(self, submit, verification_service, actor_a, actor_b, super_actor):
        mine = submit(actor_a, id_number="ID-1")
        theirs = submit(actor_b, id_number="ID-2")
        verification_service.review(mine.id, "approved", super_actor)
        verification_service.review(theirs.id, "approved", actor_b)

        seen_by_a = verification_service.reviewer_activity(actor_a).reviewers
        seen_by_b = verification_service.reviewer_activity(actor_b).reviewers

        assert [r.reviewer_id for r in seen_by_a] == [str(super_actor.id)]
        assert [r.reviewer_id for r in seen_by_b] == [str(actor_b.id)]

    def test_pending_records_are_ignored(self, submit, verification_service, actor_a):
        submit(actor_a)
        assert verification_service.reviewer_activity(actor_a, "30d").reviewers == []

    def test_invalid_period_rejected(self, verification_service, actor_a):
        with pytest.raises(ValidationError):
            verification_service.reviewer_activity(actor_a, "forever")


class TestAuditIsBestEffort:
    """A failed audit append never undoes the primary change."""

    def test_review_survives_audit_failure(self, submit, verification_service, actor_a, session):
        record = submit(actor_a)

        with patch("database.audit_trail.AuditRepository.log", side_effect=OperationalError("INSERT", {}, Exception("audit down"))):
            reviewed = verification_service.review(record.id, "approved", actor_a)

        assert reviewed.status == VerificationStatus.APPROVED
        session.expire_all()
        assert session.get(DocumentVerification, record.id).status == VerificationStatus.APPROVED
