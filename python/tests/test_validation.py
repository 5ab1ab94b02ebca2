"""
Tests for input validation and document checks.
"""

from datetime import date, datetime, timezone

import pytest

from config_manager import ConfigManager
from database.models import DocumentType
from errors import PayloadTooLargeError, UnsupportedMediaTypeError, ValidationError
from validation import (
    DocumentUpload,
    VerificationInput,
    detect_document_type,
    parse_datetime,
    sanitize_for_logging,
    validate_document,
    validate_email,
    validate_phone,
    validate_verification_input,
)


@pytest.fixture
def upload_config(tmp_path, monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)
    return ConfigManager(str(tmp_path / "missing.yaml"))


class TestSanitizeForLogging:

    def test_strips_newlines(self):
        assert sanitize_for_logging("admin\nFAKE LOG ENTRY") == "admin FAKE LOG ENTRY"

    def test_strips_control_characters(self):
        assert sanitize_for_logging("a\x00b\x1bc") == "a b c"

    def test_truncates(self):
        assert len(sanitize_for_logging("x" * 1000)) == 500

    def test_empty(self):
        assert sanitize_for_logging(None) == ""


class TestFieldValidation:

    def test_email_normalized(self):
        assert validate_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"

    @pytest.mark.parametrize("email", ["", "jane", "jane@", "@example.com", "jane@example"])
    def test_invalid_email(self, email):
        with pytest.raises(ValidationError):
            validate_email(email)

    def test_phone_optional(self):
        assert validate_phone(None) is None
        assert validate_phone("  ") is None
        assert validate_phone(" +1 555 123 4567 ") == "+1 555 123 4567"

    @pytest.mark.parametrize("phone", ["123", "call me maybe", "+1 555 123 4567 8901 23"])
    def test_invalid_phone(self, phone):
        with pytest.raises(ValidationError):
            validate_phone(phone)

    def test_parse_datetime_variants(self):
        assert parse_datetime("2024-01-31", "start_date") == datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert parse_datetime("2024-01-31T10:00:00Z", "start_date") == datetime(2024, 1, 31, 10, tzinfo=timezone.utc)
        assert parse_datetime(date(2024, 1, 31), "start_date") == datetime(2024, 1, 31, tzinfo=timezone.utc)

    def test_parse_datetime_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_datetime("yesterday", "end_date")
        assert exc_info.value.field == "end_date"

    def test_verification_input_normalized(self):
        values = validate_verification_input(VerificationInput(
            name="  Jane Doe ",
            email="JANE@EXAMPLE.COM",
            id_number="AB_12-34",
            job_title="Engineer",
            department="Platform",
            start_date="2022-01-10",
        ))

        assert values["name"] == "Jane Doe"
        assert values["email"] == "jane@example.com"
        assert values["phone"] is None
        assert values["start_date"] == datetime(2022, 1, 10, tzinfo=timezone.utc)

    def test_long_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_verification_input(VerificationInput(
                name="x" * 101, email="a@example.com", id_number="ID-1",
                job_title="Engineer", department="Platform", start_date="2022-01-10",
            ))
        assert exc_info.value.code == "TOO_LONG"


class TestDocumentValidation:

    @pytest.mark.parametrize("filename,expected", [
        ("my_passport.pdf", DocumentType.PASSPORT),
        ("Driving-Licence.jpg", DocumentType.DRIVER_LICENSE),
        ("driver_license.png", DocumentType.DRIVER_LICENSE),
        ("national_card.pdf", DocumentType.NATIONAL_ID),
        ("scan.pdf", DocumentType.OTHER),
    ])
    def test_detect_document_type(self, filename, expected):
        assert detect_document_type(filename) == expected

    @pytest.mark.parametrize("content_type,data", [
        ("application/pdf", b"%PDF-1.7"),
        ("image/png", b"\x89PNG\r\n\x1a\n\x00"),
        ("image/jpeg", b"\xff\xd8\xff\xdb\x00"),
        ("image/jpeg; charset=binary", b"\xff\xd8\xff\xdb\x00"),
    ])
    def test_accepted_documents(self, upload_config, content_type, data):
        validate_document(DocumentUpload("passport.bin", content_type, data), upload_config)

    def test_empty_document(self, upload_config):
        with pytest.raises(ValidationError):
            validate_document(DocumentUpload("passport.pdf", "application/pdf", b""), upload_config)

    def test_mime_checked_before_size(self, upload_config):
        upload_config.upload.max_file_size_bytes = 4
        with pytest.raises(UnsupportedMediaTypeError):
            validate_document(DocumentUpload("notes.txt", "text/plain", b"too long text"), upload_config)

    def test_size_limit(self, upload_config):
        upload_config.upload.max_file_size_bytes = 8
        with pytest.raises(PayloadTooLargeError):
            validate_document(DocumentUpload("a.pdf", "application/pdf", b"%PDF-" + b"0" * 8), upload_config)

    def test_signature_mismatch(self, upload_config):
        with pytest.raises(UnsupportedMediaTypeError) as exc_info:
            validate_document(DocumentUpload("a.jpg", "image/jpeg", b"%PDF-1.4"), upload_config)
        assert exc_info.value.code == "CONTENT_TYPE_MISMATCH"
