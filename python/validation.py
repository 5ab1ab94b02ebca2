"""
Input validation for verification submissions and uploaded documents.

All checks run before any storage write or database mutation. Failures raise
ValidationError subclasses carrying field/code/suggestion so the API can
return a precise 4xx body.
"""

import re
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union, Dict, Any

from config_manager import ConfigManager, get_config
from database.models import DocumentType, ensure_utc
from errors import ValidationError, UnsupportedMediaTypeError, PayloadTooLargeError

logger = logging.getLogger(__name__)

# Field limits
NAME_MAX_LENGTH = 100
ID_NUMBER_MAX_LENGTH = 50
JOB_FIELD_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 500

EMAIL_PATTERN = re.compile(r'^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$')
PHONE_PATTERN = re.compile(r'^[+]?[0-9\s\-()]{10,15}$')
ID_NUMBER_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')

# Leading bytes per supported mime type
MAGIC_NUMBERS = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "application/pdf": (b"%PDF-",),
}

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized


# ============================================
# INPUT TYPES
# ============================================

@dataclass
class VerificationInput:
    """Subject and employment fields of a new verification request"""
    name: str = ""
    email: str = ""
    id_number: str = ""
    job_title: str = ""
    department: str = ""
    start_date: Union[str, date, datetime, None] = None
    phone: Optional[str] = None


@dataclass
class DocumentUpload:
    """Uploaded document as received from the caller"""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data or b"")


# ============================================
# FIELD HELPERS
# ============================================

def normalize_email(email: Optional[str]) -> str:
    """Lowercase and strip an email address (None becomes '')"""
    return (email or "").strip().lower()


def validate_email(email: str, field: str = "email") -> str:
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required", field=field, code="REQUIRED_FIELD")
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError(
            "Please provide a valid email",
            field=field,
            code="INVALID_EMAIL",
            suggestion="Use the form name@example.com"
        )
    return normalized


def validate_phone(phone: Optional[str], field: str = "phone") -> Optional[str]:
    """Validate an optional phone number; blank values become None"""
    if phone is None or not str(phone).strip():
        return None
    phone = str(phone).strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationError(
            "Please provide a valid phone number",
            field=field,
            code="INVALID_PHONE",
            suggestion="Use 10-15 digits, optionally with +, spaces, dashes or parentheses"
        )
    return phone


def parse_datetime(value: Union[str, date, datetime, None], field: str) -> datetime:
    """Parse an ISO date/datetime (or date object) into an aware UTC datetime

    Raises:
        ValidationError: If the value is missing or not a valid date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", field=field, code="REQUIRED_FIELD")

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"Invalid {field} format",
            field=field,
            code="INVALID_DATE",
            suggestion="Use ISO 8601, e.g. 2024-01-31"
        )
    return ensure_utc(parsed)


def _require_text(value: Optional[str], field: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field, code="REQUIRED_FIELD")
    if len(text) > max_length:
        raise ValidationError(
            f"{field} cannot be more than {max_length} characters",
            field=field,
            code="TOO_LONG",
            suggestion=f"Shorten {field} to {max_length} characters or less"
        )
    return text


def validate_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    if len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(
            f"Notes cannot be more than {NOTES_MAX_LENGTH} characters",
            field="notes",
            code="TOO_LONG"
        )
    return notes


# ============================================
# SUBMISSION VALIDATION
# ============================================

def validate_verification_input(input_data: VerificationInput) -> Dict[str, Any]:
    """Validate and normalize the subject/employment fields of a submission

    Args:
        input_data: Raw fields from the caller

    Returns:
        Dictionary of normalized column values

    Raises:
        ValidationError: On the first invalid or missing field
    """
    name = _require_text(input_data.name, "name", NAME_MAX_LENGTH)
    email = validate_email(input_data.email)

    id_number = _require_text(input_data.id_number, "id_number", ID_NUMBER_MAX_LENGTH)
    if not ID_NUMBER_PATTERN.match(id_number):
        logger.warning("Rejected id_number with invalid characters: %s", sanitize_for_logging(id_number))
        raise ValidationError(
            "ID number may only contain letters, numbers, hyphens and underscores",
            field="id_number",
            code="INVALID_FORMAT"
        )

    return {
        "name": name,
        "email": email,
        "phone": validate_phone(input_data.phone),
        "id_number": id_number,
        "job_title": _require_text(input_data.job_title, "job_title", JOB_FIELD_MAX_LENGTH),
        "department": _require_text(input_data.department, "department", JOB_FIELD_MAX_LENGTH),
        "start_date": parse_datetime(input_data.start_date, "start_date"),
    }


def detect_document_type(filename: Optional[str]) -> DocumentType:
    """Infer the document type from keywords in the original filename"""
    lower = (filename or "").lower()
    if "passport" in lower:
        return DocumentType.PASSPORT
    if "license" in lower or "driving" in lower:
        return DocumentType.DRIVER_LICENSE
    if "national" in lower or "id" in lower:
        return DocumentType.NATIONAL_ID
    return DocumentType.OTHER


def validate_document(upload: Optional[DocumentUpload], config: Optional[ConfigManager] = None) -> DocumentType:
    """Check mime type, content signature and size of an uploaded document

    Args:
        upload: The uploaded document
        config: Configuration (global instance if omitted)

    Returns:
        DocumentType inferred from the filename

    Raises:
        ValidationError: If no document was provided
        UnsupportedMediaTypeError: If the mime type is not allowed or the
            content does not match it
        PayloadTooLargeError: If the document exceeds the size limit
    """
    if config is None:
        config = get_config()
    upload_cfg = config.upload

    if upload is None or upload.size == 0:
        raise ValidationError("No document provided", field="document", code="REQUIRED_FIELD")

    mime = (upload.content_type or "").split(";")[0].strip().lower()
    if mime not in upload_cfg.allowed_mime_types:
        raise UnsupportedMediaTypeError(
            f"Unsupported document type: {sanitize_for_logging(mime) or 'unknown'}",
            field="document",
            suggestion="Only JPEG, PNG and PDF documents are allowed"
        )

    signatures = MAGIC_NUMBERS.get(mime, ())
    if not any(upload.data.startswith(sig) for sig in signatures):
        raise UnsupportedMediaTypeError(
            "Document content does not match its declared type",
            field="document",
            code="CONTENT_TYPE_MISMATCH",
            suggestion="Upload the original JPEG, PNG or PDF file"
        )

    if upload.size > upload_cfg.max_file_size_bytes:
        raise PayloadTooLargeError(
            f"Document too large ({upload.size} bytes, maximum {upload_cfg.max_file_size_bytes})",
            field="document",
            suggestion="Upload a smaller file"
        )

    return detect_document_type(upload.filename)
