"""
Public verification lookups.

Unauthenticated reads used by third parties and by the person who submitted
a document. These do not go through the isolation policy; they expose only
the public view of a record and never the requester metadata.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from database.access_policy import VerificationFilter
from database.models import DocumentVerification, VerificationStatus, ensure_utc
from database.repositories import VerificationRepository
from errors import NotFoundError

logger = logging.getLogger(__name__)

NOT_VERIFIED_MESSAGE = "ID number not found or verification pending"

STATUS_MESSAGES = {
    VerificationStatus.PENDING: "Your verification is under review. Please check back later.",
    VerificationStatus.APPROVED: "Your ID has been successfully verified.",
    VerificationStatus.REJECTED: (
        "Your verification was not approved. Please contact support if you have questions."
    ),
}


def _iso(value) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


class LookupService:
    """Read-only public views of verification records"""

    def __init__(self, session: Session):
        self.session = session
        self._records = VerificationRepository(session)

    def by_record_id(self, record_id: UUID) -> Dict[str, Any]:
        record = self._records.get_by_id(record_id)
        if record is None:
            raise NotFoundError("Verification not found")
        return record.to_dict()

    def by_id_number(self, id_number: str) -> Dict[str, Any]:
        """
        Is this ID number verified?

        Reports the most recently reviewed approved record; pending, rejected
        and unknown ID numbers all get the same negative answer.
        """
        record = self._records.find_one(
            VerificationFilter(id_number=(id_number or "").strip(), status=VerificationStatus.APPROVED),
            order_by=[
                DocumentVerification.reviewed_at.desc(),
                DocumentVerification.created_at.desc(),
            ]
        )
        if record is None:
            return {"verified": False, "message": NOT_VERIFIED_MESSAGE}

        return {
            "verified": True,
            "data": {
                "id_number": record.id_number,
                "name": record.name,
                "email": record.email,
                "phone": record.phone,
                "document_type": record.document_type.value,
                "verified_at": _iso(record.reviewed_at),
                "submitted_at": _iso(record.submitted_at),
                "status": record.status.value,
            }
        }

    def status_by_id_number(self, id_number: str) -> Dict[str, Any]:
        """
        Review status of the latest submission for an ID number.

        Raises:
            NotFoundError: No record carries this ID number
        """
        record = self._records.find_one(VerificationFilter(id_number=(id_number or "").strip()))
        if record is None:
            raise NotFoundError("No verification record found for this ID number")

        result = {
            "id_number": record.id_number,
            "name": record.name,
            "status": record.status.value,
            "message": STATUS_MESSAGES[record.status],
            "submitted_at": _iso(record.submitted_at),
            "reviewed_at": _iso(record.reviewed_at),
        }
        if record.status == VerificationStatus.REJECTED:
            result["notes"] = record.notes
        return result
