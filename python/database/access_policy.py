"""
Data Isolation Policy

The one security-critical rule of the service: a superadmin sees every
verification record, any other admin sees only the records it created.
`scope_filter` is the single place that rule is applied. Every service read,
update, delete and aggregation passes its filter through it before touching a
repository.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, TypeVar, Union
from uuid import UUID

from database.models import AdminRole, VerificationStatus
from errors import PermissionDeniedError


@dataclass(frozen=True)
class ActorContext:
    """The authenticated admin performing an operation"""
    id: UUID
    email: str
    role: AdminRole

    @property
    def is_superadmin(self) -> bool:
        return self.role == AdminRole.SUPERADMIN


@dataclass(frozen=True)
class VerificationFilter:
    """Query predicate over document verifications (all fields AND-combined)"""
    record_id: Optional[UUID] = None
    id_number: Optional[str] = None
    status: Optional[VerificationStatus] = None
    search: Optional[str] = None
    created_by: Optional[UUID] = None
    created_since: Optional[datetime] = None
    reviewed_since: Optional[datetime] = None


@dataclass(frozen=True)
class AdminFilter:
    """Query predicate over admin accounts"""
    admin_id: Optional[UUID] = None
    email: Optional[str] = None
    include_inactive: bool = False
    created_by: Optional[UUID] = None


ScopedFilter = TypeVar("ScopedFilter", VerificationFilter, AdminFilter)


def scope_filter(actor: Optional[ActorContext], base_filter: ScopedFilter) -> ScopedFilter:
    """Narrow a filter to what the actor may see.

    Superadmins get the filter unchanged. Everyone else gets a copy with
    `created_by` forced to their own id, replacing whatever the caller put
    there, so no request parameter can widen the scope.

    Raises:
        PermissionDeniedError: If there is no authenticated actor
    """
    if actor is None:
        raise PermissionDeniedError("Authentication required")
    if actor.is_superadmin:
        return base_filter
    return replace(base_filter, created_by=actor.id)


def require_superadmin(actor: Optional[ActorContext], action: str = "perform this action") -> ActorContext:
    """Role gate for admin management"""
    if actor is None or not actor.is_superadmin:
        raise PermissionDeniedError(f"Only superadmins may {action}")
    return actor


def parse_status(value: Union[str, VerificationStatus, None]) -> Optional[VerificationStatus]:
    """Lenient status parsing for list filters: unknown values yield None"""
    if value is None or isinstance(value, VerificationStatus):
        return value
    try:
        return VerificationStatus(str(value).strip().lower())
    except ValueError:
        return None
