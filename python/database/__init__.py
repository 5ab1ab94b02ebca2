"""
Database Package for the DocVerify document verification service

This package provides:
- SQLAlchemy ORM models for admins, verification records and the audit log
- Session provider and FastAPI dependency for database sessions
- Repository pattern for data access
- The data isolation policy applied to every scoped query
- Lifecycle, identity and public lookup services
"""

from database.models import (
    Base,
    Admin,
    AdminRole,
    DocumentVerification,
    VerificationStatus,
    EmploymentStatus,
    DocumentType,
    AuditLog,
    AuditAction,
    AuditTargetType,
)
from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    # FastAPI dependency
    get_db,
    get_db_provider,
    # Initialization
    init_db,
    close_db,
    # Testing support
    create_test_provider,
)
from database.access_policy import (
    ActorContext,
    VerificationFilter,
    AdminFilter,
    scope_filter,
    require_superadmin,
)
from database.repositories import (
    Page,
    VerificationRepository,
    AdminRepository,
    AuditRepository,
)

__all__ = [
    # Base
    'Base',
    # Models
    'Admin',
    'AdminRole',
    'DocumentVerification',
    'VerificationStatus',
    'EmploymentStatus',
    'DocumentType',
    'AuditLog',
    'AuditAction',
    'AuditTargetType',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'get_db',
    'get_db_provider',
    'init_db',
    'close_db',
    'create_test_provider',
    # Isolation policy
    'ActorContext',
    'VerificationFilter',
    'AdminFilter',
    'scope_filter',
    'require_superadmin',
    # Repositories
    'Page',
    'VerificationRepository',
    'AdminRepository',
    'AuditRepository',
]
