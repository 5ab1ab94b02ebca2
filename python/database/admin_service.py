"""
Admin identity and account management.

Authentication (with failed-login lockout), session actor resolution, and
the superadmin-only admin CRUD and audit trail listing. Failures on the
login path raise AuthError subclasses whose internal reason goes to the
security log; callers only ever see "Invalid credentials".
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from config_manager import ConfigManager, get_config
from database.access_policy import ActorContext, AdminFilter, require_superadmin, scope_filter
from database.audit_trail import RequestMeta, append_audit
from database.models import Admin, AdminRole, AuditAction, AuditTargetType, ensure_utc, utcnow
from database.repositories import (
    AdminRepository,
    AuditRepository,
    DuplicateEntityError,
    Page,
    normalize_pagination,
)
from errors import (
    AccountInactiveError,
    AccountLockedError,
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    PermissionDeniedError,
    SelfDeactivationError,
    TokenError,
    ValidationError,
)
from security_logger import SecurityLogger, get_security_logger
from validation import NAME_MAX_LENGTH, parse_datetime, validate_email, validate_phone

logger = logging.getLogger(__name__)

PROFILE_MAX_LENGTH = 100
UPDATABLE_FIELDS = ("name", "email", "phone", "department", "designation", "role", "is_active", "password")
REQUIRED_FIELDS = ("name", "email", "role", "is_active", "password")


@dataclass
class AdminInput:
    """Fields for a new admin account"""
    name: str = ""
    email: str = ""
    password: str = ""
    phone: Optional[str] = None
    role: Union[str, AdminRole] = AdminRole.ADMIN
    department: Optional[str] = None
    designation: Optional[str] = None


def _parse_role(value: Union[str, AdminRole, None], default: Optional[AdminRole] = None) -> AdminRole:
    if isinstance(value, AdminRole):
        return value
    text = "" if value is None else str(value).strip().lower()
    if not text and default is not None:
        return default
    try:
        return AdminRole(text)
    except ValueError:
        raise ValidationError(
            "Invalid role",
            field="role",
            code="INVALID_ROLE",
            suggestion="Use one of: admin, superadmin"
        )


def _optional_text(value: Optional[str], field: str) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    if len(value) > PROFILE_MAX_LENGTH:
        raise ValidationError(
            f"{field} cannot be more than {PROFILE_MAX_LENGTH} characters",
            field=field,
            code="TOO_LONG"
        )
    return value


def _parse_choice(enum_type, value: Optional[str], field: str):
    """Case-insensitive enum lookup for query filters; blank means no filter"""
    if value is None or not value.strip():
        return None
    wanted = value.strip().lower()
    for member in enum_type:
        if member.value.lower() == wanted:
            return member
    raise ValidationError(
        f"Invalid {field}",
        field=field,
        code="INVALID_FILTER",
        suggestion=f"Use one of: {', '.join(m.value for m in enum_type)}"
    )


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    """Stand-in hash checked when the email matches no admin"""
    return hash_password("docverify-unknown-account", rounds=rounds)


class AdminService:
    """Authentication and admin account management"""

    def __init__(
        self,
        session: Session,
        config: Optional[ConfigManager] = None,
        security_log: Optional[SecurityLogger] = None
    ):
        self.session = session
        self.config = config or get_config()
        self._admins = AdminRepository(session)
        self._audit = AuditRepository(session)
        self._security_log = security_log

    @property
    def security_log(self) -> SecurityLogger:
        if self._security_log is None:
            self._security_log = get_security_logger(self.config.logging.security_log_dir)
        return self._security_log

    # ============================================
    # VALIDATION
    # ============================================

    def _validate_name(self, name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name", code="REQUIRED_FIELD")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError(
                f"name cannot be more than {NAME_MAX_LENGTH} characters",
                field="name",
                code="TOO_LONG"
            )
        return name

    def _validate_password(self, password: Optional[str]) -> str:
        min_length = self.config.auth.password_min_length
        if not password or len(password) < min_length:
            raise ValidationError(
                f"Password must be at least {min_length} characters",
                field="password",
                code="PASSWORD_TOO_SHORT"
            )
        return password

    def _hash(self, password: str) -> str:
        return hash_password(password, rounds=self.config.auth.bcrypt_rounds)

    def _gate(self, actor: Optional[ActorContext], action: str) -> ActorContext:
        try:
            return require_superadmin(actor, action)
        except PermissionDeniedError:
            self.security_log.log_access_denied(str(actor.id) if actor else "", action, "Admin")
            raise

    # ============================================
    # AUTHENTICATION
    # ============================================

    def authenticate(
        self,
        email: str,
        password: str,
        meta: Optional[RequestMeta] = None
    ) -> ActorContext:
        """
        Check credentials and open a session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountLockedError: lock_until lies in the future
            AccountInactiveError: Account is deactivated
        """
        admin = self._admins.get_by_email(email or "")
        now = utcnow()

        try:
            if admin is None:
                verify_password(password or "", _dummy_hash(self.config.auth.bcrypt_rounds))
                raise InvalidCredentialsError()
            if admin.is_locked(now):
                raise AccountLockedError()
            if not admin.is_active:
                raise AccountInactiveError()
            if not verify_password(password or "", admin.password_hash):
                self._register_failed_attempt(admin)
                raise InvalidCredentialsError()
        except AuthError as e:
            self.security_log.log_auth_failure(email or "", e.reason)
            raise

        admin.login_attempts = 0
        admin.lock_until = None
        admin.last_login = now
        self.session.commit()

        append_audit(
            self.session,
            AuditAction.LOGIN,
            AuditTargetType.ADMIN,
            target_id=admin.id,
            actor_id=admin.id,
            actor_email=admin.email,
            details={"email": admin.email},
            meta=meta
        )
        logger.info("Admin logged in: %s", admin.id)
        return ActorContext(id=admin.id, email=admin.email, role=admin.role)

    def _register_failed_attempt(self, admin: Admin) -> None:
        """Count a wrong password; lock the account at the threshold"""
        auth_cfg = self.config.auth
        now = utcnow()

        # A lock that has already expired starts a fresh count
        if admin.lock_until is not None and ensure_utc(admin.lock_until) <= now:
            admin.login_attempts = 0
            admin.lock_until = None

        admin.login_attempts = (admin.login_attempts or 0) + 1
        if admin.login_attempts >= auth_cfg.max_login_attempts:
            admin.lock_until = now + timedelta(minutes=auth_cfg.lock_minutes)
            self.security_log.log_account_locked(admin.email, admin.login_attempts, admin.lock_until)
            admin.login_attempts = 0
            logger.warning("Admin %s locked until %s", admin.id, admin.lock_until.isoformat())

        self.session.commit()

    def resolve_actor(self, token_actor: ActorContext) -> ActorContext:
        """
        Re-check a token's admin against the database.

        Raises:
            TokenError: Admin no longer exists, is inactive or is locked
        """
        admin = self._admins.get_by_id(token_actor.id)
        if admin is None or not admin.is_active or admin.is_locked():
            self.security_log.log_token_rejected("account_unavailable", source="resolve_actor")
            raise TokenError("Invalid token")
        return ActorContext(id=admin.id, email=admin.email, role=admin.role)

    def intake_actor(self) -> ActorContext:
        """
        Admin that owns public self-service submissions.

        Raises:
            PermissionDeniedError: Public intake is not configured or the
                configured admin is unavailable
        """
        email = self.config.verification.public_intake_admin_email
        admin = self._admins.get_by_email(email) if email else None
        if admin is None or not admin.is_active:
            raise PermissionDeniedError("Public submissions are disabled")
        return ActorContext(id=admin.id, email=admin.email, role=admin.role)

    def get_profile(self, actor: ActorContext) -> Admin:
        admin = self._admins.get_by_id(actor.id)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    def logout(self, actor: ActorContext, meta: Optional[RequestMeta] = None) -> None:
        """Record the logout; tokens are stateless and simply expire"""
        append_audit(
            self.session,
            AuditAction.LOGOUT,
            AuditTargetType.ADMIN,
            target_id=actor.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={"email": actor.email},
            meta=meta
        )

    # ============================================
    # ADMIN MANAGEMENT (SUPERADMIN ONLY)
    # ============================================

    def create_admin(
        self,
        actor: ActorContext,
        data: AdminInput,
        meta: Optional[RequestMeta] = None
    ) -> Admin:
        """
        Create an admin account.

        Raises:
            PermissionDeniedError: Actor is not a superadmin
            ValidationError: Missing or malformed fields
            ConflictError: Email already registered
        """
        self._gate(actor, "create admins")

        name = self._validate_name(data.name)
        email = validate_email(data.email)
        password = self._validate_password(data.password)
        phone = validate_phone(data.phone)
        if phone is None:
            raise ValidationError("phone is required", field="phone", code="REQUIRED_FIELD")
        role = _parse_role(data.role, default=AdminRole.ADMIN)

        if self._admins.get_by_email(email) is not None:
            raise ConflictError("Admin already exists with this email", field="email")

        try:
            admin = self._admins.create({
                "name": name,
                "email": email,
                "password_hash": self._hash(password),
                "phone": phone,
                "role": role,
                "department": _optional_text(data.department, "department"),
                "designation": _optional_text(data.designation, "designation"),
                "created_by": actor.id,
            })
            self.session.commit()
        except DuplicateEntityError as e:
            raise ConflictError("Admin already exists with this email", field="email") from e

        append_audit(
            self.session,
            AuditAction.CREATE,
            AuditTargetType.ADMIN,
            target_id=admin.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={"email": admin.email, "role": admin.role.value},
            meta=meta
        )
        logger.info("Admin created: %s (%s) by %s", admin.id, admin.role.value, actor.id)
        return admin

    def list_admins(
        self,
        actor: ActorContext,
        page: int = 1,
        page_size: Optional[int] = None,
        include_inactive: bool = False
    ) -> Page:
        """Paginated admin accounts, newest first; inactive ones only on request"""
        self._gate(actor, "list admins")
        criteria = scope_filter(actor, AdminFilter(include_inactive=include_inactive))
        return self._admins.find_many(
            criteria,
            page=page,
            page_size=page_size or self.config.verification.default_page_size,
            max_page_size=self.config.verification.max_page_size
        )

    def get_admin(self, actor: ActorContext, admin_id: UUID) -> Admin:
        self._gate(actor, "view admins")
        admin = self._admins.get_by_id(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    def update_admin(
        self,
        actor: ActorContext,
        admin_id: UUID,
        changes: Dict[str, Any],
        meta: Optional[RequestMeta] = None
    ) -> Admin:
        """
        Partially update an admin account.

        Raises:
            ValidationError: Unknown field, or null for a required field
            SelfDeactivationError: Actor tried to set its own is_active to False
            ConflictError: New email already registered
        """
        self._gate(actor, "update admins")

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}", code="INVALID_FIELD")
        for key in REQUIRED_FIELDS:
            if key in changes and changes[key] is None:
                raise ValidationError(
                    f"{key} cannot be null",
                    field=key,
                    code="INVALID_ROLE" if key == "role" else "REQUIRED_FIELD"
                )
        if "is_active" in changes and not isinstance(changes["is_active"], bool):
            raise ValidationError("is_active must be true or false", field="is_active", code="INVALID_VALUE")
        if "is_active" in changes and not changes["is_active"] and admin_id == actor.id:
            raise SelfDeactivationError("Cannot deactivate your own account", field="is_active")

        admin = self._admins.get_by_id(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")

        patch: Dict[str, Any] = {}
        if "name" in changes:
            patch["name"] = self._validate_name(changes["name"])
        if "email" in changes:
            patch["email"] = validate_email(changes["email"])
            existing = self._admins.get_by_email(patch["email"])
            if existing is not None and existing.id != admin.id:
                raise ConflictError("Admin already exists with this email", field="email")
        if "phone" in changes:
            patch["phone"] = validate_phone(changes["phone"])
        for key in ("department", "designation"):
            if key in changes:
                patch[key] = _optional_text(changes[key], key)
        if "role" in changes:
            patch["role"] = _parse_role(changes["role"])
        if "is_active" in changes:
            patch["is_active"] = changes["is_active"]
        if "password" in changes:
            patch["password_hash"] = self._hash(self._validate_password(changes["password"]))

        was_active = admin.is_active
        try:
            self._admins.update(admin, patch)
            self.session.commit()
        except DuplicateEntityError as e:
            raise ConflictError("Admin already exists with this email", field="email") from e

        restored = not was_active and admin.is_active
        changed = sorted("password" if key == "password_hash" else key for key in patch)
        append_audit(
            self.session,
            AuditAction.RESTORE if restored else AuditAction.UPDATE,
            AuditTargetType.ADMIN,
            target_id=admin.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={"changed": changed},
            meta=meta
        )
        return admin

    def deactivate_admin(
        self,
        actor: ActorContext,
        admin_id: UUID,
        meta: Optional[RequestMeta] = None
    ) -> Admin:
        """
        Soft-delete an admin account.

        Raises:
            SelfDeactivationError: Actor targeted its own account (checked first)
            NotFoundError: No such admin
        """
        self._gate(actor, "deactivate admins")
        if admin_id == actor.id:
            raise SelfDeactivationError("Cannot deactivate your own account", field="admin_id")

        admin = self._admins.get_by_id(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")

        self._admins.update(admin, {"is_active": False})
        self.session.commit()

        append_audit(
            self.session,
            AuditAction.DELETE,
            AuditTargetType.ADMIN,
            target_id=admin.id,
            actor_id=actor.id,
            actor_email=actor.email,
            details={"email": admin.email},
            meta=meta
        )
        logger.info("Admin deactivated: %s by %s", admin.id, actor.id)
        return admin

    # ============================================
    # AUDIT TRAIL (SUPERADMIN ONLY)
    # ============================================

    def list_audit_logs(
        self,
        actor: ActorContext,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page:
        """
        Audit entries, newest first.

        Raises:
            PermissionDeniedError: Actor is not a superadmin
            ValidationError: Unknown action or target type, or a malformed date
        """
        self._gate(actor, "view audit logs")

        page, page_size = normalize_pagination(
            page,
            page_size,
            default_page_size=self.config.verification.default_page_size,
            max_page_size=self.config.verification.max_page_size
        )
        logs, total = self._audit.search(
            action=_parse_choice(AuditAction, action, "action"),
            target_type=_parse_choice(AuditTargetType, target_type, "target_type"),
            target_id=target_id or None,
            actor_id=actor_id or None,
            start_date=parse_datetime(start_date, "start_date") if start_date else None,
            end_date=parse_datetime(end_date, "end_date") if end_date else None,
            offset=(page - 1) * page_size,
            limit=page_size
        )
        return Page(items=logs, total=total, page=page, page_size=page_size)

    # ============================================
    # BOOTSTRAP
    # ============================================

    def ensure_superadmin(
        self,
        email: str,
        password: str,
        name: str = "Super Admin",
        phone: Optional[str] = None
    ) -> Tuple[Admin, bool]:
        """
        Create the bootstrap superadmin unless one already exists.

        Returns:
            (admin, created) where admin is the new or an existing superadmin
        """
        existing = self._admins.first_with_role(AdminRole.SUPERADMIN)
        if existing is not None:
            return existing, False

        admin = self._admins.create({
            "name": self._validate_name(name),
            "email": validate_email(email),
            "password_hash": self._hash(self._validate_password(password)),
            "phone": validate_phone(phone),
            "role": AdminRole.SUPERADMIN,
            "created_by": None,
        })
        self.session.commit()
        append_audit(
            self.session,
            AuditAction.CREATE,
            AuditTargetType.ADMIN,
            target_id=admin.id,
            details={"email": admin.email, "role": admin.role.value}
        )
        return admin, True
