"""
FastAPI DocVerify API Server

REST endpoints for admin authentication, document verification review,
admin management and the public verification lookups.

Usage:
    uvicorn api.server:app --reload --port 8000
"""

import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Depends, File, Form, Query, Request, Security, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session

from api.models import (
    ActivityResponse,
    AdminCreate,
    AdminListResponse,
    AdminResponse,
    AdminUpdate,
    AuditLogListResponse,
    AuditLogResponse,
    DeleteResponse,
    EmploymentRequest,
    ErrorResponse,
    HealthResponse,
    IdVerificationResponse,
    LoginRequest,
    MessageResponse,
    PerformanceResponse,
    ReviewRequest,
    StatsResponse,
    StatusLookupResponse,
    TokenResponse,
    TrendResponse,
    VerificationListResponse,
    VerificationResponse,
)
from api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from api.rate_limit import limiter, rate_limit_exceeded_handler
from auth import TokenService
from config_manager import get_config, ConfigManager, ConfigurationError, LoggingConfig
from database.access_policy import ActorContext
from database.admin_service import AdminInput, AdminService
from database.audit_trail import RequestMeta
from database.connection import DatabaseSessionProvider, get_db, get_db_provider, init_db, close_db
from database.lookup_service import LookupService
from database.verification_service import VerificationService
from document_storage import DocumentStorage, URL_PREFIX, create_storage
from errors import TokenError
from security_logger import SecurityLogger, get_security_logger
from validation import DocumentUpload, VerificationInput

logger = logging.getLogger(__name__)

# Environment variables with defaults
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
CONFIG_PATH = os.getenv("CONFIG_PATH")
API_VERSION = "1.0.0"

# Global state
_config: Optional[ConfigManager] = None
_storage: Optional[DocumentStorage] = None
_startup_time: Optional[datetime] = None

bearer_scheme = HTTPBearer(auto_error=False)

AUTH_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
}
RECORD_RESPONSES = {
    **AUTH_RESPONSES,
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Verification not found or not owned by caller"},
    409: {"model": ErrorResponse, "description": "Concurrent modification"},
}
SUPERADMIN_RESPONSES = {
    **AUTH_RESPONSES,
    403: {"model": ErrorResponse, "description": "Superadmin role required"},
}
UPLOAD_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    413: {"model": ErrorResponse, "description": "Document too large"},
    415: {"model": ErrorResponse, "description": "Unsupported document type"},
    502: {"model": ErrorResponse, "description": "Document storage unavailable"},
}


# ============================================
# DEPENDENCIES
# ============================================

def get_config_instance() -> ConfigManager:
    """Dependency to get the config instance."""
    global _config
    if _config is None:
        _config = get_config(CONFIG_PATH)
    return _config


def get_storage(config: ConfigManager = Depends(get_config_instance)) -> DocumentStorage:
    """Dependency to get the configured document storage backend."""
    global _storage
    if _storage is None:
        _storage = create_storage(config.upload)
    return _storage


def get_token_service(config: ConfigManager = Depends(get_config_instance)) -> TokenService:
    return TokenService(config.auth)


def get_security_log(config: ConfigManager = Depends(get_config_instance)) -> SecurityLogger:
    return get_security_logger(config.logging.security_log_dir)


def configured_limit(name: str):
    """Limit provider that reads rate_limit.<name> from the live config."""
    return lambda: getattr(get_config_instance().rate_limit, name)


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_admin_service(
    db: Session = Depends(get_db),
    config: ConfigManager = Depends(get_config_instance),
    security_log: SecurityLogger = Depends(get_security_log),
) -> AdminService:
    return AdminService(db, config, security_log)


def get_verification_service(
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
    config: ConfigManager = Depends(get_config_instance),
    security_log: SecurityLogger = Depends(get_security_log),
) -> VerificationService:
    return VerificationService(db, storage, config, security_log)


def get_lookup_service(db: Session = Depends(get_db)) -> LookupService:
    return LookupService(db)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    admins: AdminService = Depends(get_admin_service),
    security_log: SecurityLogger = Depends(get_security_log),
) -> ActorContext:
    """Resolve the bearer token to a live, active admin.

    Raises:
        TokenError: Missing, malformed or expired token, or the admin is
            no longer active
    """
    if credentials is None:
        security_log.log_token_rejected("missing", source="get_current_actor")
        raise TokenError("Invalid token")
    try:
        token_actor = tokens.verify_token(credentials.credentials)
    except TokenError as e:
        security_log.log_token_rejected(e.reason, source="get_current_actor")
        raise
    return admins.resolve_actor(token_actor)


def _read_upload(file: Optional[UploadFile], config: ConfigManager) -> Optional[DocumentUpload]:
    """Read at most one byte past the size limit so oversize uploads are still detected."""
    if file is None:
        return None
    data = file.file.read(config.upload.max_file_size_bytes + 1)
    return DocumentUpload(
        filename=file.filename or "",
        content_type=file.content_type or "",
        data=data,
    )


def _verification_input(
    name: Optional[str],
    email: Optional[str],
    id_number: Optional[str],
    job_title: Optional[str],
    department: Optional[str],
    start_date: Optional[str],
    phone: Optional[str],
) -> VerificationInput:
    return VerificationInput(
        name=name or "",
        email=email or "",
        id_number=id_number or "",
        job_title=job_title or "",
        department=department or "",
        start_date=start_date,
        phone=phone,
    )


def _record(record) -> VerificationResponse:
    return VerificationResponse(**record.to_dict())


# ============================================
# APPLICATION
# ============================================

app = FastAPI(
    title="DocVerify API",
    description="Employment and identity document verification service",
    version=API_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# Setup middleware
setup_cors(app)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def configure_logging(settings: LoggingConfig) -> None:
    """Configure root logging from the logging section of config.yaml."""
    handlers = []
    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.file, encoding="utf-8"))
    if settings.console or not handlers:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=getattr(logging, settings.level.upper(), logging.INFO),
        format=settings.format,
        handlers=handlers,
        force=True,
    )


@app.on_event("startup")
def startup():
    """Load configuration, connect to the database and mount local uploads."""
    global _startup_time

    try:
        config = get_config_instance()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        raise

    configure_logging(config.logging)
    logger.info("Starting DocVerify API...")

    init_db(create_tables=True)

    limiter.enabled = config.rate_limit.enabled
    if not limiter.enabled:
        logger.warning("Rate limiting is disabled")

    if config.upload.storage_backend == "local":
        upload_dir = Path(config.upload.local_directory)
        upload_dir.mkdir(parents=True, exist_ok=True)
        app.mount(URL_PREFIX, StaticFiles(directory=str(upload_dir)), name="uploads")
        logger.info("Serving local documents from %s", upload_dir.resolve())

    _startup_time = datetime.now(timezone.utc)
    logger.info("API ready (storage backend: %s)", config.upload.storage_backend)


@app.on_event("shutdown")
def shutdown():
    logger.info("Shutting down DocVerify API...")
    close_db()


# ============================================
# AUTH
# ============================================

@app.post(
    "/api/v1/auth/login",
    response_model=TokenResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed request"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        429: {"model": ErrorResponse, "description": "Too many login attempts"},
    },
    summary="Admin login",
)
@limiter.limit(configured_limit("login"))
def login(
    request: Request,
    body: LoginRequest,
    admins: AdminService = Depends(get_admin_service),
    tokens: TokenService = Depends(get_token_service),
    config: ConfigManager = Depends(get_config_instance),
    meta: RequestMeta = Depends(get_request_meta),
):
    """Exchange email and password for a bearer token.

    Unknown email, wrong password, locked and deactivated accounts all
    answer 401 "Invalid credentials".
    """
    actor = admins.authenticate(body.email, body.password, meta)
    token = tokens.issue_token(actor.id, actor.email, actor.role)
    return TokenResponse(
        access_token=token,
        expires_in=config.auth.token_expire_minutes * 60,
        admin=AdminResponse.from_admin(admins.get_profile(actor)),
    )


@app.post(
    "/api/v1/auth/logout",
    response_model=MessageResponse,
    responses=AUTH_RESPONSES,
    summary="Admin logout",
)
def logout(
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    admins.logout(actor, meta)
    return MessageResponse(message="Logged out")


@app.get(
    "/api/v1/auth/profile",
    response_model=AdminResponse,
    responses=AUTH_RESPONSES,
    summary="Current admin profile",
)
def profile(
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
):
    return AdminResponse.from_admin(admins.get_profile(actor))


# ============================================
# VERIFICATIONS (ADMIN)
# ============================================

@app.post(
    "/api/v1/verifications",
    response_model=VerificationResponse,
    status_code=201,
    responses={**AUTH_RESPONSES, **UPLOAD_RESPONSES},
    summary="Submit a verification",
    description="Multipart upload of subject fields plus a jpeg, png or pdf document",
)
def submit_verification(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    id_number: Optional[str] = Form(None),
    job_title: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    start_date: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None, description="Identity document"),
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
    config: ConfigManager = Depends(get_config_instance),
    meta: RequestMeta = Depends(get_request_meta),
):
    fields = _verification_input(name, email, id_number, job_title, department, start_date, phone)
    record = service.submit(fields, _read_upload(document, config), actor, channel="admin", meta=meta)
    return _record(record)


@app.get(
    "/api/v1/verifications",
    response_model=VerificationListResponse,
    responses=AUTH_RESPONSES,
    summary="List verifications",
    description="Newest first; non-superadmins only see the records they created",
)
def list_verifications(
    status: Optional[str] = Query(None, description="pending, approved or rejected"),
    q: Optional[str] = Query(None, max_length=100, description="Search name, email, ID number, job title, department"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    result = service.list_verifications(actor, status=status, search=q, page=page, page_size=limit)
    return VerificationListResponse(
        items=[_record(r) for r in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@app.get(
    "/api/v1/verifications/stats",
    response_model=StatsResponse,
    responses=AUTH_RESPONSES,
    summary="Status counts and recent submissions",
)
def verification_stats(
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    return StatsResponse(
        stats=service.get_stats(actor),
        recent=[_record(r) for r in service.recent(actor)],
    )


@app.get(
    "/api/v1/verifications/trends",
    response_model=TrendResponse,
    responses={**AUTH_RESPONSES, 400: {"model": ErrorResponse, "description": "Invalid period"}},
    summary="Daily submission counts",
)
def verification_trends(
    period: str = Query("30d", description="7d, 30d, 90d or 1y"),
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    return service.trends(actor, period).to_dict()


@app.get(
    "/api/v1/verifications/performance",
    response_model=PerformanceResponse,
    responses={**AUTH_RESPONSES, 400: {"model": ErrorResponse, "description": "Invalid period"}},
    summary="Review turnaround and approval rate",
)
def verification_performance(
    period: str = Query("30d", description="7d, 30d, 90d or 1y"),
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    return service.performance(actor, period).to_dict()


@app.get(
    "/api/v1/verifications/activity",
    response_model=ActivityResponse,
    responses={**AUTH_RESPONSES, 400: {"model": ErrorResponse, "description": "Invalid period"}},
    summary="Approvals and rejections per reviewer",
)
def verification_activity(
    period: str = Query("7d", description="7d, 30d, 90d or 1y"),
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    return service.reviewer_activity(actor, period).to_dict()


@app.get(
    "/api/v1/verifications/{record_id}",
    response_model=VerificationResponse,
    responses=RECORD_RESPONSES,
    summary="Get a verification",
)
def get_verification(
    record_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
):
    return _record(service.get(record_id, actor))


@app.put(
    "/api/v1/verifications/{record_id}/status",
    response_model=VerificationResponse,
    responses=RECORD_RESPONSES,
    summary="Review a verification",
)
def review_verification(
    record_id: UUID,
    body: ReviewRequest,
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    return _record(service.review(record_id, body.status, actor, notes=body.notes, meta=meta))


@app.post(
    "/api/v1/verifications/{record_id}/reset",
    response_model=VerificationResponse,
    responses=RECORD_RESPONSES,
    summary="Return a verification to pending",
)
def reset_verification(
    record_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    return _record(service.reset(record_id, actor, meta=meta))


@app.patch(
    "/api/v1/verifications/{record_id}/employment",
    response_model=VerificationResponse,
    responses=RECORD_RESPONSES,
    summary="Change employment status",
)
def update_employment(
    record_id: UUID,
    body: EmploymentRequest,
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    record = service.set_employment_status(
        record_id, body.employment_status, actor, end_date=body.end_date, meta=meta
    )
    return _record(record)


@app.delete(
    "/api/v1/verifications/{record_id}",
    response_model=DeleteResponse,
    responses=RECORD_RESPONSES,
    summary="Delete a verification",
)
def delete_verification(
    record_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: VerificationService = Depends(get_verification_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    """Delete the record; the stored document is removed best-effort."""
    document_deleted = service.delete(record_id, actor, meta=meta)
    return DeleteResponse(message="Verification deleted", document_deleted=document_deleted)


# ============================================
# PUBLIC
# ============================================

@app.post(
    "/api/v1/public/verifications",
    response_model=VerificationResponse,
    status_code=201,
    responses={
        **UPLOAD_RESPONSES,
        403: {"model": ErrorResponse, "description": "Public submissions disabled"},
        429: {"model": ErrorResponse, "description": "Too many submissions"},
    },
    summary="Self-service submission",
)
@limiter.limit(configured_limit("public_submit"))
def submit_public_verification(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    id_number: Optional[str] = Form(None),
    job_title: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    start_date: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None, description="Identity document"),
    admins: AdminService = Depends(get_admin_service),
    service: VerificationService = Depends(get_verification_service),
    config: ConfigManager = Depends(get_config_instance),
    meta: RequestMeta = Depends(get_request_meta),
):
    """Submit without a token; the record is owned by the configured intake admin."""
    owner = admins.intake_actor()
    fields = _verification_input(name, email, id_number, job_title, department, start_date, phone)
    record = service.submit(fields, _read_upload(document, config), owner, channel="public", meta=meta)
    return _record(record)


@app.get(
    "/api/v1/verify/record/{record_id}",
    response_model=VerificationResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Verification not found"},
        429: {"model": ErrorResponse, "description": "Too many lookups"},
    },
    summary="Public record lookup",
)
@limiter.shared_limit(configured_limit("public_lookup"), scope="public_lookup")
def lookup_record(request: Request, record_id: UUID, lookup: LookupService = Depends(get_lookup_service)):
    return VerificationResponse(**lookup.by_record_id(record_id))


@app.get(
    "/api/v1/verify/id/{id_number}",
    response_model=IdVerificationResponse,
    response_model_exclude_none=True,
    responses={429: {"model": ErrorResponse, "description": "Too many lookups"}},
    summary="Is this ID number verified?",
)
@limiter.shared_limit(configured_limit("public_lookup"), scope="public_lookup")
def lookup_id_number(request: Request, id_number: str, lookup: LookupService = Depends(get_lookup_service)):
    return lookup.by_id_number(id_number)


@app.get(
    "/api/v1/verify/status/{id_number}",
    response_model=StatusLookupResponse,
    response_model_exclude_unset=True,
    responses={
        404: {"model": ErrorResponse, "description": "No record for this ID number"},
        429: {"model": ErrorResponse, "description": "Too many lookups"},
    },
    summary="Review status for an ID number",
)
@limiter.shared_limit(configured_limit("public_lookup"), scope="public_lookup")
def lookup_status(request: Request, id_number: str, lookup: LookupService = Depends(get_lookup_service)):
    return StatusLookupResponse(**lookup.status_by_id_number(id_number))


# ============================================
# ADMIN MANAGEMENT (SUPERADMIN)
# ============================================

@app.get(
    "/api/v1/admins",
    response_model=AdminListResponse,
    responses=SUPERADMIN_RESPONSES,
    summary="List admins",
)
def list_admins(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    include_inactive: bool = Query(False),
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
):
    result = admins.list_admins(actor, page=page, page_size=limit, include_inactive=include_inactive)
    return AdminListResponse(
        items=[AdminResponse.from_admin(a) for a in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@app.post(
    "/api/v1/admins",
    response_model=AdminResponse,
    status_code=201,
    responses={
        **SUPERADMIN_RESPONSES,
        400: {"model": ErrorResponse, "description": "Invalid input"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
    summary="Create an admin",
)
def create_admin(
    body: AdminCreate,
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    admin = admins.create_admin(actor, AdminInput(**body.model_dump()), meta=meta)
    return AdminResponse.from_admin(admin)


@app.get(
    "/api/v1/admins/{admin_id}",
    response_model=AdminResponse,
    responses={**SUPERADMIN_RESPONSES, 404: {"model": ErrorResponse, "description": "Admin not found"}},
    summary="Get an admin",
)
def get_admin(
    admin_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
):
    return AdminResponse.from_admin(admins.get_admin(actor, admin_id))


@app.put(
    "/api/v1/admins/{admin_id}",
    response_model=AdminResponse,
    responses={
        **SUPERADMIN_RESPONSES,
        400: {"model": ErrorResponse, "description": "Invalid input or self-deactivation"},
        404: {"model": ErrorResponse, "description": "Admin not found"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
    summary="Update an admin",
)
def update_admin(
    admin_id: UUID,
    body: AdminUpdate,
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    admin = admins.update_admin(actor, admin_id, body.model_dump(exclude_unset=True), meta=meta)
    return AdminResponse.from_admin(admin)


@app.delete(
    "/api/v1/admins/{admin_id}",
    response_model=AdminResponse,
    responses={
        **SUPERADMIN_RESPONSES,
        400: {"model": ErrorResponse, "description": "Cannot deactivate your own account"},
        404: {"model": ErrorResponse, "description": "Admin not found"},
    },
    summary="Deactivate an admin",
)
def deactivate_admin(
    admin_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    return AdminResponse.from_admin(admins.deactivate_admin(actor, admin_id, meta=meta))


# ============================================
# AUDIT TRAIL (SUPERADMIN)
# ============================================

@app.get(
    "/api/v1/audit-logs",
    response_model=AuditLogListResponse,
    responses={**SUPERADMIN_RESPONSES, 400: {"model": ErrorResponse, "description": "Invalid filter"}},
    summary="List audit entries",
)
def list_audit_logs(
    action: Optional[str] = Query(None, description="create, update, delete, upload, restore, login or logout"),
    target_type: Optional[str] = Query(None, description="Admin or DocumentVerification"),
    target_id: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="ISO 8601 lower bound"),
    end_date: Optional[str] = Query(None, description="ISO 8601 upper bound"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    actor: ActorContext = Depends(get_current_actor),
    admins: AdminService = Depends(get_admin_service),
):
    result = admins.list_audit_logs(
        actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        actor_id=actor_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=limit,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse(**entry.to_dict()) for entry in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


# ============================================
# SYSTEM
# ============================================

@app.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check service and database health",
)
def health_check(provider: DatabaseSessionProvider = Depends(get_db_provider)):
    """Return health status. Always returns HTTP 200."""
    database_ok = provider.health_check()

    uptime_seconds = None
    if _startup_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _startup_time).total_seconds())

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database="ok" if database_ok else "unavailable",
        version=API_VERSION,
        uptime_seconds=uptime_seconds,
    )


# Root redirect to docs
@app.get("/", include_in_schema=False)
def root():
    """Redirect root to API documentation."""
    from fastapi.responses import RedirectResponse

    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
