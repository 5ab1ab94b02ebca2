"""
Shared fixtures for the DocVerify test suite.

Every test gets a fresh in-memory SQLite database (StaticPool so the
FastAPI threadpool sees the same connection), a fast-hashing config, a
security logger writing under tmp_path, and an in-memory document store.
"""

import sys
import itertools
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).parent.parent))

from auth import hash_password
from config_manager import ConfigManager
from database.access_policy import ActorContext
from database.admin_service import AdminService
from database.connection import create_test_provider
from database.lookup_service import LookupService
from database.models import AdminRole
from database.repositories import AdminRepository
from database.verification_service import VerificationService
from errors import StorageError
from security_logger import SecurityLogger, reset_security_logger
from validation import DocumentUpload, VerificationInput

PASSWORD = "CorrectHorse1"
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


class FakeStorage:
    """In-memory DocumentStorage with failure switches."""

    def __init__(self):
        self.objects = {}
        self.fail_put = False
        self.fail_delete = False
        self._ids = itertools.count(1)

    def put(self, data: bytes, mime_type: str, folder: str) -> str:
        if self.fail_put:
            raise StorageError("Document storage is unavailable")
        url = f"memory://{folder}/{next(self._ids)}"
        self.objects[url] = (data, mime_type)
        return url

    def delete(self, url: str) -> bool:
        if self.fail_delete:
            raise StorageError("Document storage is unavailable")
        return self.objects.pop(url, None) is not None


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db_provider(engine):
    provider = create_test_provider(engine=engine)
    provider.create_tables()
    yield provider
    provider.close()


@pytest.fixture
def session(db_provider):
    session = db_provider.session_factory()
    yield session
    session.close()


@pytest.fixture
def config(tmp_path, monkeypatch):
    for name in ("JWT_SECRET", "STORAGE_BACKEND", "S3_BUCKET", "AWS_REGION", "BASE_URL",
                 "PUBLIC_INTAKE_ADMIN_EMAIL"):
        monkeypatch.delenv(name, raising=False)
    config = ConfigManager(str(tmp_path / "missing-config.yaml"))
    config.auth.bcrypt_rounds = 4
    config.auth.jwt_secret = "test-secret-with-enough-length"
    config.logging.security_log_dir = str(tmp_path / "logs")
    return config


@pytest.fixture
def security_log(tmp_path):
    logger = SecurityLogger(log_dir=str(tmp_path / "logs"))
    yield logger
    for handler in list(logger.logger.handlers):
        handler.close()
    logger.logger.handlers.clear()
    reset_security_logger()


@pytest.fixture
def security_log_path(tmp_path):
    return tmp_path / "logs" / "security.log"


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def make_admin(session):
    """Factory inserting an admin directly through the repository."""
    counter = itertools.count(1)

    def _make_admin(email=None, role=AdminRole.ADMIN, password=PASSWORD, is_active=True, **extra):
        repo = AdminRepository(session)
        admin = repo.create({
            "email": email or f"admin{next(counter)}@example.com",
            "password_hash": hash_password(password, rounds=4),
            "name": extra.pop("name", "Test Admin"),
            "phone": extra.pop("phone", "+1 555 010 0000"),
            "role": role,
            "is_active": is_active,
            **extra,
        })
        session.commit()
        return admin

    return _make_admin


def actor_for(admin) -> ActorContext:
    return ActorContext(id=admin.id, email=admin.email, role=admin.role)


@pytest.fixture
def superadmin(make_admin):
    return make_admin(email="root@example.com", role=AdminRole.SUPERADMIN, name="Root")


@pytest.fixture
def admin_a(make_admin):
    return make_admin(email="alice@example.com", name="Alice")


@pytest.fixture
def admin_b(make_admin):
    return make_admin(email="bob@example.com", name="Bob")


@pytest.fixture
def super_actor(superadmin):
    return actor_for(superadmin)


@pytest.fixture
def actor_a(admin_a):
    return actor_for(admin_a)


@pytest.fixture
def actor_b(admin_b):
    return actor_for(admin_b)


@pytest.fixture
def verification_service(session, storage, config, security_log):
    return VerificationService(session, storage, config, security_log)


@pytest.fixture
def admin_service(session, config, security_log):
    return AdminService(session, config, security_log)


@pytest.fixture
def lookup_service(session):
    return LookupService(session)


def make_input(**overrides) -> VerificationInput:
    values = {
        "name": "Jane Doe",
        "email": "Jane.Doe@Example.com",
        "id_number": "ID-12345",
        "job_title": "Engineer",
        "department": "Platform",
        "start_date": date(2022, 1, 10).isoformat(),
        "phone": "+1 555 123 4567",
    }
    values.update(overrides)
    return VerificationInput(**values)


def make_upload(filename="passport.pdf", content_type="application/pdf", data=PDF_BYTES) -> DocumentUpload:
    return DocumentUpload(filename=filename, content_type=content_type, data=data)


@pytest.fixture
def submit(verification_service):
    """Submit a verification as the given actor with sensible defaults."""
    def _submit(actor, upload=None, **overrides):
        return verification_service.submit(make_input(**overrides), upload or make_upload(), actor)
    return _submit
