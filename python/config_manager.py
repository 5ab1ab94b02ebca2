"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import os
import re
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "application/pdf")
STORAGE_BACKENDS = ("local", "s3")
MIN_JWT_SECRET_LENGTH = 16
RATE_LIMIT_PATTERN = re.compile(r"^\s*\d+\s*(/|per)\s*\d*\s*(second|minute|hour|day)s?\s*$", re.IGNORECASE)


@dataclass
class AuthConfig:
    """Authentication, token and lockout settings"""
    jwt_secret: str = "change-me-in-production-please"
    jwt_algorithm: str = "HS256"
    token_expire_minutes: int = 15
    max_login_attempts: int = 5
    lock_minutes: int = 120
    bcrypt_rounds: int = 12
    password_min_length: int = 8


@dataclass
class UploadConfig:
    """Document upload and storage settings"""
    max_file_size_bytes: int = 10 * 1024 * 1024
    allowed_mime_types: List[str] = field(default_factory=lambda: list(SUPPORTED_MIME_TYPES))
    storage_backend: str = "local"
    local_directory: str = "uploads"
    base_url: str = "http://localhost:8000"
    s3_bucket: str = ""
    s3_region: str = "us-east-1"
    s3_prefix: str = ""


@dataclass
class VerificationConfig:
    """Listing and intake settings for verification records"""
    default_page_size: int = 10
    max_page_size: int = 100
    recent_limit: int = 5
    public_intake_admin_email: str = ""


@dataclass
class RateLimitConfig:
    """Per-client request limits, in slowapi notation (e.g. "10/minute")"""
    enabled: bool = True
    login: str = "10/minute"
    public_lookup: str = "30/minute"
    public_submit: str = "5/minute"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = "logs/docverify.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    security_log_dir: str = "logs"


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.auth: AuthConfig = AuthConfig()
        self.upload: UploadConfig = UploadConfig()
        self.verification: VerificationConfig = VerificationConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.rate_limit: RateLimitConfig = RateLimitConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning("Config file not found at %s, using defaults", self.config_path)
            self._apply_env_overrides()
            self._validate()

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        self._parse_auth()
        self._parse_upload()
        self._parse_verification()
        self._parse_logging()
        self._parse_rate_limit()
        self._apply_env_overrides()
        self._validate()

    def _parse_auth(self) -> None:
        """Parse authentication configuration"""
        cfg = self._raw_config.get('auth', {})
        defaults = AuthConfig()
        self.auth = AuthConfig(
            jwt_secret=cfg.get('jwt_secret', defaults.jwt_secret),
            jwt_algorithm=cfg.get('jwt_algorithm', defaults.jwt_algorithm),
            token_expire_minutes=cfg.get('token_expire_minutes', defaults.token_expire_minutes),
            max_login_attempts=cfg.get('max_login_attempts', defaults.max_login_attempts),
            lock_minutes=cfg.get('lock_minutes', defaults.lock_minutes),
            bcrypt_rounds=cfg.get('bcrypt_rounds', defaults.bcrypt_rounds),
            password_min_length=cfg.get('password_min_length', defaults.password_min_length)
        )

    def _parse_upload(self) -> None:
        """Parse upload and storage configuration"""
        cfg = self._raw_config.get('upload', {})
        defaults = UploadConfig()
        self.upload = UploadConfig(
            max_file_size_bytes=cfg.get('max_file_size_bytes', defaults.max_file_size_bytes),
            allowed_mime_types=cfg.get('allowed_mime_types', defaults.allowed_mime_types),
            storage_backend=cfg.get('storage_backend', defaults.storage_backend),
            local_directory=cfg.get('local_directory', defaults.local_directory),
            base_url=cfg.get('base_url', defaults.base_url),
            s3_bucket=cfg.get('s3_bucket', defaults.s3_bucket),
            s3_region=cfg.get('s3_region', defaults.s3_region),
            s3_prefix=cfg.get('s3_prefix', defaults.s3_prefix)
        )

    def _parse_verification(self) -> None:
        """Parse verification listing/intake configuration"""
        cfg = self._raw_config.get('verification', {})
        defaults = VerificationConfig()
        self.verification = VerificationConfig(
            default_page_size=cfg.get('default_page_size', defaults.default_page_size),
            max_page_size=cfg.get('max_page_size', defaults.max_page_size),
            recent_limit=cfg.get('recent_limit', defaults.recent_limit),
            public_intake_admin_email=cfg.get('public_intake_admin_email') or ''
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {})
        defaults = LoggingConfig()
        self.logging = LoggingConfig(
            level=cfg.get('level', defaults.level),
            file=cfg.get('file', defaults.file),
            console=cfg.get('console', defaults.console),
            format=cfg.get('format', defaults.format),
            security_log_dir=cfg.get('security_log_dir', defaults.security_log_dir)
        )

    def _parse_rate_limit(self) -> None:
        """Parse request rate limits"""
        cfg = self._raw_config.get('rate_limit', {})
        defaults = RateLimitConfig()
        self.rate_limit = RateLimitConfig(
            enabled=cfg.get('enabled', defaults.enabled),
            login=cfg.get('login', defaults.login),
            public_lookup=cfg.get('public_lookup', defaults.public_lookup),
            public_submit=cfg.get('public_submit', defaults.public_submit)
        )

    def _apply_env_overrides(self) -> None:
        """Environment variables win over file values for deployment secrets"""
        self.auth.jwt_secret = os.getenv("JWT_SECRET", self.auth.jwt_secret)
        self.upload.storage_backend = os.getenv("STORAGE_BACKEND", self.upload.storage_backend)
        self.upload.s3_bucket = os.getenv("S3_BUCKET", self.upload.s3_bucket)
        self.upload.s3_region = os.getenv("AWS_REGION", self.upload.s3_region)
        self.upload.base_url = os.getenv("BASE_URL", self.upload.base_url)
        self.verification.public_intake_admin_email = os.getenv(
            "PUBLIC_INTAKE_ADMIN_EMAIL", self.verification.public_intake_admin_email
        )

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary (secrets masked)"""
        return {
            'auth': {
                'jwt_algorithm': self.auth.jwt_algorithm,
                'token_expire_minutes': self.auth.token_expire_minutes,
                'max_login_attempts': self.auth.max_login_attempts,
                'lock_minutes': self.auth.lock_minutes,
                'password_min_length': self.auth.password_min_length
            },
            'upload': {
                'max_file_size_bytes': self.upload.max_file_size_bytes,
                'allowed_mime_types': list(self.upload.allowed_mime_types),
                'storage_backend': self.upload.storage_backend,
                'local_directory': self.upload.local_directory,
                's3_bucket': self.upload.s3_bucket,
                's3_region': self.upload.s3_region
            },
            'verification': {
                'default_page_size': self.verification.default_page_size,
                'max_page_size': self.verification.max_page_size,
                'recent_limit': self.verification.recent_limit,
                'public_intake_enabled': bool(self.verification.public_intake_admin_email)
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'security_log_dir': self.logging.security_log_dir
            },
            'rate_limit': {
                'enabled': self.rate_limit.enabled,
                'login': self.rate_limit.login,
                'public_lookup': self.rate_limit.public_lookup,
                'public_submit': self.rate_limit.public_submit
            }
        }

    def _validate(self) -> None:
        """Validate configuration values

        Raises:
            ConfigurationError: If any value is out of range
        """
        errors = []

        if self.upload.max_file_size_bytes <= 0:
            errors.append("upload.max_file_size_bytes must be positive")
        unsupported = [m for m in self.upload.allowed_mime_types if m not in SUPPORTED_MIME_TYPES]
        if unsupported:
            errors.append(f"upload.allowed_mime_types contains unsupported types: {unsupported}")
        if not self.upload.allowed_mime_types:
            errors.append("upload.allowed_mime_types must not be empty")
        if self.upload.storage_backend not in STORAGE_BACKENDS:
            errors.append(f"upload.storage_backend must be one of {STORAGE_BACKENDS}")
        if self.upload.storage_backend == "s3" and not self.upload.s3_bucket:
            errors.append("upload.s3_bucket is required when storage_backend is 's3'")

        if len(self.auth.jwt_secret or "") < MIN_JWT_SECRET_LENGTH:
            errors.append(f"auth.jwt_secret must be at least {MIN_JWT_SECRET_LENGTH} characters")
        if self.auth.token_expire_minutes <= 0:
            errors.append("auth.token_expire_minutes must be positive")
        if self.auth.max_login_attempts <= 0:
            errors.append("auth.max_login_attempts must be positive")
        if self.auth.lock_minutes <= 0:
            errors.append("auth.lock_minutes must be positive")
        if self.auth.password_min_length < 1:
            errors.append("auth.password_min_length must be at least 1")

        if self.verification.max_page_size <= 0:
            errors.append("verification.max_page_size must be positive")
        if not 0 < self.verification.default_page_size <= self.verification.max_page_size:
            errors.append("verification.default_page_size must be between 1 and max_page_size")

        for name in ('login', 'public_lookup', 'public_submit'):
            if not RATE_LIMIT_PATTERN.match(str(getattr(self.rate_limit, name) or "")):
                errors.append(f"rate_limit.{name} must look like '10/minute'")

        if errors:
            for error in errors:
                logger.error("Configuration error: %s", error)
            raise ConfigurationError("; ".join(errors))


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
