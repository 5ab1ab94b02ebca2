"""
Password hashing and bearer tokens for admin sessions.

Passwords are hashed with bcrypt. Tokens are HS256 JWTs carrying the admin id,
email and role; verifying one yields the ActorContext the rest of the service
works with.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import UUID

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from config_manager import AuthConfig
from database.access_policy import ActorContext
from database.models import AdminRole
from errors import TokenError

logger = logging.getLogger(__name__)

TOKEN_TYPE = "admin"


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password with bcrypt"""
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password; a malformed stored hash never matches"""
    password_bytes = (plain_password or "").encode('utf-8')[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        logger.error("Stored password hash is malformed")
        return False


class TokenService:
    """Issues and verifies admin bearer tokens"""

    def __init__(self, config: AuthConfig):
        self.config = config

    def issue_token(
        self,
        admin_id: Union[UUID, str],
        email: str,
        role: AdminRole,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """Create a signed token for an admin"""
        expire = datetime.now(timezone.utc) + (
            expires_delta if expires_delta is not None
            else timedelta(minutes=self.config.token_expire_minutes)
        )
        payload = {
            "sub": str(admin_id),
            "email": email,
            "role": AdminRole(role).value,
            "type": TOKEN_TYPE,
            "exp": expire,
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def verify_token(self, token: Optional[str]) -> ActorContext:
        """
        Decode and check a token.

        Raises:
            TokenError: "Token expired" or "Invalid token"
        """
        if not token:
            raise TokenError("Invalid token")
        try:
            payload = jwt.decode(token, self.config.jwt_secret, algorithms=[self.config.jwt_algorithm])
        except ExpiredSignatureError:
            raise TokenError("Token expired", expired=True)
        except JWTError:
            raise TokenError("Invalid token")

        if payload.get("type") != TOKEN_TYPE:
            raise TokenError("Invalid token")
        try:
            return ActorContext(
                id=UUID(payload["sub"]),
                email=payload.get("email", ""),
                role=AdminRole(payload["role"]),
            )
        except (KeyError, ValueError):
            raise TokenError("Invalid token")
