import secrets
import string
from hashlib import sha256
from datetime import datetime, timedelta
from typing import Any, Dict, Sequence

from jose import JWTError, jwt
from passlib.context import CryptContext

from identity_core.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ENV = settings.ENV
JWT_SECRET = settings.JWT_SECRET
if not JWT_SECRET and ENV != "dev":
    raise RuntimeError("JWT_SECRET is not set")
if not JWT_SECRET:
    JWT_SECRET = "dev-change-me"
JWT_ALG = settings.JWT_ALGORITHM
JWT_ACCESS_EXP_SECONDS = settings.JWT_ACCESS_EXP_SECONDS
JWT_REFRESH_EXP_DAYS = settings.JWT_REFRESH_EXP_DAYS

RESET_CODE_ALPHABET = string.ascii_uppercase + string.digits
RESET_CODE_LENGTH = 6


def _ensure_bcrypt_limit(password: str) -> None:
    # bcrypt limit is 72 BYTES, not characters
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password too long (max 72 bytes).")


def hash_password(password: str) -> str:
    _ensure_bcrypt_limit(password)
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    _ensure_bcrypt_limit(password)
    return pwd_context.verify(password, password_hash)


def create_access_token(
    *,
    user_id: str,
    email: str,
    tenant_id: str,
    roles: Sequence[str],
    permissions: Sequence[str],
    now: datetime | None = None,
) -> tuple[str, datetime]:
    issued_at = now or datetime.utcnow()
    expires_at = issued_at + timedelta(seconds=JWT_ACCESS_EXP_SECONDS)
    to_encode = {
        "sub": user_id,
        "email": email,
        "tenant_id": tenant_id,
        "roles": list(roles),
        "permissions": list(permissions),
        "typ": "access",
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG), expires_at


def create_refresh_token(*, user_id: str, now: datetime | None = None) -> tuple[str, datetime]:
    issued_at = now or datetime.utcnow()
    expires_at = issued_at + timedelta(days=JWT_REFRESH_EXP_DAYS)
    to_encode = {
        "sub": user_id,
        "typ": "refresh",
        "jti": secrets.token_urlsafe(24),
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)
    return token, expires_at


def decode_token(token: str, *, verify_exp: bool = True) -> Dict[str, Any]:
    return jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[JWT_ALG],
        options={"verify_exp": verify_exp},
    )


def hash_token(token: str) -> str:
    return sha256(token.encode("utf-8")).hexdigest()


def generate_reset_code(length: int = RESET_CODE_LENGTH) -> str:
    return "".join(secrets.choice(RESET_CODE_ALPHABET) for _ in range(length))


__all__ = [
    "JWTError",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "generate_reset_code",
    "hash_password",
    "hash_token",
    "verify_password",
]
