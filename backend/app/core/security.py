import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from app.core.config import settings

# CryptContext handles password hashing using bcrypt
# bcrypt salts every hash, so equal passwords never share a stored value
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

RESET_CODE_DIGITS = 6


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without tz support (SQLite)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def create_session_token(user_id: int, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
    """Create a signed session token and return it with its expiry"""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)
    expire = utcnow() + expires_delta

    # jti makes every token unique even when issued in the same second
    to_encode = {"sub": str(user_id), "jti": secrets.token_urlsafe(16), "exp": expire}
    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt, expire


def decode_session_token(token: str) -> Optional[dict]:
    """Decode and verify a session token, None if invalid, expired or tampered with"""
    try:
        return jwt.decode(token, settings.SECRET_KEY,
                          algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def hash_token(token: str) -> str:
    """SHA-256 digest stored in place of the raw bearer token"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_code() -> str:
    """Uniformly random zero-padded numeric code"""
    return f"{secrets.randbelow(10 ** RESET_CODE_DIGITS):0{RESET_CODE_DIGITS}d}"
