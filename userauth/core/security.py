from __future__ import annotations
import hashlib
import hmac
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from pwdlib.hashers.bcrypt import BcryptHasher
from .config import settings
from ..errors import ExpiredToken, HashingError, InvalidToken

logger = logging.getLogger(__name__)

password_hash = PasswordHash((BcryptHasher(rounds=settings.PASSWORD_HASH_ROUNDS),))


def verify_password(plain_password, password):
    if not plain_password or not password:
        return False
    try:
        return password_hash.verify(plain_password, password)
    except (UnknownHashError, ValueError):
        return False


def get_password_hash(password):
    try:
        return password_hash.hash(password)
    except Exception as e:
        logger.error("Password hashing failed: %s", e)
        raise HashingError(error=str(e)) from e


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def create_user_token(user_id: str, email: str) -> str:
    return create_access_token(data={"sub": user_id, "email": email})


def decode_access_token(token: str) -> dict:
    """
    Verify signature and expiry of a bearer token and return its claims.

    Raises ``ExpiredToken`` for a lapsed token and ``InvalidToken`` for
    anything else that does not verify, including a missing ``sub``.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise ExpiredToken()
    except JWTError:
        raise InvalidToken()

    if payload.get("sub") is None:
        raise InvalidToken()
    return payload


def hash_otp(otp: str) -> str:
    """Keyed digest of an OTP, safe to keep in a client-visible session cookie."""
    return hmac.new(settings.SECRET_KEY.encode(), otp.encode(), hashlib.sha256).hexdigest()


def otp_matches(submitted: str | None, digest: str | None) -> bool:
    if not submitted or not digest:
        return False
    return hmac.compare_digest(hash_otp(str(submitted)), digest)


def generate_random_password(length=20):
    alphabet = string.ascii_letters + string.digits + string.punctuation
    return ''.join(secrets.choice(alphabet) for i in range(length))
