from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from core.config import settings
import logging

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

# Bearer header is optional: the accessToken cookie is accepted as well
bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    """Token is malformed, badly signed, or of the wrong type."""


class ExpiredToken(InvalidToken):
    """Token signature is valid but its exp claim has passed."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)

def _encode(claims: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    to_encode.update({
        "type": token_type,
        # Two tokens minted in the same second must still differ
        "jti": uuid.uuid4().hex,
        "exp": datetime.now(timezone.utc) + expires_delta,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_access_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token carrying the user's identity claims"""
    claims = {
        "_id": str(user["_id"]),
        "email": user.get("email"),
        "userName": user.get("userName"),
        "fullName": user.get("fullName"),
    }
    return _encode(claims, ACCESS_TOKEN_TYPE, expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

def create_refresh_token(user_id, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT refresh token"""
    return _encode({"_id": str(user_id)}, REFRESH_TOKEN_TYPE, expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))

def decode_token(token: str, expected_type: str) -> dict:
    """Decode a JWT and check its type claim.

    Raises ExpiredToken when the signature is good but exp has passed, and
    InvalidToken for every other failure.
    """
    if not token:
        raise InvalidToken("Token missing")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredToken("Token expired") from e
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        raise InvalidToken("Token could not be decoded") from e
    if payload.get("type") != expected_type or not payload.get("_id"):
        raise InvalidToken(f"Not a valid {expected_type} token")
    return payload

def verify_access_token(token: str) -> dict:
    return decode_token(token, ACCESS_TOKEN_TYPE)

def verify_refresh_token(token: str) -> str:
    """Return the user id bound to a refresh token"""
    return decode_token(token, REFRESH_TOKEN_TYPE)["_id"]

def user_id_from_access_token(token: Optional[str]) -> Optional[str]:
    """Best-effort identity extraction for logging context; never raises"""
    try:
        return verify_access_token(token)["_id"]
    except InvalidToken:
        return None
