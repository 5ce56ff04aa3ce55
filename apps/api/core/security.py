"""
Password hashing (bcrypt) and access tokens (JWT).

Tokens carry the user id in `sub` and a `typ` claim; anything that is not
an access token minted here is rejected. SECRET_KEY is validated by
config.py at startup.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from jose import JWTError, jwt
import bcrypt
from core.config import settings

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
TOKEN_TYPE = "access"

# bcrypt ignores everything past 72 bytes; bcrypt>=4.1 raises instead.
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign `data` as an access token, valid for ACCESS_TOKEN_EXPIRE_DAYS by default."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        **data,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or ACCESS_TOKEN_EXPIRE),
        "typ": TOKEN_TYPE,
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Claims of a valid, unexpired access token, else None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != TOKEN_TYPE:
        return None
    return payload


def get_user_id_from_token(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    return payload.get("sub") if payload else None
