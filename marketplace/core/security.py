from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from pydantic import BaseModel

from marketplace.core.config import settings


def get_password_hash(password: str) -> str:
    """
    Hash a password with bcrypt. Only the first 72 bytes take part in the hash.
    """
    hashed = bcrypt.hashpw(password.encode()[:72], bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode()[:72], hashed_password.encode())
    except ValueError:
        # Not a bcrypt hash
        return False


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed bearer token. ``data["sub"]`` carries the user id.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """
    Returns the subject (user id) if the token is valid and unexpired, else None.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    return payload.get("sub")


class Token(BaseModel):
    access_token: str
    token_type: str
