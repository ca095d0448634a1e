import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt

from app.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)

ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"


def create_access_token(data: dict, expires_delta: timedelta = None):
    """
    Issue a signed JWT.

    Args:
        data: Claims; `sub` is the user id, `role` is seller or admin and
            seller tokens carry `seller_id`
        expires_delta: Lifetime (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError when invalid or expired."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])


def create_seller_token(user_id: str, seller_id: str, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token({"sub": user_id, "role": ROLE_SELLER, "seller_id": seller_id}, expires_delta)


def create_admin_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token({"sub": user_id, "role": ROLE_ADMIN}, expires_delta)
