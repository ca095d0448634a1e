from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.core.security import decode_access_token, ROLE_SELLER, ROLE_ADMIN

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@dataclass
class Principal:
    """Authenticated caller taken from the bearer token."""
    user_id: str
    role: str
    seller_id: Optional[str] = None


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Get the calling user from the JWT token."""
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    return Principal(user_id=str(user_id), role=payload.get("role", ROLE_SELLER), seller_id=payload.get("seller_id"))


def require_seller(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Caller must be a seller with a seller profile."""
    if principal.role != ROLE_SELLER or not principal.seller_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Seller account required"}
        )
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Caller must be an administrator."""
    if principal.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Administrator access required"}
        )
    return principal
