"""
Authentication for the checkout API.

Customers and admins share one ``users`` table and one cookie; the role in
the database, not the one in the token, decides admin access. Routes receive
a ``CurrentUser`` record and never touch the ORM row.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from storefront import config
from storefront.database import get_db
from storefront.models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
COOKIE_NAME = "access_token"
ROLE_ADMIN = "admin"


class CurrentUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# =====================================================
# PASSWORDS
# =====================================================

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
BCRYPT_MAX_BYTES = 72


def _check_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password is too long (maximum 72 bytes allowed).",
        )


def hash_password(password: str) -> str:
    _check_password_length(password)
    return pwd_context.hash(password)


def authenticate(db: Session, email: str, password: str) -> CurrentUser:
    """Check credentials; 401 for a wrong pair, 403 for a disabled account."""
    _check_password_length(password)
    user = db.query(User).filter(User.email == email).first()

    if not user or not pwd_context.verify(password, user.hashed_password):
        logger.warning("Login failed | email=%s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User disabled",
        )
    return CurrentUser.model_validate(user)


# =====================================================
# TOKENS / COOKIE
# =====================================================

def create_token(user_id: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def set_auth_cookie(response: Response, user: CurrentUser) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=create_token(user.id, user.role),
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="none" if config.COOKIE_SECURE else "lax",
        path="/",
        max_age=60 * 60 * 24 * config.ACCESS_TOKEN_EXPIRE_DAYS,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(key=COOKIE_NAME, path="/")


def _token_from_request(request: Request) -> Optional[str]:
    # Browser clients send the cookie; API clients the Bearer header.
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


# =====================================================
# DEPENDENCIES
# =====================================================

def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> CurrentUser:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = db.get(User, payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return CurrentUser.model_validate(user)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        logger.warning("Admin access denied | user_id=%s", user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
