import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.models import User
from storefront.security import (
    CurrentUser,
    authenticate,
    clear_auth_cookie,
    get_current_user,
    hash_password,
    set_auth_cookie,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)


# =====================================================
# SCHEMAS
# =====================================================

class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


def _serialize_user(user: CurrentUser) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
    }


# =====================================================
# REGISTER
# =====================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterPayload,
    db: Session = Depends(get_db),
):
    if db.query(User).filter(User.email == payload.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(
        email=payload.email,
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name,
        phone=payload.phone,
        role="user",
        is_active=True,
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User registered | user_id=%s", user.id)
    return {
        "message": "Account created.",
        "user": _serialize_user(CurrentUser.model_validate(user)),
    }


# =====================================================
# LOGIN
# =====================================================

@router.post("/login")
def login(
    payload: LoginPayload,
    response: Response,
    db: Session = Depends(get_db),
):
    user = authenticate(db, payload.email, payload.password)
    set_auth_cookie(response, user)

    logger.info("User logged in | user_id=%s", user.id)
    return _serialize_user(user)


# =====================================================
# CURRENT USER
# =====================================================

@router.get("/me")
def get_me(user: CurrentUser = Depends(get_current_user)):
    return _serialize_user(user)


# =====================================================
# LOGOUT
# =====================================================

@router.post("/logout")
def logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out"}
