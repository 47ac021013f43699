# auth.py — Token authentication for the task board API
# Features:
# - JWT access tokens (HS256) with JTI
# - bcrypt password hashing
# - FastAPI dependency resolving the current user

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import ConflictError, ForbiddenError
from models import User, utcnow, as_utc

logger = logging.getLogger("taskboard.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))
MIN_PASSWORD_LENGTH = 8
MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
LOGIN_LOCKOUT_MINUTES = int(os.getenv("LOGIN_LOCKOUT_MINUTES", "15"))

security = HTTPBearer()


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=200)
    display_name: str = Field("", max_length=200)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=200)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    id: int
    email: str
    display_name: str
    avatar_url: Optional[str] = None
    is_active: bool


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password hashing and token issuance"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def token_for_user(user: User) -> str:
        # "sub" must be a string claim
        return AuthService.create_access_token({"sub": str(user.id), "email": user.email})

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        stmt = select(User).where(User.email == user_data.email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise ConflictError("Email already in use")

        new_user = User(
            email=user_data.email,
            display_name=user_data.display_name or user_data.email.split("@")[0],
            password_hash=AuthService.hash_password(user_data.password),
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"Registered user {new_user.id}")
        return new_user

    @staticmethod
    def _lockout_cutoff() -> datetime:
        return utcnow() - timedelta(minutes=LOGIN_LOCKOUT_MINUTES)

    @staticmethod
    def _check_brute_force(user: User) -> None:
        """429 while the account has MAX_LOGIN_ATTEMPTS recent failures"""
        last_failed = as_utc(user.last_failed_login_at)
        if last_failed is None or last_failed <= AuthService._lockout_cutoff():
            return
        if (user.failed_login_attempts or 0) >= MAX_LOGIN_ATTEMPTS:
            raise HTTPException(
                status_code=429,
                detail=f"Too many login attempts. Try again in {LOGIN_LOCKOUT_MINUTES} minutes.",
            )

    @staticmethod
    async def _record_failed_attempt(user: User, db: AsyncSession) -> None:
        last_failed = as_utc(user.last_failed_login_at)
        if last_failed is None or last_failed <= AuthService._lockout_cutoff():
            user.failed_login_attempts = 0
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        user.last_failed_login_at = utcnow()
        await db.commit()
        logger.info(f"Failed login for user {user.id} ({user.failed_login_attempts} recent)")

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        """The user for valid credentials, None for bad ones.

        Raises 429 once the account has failed MAX_LOGIN_ATTEMPTS times within
        LOGIN_LOCKOUT_MINUTES, and ForbiddenError for a deactivated account.
        """
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()
        if not user:
            return None

        AuthService._check_brute_force(user)
        if not AuthService.verify_password(password, user.password_hash):
            await AuthService._record_failed_attempt(user, db)
            return None
        if not user.is_active:
            raise ForbiddenError(code="TB-AUTH-002")

        user.failed_login_attempts = 0
        user.last_failed_login_at = None
        user.last_login_at = utcnow()
        await db.commit()
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return CurrentUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name or "",
        avatar_url=user.avatar_url,
        is_active=user.is_active,
    )
