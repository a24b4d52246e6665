from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime

from campus_portal.core.database import get_db
from campus_portal.core.exceptions import (
    AuthenticationError, AuthorizationError, DuplicateResourceError, InvalidTokenError,
)
from campus_portal.core.security import verify_password, get_password_hash, decode_token, build_token_pair
from campus_portal.core.logging_config import logger, set_user_id
from campus_portal.core.rate_limiter import limiter, auth_rate_limit
from campus_portal.models.user import User, UserRole
from campus_portal.schemas.auth import UserRegister, UserLogin, RefreshTokenRequest, Token, UserResponse
from campus_portal.schemas.common import success_response
from campus_portal.modules.auth.dependencies import get_current_user

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def register(
    request: Request,
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Register new user (rate limited: 3/min)"""
    client_ip = request.client.host if request.client else "unknown"

    result = await db.execute(
        select(User).where(User.email == user_data.email)
    )
    if result.scalar_one_or_none():
        logger.log_auth_event(
            event="register",
            success=False,
            user_email=user_data.email,
            reason="Email already registered",
            client_ip=client_ip
        )
        raise DuplicateResourceError("Email already registered", field="email")

    if user_data.student_id:
        result = await db.execute(
            select(User).where(User.student_id == user_data.student_id)
        )
        if result.scalar_one_or_none():
            raise DuplicateResourceError("Student ID already registered", field="student_id")

    user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        full_name=user_data.full_name,
        role=UserRole(user_data.role),
        student_id=user_data.student_id,
        department=user_data.department,
        phone=user_data.phone,
    )

    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.log_auth_event(
        event="register",
        success=True,
        user_email=user.email,
        client_ip=client_ip,
        user_role=user.role.value
    )

    return success_response("User registered successfully", {
        "user": UserResponse.model_validate(user),
        **build_token_pair(user),
    })


@router.post("/login")
@auth_rate_limit()
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login user (rate limited: 5/min)"""
    client_ip = request.client.host if request.client else "unknown"

    result = await db.execute(
        select(User).where(User.email == credentials.email)
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=credentials.email,
            reason="Invalid credentials",
            client_ip=client_ip
        )
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=credentials.email,
            reason="Account inactive",
            client_ip=client_ip
        )
        raise AuthorizationError("Account is inactive")

    user.last_login = datetime.utcnow()
    await db.commit()

    set_user_id(str(user.id))

    logger.log_auth_event(
        event="login",
        success=True,
        user_email=user.email,
        client_ip=client_ip,
        user_role=user.role.value
    )

    return success_response("Login successful", {
        "user": UserResponse.model_validate(user),
        **build_token_pair(user),
    })


@router.post("/refresh")
async def refresh_token(
    token_request: RefreshTokenRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Exchange a refresh token for a new token pair"""
    client_ip = request.client.host if request.client else "unknown"

    payload = decode_token(token_request.refresh_token)
    if payload.get("type") != "refresh":
        logger.log_auth_event(
            event="token_refresh",
            success=False,
            reason="Invalid token type",
            client_ip=client_ip
        )
        raise InvalidTokenError("Invalid token type - expected refresh token")

    result = await db.execute(
        select(User).where(User.id == payload.get("sub"))
    )
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    logger.log_auth_event(event="token_refresh", success=True, user_email=user.email, client_ip=client_ip)
    return success_response("Token refreshed", Token(**build_token_pair(user)))


@router.get("/me")
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user info"""
    return success_response(data=UserResponse.model_validate(current_user))
