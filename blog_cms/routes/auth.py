# blog_cms/routes/auth.py

"""
API endpoints для регистрации, авторизации и профиля текущего пользователя.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from blog_cms.config import settings
from blog_cms.dependencies import get_current_user
from blog_cms.models import User
from blog_cms.schemas import (
    PasswordChange,
    ProfileUpdate,
    TokenLogoutRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from blog_cms.services import auth_service, user_service
from blog_cms.utils.database import get_db
from blog_cms.utils.limiter import limiter

# Router для всех auth-эндпоинтов
router = APIRouter(
    prefix="/api/v1/auth",
    tags=["auth"],
    responses={400: {"description": "Bad Request"}},
)


# ===============================
# РЕГИСТРАЦИЯ НОВОГО ПОЛЬЗОВАТЕЛЯ
# ===============================

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.REGISTER_RATE_LIMIT)
async def register_user(
        user: UserRegister,
        request: Request,
        db: Session = Depends(get_db)
):
    return await auth_service.register(db, user)


# ==============================
# Авторизация созданного профиля
# ==============================

@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_user(
        user: UserLogin,
        request: Request,
        db: Session = Depends(get_db)
):
    """Логин пользователя по email и паролю"""
    return await auth_service.login(db, user)


# ================
# REFRESH ENDPOINT
# ================

@router.post("/refresh", response_model=TokenResponse, status_code=status.HTTP_200_OK)
async def refresh_token_endpoint(
        body: TokenRefreshRequest,
        db: Session = Depends(get_db)
):
    return await auth_service.refresh_access_token(db, body.refresh_token)


# ===============
# LOGOUT ENDPOINT
# ===============

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(body: TokenLogoutRequest):
    await auth_service.logout(body.refresh_token)
    return None


# =======
# ПРОФИЛЬ
# =======

@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=UserResponse)
async def update_profile(
        profile: ProfileUpdate,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return await user_service.update_profile(db, current_user, profile)


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
        body: PasswordChange,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    """
    Смена пароля. После смены все refresh-токены пользователя недействительны.
    """
    await user_service.change_password(db, current_user, body)
    return None
