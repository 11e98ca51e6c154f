# blog_cms/services/auth_service.py

"""
Сервисный слой для регистрации, логина и токенов.

Знает про модели, БД, хэширование и JWT, но не про HTTP-исключения.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from blog_cms.models import User, UserStatus
from blog_cms.schemas import UserLogin, UserRegister
from blog_cms.services.auth_tokens import (
    is_refresh_token_active,
    revoke_refresh_token,
    store_refresh_token,
)
from blog_cms.services.user_service import register_user
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import InvalidCredentials, Unauthorized
from blog_cms.utils.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from blog_cms.utils.text import normalize_email

logger = logging.getLogger(__name__)


def _access_claims(user: User) -> dict:
    return {"sub": str(user.id), "email": user.email, "role": user.role.value}


async def issue_tokens(user: User, remember: bool = False) -> dict:
    """
    Выдать пару access/refresh и зарегистрировать refresh в Redis.
    """
    access_token = create_access_token(data=_access_claims(user), remember=remember)
    refresh_token = create_refresh_token(data={"sub": str(user.id)})

    payload = decode_token(refresh_token)
    await store_refresh_token(payload["jti"], user.id)

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
    }


async def authenticate(db: Session, email: str, password: str) -> User:
    """
    Проверить email и пароль.

    Неизвестный email, неактивный аккаунт и неверный пароль дают
    одинаковую ошибку InvalidCredentials. При успехе атомарно
    обновляются last_login_at и login_count.
    """
    email = normalize_email(email)
    user = db.query(User).filter(User.email == email).first()

    if user is None or user.status != UserStatus.ACTIVE:
        logger.warning("Login rejected for %s", email)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        logger.warning("Login rejected for %s", email)
        raise InvalidCredentials()

    db.query(User).filter(User.id == user.id).update(
        {
            User.last_login_at: datetime.utcnow(),
            User.login_count: User.login_count + 1,
        },
        synchronize_session=False,
    )
    commit(db)
    db.refresh(user)

    logger.info("User %s logged in", user.id)
    return user


async def login(db: Session, creds: UserLogin) -> dict:
    user = await authenticate(db, creds.email, creds.password)
    return await issue_tokens(user, remember=creds.remember)


async def register(db: Session, user_in: UserRegister) -> dict:
    """Регистрация и сразу выдача токенов"""
    user = await register_user(db, user_in)
    return await issue_tokens(user)


async def refresh_access_token(db: Session, refresh_token: str) -> dict:
    """
    Новый access-токен по действующему refresh-токену.
    """
    payload = decode_token(refresh_token)
    if payload is None or payload.get("token_type") != REFRESH_TOKEN:
        raise Unauthorized("Invalid or expired refresh token")

    jti = payload.get("jti")
    user_id = payload.get("sub")
    if not jti or not user_id:
        raise Unauthorized("Invalid or expired refresh token")

    if not await is_refresh_token_active(jti, int(user_id)):
        raise Unauthorized("Refresh token has been revoked")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None or user.status != UserStatus.ACTIVE:
        raise Unauthorized("User not found or inactive")

    return {
        "access_token": create_access_token(data=_access_claims(user)),
        "refresh_token": refresh_token,
        "token_type": "bearer",
    }


async def logout(refresh_token: str) -> None:
    payload = decode_token(refresh_token)
    if payload is None or payload.get("token_type") != REFRESH_TOKEN or not payload.get("jti"):
        raise Unauthorized("Invalid or expired refresh token")

    # Отзываем refresh-токен: удаляем запись из Redis
    await revoke_refresh_token(payload["jti"])
    logger.info("User %s logged out", payload.get("sub"))


def resolve_user(db: Session, token: str) -> Optional[User]:
    """
    Пользователь по access-токену, либо None (невалидный токен,
    не тот тип токена, пользователь удален или неактивен).
    """
    payload = decode_token(token)
    if payload is None or payload.get("token_type") != ACCESS_TOKEN:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None or user.status != UserStatus.ACTIVE:
        return None
    return user
