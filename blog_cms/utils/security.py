# blog_cms/utils/security.py

"""
Утилиты для безопасности: хэширование пароля, политика паролей и JWT токены
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from passlib.context import CryptContext
from blog_cms.config import settings
from blog_cms.utils.exceptions import ValidationError

from uuid import uuid4

# Контекст bcrypt алгоритм
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6

# =============================
# ФУНКЦИЯ ДЛЯ РАБОТЫ С ПАРОЛЯМИ
# =============================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

# Проверка, что введённый пароль совпадает с хэшем в БД
def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def validate_admin_password(password: str) -> None:
    """
    Пароль, который задает администратор (создание/сброс):
    только минимальная длина.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def validate_password_strength(password: str, confirmation: str) -> None:
    """
    Проверяет сложность пароля при регистрации и смене пароля.

    Условия:
    - длина не меньше 6 символов;
    - минимум одна строчная и одна заглавная буква;
    - минимум одна цифра;
    - подтверждение совпадает с паролем.
    """
    validate_admin_password(password)

    if not re.search(r"[a-z]", password) or not re.search(r"[A-Z]", password) \
            or not re.search(r"\d", password):
        raise ValidationError(
            "Password must contain at least one lowercase letter, "
            "one uppercase letter, and one number"
        )

    if password != confirmation:
        raise ValidationError("Password confirmation does not match password")

# =============================
# ФУНКЦИИ ДЛЯ РАБОТЫ С JWT
# =============================

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def _encode(data: dict, lifetime: timedelta, token_type: str, **claims) -> str:
    """Подписать payload: exp, token_type и дополнительные claims"""
    payload = {
        **data,
        **claims,
        "exp": datetime.now(timezone.utc) + lifetime,
        "token_type": token_type,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
        data: dict,
        expires_delta: Optional[timedelta] = None,
        remember: bool = False,
) -> str:
    """
    Access-токен: сутки по умолчанию, REMEMBER_ME_EXPIRE_DAYS с "запомнить меня".
    """
    if expires_delta is None:
        expires_delta = (
            timedelta(days=settings.REMEMBER_ME_EXPIRE_DAYS)
            if remember
            else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
    return _encode(data, expires_delta, ACCESS_TOKEN)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    # jti - ключ записи о токене в Redis
    lifetime = expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(data, lifetime, REFRESH_TOKEN, jti=str(uuid4()))


def decode_token(token: str) -> Optional[dict]:
    """
    Проверить подпись и срок действия. None - токен истек или подделан.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.InvalidTokenError:
        # ExpiredSignatureError - тоже подкласс InvalidTokenError
        return None
