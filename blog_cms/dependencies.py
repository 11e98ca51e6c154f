# blog_cms/dependencies.py

"""
Зависимости для использования в endpoints
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from blog_cms.models import User
from blog_cms.services.auth_service import resolve_user
from blog_cms.services.permissions import Capability, ensure_capability
from blog_cms.utils.database import get_db
from blog_cms.utils.exceptions import Unauthorized

security = HTTPBearer(auto_error=False)


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        db: Session = Depends(get_db)
) -> User:
    """
    Получаем текущего авторизованного пользователя

    Извлекаем Bearer токен из заголовка Authorization, декодируем токен,
    из токена берем user_id, ищем активного пользователя в БД
    """
    if credentials is None:
        raise Unauthorized("Not authenticated")

    user = resolve_user(db, credentials.credentials)
    if user is None:
        raise Unauthorized("Could not validate credentials")

    return user


async def get_current_user_optional(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Необязательный текущий пользователь.

    Если токена нет или он невалиден - возвращаем None,
    иначе - объект User.
    """
    if credentials is None:
        return None
    return resolve_user(db, credentials.credentials)


def require_capability(capability: Capability):
    """
    Доступ к админке + конкретная возможность.

    Использование: user: User = Depends(require_capability(Capability.MANAGE_USERS))
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        ensure_capability(current_user, Capability.ACCESS_ADMIN)
        ensure_capability(current_user, capability)
        return current_user

    return dependency


def client_ip(request: Request) -> Optional[str]:
    """IP клиента (None, если сервер его не знает)"""
    if request.client is None:
        return None
    return request.client.host
