# blog_cms/services/auth_tokens.py

"""
Реестр refresh-токенов в Redis.

Для каждого jti хранится запись с user_id, а для пользователя - список
его активных jti, чтобы при смене пароля или деактивации отозвать все сессии.
Без подключения к Redis реестр пуст: refresh не проходит (fail-closed).
"""

from blog_cms.services.cache import cache
from blog_cms.config import settings

REFRESH_PREFIX = "refresh"


def _token_key(jti: str) -> str:
    return f"{REFRESH_PREFIX}:{jti}"


def _user_key(user_id: int) -> str:
    return f"{REFRESH_PREFIX}:user:{user_id}"


def _ttl_seconds() -> int:
    return settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60


async def store_refresh_token(jti: str, user_id: int) -> None:
    await cache.set(_token_key(jti), {"user_id": user_id}, ttl=_ttl_seconds())

    # Индекс токенов пользователя (last write wins при гонке - допустимо)
    user_tokens = await cache.get(_user_key(user_id)) or []
    if jti not in user_tokens:
        user_tokens.append(jti)
    await cache.set(_user_key(user_id), user_tokens, ttl=_ttl_seconds())


async def is_refresh_token_active(jti: str, user_id: int) -> bool:
    data = await cache.get(_token_key(jti))
    return data is not None and data.get("user_id") == user_id


async def revoke_refresh_token(jti: str) -> None:
    await cache.delete(_token_key(jti))


async def revoke_user_tokens(user_id: int) -> None:
    """Отозвать все refresh-токены пользователя"""
    user_tokens = await cache.get(_user_key(user_id)) or []
    await cache.delete(*(_token_key(jti) for jti in user_tokens), _user_key(user_id))
