import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from blog_cms.config import settings

logger = logging.getLogger(__name__)

class RedisCache:
    """
    Тонкая обертка над redis.asyncio.

    Пока клиент не подключен (например, в тестах без lifespan),
    все операции ничего не делают, а get() возвращает None.
    """
    def __init__(self, url: str, default_ttl: int = 300):
        self._url = url
        self._default_ttl = default_ttl
        self._client: Optional[redis.Redis] = None

    async def connect(self):
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Optional[Any]:
        if self._client is None:
            return None
        raw_data = await self._client.get(key)
        if raw_data is None:
            return None
        return json.loads(raw_data)

    async def set(
            self,
            key: str,
            value: Any,
            ttl: Optional[int] = None,
    ):
        if self._client is None:
            return
        await self._client.setex(key, ttl or self._default_ttl, json.dumps(value, default=str))

    async def delete(self, *keys: str):
        if self._client is None or not keys:
            return
        await self._client.delete(*keys)

    async def ping(self) -> bool:
        """
        Простейшая проверка доступности Redis
        Возвращает True, если пинг прошел, иначе False.
        """
        if self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except redis.RedisError:
            logger.warning("Redis ping failed", exc_info=True)
            return False

cache = RedisCache(settings.REDIS_URL, default_ttl=settings.CACHE_TTL_SECONDS)
