# blog_cms/utils/limiter.py

from slowapi import Limiter
from slowapi.util import get_remote_address

from blog_cms.config import settings

# Лимиты хранятся в памяти процесса, ключ - IP клиента
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
)
