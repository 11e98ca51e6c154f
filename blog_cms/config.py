"""
Docstring for blog_cms.config

Конфигурация приложения.
Всё берется из .env файла.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Pydantic Settings конфиг
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "postgresql://blog_user:blog_password@db:5432/blog_db"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_TTL_SECONDS: int = 300

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # обычная сессия - сутки
    REMEMBER_ME_EXPIRE_DAYS: int = 30           # "запомнить меня"
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Server
    DEBUG: bool = False
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # RATE-LIMITS
    RATE_LIMIT_ENABLED: bool = True
    REGISTER_RATE_LIMIT: str = "5/minute" # Значения по-умолчанию, на случай
    LOGIN_RATE_LIMIT: str = "10/minute"   # если в .env не указаны иные значения

    # Загрузка изображений
    MEDIA_ROOT: str = "./media"
    MAX_IMAGE_SIZE: int = 5 * 1024 * 1024  # 5MB

# Создаем глобальный объект settings
settings = Settings()
