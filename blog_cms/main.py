"""
Главный файл приложения
Здесь инициализируется FastAPI и подключаются маршруты
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dotenv import load_dotenv
load_dotenv()

from blog_cms.config import settings
from blog_cms.models import Base
from blog_cms.routes import admin, auth, categories, comments, posts, settings as settings_routes, users
from blog_cms.services.cache import cache
from blog_cms.utils.exceptions import (
    AppError,
    app_error_handler,
    http_exception_handler,
    persistence_exception_handler,
    rate_limit_exceeded_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from blog_cms.utils.database import engine
from blog_cms.utils.limiter import limiter
from blog_cms.utils.logging_config import setup_logging

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Таблицы создаются, если их еще нет
    Base.metadata.create_all(bind=engine)
    # Подключаем кэширование (Redis)
    await cache.connect()
    logger.info("Application started")
    yield
    await cache.close()


# Создаем приложение
app = FastAPI(
    title="Blog CMS API",
    description="Blog with categories, tags, comment moderation and admin area",
    version="1.0.0",
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
    lifespan=lifespan,
)


# Глобальные обработчики ошибок

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, persistence_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# =============================
# Ограничитель частоты запросов
# =============================

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# CORS (чтобы фронтенд мог обращаться к API)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else ["http://localhost:3000"], # В продакшене указать конкретный домен
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    )


# ==============
# HEALTH-CHECKING
# ==============

@app.get("/health")
async def health_check():
    """Проверка, что приложение живо и Redis доступен"""
    return {
        "status": "ok",
        "redis": "ok" if await cache.ping() else "unavailable",
    }


# =====================
# Подключаем все ROUTES
# =====================

app.include_router(auth.router) # Регистрация, авторизация, профиль
app.include_router(posts.router) # Публичная лента
app.include_router(categories.router) # Публичные категории
app.include_router(comments.router) # Отправка комментариев и ветки
app.include_router(settings_routes.router) # Публичные настройки

app.include_router(admin.router) # Дашборд
app.include_router(posts.admin_router)
app.include_router(categories.admin_router)
app.include_router(comments.admin_router)
app.include_router(users.router)
app.include_router(settings_routes.admin_router)

# Загруженные изображения: /uploads/posts/<имя>
app.mount(
    "/uploads",
    StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False),
    name="uploads",
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
