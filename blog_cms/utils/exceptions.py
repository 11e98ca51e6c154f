import logging
from datetime import datetime

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

'''
Вспомогательная функция _error_response()

Принимает параметры status_code, detail, code, request. Возвращает стандартный FastAPI-ответ с JSON-телом.

Собираем единый формат ошибки.
'''
def _error_response(
    *,
    status_code: int,
    detail: str,
    code: str,
    request: Request,
    headers: dict | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "code": code,
            "path": request.url.path,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
        headers=headers,
    )

# Базовый класс AppError
class AppError(Exception):
    status_code = 400
    code = "app_error"
    detail = "Application error"

    def __init__(self, detail: str | None = None, code: str | None = None):
        if detail is not None:
            self.detail = detail
        if code is not None:
            self.code = code
        super().__init__(self.detail)


# ================
# Кастомные ошибки
# ================

class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    detail = "Invalid input"


class InvalidStatus(ValidationError):
    code = "invalid_status"
    detail = "Invalid status"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    detail = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    detail = "Resource conflict"


class InvalidCredentials(AppError):
    status_code = 401
    code = "invalid_credentials"
    detail = "Invalid email or password"


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"
    detail = "Not authenticated"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "permission_denied"
    detail = "You are not allowed to perform this action"


class PersistenceError(AppError):
    status_code = 500
    code = "persistence_error"
    detail = "Storage failure"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return _error_response(
        status_code=exc.status_code,
        detail=exc.detail,
        code=exc.code,
        request=request,
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(
        status_code=exc.status_code,
        detail=detail,
        code="http_error",
        request=request,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    # Первая ошибка pydantic - достаточно для клиента
    errors = exc.errors()
    detail = "Validation error"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        detail = f"{location}: {errors[0].get('msg')}" if location else errors[0].get("msg", detail)
    return _error_response(
        status_code=422,
        detail=detail,
        code="validation_error",
        request=request,
    )


async def persistence_exception_handler(
    request: Request,
    exc: SQLAlchemyError,
) -> JSONResponse:
    logger.error("Unhandled database error on %s", request.url.path, exc_info=exc)
    return _error_response(
        status_code=PersistenceError.status_code,
        detail=PersistenceError.detail,
        code=PersistenceError.code,
        request=request,
    )


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> JSONResponse:
    return _error_response(
        status_code=429,
        detail=f"Rate limit exceeded: {exc.detail}",
        code="rate_limit_exceeded",
        request=request,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return _error_response(
        status_code=500,
        detail="Internal server error",
        code="internal_server_error",
        request=request,
    )
