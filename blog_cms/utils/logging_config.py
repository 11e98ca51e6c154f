"""
Настройка логирования: JSON-формат для всех логгеров приложения и uvicorn.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

from blog_cms.config import settings


def setup_logging() -> logging.Logger:
    """Один обработчик на stdout с JSON-форматтером"""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    return logging.getLogger("blog_cms")
