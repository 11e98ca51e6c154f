# blog_cms/services/storage.py

"""
Локальное хранилище изображений для постов.

Файлы пишутся в MEDIA_ROOT/posts/, наружу отдается публичный путь
/uploads/posts/<имя>.
"""

import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from blog_cms.config import settings
from blog_cms.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

POSTS_DIR = "posts"
PUBLIC_PREFIX = "/uploads"


def save_featured_image(
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
) -> str:
    """
    Сохранить изображение и вернуть его публичный путь.
    """
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed")

    if len(data) > settings.MAX_IMAGE_SIZE:
        limit_mb = settings.MAX_IMAGE_SIZE // (1024 * 1024)
        raise ValidationError(f"File size exceeds {limit_mb}MB limit")

    if not data:
        raise ValidationError("Empty file")

    suffix = Path(filename or "").suffix.lower() or ".jpg"
    name = f"post-{uuid4().hex}{suffix}"

    target_dir = Path(settings.MEDIA_ROOT) / POSTS_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / name).write_bytes(data)

    logger.info("Stored image %s (%d bytes)", name, len(data))
    return f"{PUBLIC_PREFIX}/{POSTS_DIR}/{name}"
