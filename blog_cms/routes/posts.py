# blog_cms/routes/posts.py

"""
API endpoints для публикаций.

router       - публичная лента (только опубликованные).
admin_router - управление постами из админки.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from blog_cms.dependencies import client_ip, get_current_user_optional, require_capability
from blog_cms.models import PostStatus, User
from blog_cms.schemas import (
    Page,
    PostCreate,
    PostFilters,
    PostResponse,
    PostTagsUpdate,
    PostUpdate,
    PostViewCreate,
)
from blog_cms.services import post_services, storage
from blog_cms.services.pagination import MAX_PAGE_SIZE, to_page
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])

admin_router = APIRouter(prefix="/api/v1/admin/posts", tags=["admin: posts"])

SortBy = Literal["newest", "views", "likes", "title"]


# ==============
# ПУБЛИЧНАЯ ЛЕНТА
# ==============

@router.get("", response_model=Page[PostResponse])
async def list_posts(
    page: int = Query(1, ge=1),
    page_size: int = Query(6, ge=1, le=MAX_PAGE_SIZE),
    category_id: Optional[int] = None,
    is_featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: SortBy = "newest",
    db: Session = Depends(get_db),
):
    """
    Опубликованные посты с фильтрами и пагинацией.

    Не требует авторизации.
    """
    filters = PostFilters(
        category_id=category_id,
        is_featured=is_featured,
        search=search,
        sort_by=sort_by,
    )
    return await post_services.list_published_posts(db, filters, page, page_size)


@router.get("/{slug}", response_model=PostResponse)
async def get_post(
    slug: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    Опубликованный пост по slug. Каждый запрос учитывается как просмотр.
    """
    post = await post_services.get_post_by_slug(db, slug)

    await post_services.record_view(
        db,
        post.id,
        PostViewCreate(
            ip_address=client_ip(request),
            user_id=current_user.id if current_user else None,
            user_agent=request.headers.get("user-agent"),
            referer=request.headers.get("referer"),
        ),
    )
    return await post_services.get_post(db, post.id)


@router.get("/{slug}/related", response_model=List[PostResponse])
async def get_related_posts(
    slug: str,
    limit: int = Query(3, ge=1, le=12),
    db: Session = Depends(get_db),
):
    post = await post_services.get_post_by_slug(db, slug)
    return await post_services.get_related_posts(db, post, limit)


# =====================
# АДМИНКА: СПИСОК ПОСТОВ
# =====================

@admin_router.get("", response_model=Page[PostResponse])
async def admin_list_posts(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    status_filter: Optional[PostStatus] = Query(None, alias="status"),
    category_id: Optional[int] = None,
    author_id: Optional[int] = None,
    is_featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: SortBy = "newest",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    filters = PostFilters(
        status=status_filter,
        category_id=category_id,
        author_id=author_id,
        is_featured=is_featured,
        search=search,
        sort_by=sort_by,
    )
    result = await post_services.list_posts(db, filters, page, page_size)
    return to_page(result, PostResponse)


# =========================
# СОЗДАНИЕ НОВОЙ ПУБЛИКАЦИИ
# =========================

@admin_router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    post: PostCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """
    Создание публикации с привязкой к текущему пользователю.
    """
    return await post_services.create_post(db, current_user, post)


@admin_router.get("/{post_id}", response_model=PostResponse)
async def admin_get_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await post_services.get_post(db, post_id)


# =====================================
# ОБНОВЛЕНИЕ(РЕДАКТИРОВАНИЕ) ПУБЛИКАЦИИ
# =====================================

@admin_router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    post_update: PostUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await post_services.update_post(db, post_id, post_update)


@admin_router.post("/{post_id}/tags", response_model=PostResponse)
async def add_post_tags(
    post_id: int,
    body: PostTagsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """Добавить теги (существующие связи не дублируются)"""
    return await post_services.add_tags(db, post_id, body.tags)


@admin_router.put("/{post_id}/tags", response_model=PostResponse)
async def replace_post_tags(
    post_id: int,
    body: PostTagsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await post_services.set_tags(db, post_id, body.tags)


@admin_router.post("/{post_id}/image", response_model=PostResponse)
async def upload_featured_image(
    post_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """Загрузить обложку поста (только image/*, до 5MB)"""
    await post_services.get_post(db, post_id)
    data = await file.read()
    path = storage.save_featured_image(file.filename, file.content_type, data)
    return await post_services.set_featured_image(db, post_id, path)


# ==================
# УДАЛИТЬ ПУБЛИКАЦИЮ
# ==================

@admin_router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """
    Удаление поста вместе с комментариями и просмотрами.
    """
    await post_services.delete_post(db, post_id)
    return None
