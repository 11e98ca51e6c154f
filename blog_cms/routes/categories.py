# blog_cms/routes/categories.py

"""
API endpoints для категорий.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from blog_cms.dependencies import require_capability
from blog_cms.models import User
from blog_cms.schemas import (
    CategoryCreate,
    CategoryFilters,
    CategoryResponse,
    CategoryUpdate,
    Page,
    PostResponse,
)
from blog_cms.services import category_service
from blog_cms.services.pagination import MAX_PAGE_SIZE, to_page
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])

admin_router = APIRouter(prefix="/api/v1/admin/categories", tags=["admin: categories"])


async def _list_categories(db: Session, filters: CategoryFilters, page: int, page_size: int):
    result = await category_service.list_categories(db, filters, page, page_size)
    return to_page(result, CategoryResponse)


# =========
# ПУБЛИЧНЫЕ
# =========

@router.get("", response_model=Page[CategoryResponse])
async def list_categories(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return await _list_categories(db, CategoryFilters(search=search), page, page_size)


@router.get("/featured", response_model=List[CategoryResponse])
async def featured_categories(
    limit: int = Query(6, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return await category_service.get_featured_categories(db, limit)


@router.get("/{slug}", response_model=CategoryResponse)
async def get_category(slug: str, db: Session = Depends(get_db)):
    return await category_service.get_category_by_slug(db, slug)


@router.get("/{slug}/posts", response_model=Page[PostResponse])
async def category_posts(
    slug: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(6, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Опубликованные посты категории"""
    _, result = await category_service.list_category_posts(db, slug, page, page_size)
    return to_page(result, PostResponse)


# =======
# АДМИНКА
# =======

@admin_router.get("", response_model=Page[CategoryResponse])
async def admin_list_categories(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    is_featured: Optional[bool] = None,
    parent_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    filters = CategoryFilters(is_featured=is_featured, parent_id=parent_id, search=search)
    return await _list_categories(db, filters, page, page_size)


@admin_router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await category_service.create_category(db, category)


@admin_router.get("/{category_id}", response_model=CategoryResponse)
async def admin_get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await category_service.get_category(db, category_id)


@admin_router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    category: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    return await category_service.update_category(db, category_id, category)


@admin_router.post("/{category_id}/recount", response_model=CategoryResponse)
async def recount_category_posts(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """Пересчитать post_count категории"""
    await category_service.get_category(db, category_id)
    await category_service.recompute_post_count(db, category_id)
    return await category_service.get_category(db, category_id)


@admin_router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_CONTENT)),
):
    """
    Удаление категории. 409, если в ней есть посты.
    """
    await category_service.delete_category(db, category_id)
    return None
