# blog_cms/services/category_service.py

"""
Сервисный слой для категорий.

Category.post_count - денормализованное число опубликованных постов,
пересчитывается при каждой записи поста (см. refresh_post_count).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from blog_cms.models import Category, Post, PostStatus, PostTag
from blog_cms.schemas import CategoryCreate, CategoryFilters, CategoryStats, CategoryUpdate
from blog_cms.services.pagination import PageResult, paginate, search_filter
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import ConflictError, NotFound, ValidationError
from blog_cms.utils.text import make_slug

logger = logging.getLogger(__name__)

SLUG_CONFLICT = "Category with this slug already exists"


def _slug_or_error(value: str) -> str:
    slug = make_slug(value)
    if not slug:
        raise ValidationError("Category slug cannot be empty")
    return slug


def _ensure_unique_slug(db: Session, slug: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Category.id).filter(Category.slug == slug)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(SLUG_CONFLICT)


def _ensure_parent(db: Session, parent_id: Optional[int], category_id: Optional[int] = None) -> None:
    """Родитель существует и не образует цикл"""
    if parent_id is None:
        return

    current_id = parent_id
    while current_id is not None:
        if current_id == category_id:
            raise ValidationError("Category cannot be its own parent")
        parent = db.query(Category).filter(Category.id == current_id).first()
        if parent is None:
            raise ValidationError("Parent category not found")
        current_id = parent.parent_id


# =========================
# СЧЕТЧИК ПОСТОВ
# =========================

def refresh_post_count(db: Session, category_id: Optional[int]) -> int:
    """
    Пересчитать post_count внутри текущей транзакции (без commit).
    """
    if category_id is None:
        return 0

    db.flush()
    count = (
        db.query(func.count(Post.id))
        .filter(Post.category_id == category_id, Post.status == PostStatus.PUBLISHED)
        .scalar()
    )
    db.query(Category).filter(Category.id == category_id).update(
        {Category.post_count: count},
        synchronize_session=False,
    )
    return count


async def recompute_post_count(db: Session, category_id: int) -> int:
    count = refresh_post_count(db, category_id)
    commit(db)
    return count


# =========================
# CRUD
# =========================

async def create_category(db: Session, category_in: CategoryCreate) -> Category:
    """
    Создать категорию. slug берется из переданного значения или из name.
    """
    slug = _slug_or_error(category_in.slug or category_in.name)
    _ensure_unique_slug(db, slug)
    _ensure_parent(db, category_in.parent_id)

    db_category = Category(**category_in.model_dump(exclude={"slug"}), slug=slug)
    db.add(db_category)
    commit(db, conflict_detail=SLUG_CONFLICT)
    db.refresh(db_category)

    logger.info("Category %s created (%s)", db_category.id, slug)
    return db_category


async def update_category(
    db: Session,
    category_id: int,
    category_in: CategoryUpdate,
) -> Category:
    """
    Обновить разрешенные поля категории.
    Новое имя без явного slug - slug пересчитывается из имени.
    """
    category = await get_category(db, category_id)
    update_data = category_in.model_dump(exclude_unset=True)

    slug = update_data.pop("slug", None)
    if slug:
        update_data["slug"] = _slug_or_error(slug)
    elif update_data.get("name") and update_data["name"] != category.name:
        update_data["slug"] = _slug_or_error(update_data["name"])

    if "slug" in update_data:
        _ensure_unique_slug(db, update_data["slug"], exclude_id=category.id)
    if "parent_id" in update_data:
        _ensure_parent(db, update_data["parent_id"], category.id)

    for key, value in update_data.items():
        setattr(category, key, value)

    commit(db, conflict_detail=SLUG_CONFLICT)
    db.refresh(category)
    return category


async def delete_category(db: Session, category_id: int) -> None:
    """
    Удалить категорию. Запрещено, пока на нее ссылается хотя бы один пост.
    """
    category = await get_category(db, category_id)

    posts_count = (
        db.query(func.count(Post.id))
        .filter(Post.category_id == category.id)
        .scalar()
    )
    if posts_count:
        raise ConflictError(f"Cannot delete category with {posts_count} posts")

    db.delete(category)
    commit(db)
    logger.info("Category %s deleted", category_id)


# =========================
# ЧТЕНИЕ
# =========================

async def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFound("Category not found")
    return category


async def get_category_by_slug(db: Session, slug: str) -> Category:
    category = db.query(Category).filter(Category.slug == slug).first()
    if not category:
        raise NotFound("Category not found")
    return category


async def list_categories(
    db: Session,
    filters: CategoryFilters,
    page: int = 1,
    page_size: int = 20,
) -> PageResult:
    query = db.query(Category)

    if filters.is_featured is not None:
        query = query.filter(Category.is_featured.is_(filters.is_featured))
    if filters.parent_id is not None:
        query = query.filter(Category.parent_id == filters.parent_id)

    search = search_filter(filters.search, Category.name, Category.description)
    if search is not None:
        query = query.filter(search)

    query = query.order_by(Category.sort_order.asc(), Category.name.asc())
    return paginate(query, page, page_size)


async def get_featured_categories(db: Session, limit: int = 6) -> List[Category]:
    return (
        db.query(Category)
        .filter(Category.is_featured.is_(True))
        .order_by(Category.sort_order.asc(), Category.name.asc())
        .limit(limit)
        .all()
    )


async def list_category_posts(
    db: Session,
    slug: str,
    page: int = 1,
    page_size: int = 6,
) -> Tuple[Category, PageResult]:
    """
    Опубликованные посты категории, новые сверху.
    """
    category = await get_category_by_slug(db, slug)

    query = (
        db.query(Post)
        .options(
            selectinload(Post.author),
            selectinload(Post.category),
            selectinload(Post.post_tags).selectinload(PostTag.tag),
        )
        .filter(Post.category_id == category.id, Post.status == PostStatus.PUBLISHED)
        .order_by(Post.published_at.desc(), Post.id.desc())
    )
    return category, paginate(query, page, page_size)


async def get_category_stats(db: Session) -> CategoryStats:
    total = db.query(func.count(Category.id)).scalar()
    featured = (
        db.query(func.count(Category.id))
        .filter(Category.is_featured.is_(True))
        .scalar()
    )
    return CategoryStats(total=total, featured=featured)
