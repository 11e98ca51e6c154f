# blog_cms/services/post_services.py

"""
Сервисный слой для постов и тегов.

Знает про модели и кэш, но не про HTTP-статусы/исключения.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from blog_cms.models import Post, PostStatus, PostTag, PostView, Tag, User, Category
from blog_cms.schemas import (
    Page,
    PostCreate,
    PostFilters,
    PostResponse,
    PostStats,
    PostUpdate,
    PostViewCreate,
)
from blog_cms.services.cache import cache
from blog_cms.services.category_service import refresh_post_count
from blog_cms.services.pagination import PageResult, paginate, search_filter, to_page
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import ConflictError, NotFound, ValidationError
from blog_cms.utils.text import make_slug, reading_time

logger = logging.getLogger(__name__)

# Ключ кэша для первой страницы публичной ленты без фильтров
POSTS_CACHE_KEY = "posts:list:main"

SLUG_CONFLICT = "Post with this slug already exists"

# Поля без NULL в БД: null в обновлении значит "не менять"
REQUIRED_POST_FIELDS = ("title", "content", "status", "is_featured")

# Сортировки списка постов (id - для стабильного порядка)
SORT_ORDERS = {
    "newest": (Post.created_at.desc(), Post.id.desc()),
    "views": (Post.views_count.desc(), Post.id.desc()),
    "likes": (Post.likes_count.desc(), Post.id.desc()),
    "title": (Post.title.asc(), Post.id.asc()),
}


def _with_relations(query):
    return query.options(
        selectinload(Post.author),
        selectinload(Post.category),
        selectinload(Post.post_tags).selectinload(PostTag.tag),
    )


async def invalidate_post_caches() -> None:
    await cache.delete(POSTS_CACHE_KEY)


# =========================
# ВСПОМОГАТЕЛЬНЫЕ ПРОВЕРКИ
# =========================

def _slug_or_error(value: str) -> str:
    slug = make_slug(value)
    if not slug:
        raise ValidationError("Post slug cannot be empty")
    return slug


def _ensure_unique_slug(db: Session, slug: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Post.id).filter(Post.slug == slug)
    if exclude_id is not None:
        query = query.filter(Post.id != exclude_id)
    if query.first():
        raise ConflictError(SLUG_CONFLICT)


def _ensure_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    if not db.query(Category.id).filter(Category.id == category_id).first():
        raise ValidationError("Category not found")


def _apply_publication(post: Post) -> None:
    # published_at ставится один раз - при первой публикации
    if post.status == PostStatus.PUBLISHED and post.published_at is None:
        post.published_at = datetime.utcnow()


# =========================
# ТЕГИ
# =========================

def _normalize_tag_names(names: Iterable[str]) -> List[str]:
    """Обрезать пробелы, выкинуть пустые и дубликаты (по slug), сохранив порядок"""
    result = []
    seen = set()
    for name in names:
        name = (name or "").strip()
        slug = make_slug(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        result.append(name)
    return result


def _find_or_create_tags(db: Session, names: Iterable[str]) -> List[Tag]:
    tags = []
    for name in _normalize_tag_names(names):
        slug = make_slug(name)
        tag = (
            db.query(Tag)
            .filter((Tag.slug == slug) | (Tag.name == name))
            .first()
        )
        if tag is None:
            tag = Tag(name=name, slug=slug)
            db.add(tag)
            db.flush()
        tags.append(tag)
    return tags


def _link_tags(db: Session, post: Post, tags: Iterable[Tag]) -> int:
    """Добавить недостающие связи пост-тег. Возвращает число новых связей"""
    existing = {
        tag_id
        for (tag_id,) in db.query(PostTag.tag_id).filter(PostTag.post_id == post.id)
    }
    added = 0
    for tag in tags:
        if tag.id in existing:
            continue
        db.add(PostTag(post_id=post.id, tag_id=tag.id))
        existing.add(tag.id)
        added += 1
    return added


def _replace_tags(db: Session, post: Post, names: Iterable[str]) -> None:
    tags = _find_or_create_tags(db, names)
    keep_ids = {tag.id for tag in tags}

    stale = db.query(PostTag).filter(PostTag.post_id == post.id)
    if keep_ids:
        stale = stale.filter(PostTag.tag_id.notin_(keep_ids))
    stale.delete(synchronize_session=False)

    _link_tags(db, post, tags)


async def add_tags(db: Session, post_id: int, names: Iterable[str]) -> Post:
    """
    Добавить теги к посту. Повторный вызов с теми же именами ничего не меняет.
    """
    post = await get_post(db, post_id)
    tags = _find_or_create_tags(db, names)
    added = _link_tags(db, post, tags)
    commit(db)

    if added:
        logger.info("Post %s: %d tags added", post.id, added)
        await invalidate_post_caches()
    return await get_post(db, post_id)


async def set_tags(db: Session, post_id: int, names: Iterable[str]) -> Post:
    """Заменить набор тегов поста"""
    post = await get_post(db, post_id)
    _replace_tags(db, post, names)
    commit(db)

    await invalidate_post_caches()
    return await get_post(db, post_id)


# =========================
# СОЗДАНИЕ / ИЗМЕНЕНИЕ
# =========================

async def create_post(
    db: Session,
    author: User,
    post_in: PostCreate,
) -> Post:
    """
    Создать пост: slug (из заголовка, если не передан), время чтения,
    дата публикации, теги. Сбрасывает кэш ленты.
    """
    slug = _slug_or_error(post_in.slug or post_in.title)
    _ensure_unique_slug(db, slug)
    _ensure_category(db, post_in.category_id)

    db_post = Post(
        **post_in.model_dump(exclude={"slug", "tags"}),
        slug=slug,
        author_id=author.id,
        reading_time=reading_time(post_in.content),
    )
    _apply_publication(db_post)
    db.add(db_post)
    db.flush()

    if post_in.tags:
        _link_tags(db, db_post, _find_or_create_tags(db, post_in.tags))

    refresh_post_count(db, db_post.category_id)
    commit(db, conflict_detail=SLUG_CONFLICT)

    await invalidate_post_caches()
    logger.info("Post %s created by user %s", db_post.id, author.id)
    return await get_post(db, db_post.id)


async def update_post(
    db: Session,
    post_id: int,
    post_update: PostUpdate,
) -> Post:
    """
    Обновить пост.

    - новый заголовок без явного slug -> slug пересчитывается;
    - новый контент -> пересчитывается время чтения;
    - tags (если переданы) заменяют набор тегов.
    """
    db_post = await get_post(db, post_id)
    update_data = post_update.model_dump(exclude_unset=True)
    for field in REQUIRED_POST_FIELDS:
        if update_data.get(field, False) is None:
            del update_data[field]
    tags = update_data.pop("tags", None)
    previous_category_id = db_post.category_id

    slug = update_data.pop("slug", None)
    if slug:
        update_data["slug"] = _slug_or_error(slug)
    elif update_data.get("title") and update_data["title"] != db_post.title:
        update_data["slug"] = _slug_or_error(update_data["title"])

    if "slug" in update_data:
        _ensure_unique_slug(db, update_data["slug"], exclude_id=db_post.id)
    if "category_id" in update_data:
        _ensure_category(db, update_data["category_id"])
    if update_data.get("content"):
        update_data["reading_time"] = reading_time(update_data["content"])

    for key, value in update_data.items():
        setattr(db_post, key, value)
    _apply_publication(db_post)

    if tags is not None:
        _replace_tags(db, db_post, tags)

    for category_id in {previous_category_id, db_post.category_id}:
        refresh_post_count(db, category_id)
    commit(db, conflict_detail=SLUG_CONFLICT)

    await invalidate_post_caches()
    return await get_post(db, post_id)


async def set_featured_image(db: Session, post_id: int, path: str) -> Post:
    post = await get_post(db, post_id)
    post.featured_image = path
    commit(db)

    await invalidate_post_caches()
    return await get_post(db, post_id)


async def delete_post(db: Session, post_id: int) -> None:
    """
    Удалить пост вместе с комментариями, просмотрами и связями с тегами.
    """
    db_post = await get_post(db, post_id)
    category_id = db_post.category_id

    db.delete(db_post)
    refresh_post_count(db, category_id)
    commit(db)

    await invalidate_post_caches()
    logger.info("Post %s deleted", post_id)


async def record_view(db: Session, post_id: int, view: PostViewCreate) -> None:
    """
    Учесть просмотр: строка PostView (если известен IP) и атомарный
    views_count + 1. Без дедупликации.
    """
    if not db.query(Post.id).filter(Post.id == post_id).first():
        raise NotFound("Post not found")

    if view.ip_address:
        db.add(PostView(post_id=post_id, **view.model_dump()))

    db.query(Post).filter(Post.id == post_id).update(
        {Post.views_count: Post.views_count + 1},
        synchronize_session=False,
    )
    commit(db)


# =========================
# ЧТЕНИЕ
# =========================

async def get_post(db: Session, post_id: int) -> Post:
    post = _with_relations(db.query(Post)).filter(Post.id == post_id).first()
    if not post:
        raise NotFound("Post not found")
    return post


async def get_post_by_slug(db: Session, slug: str, published_only: bool = True) -> Post:
    query = _with_relations(db.query(Post)).filter(Post.slug == slug)
    if published_only:
        query = query.filter(Post.status == PostStatus.PUBLISHED)
    post = query.first()
    if not post:
        raise NotFound("Post not found")
    return post


def _filtered_query(db: Session, filters: PostFilters):
    query = _with_relations(db.query(Post))

    if filters.status is not None:
        query = query.filter(Post.status == filters.status)
    if filters.category_id is not None:
        query = query.filter(Post.category_id == filters.category_id)
    if filters.author_id is not None:
        query = query.filter(Post.author_id == filters.author_id)
    if filters.is_featured is not None:
        query = query.filter(Post.is_featured.is_(filters.is_featured))

    search = search_filter(filters.search, Post.title, Post.excerpt, Post.content)
    if search is not None:
        query = query.filter(search)

    return query.order_by(*SORT_ORDERS[filters.sort_by])


async def list_posts(
    db: Session,
    filters: PostFilters,
    page: int = 1,
    page_size: int = 10,
) -> PageResult:
    """Список постов для админки (любой статус)"""
    return paginate(_filtered_query(db, filters), page, page_size)


async def list_published_posts(
    db: Session,
    filters: PostFilters,
    page: int = 1,
    page_size: int = 6,
) -> Page | dict:
    """
    Публичная лента: только опубликованные.
    Первая страница без фильтров кэшируется.
    """
    use_cache = page == 1 and filters == PostFilters() and page_size == 6

    if use_cache:
        cached = await cache.get(POSTS_CACHE_KEY)
        if cached is not None:
            return cached

    filters = filters.model_copy(update={"status": PostStatus.PUBLISHED})
    result = to_page(paginate(_filtered_query(db, filters), page, page_size), PostResponse)

    if use_cache:
        await cache.set(POSTS_CACHE_KEY, result.model_dump(mode="json"))
    return result


async def get_related_posts(db: Session, post: Post, limit: int = 3) -> List[Post]:
    """Опубликованные посты той же категории, кроме самого поста"""
    if post.category_id is None:
        return []
    return (
        _with_relations(db.query(Post))
        .filter(
            Post.category_id == post.category_id,
            Post.status == PostStatus.PUBLISHED,
            Post.id != post.id,
        )
        .order_by(Post.published_at.desc(), Post.id.desc())
        .limit(limit)
        .all()
    )


async def get_recent_posts(db: Session, limit: int = 5) -> List[Post]:
    return (
        _with_relations(db.query(Post))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(limit)
        .all()
    )


async def get_post_stats(db: Session) -> PostStats:
    rows = (
        db.query(Post.status, func.count(Post.id))
        .group_by(Post.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    return PostStats(
        total=sum(by_status.values()),
        published=by_status.get(PostStatus.PUBLISHED, 0),
        draft=by_status.get(PostStatus.DRAFT, 0),
        archived=by_status.get(PostStatus.ARCHIVED, 0),
    )
