# blog_cms/services/comment_service.py

"""
Сервисный слой для комментариев и модерации.

Знает про Comment/Post/User, БД и кэш, но не про HTTP-исключения.

Жизненный цикл статуса:
    PENDING  -> APPROVED | TRASH | SPAM
    APPROVED -> TRASH | SPAM
    TRASH    -> APPROVED
    SPAM     -> APPROVED
Повторная установка текущего статуса разрешена (только обновляет moderated_at).
Удаление - окончательное, из любого статуса.

Post.comments_count - денормализованный счетчик одобренных комментариев.
Любое изменение набора комментариев проходит через _refresh_post_counters(),
который пересчитывает счетчик и сбрасывает кэш.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from blog_cms.models import Comment, CommentStatus, Post, User
from blog_cms.schemas import (
    BulkResult,
    CommentCreate,
    CommentFilters,
    CommentPublic,
    CommentReply,
    CommentStats,
    CommentThread,
)
from blog_cms.services.cache import cache
from blog_cms.services.pagination import PageResult, paginate, search_filter
from blog_cms.services.permissions import Capability, ensure_capability, has_capability
from blog_cms.services.post_services import POSTS_CACHE_KEY
from blog_cms.services.settings_service import get_typed_setting
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import InvalidStatus, NotFound, ValidationError

logger = logging.getLogger(__name__)

THREAD_CACHE_PREFIX = "comments:thread"

ALLOWED_TRANSITIONS: dict[CommentStatus, frozenset[CommentStatus]] = {
    CommentStatus.PENDING: frozenset(
        {CommentStatus.APPROVED, CommentStatus.TRASH, CommentStatus.SPAM}
    ),
    CommentStatus.APPROVED: frozenset({CommentStatus.TRASH, CommentStatus.SPAM}),
    CommentStatus.TRASH: frozenset({CommentStatus.APPROVED}),
    CommentStatus.SPAM: frozenset({CommentStatus.APPROVED}),
}

# Массовые действия админки -> целевой статус (None - удаление)
BULK_ACTIONS: dict[str, Optional[CommentStatus]] = {
    "approve": CommentStatus.APPROVED,
    "trash": CommentStatus.TRASH,
    "spam": CommentStatus.SPAM,
    "delete": None,
}


# =================
# СТАТУСЫ И ПЕРЕХОДЫ
# =================

def parse_status(value: CommentStatus | str) -> CommentStatus:
    """Строка -> CommentStatus, иначе InvalidStatus"""
    if isinstance(value, CommentStatus):
        return value
    try:
        return CommentStatus(value)
    except ValueError:
        raise InvalidStatus(f"Invalid status: {value}")


def can_transition(current: CommentStatus, target: CommentStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def source_statuses(target: CommentStatus) -> list[CommentStatus]:
    """Из каких статусов можно перейти в target"""
    return [status for status in CommentStatus if can_transition(status, target)]


# ===========================
# СЧЕТЧИКИ И ИНВАЛИДАЦИЯ КЭША
# ===========================

def _thread_cache_key(post_id: int) -> str:
    return f"{THREAD_CACHE_PREFIX}:{post_id}"


async def invalidate_comment_caches(post_ids: Iterable[int]) -> None:
    keys = [_thread_cache_key(post_id) for post_id in set(post_ids)]
    await cache.delete(*keys, POSTS_CACHE_KEY)


def _count_approved(db: Session, post_id: int) -> int:
    return (
        db.query(func.count(Comment.id))
        .filter(
            Comment.post_id == post_id,
            Comment.status == CommentStatus.APPROVED,
        )
        .scalar()
    )


async def _refresh_post_counters(db: Session, post_ids: Iterable[int]) -> dict[int, int]:
    """
    Единая точка фиксации изменений комментариев:
    пересчитать comments_count затронутых постов, закоммитить, сбросить кэш.
    """
    post_ids = set(post_ids)
    db.flush()

    counts = {}
    for post_id in post_ids:
        count = _count_approved(db, post_id)
        db.query(Post).filter(Post.id == post_id).update(
            {Post.comments_count: count},
            synchronize_session=False,
        )
        counts[post_id] = count

    commit(db)
    await invalidate_comment_caches(post_ids)
    return counts


async def recompute_comments_count(db: Session, post_id: int) -> int:
    """
    Посчитать одобренные комментарии поста и записать в Post.comments_count.
    """
    counts = await _refresh_post_counters(db, [post_id])
    return counts[post_id]


# =========================
# СОЗДАНИЕ КОММЕНТАРИЕВ
# =========================

async def comments_enabled(db: Session) -> bool:
    return await get_typed_setting(db, "enable_comments", default=True)


async def submit_comment(
    db: Session,
    comment_in: CommentCreate,
    author: Optional[User],
    author_ip: Optional[str] = None,
) -> Comment:
    """
    Создать комментарий с публичной страницы.

    - пост должен существовать, родитель (если указан) - принадлежать тому же посту;
    - гость обязан указать имя и email, авторизованный берет их из профиля;
    - статус PENDING, кроме ответа от модератора - тот сразу APPROVED.
    """
    if not await comments_enabled(db):
        raise ValidationError("Comments are disabled")

    post = db.query(Post).filter(Post.id == comment_in.post_id).first()
    if not post:
        raise ValidationError("Post not found")

    if comment_in.parent_id is not None:
        parent = db.query(Comment).filter(Comment.id == comment_in.parent_id).first()
        if parent is None or parent.post_id != post.id:
            raise ValidationError("Parent comment does not belong to this post")

    is_moderator_reply = (
        comment_in.parent_id is not None
        and has_capability(author, Capability.MODERATE_COMMENTS)
    )

    if author is not None:
        author_name = author.full_name or author.username
        author_email = author.email
        author_website = author.website
    else:
        if not comment_in.author_name or not comment_in.author_email:
            raise ValidationError("Name and email are required")
        author_name = comment_in.author_name
        author_email = comment_in.author_email
        author_website = comment_in.author_website

    db_comment = Comment(
        content=comment_in.content,
        post_id=post.id,
        parent_id=comment_in.parent_id,
        author_name=author_name,
        author_email=author_email,
        author_website=author_website,
        author_ip=author_ip,
        user_id=author.id if author is not None else None,
        status=CommentStatus.APPROVED if is_moderator_reply else CommentStatus.PENDING,
        moderated_at=datetime.utcnow() if is_moderator_reply else None,
    )
    db.add(db_comment)

    await _refresh_post_counters(db, [post.id])
    db.refresh(db_comment)

    logger.info(
        "Comment %s submitted on post %s with status %s",
        db_comment.id, post.id, db_comment.status.value,
    )
    return db_comment


async def reply_to_comment(
    db: Session,
    parent_id: int,
    reply_in: CommentReply,
    moderator: User,
    author_ip: Optional[str] = None,
) -> Comment:
    """
    Ответ модератора из админки: тот же пост, что и у родителя, сразу APPROVED.
    """
    ensure_capability(moderator, Capability.MODERATE_COMMENTS)

    parent = db.query(Comment).filter(Comment.id == parent_id).first()
    if not parent:
        raise NotFound("Parent comment not found")

    now = datetime.utcnow()
    reply = Comment(
        content=reply_in.content,
        post_id=parent.post_id,
        parent_id=parent.id,
        author_name=moderator.full_name or moderator.username,
        author_email=moderator.email,
        author_ip=author_ip,
        user_id=moderator.id,
        status=CommentStatus.APPROVED,
        moderated_at=now,
    )
    db.add(reply)

    await _refresh_post_counters(db, [parent.post_id])
    db.refresh(reply)

    logger.info("Moderator %s replied to comment %s", moderator.id, parent.id)
    return reply


# =========================
# ЧТЕНИЕ
# =========================

async def get_comment(db: Session, comment_id: int) -> Comment:
    comment = (
        db.query(Comment)
        .options(selectinload(Comment.post), selectinload(Comment.replies))
        .filter(Comment.id == comment_id)
        .first()
    )
    if not comment:
        raise NotFound("Comment not found")
    return comment


async def list_comments(
    db: Session,
    filters: CommentFilters,
    page: int = 1,
    page_size: int = 20,
) -> PageResult:
    """
    Список комментариев для админки: новые сверху.
    """
    query = db.query(Comment).options(selectinload(Comment.post))

    if filters.status is not None:
        query = query.filter(Comment.status == filters.status)
    if filters.post_id is not None:
        query = query.filter(Comment.post_id == filters.post_id)
    if filters.top_level_only:
        query = query.filter(Comment.parent_id.is_(None))

    search = search_filter(
        filters.search,
        Comment.content,
        Comment.author_name,
        Comment.author_email,
    )
    if search is not None:
        query = query.filter(search)

    query = query.order_by(Comment.created_at.desc(), Comment.id.desc())
    return paginate(query, page, page_size)


async def fetch_thread(
    db: Session,
    post_id: int,
    status: CommentStatus | str = CommentStatus.APPROVED,
) -> List[CommentThread]:
    """
    Ветка обсуждения поста.

    Комментарии верхнего уровня по возрастанию даты, у каждого - ответы
    с тем же статусом, тоже по возрастанию. Ответ, чей родитель не попал
    в верхний уровень (другой статус или более глубокая вложенность),
    не возвращается.
    """
    status = parse_status(status)

    comments = (
        db.query(Comment)
        .filter(Comment.post_id == post_id, Comment.status == status)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )

    top_level = [c for c in comments if c.parent_id is None]
    top_level_ids = {c.id for c in top_level}

    replies_by_parent: dict[int, list[Comment]] = defaultdict(list)
    for comment in comments:
        if comment.parent_id in top_level_ids:
            replies_by_parent[comment.parent_id].append(comment)

    return [
        CommentThread(
            **CommentPublic.model_validate(comment).model_dump(),
            replies=[CommentPublic.model_validate(r) for r in replies_by_parent[comment.id]],
        )
        for comment in top_level
    ]


async def get_public_thread(db: Session, post_id: int) -> list:
    """
    Одобренная ветка для публичной страницы, с кэшем в Redis.
    """
    cache_key = _thread_cache_key(post_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    thread = await fetch_thread(db, post_id, CommentStatus.APPROVED)
    data = [item.model_dump(mode="json") for item in thread]
    await cache.set(cache_key, data)
    return data


async def get_comment_stats(db: Session) -> CommentStats:
    rows = (
        db.query(Comment.status, func.count(Comment.id))
        .group_by(Comment.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    return CommentStats(
        total=sum(by_status.values()),
        pending=by_status.get(CommentStatus.PENDING, 0),
        approved=by_status.get(CommentStatus.APPROVED, 0),
        trash=by_status.get(CommentStatus.TRASH, 0),
        spam=by_status.get(CommentStatus.SPAM, 0),
    )


async def get_recent_comments(db: Session, limit: int = 5) -> List[Comment]:
    return (
        db.query(Comment)
        .options(selectinload(Comment.post))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .limit(limit)
        .all()
    )


# =========================
# МОДЕРАЦИЯ
# =========================

async def set_comment_status(
    db: Session,
    comment_id: int,
    new_status: CommentStatus | str,
) -> Comment:
    """
    Перевести один комментарий в новый статус и проставить moderated_at.
    """
    status = parse_status(new_status)

    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if not comment:
        raise NotFound("Comment not found")

    previous = comment.status
    if not can_transition(previous, status):
        raise InvalidStatus(
            f"Cannot change comment status from {previous.value} to {status.value}"
        )

    comment.status = status
    comment.moderated_at = datetime.utcnow()

    await _refresh_post_counters(db, [comment.post_id])
    db.refresh(comment)

    logger.info("Comment %s status %s -> %s", comment.id, previous.value, status.value)
    return comment


async def bulk_set_status(
    db: Session,
    comment_ids: Iterable[int],
    new_status: CommentStatus | str,
) -> int:
    """
    Массовая смена статуса одним UPDATE.

    Несуществующие id и комментарии, которым переход запрещен, пропускаются.
    Возвращает число реально измененных строк.
    """
    status = parse_status(new_status)
    ids = set(comment_ids)
    if not ids:
        return 0

    sources = source_statuses(status)
    eligible = (
        db.query(Comment.id, Comment.post_id)
        .filter(Comment.id.in_(ids), Comment.status.in_(sources))
        .all()
    )
    if not eligible:
        return 0

    affected = (
        db.query(Comment)
        .filter(
            Comment.id.in_([row.id for row in eligible]),
            Comment.status.in_(sources),
        )
        .update(
            {Comment.status: status, Comment.moderated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )

    await _refresh_post_counters(db, {row.post_id for row in eligible})

    logger.info(
        "Bulk status %s: requested=%d affected=%d", status.value, len(ids), affected
    )
    return affected


def _collect_descendants(db: Session, root_ids: set[int]) -> set[int]:
    """Все ответы (на любой глубине) для набора комментариев"""
    found: set[int] = set()
    frontier = set(root_ids)
    while frontier:
        children = {
            row.id
            for row in db.query(Comment.id).filter(Comment.parent_id.in_(frontier))
        }
        frontier = children - found - root_ids
        found |= frontier
    return found


async def bulk_delete_comments(db: Session, comment_ids: Iterable[int]) -> int:
    """
    Массовое окончательное удаление. Ответы удаляются вместе с родителями,
    но в результат входят только запрошенные и реально существующие id.
    """
    ids = set(comment_ids)
    if not ids:
        return 0

    targets = (
        db.query(Comment.id, Comment.post_id)
        .filter(Comment.id.in_(ids))
        .all()
    )
    if not targets:
        return 0

    target_ids = {row.id for row in targets}
    descendants = _collect_descendants(db, target_ids)
    if descendants:
        db.query(Comment).filter(Comment.id.in_(descendants)).delete(
            synchronize_session=False
        )

    affected = (
        db.query(Comment)
        .filter(Comment.id.in_(target_ids))
        .delete(synchronize_session=False)
    )

    await _refresh_post_counters(db, {row.post_id for row in targets})

    logger.info("Bulk delete: requested=%d affected=%d", len(ids), affected)
    return affected


async def bulk_moderate(db: Session, action: str, comment_ids: List[int]) -> BulkResult:
    """Массовое действие админки: approve / trash / spam / delete"""
    if action not in BULK_ACTIONS:
        raise ValidationError("Invalid action")

    target = BULK_ACTIONS[action]
    if target is None:
        affected = await bulk_delete_comments(db, comment_ids)
    else:
        affected = await bulk_set_status(db, comment_ids, target)

    return BulkResult(action=action, requested=len(set(comment_ids)), affected=affected)


async def delete_comment(db: Session, comment_id: int) -> None:
    """
    Окончательно удалить комментарий вместе с ответами.
    """
    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if not comment:
        raise NotFound("Comment not found")

    post_id = comment.post_id
    db.delete(comment)

    await _refresh_post_counters(db, [post_id])
    logger.info("Comment %s deleted", comment_id)
