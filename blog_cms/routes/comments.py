# blog_cms/routes/comments.py

"""
API endpoints для комментариев.

router       - публичные: отправка комментария и ветка обсуждения поста.
admin_router - модерация.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from blog_cms.dependencies import client_ip, get_current_user_optional, require_capability
from blog_cms.models import CommentStatus, Post, PostStatus, User
from blog_cms.schemas import (
    BulkResult,
    CommentBulkAction,
    CommentCreate,
    CommentDetail,
    CommentFilters,
    CommentPublic,
    CommentReply,
    CommentResponse,
    CommentStats,
    CommentStatusUpdate,
    CommentThread,
    Page,
)
from blog_cms.services import comment_service
from blog_cms.services.pagination import MAX_PAGE_SIZE, to_page
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db
from blog_cms.utils.exceptions import NotFound

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])

admin_router = APIRouter(prefix="/api/v1/admin/comments", tags=["admin: comments"])


# =========
# ПУБЛИЧНЫЕ
# =========

@router.post("", response_model=CommentPublic, status_code=status.HTTP_201_CREATED)
async def submit_comment(
    comment: CommentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    Отправить комментарий. Гостям нужны имя и email.

    Комментарий попадает на модерацию (PENDING).
    """
    return await comment_service.submit_comment(
        db,
        comment,
        author=current_user,
        author_ip=client_ip(request),
    )


@router.get("/post/{post_id}", response_model=List[CommentThread])
async def post_thread(post_id: int, db: Session = Depends(get_db)):
    """
    Одобренные комментарии опубликованного поста с ответами.

    Не требует авторизации.
    """
    post = (
        db.query(Post.id)
        .filter(Post.id == post_id, Post.status == PostStatus.PUBLISHED)
        .first()
    )
    if not post:
        raise NotFound("Post not found")

    return await comment_service.get_public_thread(db, post_id)


# =========
# МОДЕРАЦИЯ
# =========

@admin_router.get("", response_model=Page[CommentResponse])
async def list_comments(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    status_filter: Optional[CommentStatus] = Query(None, alias="status"),
    post_id: Optional[int] = None,
    top_level_only: bool = False,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    filters = CommentFilters(
        status=status_filter,
        post_id=post_id,
        top_level_only=top_level_only,
        search=search,
    )
    result = await comment_service.list_comments(db, filters, page, page_size)
    return to_page(result, CommentResponse)


@admin_router.get("/stats", response_model=CommentStats)
async def comment_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    return await comment_service.get_comment_stats(db)


@admin_router.get("/post/{post_id}", response_model=List[CommentThread])
async def moderation_thread(
    post_id: int,
    status_filter: CommentStatus = Query(CommentStatus.APPROVED, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    """Ветка обсуждения поста с комментариями в заданном статусе"""
    return await comment_service.fetch_thread(db, post_id, status_filter)


@admin_router.post("/bulk", response_model=BulkResult)
async def bulk_action(
    body: CommentBulkAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    """
    approve / trash / spam / delete для списка id.
    Несуществующие id и недопустимые переходы пропускаются.
    """
    return await comment_service.bulk_moderate(db, body.action, body.comment_ids)


@admin_router.get("/{comment_id}", response_model=CommentDetail)
async def get_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    return await comment_service.get_comment(db, comment_id)


@admin_router.put("/{comment_id}/status", response_model=CommentResponse)
async def set_status(
    comment_id: int,
    body: CommentStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    return await comment_service.set_comment_status(db, comment_id, body.status)


@admin_router.post(
    "/{comment_id}/reply",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reply(
    comment_id: int,
    body: CommentReply,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    """Ответ модератора: сразу одобрен"""
    return await comment_service.reply_to_comment(
        db,
        comment_id,
        body,
        moderator=current_user,
        author_ip=client_ip(request),
    )


@admin_router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MODERATE_COMMENTS)),
):
    """Окончательное удаление вместе с ответами"""
    await comment_service.delete_comment(db, comment_id)
    return None
