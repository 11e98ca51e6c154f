# blog_cms/routes/admin.py

"""
Дашборд админки: сводная статистика и последние записи.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blog_cms.dependencies import require_capability
from blog_cms.models import User
from blog_cms.schemas import CommentResponse, DashboardResponse, PostResponse
from blog_cms.services import category_service, comment_service, post_services, user_service
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.ACCESS_ADMIN)),
):
    recent_posts = await post_services.get_recent_posts(db, limit=5)
    recent_comments = await comment_service.get_recent_comments(db, limit=5)

    return DashboardResponse(
        users=await user_service.get_user_stats(db),
        posts=await post_services.get_post_stats(db),
        categories=await category_service.get_category_stats(db),
        comments=await comment_service.get_comment_stats(db),
        recent_posts=[PostResponse.model_validate(p) for p in recent_posts],
        recent_comments=[CommentResponse.model_validate(c) for c in recent_comments],
    )
