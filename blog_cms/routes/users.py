# blog_cms/routes/users.py

"""
API endpoints для управления пользователями (админка).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from blog_cms.dependencies import require_capability
from blog_cms.models import User, UserRole, UserStatus
from blog_cms.schemas import (
    BulkResult,
    Page,
    PasswordReset,
    UserBulkAction,
    UserCreate,
    UserFilters,
    UserResponse,
    UserStats,
    UserUpdate,
)
from blog_cms.services import user_service
from blog_cms.services.pagination import MAX_PAGE_SIZE, to_page
from blog_cms.services.permissions import Capability
from blog_cms.utils.database import get_db

router = APIRouter(
    prefix="/api/v1/admin/users",
    tags=["admin: users"],
)

manage_users = require_capability(Capability.MANAGE_USERS)


@router.get("", response_model=Page[UserResponse])
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    role: Optional[UserRole] = None,
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    filters = UserFilters(role=role, status=status_filter, search=search)
    result = await user_service.list_users(db, filters, page, page_size)
    return to_page(result, UserResponse)


@router.get("/stats", response_model=UserStats)
async def user_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    return await user_service.get_user_stats(db)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    return await user_service.create_user(db, user, actor=current_user)


@router.post("/bulk", response_model=BulkResult)
async def bulk_action(
    body: UserBulkAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    """
    activate / deactivate / promote / demote / delete.
    Нельзя включать в выборку себя и SUPER_ADMIN.
    """
    return await user_service.bulk_update_users(db, body.action, body.user_ids, actor=current_user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    return await user_service.get_user(db, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    return await user_service.update_user(db, user_id, user, actor=current_user)


@router.put("/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(
    user_id: int,
    body: PasswordReset,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    await user_service.reset_password(db, user_id, body.new_password, actor=current_user)
    return None


@router.post("/{user_id}/toggle-status", response_model=UserResponse)
async def toggle_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    return await user_service.toggle_user_status(db, user_id, actor=current_user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manage_users),
):
    """
    Удаление пользователя. 409, если у него есть посты.
    """
    await user_service.delete_user(db, user_id, actor=current_user)
    return None
