# blog_cms/services/user_service.py

"""
Сервисный слой для пользователей: регистрация, профиль,
управление пользователями из админки.

Знает про модели, БД и хэширование паролей, но не про HTTP-исключения.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from blog_cms.models import Post, User, UserRole, UserStatus
from blog_cms.schemas import (
    BulkResult,
    PasswordChange,
    ProfileUpdate,
    UserCreate,
    UserFilters,
    UserRegister,
    UserStats,
    UserUpdate,
)
from blog_cms.services.auth_tokens import revoke_user_tokens
from blog_cms.services.pagination import PageResult, paginate, search_filter
from blog_cms.services.permissions import (
    Capability,
    ensure_can_target,
    ensure_capability,
)
from blog_cms.utils.database import commit
from blog_cms.utils.exceptions import ConflictError, NotFound, ValidationError
from blog_cms.utils.security import (
    hash_password,
    validate_admin_password,
    validate_password_strength,
    verify_password,
)
from blog_cms.utils.text import normalize_email

logger = logging.getLogger(__name__)

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)

# Массовые действия -> (поле, значение). delete обрабатывается отдельно
BULK_UPDATES = {
    "activate": ("status", UserStatus.ACTIVE),
    "deactivate": ("status", UserStatus.INACTIVE),
    "promote": ("role", UserRole.ADMIN),
    "demote": ("role", UserRole.USER),
}


# =========================
# ПРОВЕРКИ
# =========================

def _ensure_unique(
    db: Session,
    email: Optional[str] = None,
    username: Optional[str] = None,
    exclude_id: Optional[int] = None,
) -> None:
    """Email и username уникальны (без учета самого пользователя)"""
    if email is not None:
        query = db.query(User.id).filter(User.email == normalize_email(email))
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError("Email already exists")

    if username is not None:
        query = db.query(User.id).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError("Username already exists")


def _ensure_role_assignable(actor: User, role: Optional[UserRole]) -> None:
    if role == UserRole.SUPER_ADMIN:
        ensure_capability(actor, Capability.ASSIGN_SUPER_ADMIN)


def _owned_posts_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Post.id))
        .filter(Post.author_id == user_id)
        .scalar()
    )


# =========================
# РЕГИСТРАЦИЯ И СОЗДАНИЕ
# =========================

async def register_user(db: Session, user_in: UserRegister) -> User:
    """
    Публичная регистрация: роль USER, статус ACTIVE.
    """
    validate_password_strength(user_in.password, user_in.confirm_password)
    _ensure_unique(db, email=user_in.email, username=user_in.username)

    db_user = User(
        username=user_in.username,
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        role=UserRole.USER,
        status=UserStatus.ACTIVE,
    )
    db.add(db_user)
    commit(db, conflict_detail="Email or username already exists")
    db.refresh(db_user)

    logger.info("User %s registered", db_user.id)
    return db_user


async def create_user(db: Session, user_in: UserCreate, actor: User) -> User:
    """Создание пользователя администратором"""
    validate_admin_password(user_in.password)
    _ensure_role_assignable(actor, user_in.role)
    _ensure_unique(db, email=user_in.email, username=user_in.username)

    db_user = User(
        username=user_in.username,
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        role=user_in.role,
        status=user_in.status,
    )
    db.add(db_user)
    commit(db, conflict_detail="Email or username already exists")
    db.refresh(db_user)

    logger.info("User %s created by %s", db_user.id, actor.id)
    return db_user


# =========================
# ЧТЕНИЕ
# =========================

async def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


async def list_users(
    db: Session,
    filters: UserFilters,
    page: int = 1,
    page_size: int = 10,
) -> PageResult:
    query = db.query(User)

    if filters.role is not None:
        query = query.filter(User.role == filters.role)
    if filters.status is not None:
        query = query.filter(User.status == filters.status)

    search = search_filter(
        filters.search,
        User.username,
        User.email,
        User.first_name,
        User.last_name,
    )
    if search is not None:
        query = query.filter(search)

    query = query.order_by(User.created_at.desc(), User.id.desc())
    return paginate(query, page, page_size)


async def get_user_stats(db: Session) -> UserStats:
    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total = db.query(func.count(User.id)).scalar()
    active = (
        db.query(func.count(User.id))
        .filter(User.status == UserStatus.ACTIVE)
        .scalar()
    )
    admins = (
        db.query(func.count(User.id))
        .filter(User.role.in_(ADMIN_ROLES))
        .scalar()
    )
    new_this_month = (
        db.query(func.count(User.id))
        .filter(User.created_at >= month_start)
        .scalar()
    )
    return UserStats(
        total=total,
        active=active,
        admins=admins,
        new_this_month=new_this_month,
    )


# =========================
# ИЗМЕНЕНИЕ
# =========================

async def update_user(
    db: Session,
    user_id: int,
    user_in: UserUpdate,
    actor: User,
) -> User:
    """
    Обновление пользователя администратором.

    Нельзя менять роль/статус себе и любому SUPER_ADMIN.
    Остальные поля SUPER_ADMIN правит только SUPER_ADMIN.
    """
    user = await get_user(db, user_id)
    update_data = user_in.model_dump(exclude_unset=True)
    password = update_data.pop("password", None)
    # None в role/status означает "не менять"
    update_data = {k: v for k, v in update_data.items() if v is not None}

    if user.role == UserRole.SUPER_ADMIN:
        ensure_capability(actor, Capability.ASSIGN_SUPER_ADMIN)

    changes_access = (
        update_data.get("role", user.role) != user.role
        or update_data.get("status", user.status) != user.status
    )
    if changes_access:
        if user.id == actor.id:
            raise ValidationError("Cannot change your own role or status")
        # роль и статус SUPER_ADMIN не меняет никто
        ensure_can_target(actor, [user])

    _ensure_role_assignable(actor, update_data.get("role"))

    _ensure_unique(
        db,
        email=update_data.get("email"),
        username=update_data.get("username"),
        exclude_id=user.id,
    )

    if password:
        validate_admin_password(password)
        user.password_hash = hash_password(password)

    for key, value in update_data.items():
        setattr(user, key, value)

    commit(db, conflict_detail="Email or username already exists")
    db.refresh(user)

    if password or user.status == UserStatus.INACTIVE:
        await revoke_user_tokens(user.id)

    logger.info("User %s updated by %s", user.id, actor.id)
    return user


async def update_profile(db: Session, user: User, profile_in: ProfileUpdate) -> User:
    for key, value in profile_in.model_dump(exclude_unset=True).items():
        setattr(user, key, value)

    commit(db)
    db.refresh(user)
    return user


async def change_password(db: Session, user: User, body: PasswordChange) -> None:
    """
    Смена пароля самим пользователем: текущий пароль должен совпасть.
    Все refresh-токены пользователя отзываются.
    """
    if not verify_password(body.current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    validate_password_strength(body.new_password, body.confirm_new_password)

    user.password_hash = hash_password(body.new_password)
    commit(db)

    await revoke_user_tokens(user.id)
    logger.info("User %s changed password", user.id)


async def reset_password(db: Session, user_id: int, new_password: str, actor: User) -> None:
    """Сброс пароля администратором"""
    user = await get_user(db, user_id)
    if user.role == UserRole.SUPER_ADMIN and user.id != actor.id:
        ensure_capability(actor, Capability.ASSIGN_SUPER_ADMIN)

    validate_admin_password(new_password)
    user.password_hash = hash_password(new_password)
    commit(db)

    await revoke_user_tokens(user.id)
    logger.info("Password of user %s reset by %s", user.id, actor.id)


async def toggle_user_status(db: Session, user_id: int, actor: User) -> User:
    """ACTIVE <-> INACTIVE"""
    user = await get_user(db, user_id)
    ensure_can_target(actor, [user])

    user.status = (
        UserStatus.INACTIVE if user.status == UserStatus.ACTIVE else UserStatus.ACTIVE
    )
    commit(db)
    db.refresh(user)

    if user.status == UserStatus.INACTIVE:
        await revoke_user_tokens(user.id)

    logger.info("User %s status -> %s by %s", user.id, user.status.value, actor.id)
    return user


async def delete_user(db: Session, user_id: int, actor: User) -> None:
    """
    Удалить пользователя. Запрещено, пока у него есть посты.
    """
    user = await get_user(db, user_id)
    ensure_can_target(actor, [user])

    posts_count = _owned_posts_count(db, user.id)
    if posts_count:
        raise ConflictError(f"Cannot delete user with {posts_count} posts")

    db.delete(user)
    commit(db)

    await revoke_user_tokens(user_id)
    logger.info("User %s deleted by %s", user_id, actor.id)


async def bulk_update_users(
    db: Session,
    action: str,
    user_ids: List[int],
    actor: User,
) -> BulkResult:
    """
    Массовое действие над пользователями.

    Если среди выбранных есть сам исполнитель или SUPER_ADMIN,
    операция отклоняется целиком. При удалении авторы постов пропускаются.
    """
    if action not in BULK_UPDATES and action != "delete":
        raise ValidationError("Invalid action")

    ids = set(user_ids)
    users = db.query(User).filter(User.id.in_(ids)).all() if ids else []
    ensure_can_target(actor, users)

    if action == "delete":
        deletable = [u for u in users if _owned_posts_count(db, u.id) == 0]
        for user in deletable:
            db.delete(user)
        affected = len(deletable)
    else:
        field, value = BULK_UPDATES[action]
        changed = [u for u in users if getattr(u, field) != value]
        for user in changed:
            setattr(user, field, value)
        affected = len(changed)

    commit(db)

    if action in ("delete", "deactivate"):
        for user_id in ids:
            await revoke_user_tokens(user_id)

    logger.info(
        "Bulk %s by %s: requested=%d affected=%d", action, actor.id, len(ids), affected
    )
    return BulkResult(action=action, requested=len(ids), affected=affected)
