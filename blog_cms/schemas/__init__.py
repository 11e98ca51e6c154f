# blog_cms/schemas/__init__.py

from pydantic import BaseModel, BeforeValidator, EmailStr, Field
from datetime import datetime
from typing import Annotated, Generic, Literal, Optional, List, TypeVar

from blog_cms.models import (
    CommentStatus,
    PostStatus,
    SettingType,
    UserRole,
    UserStatus,
)
from blog_cms.utils.text import normalize_email

T = TypeVar("T")

# Email пользователей уникален без учета регистра
UserEmail = Annotated[
    EmailStr,
    BeforeValidator(lambda v: normalize_email(v) if isinstance(v, str) else v),
]

# =========
# ПАГИНАЦИЯ
# =========

class PaginationMeta(BaseModel):
    """Метаданные страницы, общие для всех списков"""
    current_page: int
    total_pages: int
    total_items: int
    page_size: int
    has_next: bool
    has_prev: bool


class Page(BaseModel, Generic[T]):
    """Страница результатов: элементы + метаданные"""
    items: List[T]
    pagination: PaginationMeta


class BulkResult(BaseModel):
    """Итог массовой операции: сколько запрошено и сколько реально затронуто"""
    action: str
    requested: int
    affected: int


# =======================
# СХЕМЫ ДЛЯ ПОЛЬЗОВАТЕЛЕЙ
# =======================

class AuthorSummary(BaseModel):
    """
    Краткая информация об авторе (для постов и комментариев)
    """
    id: int
    username: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None

    class Config:
        from_attributes = True


class UserRegister(BaseModel):
    """
    Схема для регистрации через публичную форму
    """
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: UserEmail
    password: str
    confirm_password: str
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)


class UserLogin(BaseModel):
    """
    Схема для логина по e-mail
    """
    email: UserEmail
    password: str = Field(min_length=6)
    remember: bool = False


class UserCreate(BaseModel):
    """
    Создание пользователя администратором
    """
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: UserEmail
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    password: str
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE


class UserUpdate(BaseModel):
    """
    Обновление пользователя администратором. Пароль - только если передан.
    """
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    email: UserEmail
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=500)
    website: Optional[str] = Field(default=None, max_length=255)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str
    confirm_new_password: str


class PasswordReset(BaseModel):
    new_password: str


class UserBulkAction(BaseModel):
    action: Literal["activate", "deactivate", "promote", "demote", "delete"]
    user_ids: List[int] = Field(min_length=1)


class UserFilters(BaseModel):
    """Фильтры списка пользователей"""
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    search: Optional[str] = None

    class Config:
        extra = "forbid"


class UserResponse(BaseModel):
    """
    Схема ответа с инфо о пользователе
    """
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    status: UserStatus
    bio: Optional[str] = None
    website: Optional[str] = None
    avatar: Optional[str] = None
    last_login_at: Optional[datetime] = None
    login_count: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class UserStats(BaseModel):
    total: int
    active: int
    admins: int
    new_this_month: int


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    refresh_token: str


class TokenLogoutRequest(BaseModel):
    refresh_token: str


# ======================
# СХЕМЫ ДЛЯ КАТЕГОРИЙ И ТЕГОВ
# ======================

class CategoryCreate(BaseModel):
    """Создание категории. slug строится из name, если не передан"""
    name: str = Field(min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = Field(default=None, max_length=50)
    sort_order: int = 0
    is_featured: bool = False
    parent_id: Optional[int] = None
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)


class CategoryUpdate(BaseModel):
    """Обновление категории"""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = Field(default=None, max_length=50)
    sort_order: Optional[int] = None
    is_featured: Optional[bool] = None
    parent_id: Optional[int] = None
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)


class CategorySummary(BaseModel):
    id: int
    name: str
    slug: str
    color: Optional[str] = None

    class Config:
        from_attributes = True


class CategoryResponse(CategorySummary):
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int
    is_featured: bool
    parent_id: Optional[int] = None
    post_count: int
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    created_at: datetime


class CategoryFilters(BaseModel):
    """Фильтры списка категорий"""
    is_featured: Optional[bool] = None
    parent_id: Optional[int] = None
    search: Optional[str] = None

    class Config:
        extra = "forbid"


class CategoryStats(BaseModel):
    total: int
    featured: int


class TagResponse(BaseModel):
    id: int
    name: str
    slug: str

    class Config:
        from_attributes = True


# ====================
# СХЕМЫ ДЛЯ ПУБЛИКАЦИИ
# ====================


class PostBase(BaseModel):
    """Базовая информация о посте"""
    title: str = Field(min_length=5, max_length=255)
    excerpt: Optional[str] = Field(default=None, max_length=500)
    content: str = Field(min_length=50)
    category_id: Optional[int] = None
    status: PostStatus = PostStatus.DRAFT
    is_featured: bool = False
    featured_image: Optional[str] = None
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)
    meta_keywords: Optional[str] = Field(default=None, max_length=255)


class PostCreate(PostBase):
    """Создание поста"""
    slug: Optional[str] = Field(default=None, max_length=280)
    tags: List[str] = []


class PostUpdate(BaseModel):
    """Обновление поста. tags (если переданы) заменяют набор тегов целиком"""
    title: Optional[str] = Field(default=None, min_length=5, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=280)
    excerpt: Optional[str] = Field(default=None, max_length=500)
    content: Optional[str] = Field(default=None, min_length=50)
    category_id: Optional[int] = None
    status: Optional[PostStatus] = None
    is_featured: Optional[bool] = None
    featured_image: Optional[str] = None
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)
    meta_keywords: Optional[str] = Field(default=None, max_length=255)
    tags: Optional[List[str]] = None


class PostTagsUpdate(BaseModel):
    tags: List[str]


class PostResponse(BaseModel):
    """Ответ с информацией о посте"""
    id: int
    title: str
    slug: str
    excerpt: Optional[str] = None
    content: str
    featured_image: Optional[str] = None
    status: PostStatus
    category_id: Optional[int] = None
    author_id: int
    is_featured: bool
    views_count: int
    likes_count: int
    comments_count: int
    reading_time: int
    published_at: Optional[datetime] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    author: AuthorSummary
    category: Optional[CategorySummary] = None
    tags: List[TagResponse] = []

    class Config:
        from_attributes = True


class PostFilters(BaseModel):
    """Фильтры списка постов"""
    status: Optional[PostStatus] = None
    category_id: Optional[int] = None
    author_id: Optional[int] = None
    is_featured: Optional[bool] = None
    search: Optional[str] = None
    sort_by: Literal["newest", "views", "likes", "title"] = "newest"

    class Config:
        extra = "forbid"


class PostViewCreate(BaseModel):
    """Данные о просмотре, собранные из запроса"""
    ip_address: Optional[str] = None
    user_id: Optional[int] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    session_id: Optional[str] = None


class PostStats(BaseModel):
    total: int
    published: int
    draft: int
    archived: int


# ======================
# СХЕМЫ ДЛЯ КОММЕНТАРИЕВ
# ======================

class CommentCreate(BaseModel):
    """
    Создание комментария с публичной страницы.

    Для гостя author_name и author_email обязательны,
    для авторизованного берутся из профиля.
    """
    post_id: int
    parent_id: Optional[int] = None
    content: str = Field(min_length=3, max_length=1000)
    author_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    author_email: Optional[EmailStr] = None
    author_website: Optional[str] = Field(default=None, max_length=255)


class CommentReply(BaseModel):
    """Ответ модератора на комментарий"""
    content: str = Field(min_length=5, max_length=500)


class CommentStatusUpdate(BaseModel):
    # Строка, а не CommentStatus: неизвестное значение отклоняет сервис (InvalidStatus)
    status: str


class CommentBulkAction(BaseModel):
    action: Literal["approve", "trash", "spam", "delete"]
    comment_ids: List[int] = Field(min_length=1)


class CommentPublic(BaseModel):
    """Комментарий в публичной ветке обсуждения"""
    id: int
    post_id: int
    parent_id: Optional[int] = None
    content: str
    author_name: str
    author_website: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CommentThread(CommentPublic):
    """Комментарий верхнего уровня с ответами"""
    replies: List[CommentPublic] = []


class PostRef(BaseModel):
    id: int
    title: str
    slug: str

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    """Полная информация о комментарии (админка)"""
    id: int
    post_id: int
    parent_id: Optional[int] = None
    content: str
    author_name: str
    author_email: str
    author_website: Optional[str] = None
    author_ip: Optional[str] = None
    user_id: Optional[int] = None
    status: CommentStatus
    moderated_at: Optional[datetime] = None
    created_at: datetime
    post: Optional[PostRef] = None

    class Config:
        from_attributes = True


class CommentDetail(CommentResponse):
    """Комментарий с ответами"""
    replies: List[CommentResponse] = []


class CommentFilters(BaseModel):
    """Фильтры списка комментариев"""
    status: Optional[CommentStatus] = None
    post_id: Optional[int] = None
    top_level_only: bool = False
    search: Optional[str] = None

    class Config:
        extra = "forbid"


class CommentStats(BaseModel):
    total: int
    pending: int
    approved: int
    trash: int
    spam: int


# ===================
# СХЕМЫ ДЛЯ НАСТРОЕК
# ===================

class SettingValue(BaseModel):
    """Значение настройки; type и description - только если меняются"""
    value: Optional[str] = None
    type: Optional[SettingType] = None
    description: Optional[str] = None


class SettingResponse(BaseModel):
    setting_key: str
    setting_value: Optional[str] = None
    setting_type: SettingType
    category: str
    description: str
    is_public: bool

    class Config:
        from_attributes = True


# ========
# ДАШБОРД
# ========

class DashboardResponse(BaseModel):
    users: UserStats
    posts: PostStats
    categories: CategoryStats
    comments: CommentStats
    recent_posts: List[PostResponse]
    recent_comments: List[CommentResponse]
