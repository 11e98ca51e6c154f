"""
Pytest configuration and fixtures for blog_cms tests.
"""

import os

# Настройки читаются при импорте blog_cms, поэтому окружение - до импорта
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from blog_cms.main import app
from blog_cms.models import (
    Base,
    Category,
    Comment,
    CommentStatus,
    Post,
    PostStatus,
    User,
    UserRole,
    UserStatus,
)
from blog_cms.services.cache import cache
from blog_cms.utils.database import get_db
from blog_cms.utils.security import create_access_token, hash_password

# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

DEFAULT_PASSWORD = "Password1"

LONG_CONTENT = " ".join(["word"] * 60)


class FakeRedis:
    """Минимальная замена redis.asyncio.Redis для тестов кэша и токенов"""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def ping(self):
        return True

    async def aclose(self):
        pass


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=db_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session) -> Generator[TestClient, None, None]:
    """Test client without lifespan events; DB dependency is overridden."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def fake_redis() -> Generator[FakeRedis, None, None]:
    """Подключает к cache поддельный Redis на время теста."""
    fake = FakeRedis()
    cache._client = fake
    yield fake
    cache._client = None


# =========================
# ФАБРИКИ ДАННЫХ
# =========================

@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    counter = {"n": 0}

    def factory(
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=username or f"user{n}",
            email=email or f"user{n}@example.com",
            password_hash=hash_password(password),
            first_name="Test",
            last_name=f"User{n}",
            role=role,
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture
def test_user(make_user) -> User:
    return make_user(username="reader", email="reader@example.com")


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(role=UserRole.ADMIN, username="admin", email="admin@example.com")


@pytest.fixture
def editor_user(make_user) -> User:
    return make_user(role=UserRole.EDITOR, username="editor", email="editor@example.com")


@pytest.fixture
def super_admin(make_user) -> User:
    return make_user(role=UserRole.SUPER_ADMIN, username="root", email="root@example.com")


def headers_for(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user) -> dict:
    return headers_for(test_user)


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def make_category(db_session) -> Callable[..., Category]:
    def factory(name: str = "Technology", slug: Optional[str] = None, **fields) -> Category:
        category = Category(name=name, slug=slug or name.lower(), **fields)
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category

    return factory


@pytest.fixture
def make_post(db_session, admin_user) -> Callable[..., Post]:
    counter = {"n": 0}

    def factory(
        title: Optional[str] = None,
        status: PostStatus = PostStatus.PUBLISHED,
        category: Optional[Category] = None,
        author: Optional[User] = None,
        **fields,
    ) -> Post:
        counter["n"] += 1
        title = title or f"Test post number {counter['n']}"
        post = Post(
            title=title,
            slug=fields.pop("slug", f"test-post-{counter['n']}"),
            content=fields.pop("content", LONG_CONTENT),
            status=status,
            author_id=(author or admin_user).id,
            category_id=category.id if category else None,
            published_at=datetime.utcnow() if status == PostStatus.PUBLISHED else None,
            **fields,
        )
        db_session.add(post)
        db_session.commit()
        db_session.refresh(post)
        return post

    return factory


@pytest.fixture
def post(make_post) -> Post:
    return make_post(title="Published test post")


@pytest.fixture
def make_comment(db_session) -> Callable[..., Comment]:
    counter = {"n": 0}

    def factory(
        post: Post,
        status: CommentStatus = CommentStatus.PENDING,
        parent: Optional[Comment] = None,
        content: Optional[str] = None,
    ) -> Comment:
        counter["n"] += 1
        comment = Comment(
            post_id=post.id,
            parent_id=parent.id if parent else None,
            content=content or f"Comment number {counter['n']}",
            author_name="Guest",
            author_email="guest@example.com",
            status=status,
        )
        db_session.add(comment)
        db_session.commit()
        db_session.refresh(comment)
        return comment

    return factory


@pytest.fixture
def make_headers() -> Callable[[User], dict]:
    return headers_for
