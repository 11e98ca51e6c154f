"""Tests for category management."""

import pytest

from blog_cms.models import Category, PostStatus
from blog_cms.schemas import CategoryCreate, CategoryFilters, CategoryUpdate
from blog_cms.services import category_service
from blog_cms.utils.exceptions import ConflictError, NotFound, ValidationError


@pytest.mark.unit
class TestCreateCategory:

    @pytest.mark.asyncio
    async def test_slug_from_name(self, db_session):
        category = await category_service.create_category(
            db_session, CategoryCreate(name="Web Development")
        )

        assert category.slug == "web-development"
        assert category.post_count == 0

    @pytest.mark.asyncio
    async def test_explicit_slug_is_normalized(self, db_session):
        category = await category_service.create_category(
            db_session, CategoryCreate(name="Python", slug="Py Thon")
        )

        assert category.slug == "py-thon"

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, db_session, make_category):
        make_category("Technology")

        with pytest.raises(ConflictError, match="Category with this slug already exists"):
            await category_service.create_category(
                db_session, CategoryCreate(name="technology")
            )

    @pytest.mark.asyncio
    async def test_missing_parent(self, db_session):
        with pytest.raises(ValidationError):
            await category_service.create_category(
                db_session, CategoryCreate(name="Child", parent_id=42)
            )


@pytest.mark.unit
class TestUpdateCategory:

    @pytest.mark.asyncio
    async def test_rename_rederives_slug(self, db_session, make_category):
        category = make_category("Technology")

        updated = await category_service.update_category(
            db_session, category.id, CategoryUpdate(name="Tech News")
        )

        assert updated.slug == "tech-news"

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db_session, make_category):
        category = make_category("Technology", color="#112233", sort_order=3)

        updated = await category_service.update_category(
            db_session, category.id, CategoryUpdate(is_featured=True)
        )

        assert updated.is_featured is True
        assert updated.color == "#112233"
        assert updated.sort_order == 3
        assert updated.slug == "technology"

    @pytest.mark.asyncio
    async def test_parent_cycle_is_rejected(self, db_session, make_category):
        root = make_category("Root")
        child = make_category("Child", parent_id=root.id)

        with pytest.raises(ValidationError):
            await category_service.update_category(
                db_session, root.id, CategoryUpdate(parent_id=child.id)
            )

    @pytest.mark.asyncio
    async def test_self_parent_is_rejected(self, db_session, make_category):
        category = make_category()

        with pytest.raises(ValidationError):
            await category_service.update_category(
                db_session, category.id, CategoryUpdate(parent_id=category.id)
            )


@pytest.mark.unit
class TestDeleteCategory:

    @pytest.mark.asyncio
    async def test_delete_blocked_by_posts(self, db_session, make_category, make_post):
        category = make_category("Technology")
        for _ in range(3):
            make_post(category=category, status=PostStatus.DRAFT)

        with pytest.raises(ConflictError, match="Cannot delete category with 3 posts"):
            await category_service.delete_category(db_session, category.id)

        assert db_session.query(Category).count() == 1

    @pytest.mark.asyncio
    async def test_delete_empty(self, db_session, make_category):
        category = make_category()

        await category_service.delete_category(db_session, category.id)

        assert db_session.query(Category).count() == 0

    @pytest.mark.asyncio
    async def test_delete_missing(self, db_session):
        with pytest.raises(NotFound):
            await category_service.delete_category(db_session, 5)


@pytest.mark.unit
class TestReading:

    @pytest.mark.asyncio
    async def test_list_order_and_filters(self, db_session, make_category):
        make_category("Zeta", sort_order=1)
        make_category("Alpha", sort_order=1, is_featured=True)
        make_category("Omega", sort_order=0)

        result = await category_service.list_categories(db_session, CategoryFilters())
        assert [c.name for c in result.items] == ["Omega", "Alpha", "Zeta"]

        featured = await category_service.get_featured_categories(db_session)
        assert [c.name for c in featured] == ["Alpha"]

    @pytest.mark.asyncio
    async def test_category_posts_are_published_only(
        self, db_session, make_category, make_post
    ):
        category = make_category("Technology")
        published = make_post(category=category)
        make_post(category=category, status=PostStatus.DRAFT)

        found, result = await category_service.list_category_posts(db_session, "technology")

        assert found.id == category.id
        assert [p.id for p in result.items] == [published.id]

    @pytest.mark.asyncio
    async def test_unknown_slug(self, db_session):
        with pytest.raises(NotFound):
            await category_service.get_category_by_slug(db_session, "nope")

    @pytest.mark.asyncio
    async def test_recompute_post_count(self, db_session, make_category, make_post):
        category = make_category()
        make_post(category=category)
        make_post(category=category)

        assert await category_service.recompute_post_count(db_session, category.id) == 2
        db_session.refresh(category)
        assert category.post_count == 2

    @pytest.mark.asyncio
    async def test_stats(self, db_session, make_category):
        make_category("One", is_featured=True)
        make_category("Two")

        stats = await category_service.get_category_stats(db_session)

        assert (stats.total, stats.featured) == (2, 1)
