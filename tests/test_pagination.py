"""Tests for the shared pagination helper."""

import math
from datetime import datetime

import pytest

from blog_cms.models import User
from blog_cms.services.pagination import (
    MAX_PAGE_SIZE,
    build_pagination,
    paginate,
    search_filter,
)


@pytest.mark.unit
class TestBuildPagination:
    """Metadata is derived from the total only."""

    @pytest.mark.parametrize(
        "total,page_size",
        [(0, 10), (1, 10), (10, 10), (11, 10), (95, 20), (100, 6)],
    )
    def test_total_pages_is_ceiling(self, total, page_size):
        meta = build_pagination(total, 1, page_size)
        assert meta.total_pages == math.ceil(total / page_size)
        assert meta.total_items == total
        assert meta.page_size == page_size

    def test_empty_result_has_no_neighbours(self):
        meta = build_pagination(0, 1, 10)
        assert meta.total_pages == 0
        assert meta.has_next is False
        assert meta.has_prev is False

    def test_first_middle_last_pages(self):
        first = build_pagination(25, 1, 10)
        middle = build_pagination(25, 2, 10)
        last = build_pagination(25, 3, 10)

        assert (first.has_prev, first.has_next) == (False, True)
        assert (middle.has_prev, middle.has_next) == (True, True)
        assert (last.has_prev, last.has_next) == (True, False)

    def test_page_below_one_is_clamped(self):
        meta = build_pagination(5, 0, 10)
        assert meta.current_page == 1
        assert meta.has_prev is False


@pytest.mark.unit
class TestPaginate:
    """count + offset/limit over a real query."""

    def test_items_and_metadata(self, db_session, make_user):
        for _ in range(7):
            make_user()

        query = db_session.query(User).order_by(User.id.asc())
        result = paginate(query, page=2, page_size=3)

        assert [u.username for u in result.items] == ["user4", "user5", "user6"]
        assert result.pagination.total_items == 7
        assert result.pagination.total_pages == 3
        assert result.pagination.current_page == 2

    def test_all_pages_cover_every_row_once(self, db_session):
        stamp = datetime(2024, 1, 1, 12, 0, 0)
        db_session.add_all([
            User(
                username=f"same{n}",
                email=f"same{n}@example.com",
                password_hash="x",
                first_name="Same",
                last_name="Stamp",
                created_at=stamp,
            )
            for n in range(23)
        ])
        db_session.commit()

        query = db_session.query(User).order_by(User.created_at.desc(), User.id.desc())
        first = paginate(query, page=1, page_size=5)

        seen = []
        for page in range(1, first.pagination.total_pages + 1):
            seen.extend(u.id for u in paginate(query, page=page, page_size=5).items)

        assert first.pagination.total_pages == 5
        assert len(seen) == 23
        assert len(set(seen)) == 23

    def test_out_of_range_page_is_empty_not_error(self, db_session, make_user):
        make_user()
        make_user()

        result = paginate(db_session.query(User), page=5, page_size=10)

        assert result.items == []
        assert result.pagination.total_items == 2
        assert result.pagination.total_pages == 1
        assert result.pagination.has_next is False
        assert result.pagination.has_prev is True

    def test_page_size_is_capped(self, db_session):
        result = paginate(db_session.query(User), page=1, page_size=10_000)
        assert result.pagination.page_size == MAX_PAGE_SIZE

    def test_search_is_case_insensitive_or(self, db_session, make_user):
        make_user(username="alice", email="alice@example.com")
        make_user(username="bob", email="ALICE.fan@example.com")
        make_user(username="carol", email="carol@example.com")

        condition = search_filter("Alice", User.username, User.email)
        found = db_session.query(User).filter(condition).order_by(User.id).all()

        assert [u.username for u in found] == ["alice", "bob"]

    def test_blank_search_means_no_filter(self):
        assert search_filter(None, User.username) is None
        assert search_filter("   ", User.username) is None
