"""Tests for comment moderation and threading."""

import pytest

from blog_cms.models import Comment, CommentStatus, Setting, SettingType, UserRole
from blog_cms.schemas import CommentCreate, CommentFilters, CommentReply
from blog_cms.services import comment_service
from blog_cms.services.comment_service import (
    ALLOWED_TRANSITIONS,
    can_transition,
    source_statuses,
)
from blog_cms.utils.exceptions import (
    InvalidStatus,
    NotFound,
    PermissionDeniedError,
    ValidationError,
)


def guest_comment(post_id: int, parent_id=None, content="Nice article, thanks!") -> CommentCreate:
    return CommentCreate(
        post_id=post_id,
        parent_id=parent_id,
        content=content,
        author_name="Guest",
        author_email="guest@example.com",
    )


@pytest.mark.unit
class TestTransitions:
    """Status transition table."""

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(CommentStatus)

    def test_pending_can_go_anywhere(self):
        for target in CommentStatus:
            assert can_transition(CommentStatus.PENDING, target)

    def test_approved_cannot_go_back_to_pending(self):
        assert not can_transition(CommentStatus.APPROVED, CommentStatus.PENDING)

    def test_trash_and_spam_only_restore_to_approved(self):
        assert not can_transition(CommentStatus.TRASH, CommentStatus.SPAM)
        assert not can_transition(CommentStatus.SPAM, CommentStatus.TRASH)
        assert can_transition(CommentStatus.SPAM, CommentStatus.APPROVED)

    def test_sources_for_trash(self):
        assert set(source_statuses(CommentStatus.TRASH)) == {
            CommentStatus.PENDING,
            CommentStatus.APPROVED,
            CommentStatus.TRASH,
        }


@pytest.mark.unit
class TestSubmit:
    """Public submission."""

    @pytest.mark.asyncio
    async def test_guest_comment_is_pending(self, db_session, post):
        comment = await comment_service.submit_comment(
            db_session, guest_comment(post.id), author=None, author_ip="10.0.0.1"
        )

        assert comment.status == CommentStatus.PENDING
        assert comment.author_ip == "10.0.0.1"
        assert comment.user_id is None
        db_session.refresh(post)
        assert post.comments_count == 0

    @pytest.mark.asyncio
    async def test_unknown_post_is_rejected(self, db_session, post):
        with pytest.raises(ValidationError):
            await comment_service.submit_comment(
                db_session, guest_comment(post.id + 100), author=None
            )

    @pytest.mark.asyncio
    async def test_reply_parent_must_be_on_same_post(
        self, db_session, make_post, make_comment
    ):
        first = make_post()
        second = make_post()
        parent = make_comment(first, status=CommentStatus.APPROVED)

        with pytest.raises(ValidationError):
            await comment_service.submit_comment(
                db_session, guest_comment(second.id, parent_id=parent.id), author=None
            )

        assert db_session.query(Comment).filter(Comment.post_id == second.id).count() == 0

    @pytest.mark.asyncio
    async def test_guest_needs_name_and_email(self, db_session, post):
        with pytest.raises(ValidationError):
            await comment_service.submit_comment(
                db_session,
                CommentCreate(post_id=post.id, content="Anonymous words"),
                author=None,
            )

    @pytest.mark.asyncio
    async def test_authenticated_author_uses_profile(self, db_session, post, test_user):
        comment = await comment_service.submit_comment(
            db_session,
            CommentCreate(post_id=post.id, content="Signed-in comment"),
            author=test_user,
        )

        assert comment.user_id == test_user.id
        assert comment.author_email == test_user.email
        assert comment.author_name == test_user.full_name
        assert comment.status == CommentStatus.PENDING

    @pytest.mark.asyncio
    async def test_moderator_reply_from_public_form_is_approved(
        self, db_session, post, editor_user, make_comment
    ):
        parent = make_comment(post, status=CommentStatus.APPROVED)

        reply = await comment_service.submit_comment(
            db_session,
            CommentCreate(post_id=post.id, parent_id=parent.id, content="Thanks for reading"),
            author=editor_user,
        )

        assert reply.status == CommentStatus.APPROVED
        db_session.refresh(post)
        assert post.comments_count == 2

    @pytest.mark.asyncio
    async def test_disabled_comments_reject_submission(self, db_session, post):
        db_session.add(Setting(
            setting_key="enable_comments",
            setting_value="false",
            setting_type=SettingType.BOOLEAN,
        ))
        db_session.commit()

        with pytest.raises(ValidationError):
            await comment_service.submit_comment(db_session, guest_comment(post.id), author=None)


@pytest.mark.unit
class TestModeration:
    """Single and bulk status changes."""

    @pytest.mark.asyncio
    async def test_approve_raises_comments_count(self, db_session, post):
        comment = await comment_service.submit_comment(
            db_session, guest_comment(post.id), author=None
        )
        assert comment.moderated_at is None

        updated = await comment_service.set_comment_status(db_session, comment.id, "APPROVED")

        assert updated.status == CommentStatus.APPROVED
        assert updated.moderated_at is not None
        db_session.refresh(post)
        assert post.comments_count == 1

    @pytest.mark.asyncio
    async def test_trash_lowers_comments_count(self, db_session, post, make_comment):
        comment = make_comment(post, status=CommentStatus.APPROVED)
        await comment_service.recompute_comments_count(db_session, post.id)

        await comment_service.set_comment_status(db_session, comment.id, CommentStatus.TRASH)

        db_session.refresh(post)
        assert post.comments_count == 0

    @pytest.mark.asyncio
    async def test_unknown_status_is_invalid(self, db_session, post, make_comment):
        comment = make_comment(post)

        with pytest.raises(InvalidStatus):
            await comment_service.set_comment_status(db_session, comment.id, "DELETED")

    @pytest.mark.asyncio
    async def test_forbidden_transition_is_invalid(self, db_session, post, make_comment):
        comment = make_comment(post, status=CommentStatus.APPROVED)

        with pytest.raises(InvalidStatus):
            await comment_service.set_comment_status(db_session, comment.id, "PENDING")

        db_session.refresh(comment)
        assert comment.status == CommentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_same_status_only_restamps(self, db_session, post, make_comment):
        comment = make_comment(post, status=CommentStatus.SPAM)

        updated = await comment_service.set_comment_status(db_session, comment.id, "SPAM")

        assert updated.status == CommentStatus.SPAM
        assert updated.moderated_at is not None

    @pytest.mark.asyncio
    async def test_missing_comment(self, db_session):
        with pytest.raises(NotFound):
            await comment_service.set_comment_status(db_session, 12345, "APPROVED")

    @pytest.mark.asyncio
    async def test_bulk_spam_skips_unknown_ids(self, db_session, post, make_comment):
        first = make_comment(post)
        second = make_comment(post)

        affected = await comment_service.bulk_set_status(
            db_session, [first.id, second.id, 999], "SPAM"
        )

        assert affected == 2
        statuses = {c.status for c in db_session.query(Comment).all()}
        assert statuses == {CommentStatus.SPAM}

    @pytest.mark.asyncio
    async def test_bulk_skips_forbidden_transitions(self, db_session, post, make_comment):
        spam = make_comment(post, status=CommentStatus.SPAM)
        pending = make_comment(post)

        affected = await comment_service.bulk_set_status(
            db_session, [spam.id, pending.id], CommentStatus.TRASH
        )

        assert affected == 1
        db_session.refresh(spam)
        db_session.refresh(pending)
        assert spam.status == CommentStatus.SPAM
        assert pending.status == CommentStatus.TRASH

    @pytest.mark.asyncio
    async def test_bulk_approve_updates_counter(self, db_session, post, make_comment):
        ids = [make_comment(post).id for _ in range(3)]

        result = await comment_service.bulk_moderate(db_session, "approve", ids)

        assert result.affected == 3
        assert result.requested == 3
        db_session.refresh(post)
        assert post.comments_count == 3

    @pytest.mark.asyncio
    async def test_bulk_moderate_rejects_unknown_action(self, db_session):
        with pytest.raises(ValidationError):
            await comment_service.bulk_moderate(db_session, "publish", [1])


@pytest.mark.unit
class TestDeletion:
    """Hard delete, single and bulk."""

    @pytest.mark.asyncio
    async def test_delete_removes_replies(self, db_session, post, make_comment):
        parent = make_comment(post, status=CommentStatus.APPROVED)
        make_comment(post, status=CommentStatus.APPROVED, parent=parent)
        await comment_service.recompute_comments_count(db_session, post.id)

        await comment_service.delete_comment(db_session, parent.id)

        assert db_session.query(Comment).count() == 0
        db_session.refresh(post)
        assert post.comments_count == 0

    @pytest.mark.asyncio
    async def test_bulk_delete_counts_existing_requested_ids(
        self, db_session, post, make_comment
    ):
        parent = make_comment(post, status=CommentStatus.APPROVED)
        reply = make_comment(post, status=CommentStatus.APPROVED, parent=parent)
        nested_id = make_comment(post, status=CommentStatus.APPROVED, parent=reply).id
        other_id = make_comment(post, status=CommentStatus.APPROVED).id

        affected = await comment_service.bulk_delete_comments(
            db_session, [parent.id, 4242]
        )

        assert affected == 1
        remaining = {c.id for c in db_session.query(Comment).all()}
        assert remaining == {other_id}
        assert nested_id not in remaining
        db_session.refresh(post)
        assert post.comments_count == 1

    @pytest.mark.asyncio
    async def test_delete_missing_comment(self, db_session):
        with pytest.raises(NotFound):
            await comment_service.delete_comment(db_session, 1)


@pytest.mark.unit
class TestThread:
    """Thread assembly."""

    @pytest.mark.asyncio
    async def test_thread_filters_by_status(self, db_session, post, make_comment):
        a = make_comment(post, status=CommentStatus.APPROVED, content="A")
        b = make_comment(post, status=CommentStatus.PENDING, content="B")
        a1 = make_comment(post, status=CommentStatus.APPROVED, parent=a, content="A1")
        make_comment(post, status=CommentStatus.PENDING, parent=a, content="A2")
        make_comment(post, status=CommentStatus.APPROVED, parent=b, content="B1")
        c = make_comment(post, status=CommentStatus.APPROVED, content="C")

        thread = await comment_service.fetch_thread(db_session, post.id)

        assert [t.id for t in thread] == [a.id, c.id]
        assert [r.id for r in thread[0].replies] == [a1.id]
        assert thread[1].replies == []
        returned = {t.id for t in thread} | {r.id for t in thread for r in t.replies}
        assert len(returned) == 3

    @pytest.mark.asyncio
    async def test_thread_for_other_status(self, db_session, post, make_comment):
        make_comment(post, status=CommentStatus.APPROVED)
        pending = make_comment(post, status=CommentStatus.PENDING)

        thread = await comment_service.fetch_thread(db_session, post.id, "PENDING")

        assert [t.id for t in thread] == [pending.id]

    @pytest.mark.asyncio
    async def test_public_thread_is_cached_and_invalidated(
        self, db_session, post, make_comment, fake_redis
    ):
        comment = make_comment(post, status=CommentStatus.APPROVED)

        first = await comment_service.get_public_thread(db_session, post.id)
        assert [item["id"] for item in first] == [comment.id]
        assert f"comments:thread:{post.id}" in fake_redis.store

        await comment_service.set_comment_status(db_session, comment.id, "TRASH")

        assert f"comments:thread:{post.id}" not in fake_redis.store
        assert await comment_service.get_public_thread(db_session, post.id) == []


@pytest.mark.unit
class TestModeratorReply:
    """Replies from the admin area."""

    @pytest.mark.asyncio
    async def test_reply_is_approved_on_parent_post(
        self, db_session, post, admin_user, make_comment
    ):
        parent = make_comment(post, status=CommentStatus.APPROVED)

        reply = await comment_service.reply_to_comment(
            db_session, parent.id, CommentReply(content="Thank you!"), moderator=admin_user
        )

        assert reply.status == CommentStatus.APPROVED
        assert reply.post_id == post.id
        assert reply.parent_id == parent.id
        assert reply.user_id == admin_user.id

    @pytest.mark.asyncio
    async def test_reply_to_missing_parent(self, db_session, admin_user):
        with pytest.raises(NotFound):
            await comment_service.reply_to_comment(
                db_session, 77, CommentReply(content="Hello there"), moderator=admin_user
            )

    @pytest.mark.asyncio
    async def test_plain_user_cannot_reply(self, db_session, post, make_user, make_comment):
        parent = make_comment(post)
        reader = make_user(role=UserRole.USER)

        with pytest.raises(PermissionDeniedError):
            await comment_service.reply_to_comment(
                db_session, parent.id, CommentReply(content="Hello there"), moderator=reader
            )


@pytest.mark.unit
class TestListing:
    """Admin listing and stats."""

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, make_post, make_comment):
        first = make_post()
        second = make_post()
        parent = make_comment(first, status=CommentStatus.APPROVED, content="Great python tips")
        make_comment(first, status=CommentStatus.APPROVED, parent=parent)
        make_comment(second, status=CommentStatus.SPAM, content="Buy cheap stuff")

        by_post = await comment_service.list_comments(
            db_session, CommentFilters(post_id=first.id, top_level_only=True)
        )
        assert [c.id for c in by_post.items] == [parent.id]

        spam = await comment_service.list_comments(
            db_session, CommentFilters(status=CommentStatus.SPAM)
        )
        assert spam.pagination.total_items == 1

        found = await comment_service.list_comments(
            db_session, CommentFilters(search="PYTHON")
        )
        assert [c.id for c in found.items] == [parent.id]

    @pytest.mark.asyncio
    async def test_stats(self, db_session, post, make_comment):
        make_comment(post)
        make_comment(post, status=CommentStatus.APPROVED)
        make_comment(post, status=CommentStatus.APPROVED)
        make_comment(post, status=CommentStatus.SPAM)

        stats = await comment_service.get_comment_stats(db_session)

        assert stats.total == 4
        assert stats.pending == 1
        assert stats.approved == 2
        assert stats.spam == 1
        assert stats.trash == 0

    @pytest.mark.asyncio
    async def test_recent_comments_newest_first(self, db_session, post, make_comment):
        ids = [make_comment(post).id for _ in range(7)]

        recent = await comment_service.get_recent_comments(db_session)

        assert [c.id for c in recent] == list(reversed(ids))[:5]
