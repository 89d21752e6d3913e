"""Tests for message storage, pagination and the conversation window."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from counsel_service.errors import NotFoundError, ValidationError
from counsel_service.models.message import Message, MessageEditHistory, MessageRole
from counsel_service.services import message_service


class TestCreateMessage:
    """Tests for create_message and create_message_pair."""

    @pytest.mark.asyncio
    async def test_create_user_message(self, db, chat, alice) -> None:
        message = await message_service.create_message(
            db, chat.id, MessageRole.USER, "  How do I ask for a raise?  ", user_id=alice.id
        )

        assert message.id is not None
        assert message.role == MessageRole.USER
        assert message.content == "How do I ask for a raise?"
        assert message.is_edited is False
        assert message.is_bookmarked is False
        assert message.read_at is None

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError):
            await message_service.create_message(
                db, chat.id, MessageRole.USER, "   ", user_id=alice.id
            )

    @pytest.mark.asyncio
    async def test_too_long_content_rejected(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError):
            await message_service.create_message(
                db, chat.id, MessageRole.USER, "x" * 4001, user_id=alice.id
            )

    @pytest.mark.asyncio
    async def test_user_message_in_foreign_session_not_found(self, db, chat, bob) -> None:
        with pytest.raises(NotFoundError):
            await message_service.create_message(
                db, chat.id, MessageRole.USER, "Hello", user_id=bob.id
            )

    @pytest.mark.asyncio
    async def test_user_message_requires_caller(self, db, chat) -> None:
        with pytest.raises(ValueError):
            await message_service.create_message(db, chat.id, MessageRole.USER, "Hello")

    @pytest.mark.asyncio
    async def test_assistant_reply_without_caller(self, db, chat) -> None:
        """The reply half of a send is stored without an ownership check."""
        message = await message_service.create_message(
            db, chat.id, MessageRole.ASSISTANT, "Start with your achievements."
        )
        assert message.role == MessageRole.ASSISTANT

    @pytest.mark.asyncio
    async def test_create_pair_keeps_order(self, db, chat, alice) -> None:
        user_message, reply = await message_service.create_message_pair(
            db, chat.id, alice.id, "Hello", "Hi there"
        )

        assert user_message.id < reply.id
        page = await message_service.list_messages(db, chat.id, alice.id)
        assert [m.content for m in page.items] == ["Hello", "Hi there"]

    @pytest.mark.asyncio
    async def test_create_pair_invalid_reply_stores_nothing(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError):
            await message_service.create_message_pair(db, chat.id, alice.id, "Hello", "")

        assert await message_service.count_messages(db, chat.id, alice.id) == 0


class TestListMessages:
    """Tests for cursor pagination over a session's messages."""

    @pytest.mark.asyncio
    async def test_two_message_scenario(self, db, chat, alice) -> None:
        """limit=1 walks M1 then M2 and stops."""
        m1 = await message_service.create_message(
            db, chat.id, MessageRole.USER, "Hello", user_id=alice.id
        )
        m2 = await message_service.create_message(
            db, chat.id, MessageRole.ASSISTANT, "Hi there"
        )

        first = await message_service.list_messages(db, chat.id, alice.id, limit=1)
        assert [m.id for m in first.items] == [m1.id]
        assert first.next_cursor == str(m1.id)
        assert first.has_more is True

        second = await message_service.list_messages(
            db, chat.id, alice.id, limit=1, cursor=first.next_cursor
        )
        assert [m.id for m in second.items] == [m2.id]
        assert second.next_cursor is None
        assert second.has_more is False

    @pytest.mark.parametrize("page_size", [1, 3, 7, 25])
    @pytest.mark.asyncio
    async def test_traversal_yields_every_message_once(
        self, db, chat, alice, add_message, page_size
    ) -> None:
        created = [(await add_message(f"message {i}")).id for i in range(17)]

        seen = []
        cursor = None
        while True:
            page = await message_service.list_messages(
                db, chat.id, alice.id, limit=page_size, cursor=cursor
            )
            assert len(page.items) <= page_size
            seen.extend(m.id for m in page.items)
            if not page.has_more:
                assert page.next_cursor is None
                break
            cursor = page.next_cursor

        assert seen == created
        assert len(seen) == await message_service.count_messages(db, chat.id, alice.id)

    @pytest.mark.asyncio
    async def test_inserts_after_cursor_do_not_shift_pages(
        self, db, chat, alice, add_message
    ) -> None:
        first_ids = [(await add_message(f"m{i}")).id for i in range(4)]
        first = await message_service.list_messages(db, chat.id, alice.id, limit=2)

        later = (await add_message("late arrival")).id
        rest = await message_service.list_messages(
            db, chat.id, alice.id, limit=10, cursor=first.next_cursor
        )

        assert [m.id for m in first.items] == first_ids[:2]
        assert [m.id for m in rest.items] == first_ids[2:] + [later]

    @pytest.mark.asyncio
    async def test_limit_clamped_to_ceiling(self, db, chat, alice, add_message) -> None:
        for i in range(3):
            await add_message(f"m{i}")

        page = await message_service.list_messages(db, chat.id, alice.id, limit=100_000)
        assert len(page.items) == 3
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_malformed_cursor_rejected(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError, match="Invalid pagination cursor"):
            await message_service.list_messages(db, chat.id, alice.id, cursor="abc")

    @pytest.mark.asyncio
    async def test_cursor_beyond_key_range_rejected(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError, match="Invalid pagination cursor"):
            await message_service.list_messages(db, chat.id, alice.id, cursor="9" * 25)

    @pytest.mark.asyncio
    async def test_cursor_of_deleted_message_rejected(self, db, chat, alice) -> None:
        other = await message_service.create_message(
            db, chat.id, MessageRole.USER, "gone soon", user_id=alice.id
        )
        await message_service.delete_message(db, other.id, chat.id, alice.id)

        with pytest.raises(ValidationError):
            await message_service.list_messages(
                db, chat.id, alice.id, cursor=str(other.id)
            )

    @pytest.mark.asyncio
    async def test_foreign_session_not_found(self, db, chat, bob) -> None:
        with pytest.raises(NotFoundError):
            await message_service.list_messages(db, chat.id, bob.id)


class TestGetContext:
    """Tests for the conversation window."""

    @pytest.mark.asyncio
    async def test_window_is_most_recent_oldest_first(
        self, db, chat, alice, add_message
    ) -> None:
        ids = [(await add_message(f"turn {i}")).id for i in range(6)]

        context = await message_service.get_context(db, chat.id, alice.id, window_size=4)

        assert [m.id for m in context] == ids[2:]

    @pytest.mark.asyncio
    async def test_window_larger_than_session(self, db, chat, alice, add_message) -> None:
        ids = [(await add_message(f"turn {i}")).id for i in range(3)]

        context = await message_service.get_context(db, chat.id, alice.id)
        assert [m.id for m in context] == ids

    @pytest.mark.asyncio
    async def test_before_message(self, db, chat, alice, add_message) -> None:
        ids = [(await add_message(f"turn {i}")).id for i in range(5)]

        context = await message_service.get_context(
            db, chat.id, alice.id, window_size=2, before_message_id=ids[3]
        )
        assert [m.id for m in context] == ids[1:3]

    @pytest.mark.asyncio
    async def test_foreign_session_not_found(self, db, chat, bob) -> None:
        with pytest.raises(NotFoundError):
            await message_service.get_context(db, chat.id, bob.id)


class TestUpdateMessage:
    """Tests for editing and edit history."""

    @pytest.mark.asyncio
    async def test_edit_records_history(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("Hello")

        updated = await message_service.update_message(
            db, m1.id, chat.id, alice.id, "Hello there"
        )

        assert updated.content == "Hello there"
        assert updated.is_edited is True
        assert updated.edited_at is not None

        history = await message_service.get_edit_history(db, m1.id, alice.id)
        assert len(history) == 1
        assert history[0].previous_content == "Hello"
        assert history[0].new_content == "Hello there"

    @pytest.mark.asyncio
    async def test_history_appends_in_order(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("v1")
        await message_service.update_message(db, m1.id, chat.id, alice.id, "v2")
        await message_service.update_message(db, m1.id, chat.id, alice.id, "v3")

        history = await message_service.get_edit_history(db, m1.id, alice.id)
        assert [(h.previous_content, h.new_content) for h in history] == [
            ("v1", "v2"),
            ("v2", "v3"),
        ]

    @pytest.mark.asyncio
    async def test_invalid_edit_leaves_message_untouched(
        self, db, chat, alice, add_message
    ) -> None:
        m1 = await add_message("Hello")
        with pytest.raises(ValidationError):
            await message_service.update_message(db, m1.id, chat.id, alice.id, "")

        message = await message_service.get_message(db, m1.id, alice.id)
        assert message.content == "Hello"
        assert message.is_edited is False

    @pytest.mark.asyncio
    async def test_edit_in_wrong_session_not_found(
        self, db, chat, alice, add_message
    ) -> None:
        m1 = await add_message("Hello")
        with pytest.raises(NotFoundError):
            await message_service.update_message(db, m1.id, uuid4(), alice.id, "Hi")


class TestOwnership:
    """Foreign and missing resources are indistinguishable."""

    @pytest.mark.asyncio
    async def test_foreign_and_missing_message_same_error(
        self, db, chat, bob, add_message
    ) -> None:
        m1 = await add_message("private")

        with pytest.raises(NotFoundError) as foreign:
            await message_service.get_message(db, m1.id, bob.id)
        with pytest.raises(NotFoundError) as missing:
            await message_service.get_message(db, m1.id + 1000, bob.id)

        assert foreign.value.to_response() == missing.value.to_response()

    @pytest.mark.asyncio
    async def test_id_beyond_key_range_not_found(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("Hello")

        with pytest.raises(NotFoundError) as huge:
            await message_service.get_message(db, 2**70, alice.id)
        with pytest.raises(NotFoundError) as missing:
            await message_service.get_message(db, m1.id + 1000, alice.id)
        with pytest.raises(NotFoundError):
            await message_service.update_message(db, -(2**70), chat.id, alice.id, "x")

        assert huge.value.to_response() == missing.value.to_response()

    @pytest.mark.asyncio
    async def test_foreign_and_missing_session_same_error(self, db, chat, bob) -> None:
        with pytest.raises(NotFoundError) as foreign:
            await message_service.count_messages(db, chat.id, bob.id)
        with pytest.raises(NotFoundError) as missing:
            await message_service.count_messages(db, uuid4(), bob.id)

        assert foreign.value.to_response() == missing.value.to_response()

    @pytest.mark.asyncio
    async def test_foreign_edit_leaves_message_untouched(
        self, db, chat, alice, bob, add_message
    ) -> None:
        m1 = await add_message("Hello")
        with pytest.raises(NotFoundError):
            await message_service.update_message(db, m1.id, chat.id, bob.id, "pwned")
        with pytest.raises(NotFoundError):
            await message_service.delete_message(db, m1.id, chat.id, bob.id)

        message = await message_service.get_message(db, m1.id, alice.id)
        assert message.content == "Hello"


class TestDeleteMessage:
    """Tests for delete_message."""

    @pytest.mark.asyncio
    async def test_delete_cascades_history(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("Hello")
        await message_service.update_message(db, m1.id, chat.id, alice.id, "Hello there")

        await message_service.delete_message(db, m1.id, chat.id, alice.id)

        assert await message_service.count_messages(db, chat.id, alice.id) == 0
        remaining = await db.execute(
            select(func.count()).select_from(MessageEditHistory)
        )
        assert remaining.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_delete_twice_not_found(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("Hello")
        await message_service.delete_message(db, m1.id, chat.id, alice.id)

        with pytest.raises(NotFoundError):
            await message_service.delete_message(db, m1.id, chat.id, alice.id)


class TestSearchMessages:
    """Tests for search_messages."""

    @pytest.mark.asyncio
    async def test_case_insensitive_newest_first(
        self, db, chat, alice, add_message
    ) -> None:
        older = await add_message("Update my RESUME")
        await add_message("Interview tips")
        newer = await add_message("resume formatting")

        results = await message_service.search_messages(db, chat.id, alice.id, "Resume")
        assert [m.id for m in results] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_wildcards_matched_literally(self, db, chat, alice, add_message) -> None:
        await add_message("100% remote")
        await add_message("100 percent onsite")

        results = await message_service.search_messages(db, chat.id, alice.id, "100%")
        assert [m.content for m in results] == ["100% remote"]

    @pytest.mark.asyncio
    async def test_limit_applied(self, db, chat, alice, add_message) -> None:
        for i in range(5):
            await add_message(f"skill {i}")

        results = await message_service.search_messages(
            db, chat.id, alice.id, "skill", limit=2
        )
        assert [m.content for m in results] == ["skill 4", "skill 3"]

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, db, chat, alice) -> None:
        with pytest.raises(ValidationError):
            await message_service.search_messages(db, chat.id, alice.id, "  ")


class TestReadReceipts:
    """Tests for mark_read and mark_session_read."""

    @pytest.mark.asyncio
    async def test_mark_read_idempotent(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("Hello")

        first = await message_service.mark_read(db, m1.id, chat.id, alice.id)
        read_at = first.read_at
        assert read_at is not None

        second = await message_service.mark_read(db, m1.id, chat.id, alice.id)
        assert second.read_at == read_at

    @pytest.mark.asyncio
    async def test_mark_session_read(self, db, chat, alice, add_message) -> None:
        m1 = await add_message("one")
        await add_message("two")
        await add_message("three")
        await message_service.mark_read(db, m1.id, chat.id, alice.id)

        assert await message_service.mark_session_read(db, chat.id, alice.id) == 2
        assert await message_service.mark_session_read(db, chat.id, alice.id) == 0

        unread = await db.execute(
            select(func.count())
            .select_from(Message)
            .where(Message.session_id == chat.id, Message.read_at.is_(None))
        )
        assert unread.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_mark_read_foreign_not_found(self, db, chat, bob, add_message) -> None:
        m1 = await add_message("Hello")
        with pytest.raises(NotFoundError):
            await message_service.mark_read(db, m1.id, chat.id, bob.id)
