"""
Tests for connectu.core.visibility - chat list and history per viewer
"""

import pytest

from connectu.core.errors import Forbidden, NotFound
from connectu.models.chat import TOMBSTONE_TEXT


@pytest.fixture
def chat(ledger, alice, bob):
    chat, _ = ledger.find_or_create(alice.id, bob.id)
    return chat


def _send(messages, chat, sender, receiver, text):
    return messages.append(chat.id, sender.id, receiver.id, text)


class TestHistory:
    def test_history_in_order(self, resolver, messages, chat, alice, bob):
        _send(messages, chat, alice, bob, "one")
        _send(messages, chat, bob, alice, "two")
        _send(messages, chat, alice, bob, "three")

        history = resolver.history(chat.id, bob.id)

        assert [m.content for m in history] == ["one", "two", "three"]

    def test_history_outsider(self, resolver, chat, carol):
        with pytest.raises(Forbidden):
            resolver.history(chat.id, carol.id)

    def test_history_missing_chat(self, resolver, alice):
        with pytest.raises(NotFound):
            resolver.history("missing", alice.id)

    def test_delete_for_me_hides_only_for_requester(self, resolver, messages, chat, alice, bob):
        msg = _send(messages, chat, alice, bob, "hi")
        messages.delete_for_me(msg.id, bob.id)

        assert resolver.history(chat.id, bob.id) == []
        assert [m.id for m in resolver.history(chat.id, alice.id)] == [msg.id]

    def test_delete_for_everyone_leaves_tombstone(self, resolver, messages, chat, alice, bob):
        """Test that both sides see the tombstone in place of the message"""
        msg = _send(messages, chat, alice, bob, "secret")
        messages.delete_for_everyone(msg.id, alice.id)

        for viewer in (alice, bob):
            history = resolver.history(chat.id, viewer.id)
            assert [m.content for m in history] == [TOMBSTONE_TEXT]
            assert history[0].is_deleted_for_everyone is True

    def test_clear_hides_earlier_messages(self, resolver, messages, ledger, chat, alice, bob):
        """Test that a clear hides history for the clearer only"""
        _send(messages, chat, alice, bob, "before")
        ledger.set_clear_watermark(chat.id, bob.id)
        _send(messages, chat, alice, bob, "after")

        assert [m.content for m in resolver.history(chat.id, bob.id)] == ["after"]
        assert [m.content for m in resolver.history(chat.id, alice.id)] == ["before", "after"]

    def test_edited_message_keeps_position(self, resolver, messages, chat, alice, bob):
        first = _send(messages, chat, alice, bob, "first")
        _send(messages, chat, bob, alice, "second")
        messages.edit(first.id, alice.id, "first!")

        history = resolver.history(chat.id, bob.id)
        assert [m.content for m in history] == ["first!", "second"]
        assert history[0].is_edited is True


class TestSummary:
    def test_unread_then_read(self, resolver, messages, chat, alice, bob):
        """Test the unread count drops to zero after marking read"""
        _send(messages, chat, alice, bob, "hi")

        summary = resolver.summarize(chat, bob.id)
        assert summary.unread_count == 1
        assert summary.last_message == "hi"
        assert resolver.summarize(chat, alice.id).unread_count == 0

        messages.mark_all_read(chat.id, bob.id)
        assert resolver.summarize(chat, bob.id).unread_count == 0

    def test_last_message_skips_deleted(self, resolver, messages, chat, alice, bob):
        """Test that tombstones never surface as the last message"""
        _send(messages, chat, alice, bob, "kept")
        gone = _send(messages, chat, alice, bob, "gone")
        messages.delete_for_everyone(gone.id, alice.id)

        summary = resolver.summarize(chat, bob.id)
        assert summary.last_message == "kept"
        assert summary.unread_count == 1

    def test_last_message_respects_delete_for_me(self, resolver, messages, chat, alice, bob):
        _send(messages, chat, alice, bob, "older")
        newer = _send(messages, chat, bob, alice, "newer")
        messages.delete_for_me(newer.id, alice.id)

        assert resolver.summarize(chat, alice.id).last_message == "older"
        assert resolver.summarize(chat, bob.id).last_message == "newer"

    def test_last_message_after_edit(self, resolver, messages, chat, alice, bob):
        msg = _send(messages, chat, alice, bob, "typo")
        messages.edit(msg.id, alice.id, "fixed")

        assert resolver.summarize(chat, bob.id).last_message == "fixed"

    def test_clear_then_new_message(self, resolver, messages, ledger, chat, alice, bob):
        """Test that only messages after the clear count for the clearer"""
        _send(messages, chat, alice, bob, "old")
        ledger.set_clear_watermark(chat.id, bob.id)

        cleared = resolver.summarize(ledger.get(chat.id), bob.id)
        assert cleared.last_message is None
        assert cleared.unread_count == 0

        _send(messages, chat, alice, bob, "new")
        summary = resolver.summarize(ledger.get(chat.id), bob.id)
        assert summary.last_message == "new"
        assert summary.unread_count == 1

    def test_display_name_prefers_contact(self, resolver, db, chat, alice, bob):
        assert resolver.summarize(chat, alice.id).display_name == bob.phone

        db.add_contact(alice.id, bob.phone, "Bobby")

        summary = resolver.summarize(chat, alice.id)
        assert summary.display_name == "Bobby"
        assert summary.to_dict()["user"]["name"] == "Bobby"


class TestChatList:
    def test_list_most_recent_first(self, resolver, messages, ledger, alice, bob, carol):
        with_bob, _ = ledger.find_or_create(alice.id, bob.id)
        with_carol, _ = ledger.find_or_create(alice.id, carol.id)
        _send(messages, with_carol, carol, alice, "hey")
        _send(messages, with_bob, bob, alice, "yo")
        ledger.touch_last_message(with_carol.id, None)
        ledger.touch_last_message(with_bob.id, None)

        summaries = resolver.chat_list(alice.id)

        assert [s.chat_id for s in summaries] == [with_bob.id, with_carol.id]
        assert [s.last_message for s in summaries] == ["yo", "hey"]

    def test_list_page_size(self, db, messages, ledger, alice, bob, carol):
        from connectu.core.visibility import VisibilityResolver

        ledger.find_or_create(alice.id, bob.id)
        ledger.find_or_create(alice.id, carol.id)

        resolver = VisibilityResolver(db, messages, ledger, page_size=1)
        assert len(resolver.chat_list(alice.id)) == 1

    def test_list_empty(self, resolver, alice):
        assert resolver.chat_list(alice.id) == []
