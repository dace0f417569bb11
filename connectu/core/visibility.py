"""
Visibility Resolver

Derives what one user sees of their chats: the chat list with last message
and unread count, and the message history of a single chat. Everything is
recomputed from the message log on each call; the ledger's last-message
snapshot is never trusted for these views, since edits and deletions can
make it stale.
"""

from typing import Dict, List, Optional

from connectu.core.ledger import ChatLedger
from connectu.core.messages import MessageStore
from connectu.core.storage import Database
from connectu.models.chat import Chat, ChatSummary, Message, User


class VisibilityResolver:
    """Per-viewer views over the Message Store and Chat Ledger"""

    def __init__(
        self,
        db: Database,
        messages: MessageStore,
        ledger: ChatLedger,
        page_size: int = 20,
    ):
        self.db = db
        self.messages = messages
        self.ledger = ledger
        self.page_size = page_size

    def contact_names(self, viewer_id: str) -> Dict[str, str]:
        """phone -> saved display name for a viewer"""
        return {c.phone: c.name for c in self.db.list_contacts(viewer_id)}

    @staticmethod
    def display_name(other: User, contact_names: Dict[str, str]) -> str:
        return contact_names.get(other.phone, other.phone)

    def last_visible_message(self, chat: Chat, viewer_id: str) -> Optional[Message]:
        return self.messages.last_visible(chat.id, viewer_id, chat.watermark_for(viewer_id))

    def summarize(
        self,
        chat: Chat,
        viewer_id: str,
        contact_names: Optional[Dict[str, str]] = None,
        other: Optional[User] = None,
    ) -> ChatSummary:
        """Build the chat-list entry of ``chat`` for ``viewer_id``"""
        if contact_names is None:
            contact_names = self.contact_names(viewer_id)
        if other is None:
            other = self.db.require_user(chat.other_participant(viewer_id))

        watermark = chat.watermark_for(viewer_id)
        last = self.messages.last_visible(chat.id, viewer_id, watermark)
        return ChatSummary(
            chat_id=chat.id,
            other=other,
            display_name=self.display_name(other, contact_names),
            last_message=last.content if last else None,
            last_message_time=last.created_at if last else None,
            unread_count=self.messages.count_unread(chat.id, viewer_id, watermark),
            updated_at=chat.updated_at,
        )

    def chat_list(self, viewer_id: str) -> List[ChatSummary]:
        """Most recently active chats of a viewer, capped at ``page_size``"""
        chats = self.ledger.list_for_user(viewer_id, limit=self.page_size)
        others = self.db.get_users([c.other_participant(viewer_id) for c in chats])
        names = self.contact_names(viewer_id)
        summaries = []
        for chat in chats:
            other = others.get(chat.other_participant(viewer_id))
            if other is None:
                continue
            summaries.append(self.summarize(chat, viewer_id, names, other))
        return summaries

    def history(self, chat_id: str, viewer_id: str) -> List[Message]:
        """Ordered message history of one chat as ``viewer_id`` sees it.

        Messages deleted for everyone stay in place as tombstones so both
        sides see that something was removed; the viewer's own deletions and
        everything at or before their clear watermark are left out.

        Raises:
            NotFound: If the chat does not exist
            Forbidden: If the viewer is not a participant
        """
        chat = self.ledger.get_for_participant(chat_id, viewer_id)
        return self.messages.visible_messages(
            chat.id,
            viewer=viewer_id,
            watermark=chat.watermark_for(viewer_id),
            include_tombstones=True,
        )
