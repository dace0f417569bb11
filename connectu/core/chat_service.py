"""
Chat service - message and chat lifecycle

Every operation follows the same flow:
    1. mutate the Message Store / Chat Ledger
    2. recompute derived state (ledger snapshot, summaries)
    3. notify the chat's room through the RealtimeHub

Realtime events are emitted only after the store write returned, from the
same coroutine that performed it, so a room sees events in commit order.
"""

from typing import Optional, Tuple

from connectu.core.errors import (
    ContactExists,
    Forbidden,
    InvalidOperation,
    NotFound,
    ValidationError,
)
from connectu.core.ledger import ChatLedger
from connectu.core.logger import get_logger
from connectu.core.messages import MessageStore
from connectu.core.realtime import (
    EVENT_MESSAGE_DELETED_FOR_EVERYONE,
    EVENT_MESSAGE_DELIVERED,
    EVENT_MESSAGE_UPDATED,
    EVENT_MESSAGES_READ,
    EVENT_RECEIVE_MESSAGE,
    EVENT_USER_TYPING,
    EVENT_USER_TYPING_STOP,
    RealtimeHub,
    Session,
)
from connectu.core.storage import Database
from connectu.core.visibility import VisibilityResolver
from connectu.models.chat import (
    TOMBSTONE_TEXT,
    ChatSummary,
    LastMessage,
    Message,
    MessageStatus,
    MessageType,
    User,
)


log = get_logger("connectu.chat")


class ChatService:
    """Chat operations shared by the REST routes and the socket handler"""

    def __init__(
        self,
        db: Database,
        messages: MessageStore,
        ledger: ChatLedger,
        resolver: VisibilityResolver,
        hub: RealtimeHub,
    ):
        self.db = db
        self.messages = messages
        self.ledger = ledger
        self.resolver = resolver
        self.hub = hub

    def _resync_snapshot(self, chat_id: str) -> Optional[Message]:
        """Point the ledger cache at the chat's latest surviving message"""
        latest = self.messages.last_visible(chat_id)
        snapshot = None
        if latest is not None:
            snapshot = LastMessage(text=latest.content, sender=latest.sender, time=latest.created_at)
        self.ledger.touch_last_message(chat_id, snapshot, bump_activity=False)
        return latest

    def _require_participant(self, message: Message, user_id: str) -> None:
        if user_id not in (message.sender, message.receiver):
            raise Forbidden("Access denied")

    # ---------- REST operations ----------

    async def send_message(
        self, sender: User, receiver_phone: str, content: str, msg_type: str = "text"
    ) -> Message:
        if not receiver_phone or not content:
            raise ValidationError("receiverPhone and content required")
        try:
            msg_type = MessageType(msg_type).value
        except ValueError:
            raise ValidationError(f"Unsupported message type: {msg_type}")

        receiver = self.db.get_user_by_phone(receiver_phone)
        if receiver is None:
            raise NotFound("No ConnecTu user found with this phone number")

        chat, created = self.ledger.find_or_create(sender.id, receiver.id)
        if created:
            log.info("chat created chat=%s", chat.id)
            self.hub.join_users(chat.id, chat.participants)

        message = self.messages.append(chat.id, sender.id, receiver.id, content, msg_type)
        self.ledger.touch_last_message(
            chat.id, LastMessage(text=content, sender=sender.id, time=message.created_at)
        )

        await self.hub.emit_to_room(chat.id, EVENT_RECEIVE_MESSAGE, message.to_dict())
        return message

    async def edit_message(self, user: User, message_id: str, new_content: str) -> Tuple[Message, bool]:
        """Edit a message as its sender.

        Returns:
            Tuple of (message, is_last_message) where is_last_message tells
            whether the edited message is the chat's current latest message
        """
        if not message_id or not new_content:
            raise ValidationError("messageId and newContent are required")

        message = self.messages.edit(message_id, user.id, new_content)
        latest = self.messages.last_visible(message.chat_id)
        is_last = latest is not None and latest.id == message.id
        if is_last:
            self._resync_snapshot(message.chat_id)

        await self.hub.emit_to_room(
            message.chat_id,
            EVENT_MESSAGE_UPDATED,
            {"message": message.to_dict(), "isLastMessage": is_last},
        )
        return message, is_last

    async def delete_for_me(self, user: User, message_id: str) -> Message:
        if not message_id:
            raise ValidationError("messageId is required")
        self._require_participant(self.messages.get(message_id), user.id)
        return self.messages.delete_for_me(message_id, user.id)

    async def delete_for_everyone(self, user: User, message_id: str) -> Message:
        if not message_id:
            raise ValidationError("messageId is required")
        message = self.messages.delete_for_everyone(message_id, user.id)
        self._resync_snapshot(message.chat_id)

        await self.hub.emit_to_room(
            message.chat_id,
            EVENT_MESSAGE_DELETED_FOR_EVERYONE,
            {"messageId": message.id, "chatId": message.chat_id, "content": TOMBSTONE_TEXT},
        )
        return message

    async def clear_chat(self, user: User, chat_id: str) -> float:
        if not chat_id:
            raise ValidationError("chatId is required")
        chat = self.ledger.get_for_participant(chat_id, user.id)
        return self.ledger.set_clear_watermark(chat.id, user.id)

    async def create_chat(
        self,
        user: User,
        phone: str,
        name: Optional[str] = None,
        is_new_contact: bool = False,
    ) -> Tuple[ChatSummary, bool]:
        """Open (or reopen) a chat with the owner of ``phone``.

        The contact is saved when requested and not already present under the
        same name.

        Returns:
            Tuple of (summary, created)
        """
        if not phone:
            raise ValidationError("phone is required")

        receiver = self.db.get_user_by_phone(phone)
        if receiver is None:
            raise NotFound("This phone number is not registered on ConnecTu")
        if receiver.id == user.id:
            raise InvalidOperation("You cannot start a chat with yourself")

        if is_new_contact or name:
            existing = self.db.get_contact(user.id, phone)
            if existing is None:
                self.db.add_contact(user.id, phone, name or phone)
            elif name and existing.name != name:
                raise ContactExists(f'This contact is already saved as "{existing.name}"')

        chat, created = self.ledger.find_or_create(user.id, receiver.id)
        if created:
            log.info("chat created chat=%s", chat.id)
            self.hub.join_users(chat.id, chat.participants)
        return self.resolver.summarize(chat, user.id, other=receiver), created

    async def mark_read(self, user: User, chat_id: str, origin: Optional[Session] = None) -> int:
        """Mark everything addressed to ``user`` in a chat as read.

        The read acknowledgement is relayed to the rest of the room only when
        the reader has read receipts enabled.
        """
        if not chat_id:
            raise ValidationError("chatId is required")
        chat = self.ledger.get_for_participant(chat_id, user.id)
        count = self.messages.mark_all_read(chat.id, user.id)
        if count and user.settings.read_receipts:
            await self.hub.emit_to_room(
                chat.id,
                EVENT_MESSAGES_READ,
                {"chatId": chat.id, "readerId": user.id, "count": count},
                exclude=origin,
            )
        return count

    # ---------- socket-originated operations ----------

    async def mark_delivered(self, session: Session, message_id: str, chat_id: str) -> bool:
        """Delivery ack from the receiving side of a message"""
        if not session.authenticated or not message_id:
            return False
        message = self.messages.get(message_id)
        if chat_id and chat_id != message.chat_id:
            raise ValidationError("Message does not belong to this chat")
        if message.receiver != session.user_id:
            raise Forbidden("Only the receiver can acknowledge delivery")
        changed = self.messages.advance_status(message.id, MessageStatus.DELIVERED.value)
        if changed:
            await self.hub.emit_to_room(
                message.chat_id,
                EVENT_MESSAGE_DELIVERED,
                {
                    "messageId": message.id,
                    "chatId": message.chat_id,
                    "status": MessageStatus.DELIVERED.value,
                },
                exclude=session,
            )
        return changed

    async def typing(self, session: Session, chat_id: str, active: bool) -> int:
        if not chat_id:
            return 0
        event = EVENT_USER_TYPING if active else EVENT_USER_TYPING_STOP
        return await self.hub.emit_to_room(
            chat_id, event, {"chatId": chat_id, "userId": session.user_id}, exclude=session
        )
