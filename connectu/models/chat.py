"""
Chat domain models

Users, saved contacts, one-to-one chats and their messages, plus the
chat-list summary shape returned to clients.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Set


TOMBSTONE_TEXT = "This message was deleted"


class MessageType(str, Enum):
    """Kinds of message content"""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class MessageStatus(str, Enum):
    """Delivery status, ordered sent < delivered < read"""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


STATUS_RANK = {"sent": 0, "delivered": 1, "read": 2}


def iso(ts: Optional[float]) -> Optional[str]:
    """Render an epoch timestamp as ISO 8601 (UTC), None stays None"""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class UserSettings:
    read_receipts: bool = True


@dataclass
class User:
    """Account identified by phone number"""

    id: str
    phone: str
    name: str
    profile_pic: str = ""
    about: str = "Hey there!"
    is_online: bool = False
    last_seen: Optional[float] = None
    status: str = "active"  # active | inactive | banned
    settings: UserSettings = field(default_factory=UserSettings)
    created_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "phone": self.phone,
            "name": self.name,
            "profilePic": self.profile_pic,
            "about": self.about,
            "isOnline": self.is_online,
            "lastSeen": iso(self.last_seen),
            "status": self.status,
            "settings": {"readReceipts": self.settings.read_receipts},
            "createdAt": iso(self.created_at),
        }


@dataclass
class Contact:
    """Display-name override an owner keeps for a phone number"""

    owner_id: str
    phone: str
    name: str

    def to_dict(self) -> dict:
        return {"phone": self.phone, "name": self.name}


@dataclass
class LastMessage:
    """Denormalized snapshot of a chat's latest message (advisory only)"""

    text: str
    sender: Optional[str]
    time: float


@dataclass
class ClearMark:
    """Per-user clear horizon of a chat"""

    user_id: str
    cleared_at: float


@dataclass
class Chat:
    """One-to-one conversation between an unordered pair of users"""

    id: str
    participants: List[str]
    pair_key: str
    last_message: Optional[LastMessage] = None
    cleared_by: List[ClearMark] = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str:
        for p in self.participants:
            if p != user_id:
                return p
        raise ValueError(f"{user_id} is not a participant of chat {self.id}")

    def watermark_for(self, user_id: str) -> Optional[float]:
        for mark in self.cleared_by:
            if mark.user_id == user_id:
                return mark.cleared_at
        return None


@dataclass
class Message:
    """A single message of a chat"""

    id: str
    chat_id: str
    sender: str
    receiver: str
    content: str
    type: str = MessageType.TEXT.value
    status: str = MessageStatus.SENT.value
    is_edited: bool = False
    edited_at: Optional[float] = None
    is_deleted_for_everyone: bool = False
    deleted_for: Set[str] = field(default_factory=set)
    created_at: float = 0.0
    delivered_at: Optional[float] = None
    read_at: Optional[float] = None

    def to_dict(self) -> dict:
        # deleted_for stays server-side
        return {
            "_id": self.id,
            "chatId": self.chat_id,
            "sender": self.sender,
            "receiver": self.receiver,
            "type": self.type,
            "content": self.content,
            "status": self.status,
            "isEdited": self.is_edited,
            "editedAt": iso(self.edited_at),
            "isDeletedForEveryone": self.is_deleted_for_everyone,
            "createdAt": iso(self.created_at),
            "timestamps": {
                "sentAt": iso(self.created_at),
                "deliveredAt": iso(self.delivered_at),
                "readAt": iso(self.read_at),
            },
        }


@dataclass
class ChatSummary:
    """Chat-list entry as seen by one user"""

    chat_id: str
    other: User
    display_name: str
    last_message: Optional[str] = None
    last_message_time: Optional[float] = None
    unread_count: int = 0
    updated_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "chatId": self.chat_id,
            "user": {
                "_id": self.other.id,
                "phone": self.other.phone,
                "name": self.display_name,
                "profilePic": self.other.profile_pic,
                "isOnline": self.other.is_online,
                "lastSeen": iso(self.other.last_seen),
            },
            "lastMessage": self.last_message,
            "lastMessageTime": iso(self.last_message_time),
            "unreadCount": self.unread_count,
            "updatedAt": iso(self.updated_at),
        }
