"""
Presence & Realtime Fan-out

Tracks live websocket sessions, the chat rooms they joined and which users
are online. Rooms are keyed by chat id; a session authenticated as a user
joins the rooms of all that user's chats when it connects.

Session lifecycle:
    Connected (identity attached or anonymous) -> Disconnected

Presence is process-local: it is derived from live sessions and only the
online flag and lastSeen timestamp are written back to the store.

Delivery is best effort. A session whose socket fails is logged and skipped;
the store write that caused the event is never undone.

This hub is meant for a single event loop and is not thread-safe.
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from connectu.core.ledger import ChatLedger
from connectu.core.logger import get_logger
from connectu.core.storage import Database
from connectu.models.chat import iso


log = get_logger("connectu.realtime")


# Server -> client event names
EVENT_RECEIVE_MESSAGE = "receive-message"
EVENT_MESSAGE_UPDATED = "message-updated"
EVENT_MESSAGE_DELETED_FOR_EVERYONE = "message-deleted-for-everyone"
EVENT_USER_STATUS = "user-status"
EVENT_USER_TYPING = "user-typing"
EVENT_USER_TYPING_STOP = "user-typing-stop"
EVENT_MESSAGE_DELIVERED = "message_delivered"
EVENT_MESSAGES_READ = "messages_read"


class Session:
    """One live socket connection"""

    def __init__(self, websocket, user_id: Optional[str] = None):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.rooms: Set[str] = set()

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})


class RealtimeHub:
    """Sessions, rooms and presence for the whole process"""

    def __init__(self, db: Database, ledger: ChatLedger):
        self.db = db
        self.ledger = ledger
        self.sessions: Dict[str, Session] = {}
        self.rooms: Dict[str, Set[str]] = {}

    # ---------- lifecycle ----------

    async def connect(self, session: Session) -> None:
        """Register a session; authenticated ones join their chats and go online"""
        self.sessions[session.id] = session
        log.info("socket connected session=%s user=%s", session.id, session.user_id)
        if not session.authenticated:
            return

        for chat_id in self.ledger.chat_ids_for_user(session.user_id):
            self.join(session, chat_id)

        self.db.set_presence(session.user_id, True)
        await self.broadcast(
            EVENT_USER_STATUS, {"userId": session.user_id, "isOnline": True}
        )

    async def disconnect(self, session: Session) -> None:
        """Drop a session; the user goes offline when their last session ends"""
        if self.sessions.pop(session.id, None) is None:
            return
        for chat_id in list(session.rooms):
            self.leave(session, chat_id)
        log.info("socket disconnected session=%s user=%s", session.id, session.user_id)

        if not session.authenticated or self.sessions_for_user(session.user_id):
            return

        last_seen = self.db.now()
        self.db.set_presence(session.user_id, False, last_seen=last_seen)
        await self.broadcast(
            EVENT_USER_STATUS,
            {"userId": session.user_id, "isOnline": False, "lastSeen": iso(last_seen)},
        )

    # ---------- rooms ----------

    def join(self, session: Session, chat_id: str) -> bool:
        """Add a session to a room. Returns False if it was already there."""
        if not chat_id:
            return False
        members = self.rooms.setdefault(chat_id, set())
        if session.id in members:
            return False
        members.add(session.id)
        session.rooms.add(chat_id)
        return True

    def leave(self, session: Session, chat_id: str) -> None:
        members = self.rooms.get(chat_id)
        if members is not None:
            members.discard(session.id)
            if not members:
                self.rooms.pop(chat_id, None)
        session.rooms.discard(chat_id)

    def join_users(self, chat_id: str, user_ids: Iterable[str]) -> None:
        """Subscribe every live session of the given users to a room"""
        for user_id in user_ids:
            for session in self.sessions_for_user(user_id):
                self.join(session, chat_id)

    def room_sessions(self, chat_id: str) -> List[Session]:
        return [
            self.sessions[sid]
            for sid in sorted(self.rooms.get(chat_id, ()))
            if sid in self.sessions
        ]

    def sessions_for_user(self, user_id: str) -> List[Session]:
        return [s for s in self.sessions.values() if s.user_id == user_id]

    # ---------- delivery ----------

    async def _deliver(self, session: Session, event: str, data: Any) -> bool:
        try:
            await session.send(event, data)
            return True
        except Exception as e:
            log.warning("realtime delivery failed session=%s event=%s error=%s", session.id, event, e)
            return False

    async def emit_to_room(
        self, chat_id: str, event: str, data: Any, exclude: Optional[Session] = None
    ) -> int:
        """Send an event to every session in a room.

        Args:
            chat_id: Room to address
            event: Event name
            data: JSON-serializable payload
            exclude: Origin session to skip (relayed events)

        Returns:
            Number of sessions that received the event
        """
        delivered = 0
        for session in self.room_sessions(chat_id):
            if exclude is not None and session.id == exclude.id:
                continue
            if await self._deliver(session, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, data: Any, exclude: Optional[Session] = None) -> int:
        """Send an event to every connected session"""
        delivered = 0
        for session in list(self.sessions.values()):
            if exclude is not None and session.id == exclude.id:
                continue
            if await self._deliver(session, event, data):
                delivered += 1
        return delivered
