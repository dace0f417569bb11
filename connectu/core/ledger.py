"""
Chat Ledger

One chat per unordered pair of users. The pair is normalized into a
``pair_key`` that the store keeps UNIQUE, and creation is "insert, and on
conflict re-fetch", so concurrent first messages between the same two users
always land in the same chat.
"""

import sqlite3
from typing import List, Optional, Tuple

from connectu.core.errors import Forbidden, InvalidOperation, NotFound
from connectu.core.storage import Database
from connectu.models.chat import Chat, ClearMark, LastMessage


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key for a pair of user ids"""
    first, second = sorted((user_a, user_b))
    return f"{first}:{second}"


class ChatLedger:
    """Chat records and their per-user clear watermarks"""

    def __init__(self, db: Database):
        self.db = db

    def _load(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Chat:
        clears = conn.execute(
            "SELECT user_id, cleared_at FROM chat_clears WHERE chat_id = ?",
            (row["id"],),
        ).fetchall()
        last = None
        if row["last_time"] is not None:
            last = LastMessage(
                text=row["last_text"] or "",
                sender=row["last_sender"],
                time=row["last_time"],
            )
        return Chat(
            id=row["id"],
            participants=[row["user_a"], row["user_b"]],
            pair_key=row["pair_key"],
            last_message=last,
            cleared_by=[ClearMark(user_id=c["user_id"], cleared_at=c["cleared_at"]) for c in clears],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def find(self, chat_id: str) -> Optional[Chat]:
        conn = self.db._get_connection()
        try:
            row = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
            return self._load(conn, row) if row else None
        finally:
            conn.close()

    def get(self, chat_id: str) -> Chat:
        chat = self.find(chat_id)
        if chat is None:
            raise NotFound("Chat not found")
        return chat

    def get_for_participant(self, chat_id: str, user_id: str) -> Chat:
        """Fetch a chat, refusing users outside it"""
        chat = self.get(chat_id)
        if not chat.has_participant(user_id):
            raise Forbidden("Access denied")
        return chat

    def find_or_create(self, user_a: str, user_b: str) -> Tuple[Chat, bool]:
        """Return the chat between two users, creating it if needed.

        Args:
            user_a: One participant
            user_b: The other participant

        Returns:
            Tuple of (chat, created) where created is True only for the
            caller whose insert won

        Raises:
            InvalidOperation: If both ids are the same user
        """
        if user_a == user_b:
            raise InvalidOperation("You cannot message yourself")

        key = pair_key(user_a, user_b)
        first, second = sorted((user_a, user_b))
        now = self.db.now()
        conn = self.db._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO chats (id, pair_key, user_a, user_b, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(pair_key) DO NOTHING
            """,
                (self.db.new_id(), key, first, second, now, now),
            )
            conn.commit()
            created = cursor.rowcount == 1
            row = conn.execute("SELECT * FROM chats WHERE pair_key = ?", (key,)).fetchone()
            return self._load(conn, row), created
        finally:
            conn.close()

    def chat_ids_for_user(self, user_id: str) -> List[str]:
        conn = self.db._get_connection()
        try:
            rows = conn.execute(
                "SELECT id FROM chats WHERE user_a = ? OR user_b = ?", (user_id, user_id)
            ).fetchall()
            return [r["id"] for r in rows]
        finally:
            conn.close()

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Chat]:
        """Chats of a user, most recently active first"""
        sql = "SELECT * FROM chats WHERE user_a = ? OR user_b = ? ORDER BY updated_at DESC, rowid DESC"
        params: list = [user_id, user_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        conn = self.db._get_connection()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [self._load(conn, row) for row in rows]
        finally:
            conn.close()

    def set_clear_watermark(self, chat_id: str, user_id: str) -> float:
        """Replace the user's clear horizon with now; never moves it back.

        Returns:
            The watermark now in effect
        """
        now = self.db.now()
        conn = self.db._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO chat_clears (chat_id, user_id, cleared_at) VALUES (?, ?, ?)
                ON CONFLICT(chat_id, user_id)
                DO UPDATE SET cleared_at = MAX(cleared_at, excluded.cleared_at)
            """,
                (chat_id, user_id, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT cleared_at FROM chat_clears WHERE chat_id = ? AND user_id = ?",
                (chat_id, user_id),
            ).fetchone()
            return row["cleared_at"]
        finally:
            conn.close()

    def touch_last_message(
        self, chat_id: str, snapshot: Optional[LastMessage], bump_activity: bool = True
    ) -> None:
        """Refresh the advisory last-message cache.

        ``bump_activity`` also moves the chat's updated_at to now, which is
        what orders the chat list; edits and deletions leave it alone.
        """
        text = snapshot.text if snapshot else None
        sender = snapshot.sender if snapshot else None
        when = snapshot.time if snapshot else None
        conn = self.db._get_connection()
        try:
            if bump_activity:
                conn.execute(
                    """
                    UPDATE chats SET last_text = ?, last_sender = ?, last_time = ?,
                        updated_at = MAX(updated_at, ?)
                    WHERE id = ?
                """,
                    (text, sender, when, self.db.now(), chat_id),
                )
            else:
                conn.execute(
                    "UPDATE chats SET last_text = ?, last_sender = ?, last_time = ? WHERE id = ?",
                    (text, sender, when, chat_id),
                )
            conn.commit()
        finally:
            conn.close()
