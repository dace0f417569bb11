"""
Message Store

Append-only log of chat messages. Every mutation is a single conditional
statement so concurrent callers never lose each other's updates:

- status only moves forward (sent -> delivered -> read)
- deleted-for-me is a per-user set, grown with INSERT OR IGNORE
- deleted-for-everyone replaces the content with a tombstone, permanently
- editing never touches created_at, so ordering stays stable

Visibility for a viewer U with clear watermark W:
    not deleted for everyone
    AND U has not deleted it for themselves
    AND (W is None OR created_at > W)
"""

import sqlite3
from typing import List, Optional, Tuple

from connectu.core.errors import Forbidden, InvalidOperation, NotFound, ValidationError
from connectu.core.storage import Database
from connectu.models.chat import (
    STATUS_RANK,
    TOMBSTONE_TEXT,
    Message,
    MessageStatus,
    MessageType,
)


# current status as an integer, for forward-only comparisons in SQL
_STATUS_RANK_SQL = "(CASE status WHEN 'sent' THEN 0 WHEN 'delivered' THEN 1 ELSE 2 END)"

_COLUMNS = """
    m.id, m.chat_id, m.sender, m.receiver, m.type, m.content, m.status,
    m.is_edited, m.edited_at, m.is_deleted_for_everyone, m.created_at,
    m.delivered_at, m.read_at
"""


class MessageStore:
    """Message log on top of the shared Database"""

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_message(row: sqlite3.Row, deleted_for=None) -> Message:
        return Message(
            id=row["id"],
            chat_id=row["chat_id"],
            sender=row["sender"],
            receiver=row["receiver"],
            type=row["type"],
            content=row["content"],
            status=row["status"],
            is_edited=bool(row["is_edited"]),
            edited_at=row["edited_at"],
            is_deleted_for_everyone=bool(row["is_deleted_for_everyone"]),
            deleted_for=set(deleted_for or ()),
            created_at=row["created_at"],
            delivered_at=row["delivered_at"],
            read_at=row["read_at"],
        )

    @staticmethod
    def _visibility_clause(
        viewer: Optional[str], watermark: Optional[float], include_tombstones: bool = False
    ) -> Tuple[str, list]:
        """Build the WHERE fragment implementing the visibility rule"""
        clauses = []
        params = []
        if not include_tombstones:
            clauses.append("m.is_deleted_for_everyone = 0")
        if viewer is not None:
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM message_deletions d "
                "WHERE d.message_id = m.id AND d.user_id = ?)"
            )
            params.append(viewer)
        if watermark is not None:
            clauses.append("m.created_at > ?")
            params.append(watermark)
        if not clauses:
            return "", params
        return " AND " + " AND ".join(clauses), params

    # ---------- reads ----------

    def find(self, message_id: str) -> Optional[Message]:
        conn = self.db._get_connection()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM messages m WHERE m.id = ?", (message_id,)
            ).fetchone()
            if row is None:
                return None
            deleted_for = [
                r["user_id"]
                for r in conn.execute(
                    "SELECT user_id FROM message_deletions WHERE message_id = ?",
                    (message_id,),
                ).fetchall()
            ]
            return self._row_to_message(row, deleted_for)
        finally:
            conn.close()

    def get(self, message_id: str) -> Message:
        message = self.find(message_id)
        if message is None:
            raise NotFound("Message not found")
        return message

    def visible_messages(
        self,
        chat_id: str,
        viewer: Optional[str],
        watermark: Optional[float],
        include_tombstones: bool = False,
    ) -> List[Message]:
        """Messages of a chat visible to ``viewer``, ascending by created_at.

        Args:
            chat_id: The chat to read
            viewer: Requesting user id (None skips per-user deletions)
            watermark: Viewer's clear horizon (None if never cleared)
            include_tombstones: Keep deleted-for-everyone messages, whose
                content is already the tombstone text

        Returns:
            List of Message objects ordered by (created_at, insertion order)
        """
        where, params = self._visibility_clause(viewer, watermark, include_tombstones)
        conn = self.db._get_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM messages m
                WHERE m.chat_id = ?{where}
                ORDER BY m.created_at ASC, m.rowid ASC
                """,
                (chat_id, *params),
            ).fetchall()
            return [self._row_to_message(row) for row in rows]
        finally:
            conn.close()

    def last_visible(
        self, chat_id: str, viewer: Optional[str] = None, watermark: Optional[float] = None
    ) -> Optional[Message]:
        """Most recent message of a chat visible to ``viewer``"""
        where, params = self._visibility_clause(viewer, watermark)
        conn = self.db._get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM messages m
                WHERE m.chat_id = ?{where}
                ORDER BY m.created_at DESC, m.rowid DESC
                LIMIT 1
                """,
                (chat_id, *params),
            ).fetchone()
            return self._row_to_message(row) if row else None
        finally:
            conn.close()

    def count_unread(self, chat_id: str, viewer: str, watermark: Optional[float] = None) -> int:
        """Visible messages addressed to ``viewer`` that are not read yet"""
        where, params = self._visibility_clause(viewer, watermark)
        conn = self.db._get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT COUNT(*) AS n FROM messages m
                WHERE m.chat_id = ? AND m.receiver = ? AND m.status != 'read'{where}
                """,
                (chat_id, viewer, *params),
            ).fetchone()
            return int(row["n"])
        finally:
            conn.close()

    # ---------- writes ----------

    def append(
        self,
        chat_id: str,
        sender: str,
        receiver: str,
        content: str,
        msg_type: str = MessageType.TEXT.value,
    ) -> Message:
        """Create a message with status=sent and created_at=now"""
        try:
            msg_type = MessageType(msg_type).value
        except ValueError:
            raise ValidationError(f"Unsupported message type: {msg_type}")

        message_id = self.db.new_id()
        now = self.db.now()
        conn = self.db._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO messages (id, chat_id, sender, receiver, type, content, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'sent', ?)
            """,
                (message_id, chat_id, sender, receiver, msg_type, content, now),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get(message_id)

    def edit(self, message_id: str, requester: str, new_content: str) -> Message:
        message = self.get(message_id)
        if message.sender != requester:
            raise Forbidden("You are not allowed to edit this message")
        if message.is_deleted_for_everyone:
            raise InvalidOperation("Deleted messages cannot be edited")

        conn = self.db._get_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE messages SET content = ?, is_edited = 1, edited_at = ?
                WHERE id = ? AND sender = ? AND is_deleted_for_everyone = 0
            """,
                (new_content, self.db.now(), message_id, requester),
            )
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()
        if updated == 0:
            # deleted for everyone between our read and the update
            raise InvalidOperation("Deleted messages cannot be edited")
        return self.get(message_id)

    def delete_for_me(self, message_id: str, requester: str) -> Message:
        """Hide a message from ``requester`` only; repeating is a no-op"""
        self.get(message_id)
        conn = self.db._get_connection()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO message_deletions (message_id, user_id) VALUES (?, ?)",
                (message_id, requester),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get(message_id)

    def delete_for_everyone(self, message_id: str, requester: str) -> Message:
        """Tombstone a message for every viewer; irreversible"""
        message = self.get(message_id)
        if message.sender != requester:
            raise Forbidden("You are not allowed to delete this message for everyone")

        conn = self.db._get_connection()
        try:
            conn.execute(
                """
                UPDATE messages SET is_deleted_for_everyone = 1, content = ?
                WHERE id = ? AND sender = ?
            """,
                (TOMBSTONE_TEXT, message_id, requester),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get(message_id)

    def advance_status(self, message_id: str, new_status: str) -> bool:
        """Move a message's status forward.

        A status lower than or equal to the current one is a no-op.

        Returns:
            True if the status changed, False otherwise

        Raises:
            NotFound: If the message does not exist
            ValidationError: If ``new_status`` is not a known status
        """
        try:
            status = MessageStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown message status: {new_status}")

        now = self.db.now()
        conn = self.db._get_connection()
        try:
            cursor = conn.execute(
                f"""
                UPDATE messages SET
                    status = ?,
                    delivered_at = COALESCE(delivered_at, ?),
                    read_at = CASE WHEN ? = 'read' THEN COALESCE(read_at, ?) ELSE read_at END
                WHERE id = ? AND {_STATUS_RANK_SQL} < ?
            """,
                (status.value, now, status.value, now, message_id, STATUS_RANK[status.value]),
            )
            conn.commit()
            changed = cursor.rowcount > 0
        finally:
            conn.close()
        if not changed:
            self.get(message_id)
        return changed

    def mark_all_read(self, chat_id: str, receiver: str) -> int:
        """Advance every unread message of a chat addressed to ``receiver``.

        Returns:
            Number of messages that became read
        """
        now = self.db.now()
        conn = self.db._get_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE messages SET
                    status = 'read',
                    delivered_at = COALESCE(delivered_at, ?),
                    read_at = COALESCE(read_at, ?)
                WHERE chat_id = ? AND receiver = ? AND status != 'read'
            """,
                (now, now, chat_id, receiver),
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()
