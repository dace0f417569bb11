"""
SQLite-backed document store for ConnectU.

Holds the schema for every collection (users, contacts, chats, clear marks,
messages, per-user deletions) and the user/contact records. Message and chat
operations live in ``messages.py`` and ``ledger.py`` on top of this class.

Uniqueness and idempotency are enforced by the schema so callers can use
single-statement conditional writes instead of read-modify-write:
- users.phone is UNIQUE
- contacts (owner_id, phone) is UNIQUE
- chats.pair_key is UNIQUE
- chat_clears and message_deletions are keyed by (entity, user)
"""

import sqlite3
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional

from connectu.core.errors import ContactExists, Conflict, NotFound
from connectu.models.chat import Contact, User, UserSettings


class Database:
    # seconds a writer waits for the sqlite lock
    LOCK_TIMEOUT = 30

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path)
        self.clock = clock
        self._ensure_storage_exists()

    def _ensure_storage_exists(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    phone TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    profile_pic TEXT NOT NULL DEFAULT '',
                    about TEXT NOT NULL DEFAULT 'Hey there!',
                    is_online INTEGER NOT NULL DEFAULT 0,
                    last_seen REAL,
                    status TEXT NOT NULL DEFAULT 'active',
                    read_receipts INTEGER NOT NULL DEFAULT 1,
                    created_at REAL NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    owner_id TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    name TEXT NOT NULL,
                    PRIMARY KEY (owner_id, phone),
                    FOREIGN KEY (owner_id) REFERENCES users(id)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chats (
                    id TEXT PRIMARY KEY,
                    pair_key TEXT NOT NULL UNIQUE,
                    user_a TEXT NOT NULL,
                    user_b TEXT NOT NULL,
                    last_text TEXT,
                    last_sender TEXT,
                    last_time REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chat_clears (
                    chat_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    cleared_at REAL NOT NULL,
                    PRIMARY KEY (chat_id, user_id),
                    FOREIGN KEY (chat_id) REFERENCES chats(id)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    chat_id TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    receiver TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'text',
                    content TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'sent',
                    is_edited INTEGER NOT NULL DEFAULT 0,
                    edited_at REAL,
                    is_deleted_for_everyone INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    delivered_at REAL,
                    read_at REAL,
                    FOREIGN KEY (chat_id) REFERENCES chats(id)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS message_deletions (
                    message_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    PRIMARY KEY (message_id, user_id),
                    FOREIGN KEY (message_id) REFERENCES messages(id)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_chat_time
                ON messages(chat_id, created_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_receiver_status
                ON messages(receiver, status)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chats_updated ON chats(updated_at)
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.LOCK_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def now(self) -> float:
        return self.clock()

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    # ---------- users ----------

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            phone=row["phone"],
            name=row["name"],
            profile_pic=row["profile_pic"],
            about=row["about"],
            is_online=bool(row["is_online"]),
            last_seen=row["last_seen"],
            status=row["status"],
            settings=UserSettings(read_receipts=bool(row["read_receipts"])),
            created_at=row["created_at"],
        )

    def create_user(self, phone: str, name: str) -> User:
        user_id = self.new_id()
        now = self.now()
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO users (id, phone, name, last_seen, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (user_id, phone, name, now, now),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise Conflict(f"User with phone {phone} already exists")
        finally:
            conn.close()
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def get_user_by_phone(self, phone: str) -> Optional[User]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE phone = ?", (phone,)
            ).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def get_users(self, user_ids: List[str]) -> Dict[str, User]:
        if not user_ids:
            return {}
        placeholders = ",".join("?" for _ in user_ids)
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders})", list(user_ids)
            ).fetchall()
            return {row["id"]: self._row_to_user(row) for row in rows}
        finally:
            conn.close()

    def find_users_by_phones(self, phones: List[str]) -> List[User]:
        if not phones:
            return []
        placeholders = ",".join("?" for _ in phones)
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT * FROM users WHERE phone IN ({placeholders}) ORDER BY phone",
                list(phones),
            ).fetchall()
            return [self._row_to_user(row) for row in rows]
        finally:
            conn.close()

    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        profile_pic: Optional[str] = None,
        about: Optional[str] = None,
    ) -> User:
        updates = {}
        if name is not None:
            updates["name"] = name
        if profile_pic is not None:
            updates["profile_pic"] = profile_pic
        if about is not None:
            updates["about"] = about
        if updates:
            self._update_user(user_id, updates)
        return self.require_user(user_id)

    def update_settings(self, user_id: str, read_receipts: bool) -> User:
        self._update_user(user_id, {"read_receipts": 1 if read_receipts else 0})
        return self.require_user(user_id)

    def set_status(self, user_id: str, status: str) -> User:
        self._update_user(user_id, {"status": status})
        return self.require_user(user_id)

    def set_presence(self, user_id: str, is_online: bool, last_seen: Optional[float] = None) -> User:
        updates = {"is_online": 1 if is_online else 0}
        if last_seen is not None:
            updates["last_seen"] = last_seen
        self._update_user(user_id, updates)
        return self.require_user(user_id)

    def _update_user(self, user_id: str, updates: dict) -> None:
        assignments = ", ".join(f"{column} = ?" for column in updates)
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"UPDATE users SET {assignments} WHERE id = ?",
                (*updates.values(), user_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFound("User not found")
        finally:
            conn.close()

    # ---------- contacts ----------

    def list_contacts(self, owner_id: str) -> List[Contact]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT owner_id, phone, name FROM contacts
                WHERE owner_id = ?
                ORDER BY rowid ASC
            """,
                (owner_id,),
            ).fetchall()
            return [Contact(owner_id=r["owner_id"], phone=r["phone"], name=r["name"]) for r in rows]
        finally:
            conn.close()

    def get_contact(self, owner_id: str, phone: str) -> Optional[Contact]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT owner_id, phone, name FROM contacts WHERE owner_id = ? AND phone = ?",
                (owner_id, phone),
            ).fetchone()
            if row:
                return Contact(owner_id=row["owner_id"], phone=row["phone"], name=row["name"])
            return None
        finally:
            conn.close()

    def add_contact(self, owner_id: str, phone: str, name: str) -> Contact:
        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT INTO contacts (owner_id, phone, name) VALUES (?, ?, ?)",
                (owner_id, phone, name),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            existing = self.get_contact(owner_id, phone)
            saved_as = existing.name if existing else phone
            raise ContactExists(f'This contact is already saved as "{saved_as}"')
        finally:
            conn.close()
        return Contact(owner_id=owner_id, phone=phone, name=name)
