"""
Durable local storage for chat messages.

Uses PBKDF2 key derivation and SQLite for storage. Message content is
encrypted at rest with AES-GCM; every other column stays queryable.

The public methods are coroutines: the SQLite work runs in a worker thread
so callers on the event loop are never blocked. Errors are not caught here,
they surface to whoever awaits the operation.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import logging
import os
import sqlite3

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from chat_directory.models.chat import ChatMessage

logger = logging.getLogger(__name__)

# columns that accept equality filters
QUERYABLE_FIELDS = (
    "gid",
    "id",
    "cgid",
    "user",
    "content_type",
    "type",
    "date",
    "unread",
    "send",
)

_COLUMNS = "gid, id, cgid, user, content, content_type, type, date, unread, send"


class MessageStore:
    PBKDF2_ITERATIONS = 100000
    KEY_LENGTH = 32
    NONCE_LENGTH = 12
    TAG_LENGTH = 16

    def __init__(self, storage_path: str, secret: str):
        self.storage_path = Path(storage_path)
        self.db_path = self.storage_path / "chat_messages.db"
        self._key = self._derive_key(secret)
        self._ensure_storage_exists()

    def _derive_key(self, secret: str) -> bytes:
        salt_path = self.storage_path / ".salt"
        if salt_path.exists():
            salt = salt_path.read_bytes()
        else:
            salt = os.urandom(16)
            self.storage_path.mkdir(parents=True, exist_ok=True)
            salt_path.write_bytes(salt)
        return PBKDF2(
            secret,
            salt,
            dkLen=self.KEY_LENGTH,
            count=self.PBKDF2_ITERATIONS,
            hmac_hash_module=SHA256,
        )

    def _ensure_storage_exists(self):
        self.storage_path.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chat_messages (
                    gid TEXT PRIMARY KEY,
                    id INTEGER,
                    cgid TEXT NOT NULL,
                    user TEXT,
                    content BLOB,
                    content_type TEXT DEFAULT 'text',
                    type TEXT DEFAULT 'normal',
                    date INTEGER NOT NULL,
                    unread INTEGER DEFAULT 0,
                    send INTEGER DEFAULT 0
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chat_messages_cgid ON chat_messages(cgid)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chat_messages_date ON chat_messages(date)
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _encrypt(self, text: str) -> bytes:
        nonce = os.urandom(self.NONCE_LENGTH)
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce)
        ciphertext, tag = cipher.encrypt_and_digest(text.encode("utf-8"))
        return nonce + tag + ciphertext

    def _decrypt(self, blob: Optional[bytes]) -> str:
        if not blob:
            return ""
        nonce = blob[: self.NONCE_LENGTH]
        tag = blob[self.NONCE_LENGTH : self.NONCE_LENGTH + self.TAG_LENGTH]
        ciphertext = blob[self.NONCE_LENGTH + self.TAG_LENGTH :]
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce)
        return cipher.decrypt_and_verify(ciphertext, tag).decode("utf-8")

    @staticmethod
    def _to_column(value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, int) or value is None:
            return value
        return str(value)

    def _row_to_message(self, row: tuple) -> ChatMessage:
        user = row[3]
        if isinstance(user, str) and user.lstrip("-").isdigit():
            user = int(user)
        return ChatMessage(
            gid=row[0],
            id=row[1],
            cgid=row[2],
            user=user,
            content=self._decrypt(row[4]),
            content_type=row[5],
            type=row[6],
            date=row[7],
            unread=bool(row[8]),
            send=bool(row[9]),
        )

    def bulk_put_sync(self, messages: Iterable[ChatMessage]) -> int:
        """Insert or replace messages by gid; returns the number written"""
        rows = [
            (
                m.gid,
                m.id,
                m.cgid,
                None if m.user is None else str(m.user),
                self._encrypt(m.content or ""),
                m.content_type,
                m.type,
                m.date,
                1 if m.unread else 0,
                1 if m.send else 0,
            )
            for m in messages
        ]
        if not rows:
            return 0
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.executemany(
                f"""
                INSERT OR REPLACE INTO chat_messages ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                rows,
            )
            conn.commit()
            return len(rows)
        finally:
            conn.close()

    def query_sync(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        newest: bool = False,
    ) -> List[ChatMessage]:
        """Equality query ordered by date ascending.

        With ``newest`` a limited query keeps the most recent rows instead of
        the oldest ones; the page is still returned oldest first.

        Raises:
            ValueError: a filter names a column that cannot be queried
        """
        filters = filters or {}
        unknown = [k for k in filters if k not in QUERYABLE_FIELDS]
        if unknown:
            raise ValueError(f"Cannot query chat messages by: {', '.join(unknown)}")

        clauses = []
        params: List[Any] = []
        for key, value in filters.items():
            if value is None:
                clauses.append(f"{key} IS NULL")
            else:
                clauses.append(f"{key} = ?")
                params.append(self._to_column(value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "DESC" if newest else "ASC"
        sql = f"SELECT {_COLUMNS} FROM chat_messages {where} ORDER BY date {order}, rowid {order}"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        finally:
            conn.close()
        if newest:
            rows.reverse()
        return [self._row_to_message(row) for row in rows]

    def delete_sync(self, gid: str) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM chat_messages WHERE gid = ?", (gid,))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    async def bulk_put(self, messages: Iterable[ChatMessage]) -> int:
        messages = list(messages)
        count = await asyncio.to_thread(self.bulk_put_sync, messages)
        logger.debug("stored %d chat message(s)", count)
        return count

    async def query(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        newest: bool = False,
    ) -> List[ChatMessage]:
        return await asyncio.to_thread(self.query_sync, filters, limit, newest)

    async def delete(self, gid: str) -> int:
        return await asyncio.to_thread(self.delete_sync, gid)
