"""
Bridge message store (SQLite).

Persists every relayed message exactly once. The primary key is the entity id,
so a repeat insert is ignored rather than overwriting the first record; the
in-memory dedup trackers only short-circuit work, this table decides.

Schema:
- genericCot:   id PK, uid, type, timeIso, origin, cotRawXml, compressedBytes
- chatMessages: id PK, senderUid, senderCallsign, receiverUid, receiverCallsign,
                message, timestamp, messageType, origin, direction, cotRawXml

Property of Uncompromising Sensors LLC.
"""

import sqlite3
import threading
from pathlib import Path
from typing import List, Optional

from cotkit.logging import getLogger

from .entities import ChatMessage, MessageEntity


class DatabaseError(Exception):
    """Database operation error"""
    pass


_GENERIC_COLUMNS = "id, uid, type, timeIso, origin, cotRawXml, compressedBytes"
_CHAT_COLUMNS = ("id, senderUid, senderCallsign, receiverUid, receiverCallsign, message, "
                 "timestamp, messageType, origin, direction, cotRawXml")


class Database:
    """
    SQLite store with one serialized write connection and one read connection.

    Args:
        dbPath: Path to SQLite database file (parent directories are created)
    """

    def __init__(self, dbPath: str):
        self.log = getLogger()
        self.dbPath = Path(dbPath)
        self.dbPath.parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None
        self._readConn: Optional[sqlite3.Connection] = None
        self._writeLock = threading.Lock()
        self._readLock = threading.Lock()
        try:
            self._connect()
            self._initSchema()
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open database {self.dbPath}: {e}") from e

    def _connect(self):
        self.conn = sqlite3.connect(
            str(self.dbPath),
            check_same_thread=False,
            isolation_level='DEFERRED',
            timeout=30.0
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA temp_store=MEMORY")
        self.conn.commit()

    def _getReadConnection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise DatabaseError("Database is closed")
        if self._readConn is None:
            self._readConn = sqlite3.connect(
                str(self.dbPath),
                check_same_thread=False,
                timeout=30.0
            )
            self._readConn.row_factory = sqlite3.Row
            self._readConn.execute("PRAGMA query_only=ON")
        return self._readConn

    def _initSchema(self):
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS genericCot (
                    id TEXT PRIMARY KEY NOT NULL,
                    uid TEXT,
                    type TEXT,
                    timeIso TEXT,
                    origin TEXT,
                    cotRawXml TEXT,
                    compressedBytes BLOB
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_genericCot_uid ON genericCot(uid, timeIso)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chatMessages (
                    id TEXT PRIMARY KEY NOT NULL,
                    senderUid TEXT,
                    senderCallsign TEXT,
                    receiverUid TEXT,
                    receiverCallsign TEXT,
                    message TEXT,
                    timestamp TEXT,
                    messageType TEXT,
                    origin TEXT,
                    direction TEXT,
                    cotRawXml TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_chat_peers "
                           "ON chatMessages(senderUid, receiverUid, timestamp)")
            self.conn.commit()
        finally:
            cursor.close()

    # ===== Writes =====
    def insertGeneric(self, entity: MessageEntity) -> bool:
        """
        Insert a generic CoT entity; an existing id is left untouched.

        Returns:
            True if inserted, False if the id was already stored

        Raises:
            DatabaseError: On database errors (not duplicates)
        """
        compressed = bytes(entity.compressedBytes) if entity.compressedBytes is not None else None
        return self._insertIgnore(
            f"INSERT OR IGNORE INTO genericCot ({_GENERIC_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (entity.id, entity.uid, entity.type, entity.timeIso, entity.origin, entity.rawText, compressed),
            entity.id
        )

    def insertChat(self, chat: ChatMessage) -> bool:
        """Same contract as insertGeneric, for chat messages"""
        return self._insertIgnore(
            f"INSERT OR IGNORE INTO chatMessages ({_CHAT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (chat.id, chat.senderUid, chat.senderCallsign, chat.receiverUid, chat.receiverCallsign,
             chat.message, chat.timestamp, chat.messageType, chat.origin, chat.direction, chat.cotRawXml),
            chat.id
        )

    def _insertIgnore(self, sql: str, params: tuple, rowId: str) -> bool:
        with self._writeLock:
            if self.conn is None:
                raise DatabaseError("Database is closed")
            cursor = self.conn.cursor()
            try:
                cursor.execute(sql, params)
                inserted = cursor.rowcount == 1
                self.conn.commit()
                return inserted
            except sqlite3.Error as e:
                self.conn.rollback()
                self.log.error(f'[Database] Insert failed: {e}', rowId=rowId)
                raise DatabaseError(f"Insert failed: {e}") from e
            finally:
                cursor.close()

    def deleteAll(self) -> None:
        with self._writeLock:
            if self.conn is None:
                raise DatabaseError("Database is closed")
            try:
                self.conn.execute("DELETE FROM genericCot")
                self.conn.execute("DELETE FROM chatMessages")
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise DatabaseError(f"Delete failed: {e}") from e

    # ===== Generic queries =====
    def existsGeneric(self, entityId: str) -> bool:
        return bool(self._query("SELECT 1 FROM genericCot WHERE id = ? LIMIT 1", (entityId,)))

    def getGenericById(self, entityId: str) -> Optional[MessageEntity]:
        rows = self._query(f"SELECT {_GENERIC_COLUMNS} FROM genericCot WHERE id = ?", (entityId,))
        return self._rowToEntity(rows[0]) if rows else None

    def getGenericByUid(self, uid: str) -> List[MessageEntity]:
        """All entities for one originating uid, oldest first"""
        rows = self._query(f"SELECT {_GENERIC_COLUMNS} FROM genericCot WHERE uid = ? ORDER BY timeIso ASC",
                           (uid,))
        return [self._rowToEntity(row) for row in rows]

    def latestGeneric(self) -> Optional[MessageEntity]:
        rows = self._query(f"SELECT {_GENERIC_COLUMNS} FROM genericCot ORDER BY timeIso DESC, rowid DESC LIMIT 1")
        return self._rowToEntity(rows[0]) if rows else None

    # ===== Chat queries =====
    def existsChat(self, chatId: str) -> bool:
        return bool(self._query("SELECT 1 FROM chatMessages WHERE id = ? LIMIT 1", (chatId,)))

    def getChatById(self, chatId: str) -> Optional[ChatMessage]:
        rows = self._query(f"SELECT {_CHAT_COLUMNS} FROM chatMessages WHERE id = ?", (chatId,))
        return self._rowToChat(rows[0]) if rows else None

    def getConversation(self, peerUid: str) -> List[ChatMessage]:
        """Messages sent to or received from peerUid, oldest first"""
        rows = self._query(
            f"SELECT {_CHAT_COLUMNS} FROM chatMessages WHERE senderUid = ? OR receiverUid = ? "
            "ORDER BY timestamp ASC, rowid ASC",
            (peerUid, peerUid)
        )
        return [self._rowToChat(row) for row in rows]

    def latestChat(self) -> Optional[ChatMessage]:
        rows = self._query(f"SELECT {_CHAT_COLUMNS} FROM chatMessages ORDER BY timestamp DESC, rowid DESC LIMIT 1")
        return self._rowToChat(rows[0]) if rows else None

    def _query(self, sql: str, params: tuple = ()) -> list:
        with self._readLock:
            try:
                cursor = self._getReadConnection().execute(sql, params)
                try:
                    return cursor.fetchall()
                finally:
                    cursor.close()
            except sqlite3.Error as e:
                raise DatabaseError(f"Query failed: {e}") from e

    @staticmethod
    def _rowToEntity(row: sqlite3.Row) -> MessageEntity:
        compressed = row['compressedBytes']
        return MessageEntity(
            id=row['id'],
            uid=row['uid'],
            type=row['type'],
            timeIso=row['timeIso'],
            origin=row['origin'],
            rawText=row['cotRawXml'],
            compressedBytes=bytes(compressed) if compressed is not None else None
        )

    @staticmethod
    def _rowToChat(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(**{key: row[key] for key in row.keys()})

    # ===== Lifecycle =====
    def close(self):
        """Close both connections; safe to call twice"""
        if self._readConn:
            with self._readLock:
                try:
                    self._readConn.close()
                except sqlite3.Error as e:
                    self.log.debug(f'[Database] Read connection close failed: {e}')
                self._readConn = None

        if self.conn:
            with self._writeLock:
                try:
                    self.conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                except sqlite3.Error as e:
                    self.log.debug(f'[Database] Final checkpoint failed: {e}')
                self.conn.close()
                self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
