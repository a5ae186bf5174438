"""Primary conversation metadata store backed by SQLite.

Storage layout:
    {data_dir}/conversations.sqlite3, table ``conversations``

Only the metadata needed to rebuild a worker task is stored here;
message content lives elsewhere.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from conduit.engine.errors import PersistenceError
from conduit.engine.models import ConversationMetadata

logger = logging.getLogger(__name__)


def _iso(ts: datetime | None) -> str | None:
    return ts.astimezone(timezone.utc).isoformat() if ts else None


class ConversationDatabase:
    """Structured conversation store (the primary recovery tier)."""

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._schema_ready = False

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # The file is only created on first use.
        if not self._schema_ready:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path)
            try:
                self._ensure_schema(conn)
            finally:
                conn.close()
            self._schema_ready = True
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    name TEXT NOT NULL DEFAULT '',
                    extra_json TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_updated ON conversations(updated_at)"
            )
            conn.commit()

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> ConversationMetadata:
        try:
            extra = json.loads(row["extra_json"] or "{}")
        except json.JSONDecodeError:
            logger.warning(
                "Conversation %s has unreadable extra_json; using {}", row["id"]
            )
            extra = {}
        return ConversationMetadata.from_dict({
            "id": row["id"],
            "type": row["type"],
            "name": row["name"],
            "extra": extra,
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        })

    def get_conversation(self, conversation_id: str) -> ConversationMetadata | None:
        """Return the stored record, or None when absent."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_metadata(row)

    def save_conversation(self, metadata: ConversationMetadata) -> None:
        """Insert or update a conversation record."""
        metadata.updated_at = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO conversations (id, type, name, extra_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        type = excluded.type,
                        name = excluded.name,
                        extra_json = excluded.extra_json,
                        updated_at = excluded.updated_at
                    """,
                    (
                        metadata.id,
                        metadata.type,
                        metadata.name,
                        json.dumps(metadata.extra),
                        _iso(metadata.created_at),
                        _iso(metadata.updated_at),
                    ),
                )
                conn.commit()
        except (sqlite3.Error, TypeError) as exc:
            raise PersistenceError(
                f"Cannot save conversation {metadata.id}: {exc}"
            ) from exc
        logger.debug("Conversation %s saved to %s", metadata.id, self._db_path)

    def delete_conversation(self, conversation_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
            conn.commit()
        return cursor.rowcount > 0

    def list_conversations(self, limit: int | None = None) -> list[ConversationMetadata]:
        """All records, most recently updated first."""
        query = "SELECT * FROM conversations ORDER BY updated_at DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (int(limit),)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_metadata(row) for row in rows]
