"""Secondary conversation store: one flat JSON list on disk.

Storage layout:
    {data_dir}/chat.history.json  ->  [{"id", "type", "name", "extra", ...}, ...]

Older installs kept every conversation here before the SQLite store
existed, so it remains the fallback recovery tier.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from conduit.engine.errors import PersistenceError
from conduit.engine.models import ConversationMetadata

logger = logging.getLogger(__name__)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON via temp file + fsync + rename so readers never see a torn file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class ChatHistoryStore:
    """Flat-file conversation list (the secondary recovery tier)."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_raw(self) -> list[dict[str, Any]]:
        if not self._path.is_file():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Unreadable chat history %s: %s", self._path, exc)
            return []
        if not isinstance(data, list):
            logger.warning(
                "Chat history %s is not a list (got %s)",
                self._path, type(data).__name__,
            )
            return []
        return [item for item in data if isinstance(item, dict)]

    def load(self) -> list[ConversationMetadata]:
        """All well-formed records; malformed entries are skipped."""
        records: list[ConversationMetadata] = []
        for item in self._read_raw():
            if not item.get("id"):
                logger.debug("Skipping chat history entry without id")
                continue
            records.append(ConversationMetadata.from_dict(item))
        return records

    def find(self, conversation_id: str) -> ConversationMetadata | None:
        for item in self._read_raw():
            if str(item.get("id")) == conversation_id:
                return ConversationMetadata.from_dict(item)
        return None

    def save_all(self, records: list[ConversationMetadata]) -> None:
        try:
            _atomic_write_json(self._path, [r.to_dict() for r in records])
        except (OSError, TypeError) as exc:
            raise PersistenceError(
                f"Cannot write chat history {self._path}: {exc}"
            ) from exc
        logger.debug("Chat history saved to %s (%d records)", self._path, len(records))

    def upsert(self, metadata: ConversationMetadata) -> None:
        records = [r for r in self.load() if r.id != metadata.id]
        records.append(metadata)
        self.save_all(records)

    def remove(self, conversation_id: str) -> bool:
        records = self.load()
        kept = [r for r in records if r.id != conversation_id]
        if len(kept) == len(records):
            return False
        self.save_all(kept)
        return True
