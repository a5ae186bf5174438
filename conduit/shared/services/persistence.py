"""Two-tier conversation metadata loading for task recovery.

The registry asks the primary (SQLite) store first and the secondary
(flat JSON) store second. A failing primary is treated as a miss so
conversations stay reachable while the database is unavailable.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3

from conduit.engine.models import ConversationMetadata
from conduit.shared.services.chat_history import ChatHistoryStore
from conduit.shared.services.conversation_db import ConversationDatabase

logger = logging.getLogger(__name__)


class PersistenceFallbackLoader:
    """Reads conversation metadata from the primary then secondary tier.

    Store calls are blocking file/database I/O and run in a worker
    thread so the event loop keeps serving other conversations.
    """

    def __init__(
        self,
        primary: ConversationDatabase | None = None,
        secondary: ChatHistoryStore | None = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def primary(self) -> ConversationDatabase | None:
        return self._primary

    @property
    def secondary(self) -> ChatHistoryStore | None:
        return self._secondary

    async def load_primary(self, conversation_id: str) -> ConversationMetadata | None:
        if self._primary is None:
            return None
        try:
            return await asyncio.to_thread(
                self._primary.get_conversation, conversation_id
            )
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "Primary store lookup failed for %s: %s", conversation_id, exc
            )
            return None

    async def load_secondary(self, conversation_id: str) -> ConversationMetadata | None:
        if self._secondary is None:
            return None
        try:
            return await asyncio.to_thread(self._secondary.find, conversation_id)
        except OSError as exc:
            logger.warning(
                "Secondary store lookup failed for %s: %s", conversation_id, exc
            )
            return None

    def list_all(self) -> list[tuple[str, ConversationMetadata]]:
        """Every known conversation tagged with its tier, primary winning on id clashes."""
        seen: set[str] = set()
        result: list[tuple[str, ConversationMetadata]] = []
        if self._primary is not None:
            try:
                for meta in self._primary.list_conversations():
                    seen.add(meta.id)
                    result.append(("primary", meta))
            except (sqlite3.Error, OSError) as exc:
                logger.warning("Primary store listing failed: %s", exc)
        if self._secondary is not None:
            for meta in self._secondary.load():
                if meta.id not in seen:
                    seen.add(meta.id)
                    result.append(("secondary", meta))
        return result
