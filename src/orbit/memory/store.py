"""Two-tier memory store: in-process session memory plus SQL long-term memory."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from orbit.core.types import MemoryRecord, RequestContext, new_id
from orbit.sm.manager import StateManager

logger = logging.getLogger(__name__)

_CONVERSATIONS_NAMESPACE = "conversations"
_WORD = re.compile(r"[\w:]{3,}", re.UNICODE)
_MAX_TERMS = 8


def query_terms(query: str) -> list[str]:
    """Split free text into distinct lowercase search terms."""
    terms: list[str] = []
    for match in _WORD.findall(query.lower()):
        if match not in terms:
            terms.append(match)
        if len(terms) >= _MAX_TERMS:
            break
    return terms


class SQLMemoryStore:
    """Memory store contract implemented on top of the state manager."""

    def __init__(self, state_manager: StateManager, *, short_term_size: int = 20) -> None:
        self._state_manager = state_manager
        self._short_term_size = short_term_size
        self._short_term: dict[str, list[MemoryRecord]] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        # Touch the database so connection problems surface at start-up.
        self._state_manager.memory_count()
        self._initialized = True
        logger.info("memory_store_initialized")

    async def close(self) -> None:
        for key, records in self._short_term.items():
            self._state_manager.kv_set_json(
                _CONVERSATIONS_NAMESPACE,
                key,
                [
                    {"content": record.content, "metadata": record.metadata}
                    for record in records
                ],
            )
        self._short_term.clear()
        self._initialized = False
        logger.info("memory_store_closed")

    def remember_session(self, context: RequestContext, content: str, metadata: Mapping[str, Any]) -> None:
        """Keep a bounded window of conversation items for the current session."""
        key = f"{context.business_id}:{context.session_id}"
        records = self._short_term.setdefault(key, [])
        records.append(
            MemoryRecord(
                id=new_id("short_term"),
                content=content,
                score=1.0,
                metadata={"type": "short_term", "session": context.session_id, **dict(metadata)},
            )
        )
        del records[: max(0, len(records) - self._short_term_size)]

    async def restore_pending_conversations(self) -> int:
        """Reload conversation windows saved by the previous ``close``."""
        restored = 0
        for key, items in self._state_manager.kv_list_prefix(_CONVERSATIONS_NAMESPACE, ""):
            if not isinstance(items, list):
                continue
            self._short_term[key] = [
                MemoryRecord(
                    id=new_id("short_term"),
                    content=str(item.get("content", "")),
                    score=1.0,
                    metadata=dict(item.get("metadata", {})),
                )
                for item in items[-self._short_term_size :]
                if isinstance(item, dict)
            ]
            restored += 1
        self._state_manager.kv_delete_prefix(_CONVERSATIONS_NAMESPACE, "")
        return restored

    async def recall(
        self,
        query: str,
        context: RequestContext,
        limit: int = 10,
    ) -> list[MemoryRecord]:
        """Recall session memory first, then long-term matches ranked by overlap."""
        memories: list[MemoryRecord] = list(
            self._short_term.get(f"{context.business_id}:{context.session_id}", [])
        )

        terms = query_terms(query)
        if terms:
            rows = self._state_manager.search_memories(terms, limit=limit * 5)
            for row in rows:
                if row["business_id"] not in {"", context.business_id}:
                    continue
                memories.append(self._to_record(row, terms))

        memories.sort(key=lambda record: record.score, reverse=True)
        return memories[:limit]

    async def long_term_store(self, content: str, metadata: dict[str, Any]) -> str:
        memory_id = new_id("memory")
        self._state_manager.remember_memory(
            memory_id=memory_id,
            content=content,
            metadata=metadata,
            business_id=str(metadata.get("business_id", "")),
            kind=str(metadata.get("type", "general")),
            lookup_key=str(metadata.get("key", "")),
        )
        return memory_id

    async def long_term_search(self, key: str, limit: int = 5) -> list[MemoryRecord]:
        """Exact key matches first, then free-text matches."""
        results: list[MemoryRecord] = []
        exact = self._state_manager.find_memory_by_key(key)
        if exact is not None:
            results.append(self._to_record(exact, [], score=1.0))

        terms = query_terms(key)
        if len(results) < limit and terms:
            for row in self._state_manager.search_memories(terms, limit=limit * 2):
                if exact is not None and row["memory_id"] == exact["memory_id"]:
                    continue
                results.append(self._to_record(row, terms))
        results.sort(key=lambda record: record.score, reverse=True)
        return results[:limit]

    @staticmethod
    def _to_record(row: Mapping[str, Any], terms: list[str], score: float | None = None) -> MemoryRecord:
        if score is None:
            haystack = f"{row['lookup_key']} {row['content']}".lower()
            hits = sum(1 for term in terms if term in haystack)
            score = 0.9 * hits / len(terms) if terms else 0.5
        created_at = row["created_at"]
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return MemoryRecord(
            id=str(row["memory_id"]),
            content=str(row["content"]),
            score=float(score),
            metadata=dict(row["metadata"]),
            timestamp=created_at,
        )
