"""SQLAlchemy persistence for agent snapshots, profiles, memories and learning events."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import Boolean, DateTime, Engine, String, Text, create_engine, desc, func, or_, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column


class Base(DeclarativeBase):
    """Declarative base shared by every Orbit table."""


class AgentStateRecord(Base):
    """Persisted single-record agent state snapshot."""

    __tablename__ = "agent_state"

    key: Mapped[str] = mapped_column(String(32), primary_key=True, default="global")
    state_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class BusinessProfileRecord(Base):
    """Stored business profile document."""

    __tablename__ = "business_profile"

    business_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    profile_json: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class MemoryEntry(Base):
    """Long-term memory entry (insights, recommendations, learnings)."""

    __tablename__ = "memory_entry"

    memory_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    kind: Mapped[str] = mapped_column(String(64), nullable=False, default="general")
    lookup_key: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class LearningEventRecord(Base):
    """Append-only learning event log."""

    __tablename__ = "learning_event"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    outcome_json: Mapped[str] = mapped_column(Text, nullable=False, default="null")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class NamespacedKV(Base):
    """Namespaced JSON key/value storage (metrics, conversations, learnings)."""

    __tablename__ = "namespaced_kv"

    namespace: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(256), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class StateManager:
    """CRUD gateway for agent state, profiles, memories and learning events."""

    def __init__(self, db_url: str) -> None:
        self._engine: Engine = create_engine(db_url, future=True)
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    def load_state(self) -> dict[str, Any]:
        """Load the global agent state snapshot."""
        with Session(self._engine) as session:
            record = session.get(AgentStateRecord, "global")
            if record is None:
                return {}
            loaded = json.loads(record.state_json)
            return cast(dict[str, Any], loaded)

    def save_state(self, state: Mapping[str, Any]) -> None:
        """Persist the global agent state snapshot atomically."""
        with Session(self._engine) as session:
            record = session.get(AgentStateRecord, "global")
            serialized = json.dumps(dict(state), ensure_ascii=False, default=str)
            if record is None:
                record = AgentStateRecord(key="global", state_json=serialized)
                session.add(record)
            else:
                record.state_json = serialized
                record.updated_at = datetime.now(UTC)
            session.commit()

    def save_profile(self, business_id: str, profile: Mapping[str, Any], active: bool = True) -> None:
        with Session(self._engine) as session:
            record = session.get(BusinessProfileRecord, business_id)
            serialized = json.dumps(dict(profile), ensure_ascii=False)
            if record is None:
                session.add(
                    BusinessProfileRecord(
                        business_id=business_id,
                        profile_json=serialized,
                        active=active,
                    )
                )
            else:
                record.profile_json = serialized
                record.active = active
                record.updated_at = datetime.now(UTC)
            session.commit()

    def load_profile(self, business_id: str) -> dict[str, Any] | None:
        with Session(self._engine) as session:
            record = session.get(BusinessProfileRecord, business_id)
            if record is None:
                return None
            return cast(dict[str, Any], json.loads(record.profile_json))

    def list_active_profile_ids(self) -> list[str]:
        with Session(self._engine) as session:
            rows = session.execute(
                select(BusinessProfileRecord.business_id)
                .where(BusinessProfileRecord.active.is_(True))
                .order_by(BusinessProfileRecord.business_id)
            ).scalars()
            return list(rows)

    def remember_memory(
        self,
        *,
        memory_id: str,
        content: str,
        metadata: Mapping[str, Any],
        business_id: str = "",
        kind: str = "general",
        lookup_key: str = "",
    ) -> None:
        """Append one long-term memory entry."""
        with Session(self._engine) as session:
            session.add(
                MemoryEntry(
                    memory_id=memory_id,
                    business_id=business_id,
                    kind=kind,
                    lookup_key=lookup_key,
                    content=content,
                    metadata_json=json.dumps(dict(metadata), ensure_ascii=False, default=str),
                )
            )
            session.commit()

    def search_memories(
        self,
        terms: list[str],
        *,
        business_id: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return newest-first entries whose key or content contains any term."""
        with Session(self._engine) as session:
            statement = select(MemoryEntry)
            if terms:
                clauses = []
                for term in terms:
                    pattern = f"%{term}%"
                    clauses.append(MemoryEntry.lookup_key.like(pattern))
                    clauses.append(MemoryEntry.content.like(pattern))
                statement = statement.where(or_(*clauses))
            if business_id is not None:
                statement = statement.where(MemoryEntry.business_id == business_id)
            rows = session.execute(
                statement.order_by(desc(MemoryEntry.created_at)).limit(max(1, limit))
            ).scalars()
            return [self._memory_row(row) for row in rows]

    def find_memory_by_key(self, lookup_key: str) -> dict[str, Any] | None:
        with Session(self._engine) as session:
            row = session.execute(
                select(MemoryEntry)
                .where(MemoryEntry.lookup_key == lookup_key)
                .order_by(desc(MemoryEntry.created_at))
                .limit(1)
            ).scalar_one_or_none()
            return self._memory_row(row) if row is not None else None

    def memory_count(self, kind: str | None = None) -> int:
        with Session(self._engine) as session:
            statement = select(func.count()).select_from(MemoryEntry)
            if kind is not None:
                statement = statement.where(MemoryEntry.kind == kind)
            return int(session.execute(statement).scalar_one())

    def remember_learning_event(
        self,
        *,
        event_id: str,
        event_type: str,
        business_id: str,
        data: Mapping[str, Any],
        outcome: Any,
    ) -> None:
        """Append one learning event for audit and later aggregation."""
        with Session(self._engine) as session:
            session.add(
                LearningEventRecord(
                    event_id=event_id,
                    event_type=event_type,
                    business_id=business_id,
                    data_json=json.dumps(dict(data), ensure_ascii=False, default=str),
                    outcome_json=json.dumps(outcome, ensure_ascii=False, default=str),
                )
            )
            session.commit()

    def get_recent_learning_events(
        self,
        n: int,
        business_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return most recent learning events ordered from oldest to newest."""
        with Session(self._engine) as session:
            statement = select(LearningEventRecord)
            if business_id is not None:
                statement = statement.where(LearningEventRecord.business_id == business_id)
            rows = session.execute(
                statement.order_by(desc(LearningEventRecord.created_at)).limit(max(0, n))
            ).scalars()
            recent = list(rows)

        recent.reverse()
        return [
            {
                "event_id": row.event_id,
                "event_type": row.event_type,
                "business_id": row.business_id,
                "data": json.loads(row.data_json),
                "outcome": json.loads(row.outcome_json),
                "created_at": row.created_at.isoformat(),
            }
            for row in recent
        ]

    def kv_get_json(self, namespace: str, key: str) -> Any | None:
        """Load one namespaced JSON value."""
        with Session(self._engine) as session:
            row = session.get(NamespacedKV, {"namespace": namespace, "key": key})
            if row is None:
                return None
            return json.loads(row.value_json)

    def kv_set_json(self, namespace: str, key: str, value: Any) -> None:
        """Persist one namespaced JSON value."""
        with Session(self._engine) as session:
            row = session.get(NamespacedKV, {"namespace": namespace, "key": key})
            serialized = json.dumps(value, ensure_ascii=False, default=str)
            if row is None:
                session.add(NamespacedKV(namespace=namespace, key=key, value_json=serialized))
            else:
                row.value_json = serialized
                row.updated_at = datetime.now(UTC)
            session.commit()

    def kv_delete_prefix(self, namespace: str, key_prefix: str) -> int:
        """Delete namespaced keys with a given prefix and return deleted count."""
        with Session(self._engine) as session:
            rows = session.execute(
                select(NamespacedKV).where(
                    NamespacedKV.namespace == namespace,
                    NamespacedKV.key.like(f"{key_prefix}%"),
                )
            ).scalars()
            records = list(rows)
            for record in records:
                session.delete(record)
            session.commit()
            return len(records)

    def kv_list_prefix(
        self,
        namespace: str,
        key_prefix: str,
        limit: int = 1000,
    ) -> list[tuple[str, Any]]:
        """List namespaced keys + JSON values for a namespace/prefix window."""
        with Session(self._engine) as session:
            rows = session.execute(
                select(NamespacedKV)
                .where(
                    NamespacedKV.namespace == namespace,
                    NamespacedKV.key.like(f"{key_prefix}%"),
                )
                .order_by(NamespacedKV.key)
                .limit(max(1, limit))
            ).scalars()
            return [(row.key, json.loads(row.value_json)) for row in rows]

    @staticmethod
    def _memory_row(row: MemoryEntry) -> dict[str, Any]:
        return {
            "memory_id": row.memory_id,
            "business_id": row.business_id,
            "kind": row.kind,
            "lookup_key": row.lookup_key,
            "content": row.content,
            "metadata": json.loads(row.metadata_json),
            "created_at": row.created_at,
        }
