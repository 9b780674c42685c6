"""
Local History Store.

Durable on-device record of chat transcripts and their snapshots, kept in
SQLite through SQLAlchemy. Public methods are coroutines; the blocking
session work runs in a worker thread.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import JSON, Column, String, Text, create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from projectsync.client.types import ChatHistoryItem, Message, Snapshot
from projectsync.core.config import settings
from projectsync.core.exceptions import LocalStoreError

logger = logging.getLogger(__name__)

LocalBase = declarative_base()


class ChatRecord(LocalBase):
    __tablename__ = "chats"

    id = Column(String, primary_key=True)
    url_id = Column(String, unique=True, nullable=True, index=True)
    description = Column(Text, nullable=True)
    messages = Column(JSON, nullable=False, default=list)
    timestamp = Column(String, nullable=False)
    chat_metadata = Column("metadata", JSON(none_as_null=True), nullable=True)


class SnapshotRecord(LocalBase):
    __tablename__ = "snapshots"

    chat_id = Column(String, primary_key=True)
    snapshot = Column(JSON, nullable=False)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_item(record: ChatRecord) -> ChatHistoryItem:
    return ChatHistoryItem(
        id=record.id,
        url_id=record.url_id,
        description=record.description,
        messages=[Message.from_dict(m) for m in record.messages or []],
        timestamp=record.timestamp,
        metadata=record.chat_metadata,
    )


def _create_engine(url: str):
    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            # one shared connection, usable from the worker threads
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        db_path = url.split("///", 1)[-1]
        if db_path:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


class LocalHistoryStore:
    """
    Chat transcript and snapshot storage.

    ``url_id`` is unique across records; writing a second record with a
    taken ``url_id`` raises ``LocalStoreError``.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.LOCAL_STORE_URL
        self.engine = _create_engine(self.url)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        try:
            LocalBase.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise LocalStoreError(f"Cannot open local history store: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise LocalStoreError(f"Constraint violated: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise LocalStoreError(str(e)) from e
        finally:
            session.close()

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    # =========================================================================
    # Sync implementations (worker thread)
    # =========================================================================

    def _get_by_id(self, chat_id: str) -> Optional[ChatHistoryItem]:
        with self._session() as session:
            record = session.get(ChatRecord, chat_id)
            return _to_item(record) if record else None

    def _get_by_url_id(self, url_id: str) -> Optional[ChatHistoryItem]:
        with self._session() as session:
            record = session.scalars(
                select(ChatRecord).where(ChatRecord.url_id == url_id)
            ).first()
            return _to_item(record) if record else None

    def _get_all(self) -> List[ChatHistoryItem]:
        with self._session() as session:
            records = session.scalars(select(ChatRecord).order_by(ChatRecord.timestamp)).all()
            return [_to_item(r) for r in records]

    def _set_messages(
        self,
        chat_id: str,
        messages: List[Message],
        url_id: Optional[str],
        description: Optional[str],
        timestamp: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> None:
        if timestamp is not None:
            try:
                datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            except (AttributeError, TypeError, ValueError) as e:
                raise LocalStoreError("Invalid timestamp") from e

        with self._session() as session:
            session.merge(
                ChatRecord(
                    id=chat_id,
                    url_id=url_id,
                    description=description,
                    messages=[m.to_dict() for m in messages],
                    timestamp=timestamp or _now_iso(),
                    chat_metadata=metadata,
                )
            )

    def _delete(self, chat_id: str) -> None:
        with self._session() as session:
            record = session.get(ChatRecord, chat_id)
            if record:
                session.delete(record)
            snapshot = session.get(SnapshotRecord, chat_id)
            if snapshot:
                session.delete(snapshot)

    def _get_snapshot(self, chat_id: str) -> Optional[Snapshot]:
        with self._session() as session:
            record = session.get(SnapshotRecord, chat_id)
            if record is None:
                # callers may hold the url id rather than the chat id
                chat = session.scalars(
                    select(ChatRecord).where(ChatRecord.url_id == chat_id)
                ).first()
                if chat is not None:
                    record = session.get(SnapshotRecord, chat.id)
            return Snapshot.from_dict(record.snapshot) if record else None

    def _set_snapshot(self, chat_id: str, snapshot: Snapshot) -> None:
        with self._session() as session:
            session.merge(SnapshotRecord(chat_id=chat_id, snapshot=snapshot.to_dict()))

    def _delete_snapshot(self, chat_id: str) -> None:
        with self._session() as session:
            record = session.get(SnapshotRecord, chat_id)
            if record:
                session.delete(record)

    def _all_ids(self) -> List[str]:
        with self._session() as session:
            return list(session.scalars(select(ChatRecord.id)).all())

    def _all_url_ids(self) -> List[str]:
        with self._session() as session:
            return [u for u in session.scalars(select(ChatRecord.url_id)).all() if u]

    # =========================================================================
    # Public API
    # =========================================================================

    async def get_all(self) -> List[ChatHistoryItem]:
        return await self._run(self._get_all)

    async def get_messages_by_id(self, chat_id: str) -> Optional[ChatHistoryItem]:
        return await self._run(self._get_by_id, chat_id)

    async def get_messages_by_url_id(self, url_id: str) -> Optional[ChatHistoryItem]:
        return await self._run(self._get_by_url_id, url_id)

    async def get_messages(self, id_or_url_id: str) -> Optional[ChatHistoryItem]:
        """Look a chat up by id, then by url id."""
        item = await self.get_messages_by_id(id_or_url_id)
        if item is None:
            item = await self.get_messages_by_url_id(id_or_url_id)
        return item

    async def set_messages(
        self,
        chat_id: str,
        messages: List[Message],
        url_id: Optional[str] = None,
        description: Optional[str] = None,
        timestamp: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Create or replace a chat record.

        Raises:
            LocalStoreError: If ``timestamp`` is not an ISO-8601 string or
                ``url_id`` belongs to another record
        """
        await self._run(self._set_messages, chat_id, messages, url_id, description, timestamp, metadata)

    async def delete(self, chat_id: str) -> None:
        await self._run(self._delete, chat_id)

    async def get_snapshot(self, chat_id: str) -> Optional[Snapshot]:
        return await self._run(self._get_snapshot, chat_id)

    async def set_snapshot(self, chat_id: str, snapshot: Snapshot) -> None:
        await self._run(self._set_snapshot, chat_id, snapshot)

    async def delete_snapshot(self, chat_id: str) -> None:
        await self._run(self._delete_snapshot, chat_id)

    async def get_next_id(self) -> str:
        """Return one past the highest numeric chat id."""
        ids = await self._run(self._all_ids)
        highest = max((int(i) for i in ids if i.isdigit()), default=0)
        return str(highest + 1)

    async def get_url_id(self, candidate: str) -> str:
        """Return ``candidate``, or ``candidate-N`` for the first free N >= 2."""
        taken = set(await self._run(self._all_url_ids))
        if candidate not in taken:
            return candidate
        i = 2
        while f"{candidate}-{i}" in taken:
            i += 1
        return f"{candidate}-{i}"

    async def create_chat_from_messages(
        self,
        description: str,
        messages: List[Message],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Store ``messages`` as a new chat and return its url id."""
        new_id = await self.get_next_id()
        new_url_id = await self.get_url_id(new_id)
        await self.set_messages(new_id, messages, new_url_id, description, None, metadata)
        logger.info(f"Created chat {new_id} with url id {new_url_id}")
        return new_url_id

    async def duplicate_chat(self, chat_id: str) -> str:
        chat = await self.get_messages(chat_id)
        if chat is None:
            raise LocalStoreError("Chat not found")
        description = f"{chat.description} (copy)" if chat.description else "Chat (copy)"
        return await self.create_chat_from_messages(description, chat.messages, chat.metadata)

    async def fork_chat(self, chat_id: str, message_id: str) -> str:
        """Copy a chat up to and including ``message_id`` into a new chat."""
        chat = await self.get_messages(chat_id)
        if chat is None:
            raise LocalStoreError("Chat not found")

        index = next((i for i, m in enumerate(chat.messages) if m.id == message_id), -1)
        if index == -1:
            raise LocalStoreError("Message not found")

        description = f"{chat.description} (fork)" if chat.description else "Forked chat"
        return await self.create_chat_from_messages(
            description, chat.messages[: index + 1], chat.metadata
        )

    async def update_chat_description(self, chat_id: str, description: str) -> None:
        chat = await self.get_messages(chat_id)
        if chat is None:
            raise LocalStoreError("Chat not found")
        if not description or not description.strip():
            raise LocalStoreError("Description cannot be empty")
        await self.set_messages(
            chat.id, chat.messages, chat.url_id, description, chat.timestamp, chat.metadata
        )
