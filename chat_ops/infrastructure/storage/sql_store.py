"""直接读写 Open WebUI 数据库的会话存储。

只映射本包用到的 chat 表；表结构与 open_webui.models.chats.Chat 一致，
其余表不在这里声明。
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import JSON, BigInteger, Boolean, Column, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chat_ops.config.settings import settings
from chat_ops.domain.conversation import ChatRecord, ConversationStore
from chat_ops.domain.exceptions import NotFound, StorageError
from chat_ops.domain.history import ConversationDocument

Base = declarative_base()


class Chat(Base):
    __tablename__ = "chat"

    id = Column(String, primary_key=True)
    user_id = Column(String)
    title = Column(Text)
    chat = Column(JSON)
    created_at = Column(BigInteger)
    updated_at = Column(BigInteger)
    share_id = Column(Text, unique=True, nullable=True)
    archived = Column(Boolean, default=False)
    pinned = Column(Boolean, default=False, nullable=True)
    meta = Column(JSON, default=dict)
    folder_id = Column(Text, nullable=True)


def create_db_engine(database_url: str) -> Engine:
    connect_args: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # only needed for SQLite
    return create_engine(database_url, connect_args=connect_args)


class SqlChatStore(ConversationStore):
    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self._engine = engine or create_db_engine(database_url or settings.database_url)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)

    def init_db(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def create_chat(
        self,
        user_id: str,
        title: str = "",
        payload: Optional[Dict[str, Any]] = None,
        chat_id: Optional[str] = None,
    ) -> ChatRecord:
        now = int(time.time())
        chat = dict(payload or {})
        chat.setdefault("title", title)
        row = Chat(
            id=chat_id or str(uuid4()),
            user_id=user_id,
            title=title,
            chat=chat,
            created_at=now,
            updated_at=now,
            meta={},
        )
        with self._session() as db:
            try:
                db.add(row)
                db.commit()
                return self._to_record(row)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e))

    def list_chats(self) -> List[ChatRecord]:
        with self._session() as db:
            try:
                rows = db.execute(select(Chat).order_by(Chat.created_at.desc())).scalars().all()
            except SQLAlchemyError as e:
                raise StorageError(code="STORE_READ_ERROR", message=str(e))
            return [self._to_record(r) for r in rows]

    def get_chat(self, chat_id: str) -> ChatRecord:
        with self._session() as db:
            return self._to_record(self._get_row(db, chat_id))

    def load_conversation(self, chat_id: str) -> ConversationDocument:
        return ConversationDocument.from_payload(self.get_chat(chat_id).payload)

    def save_conversation(self, chat_id: str, document: ConversationDocument) -> ChatRecord:
        with self._session() as db:
            try:
                row = self._get_row(db, chat_id)
                self._apply(row, document)
                db.commit()
                return self._to_record(row)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), chat_id=chat_id)

    @contextmanager
    def transaction(self, chat_id: str) -> Iterator[Tuple[ChatRecord, ConversationDocument]]:
        """行锁内完成加载、修改、保存（SQLite 上 FOR UPDATE 为空操作）。"""
        with self._session() as db:
            try:
                row = self._get_row(db, chat_id, for_update=True)
                record = self._to_record(row)
                document = ConversationDocument.from_payload(row.chat)
                yield record, document
                self._apply(row, document)
                db.commit()
                record.payload = row.chat
                record.title = row.title or ""
                record.updated_at = int(row.updated_at or 0)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(code="STORE_WRITE_ERROR", message=str(e), chat_id=chat_id)
            except BaseException:
                db.rollback()
                raise

    def _get_row(self, db: Session, chat_id: str, for_update: bool = False) -> Chat:
        stmt = select(Chat).where(Chat.id == chat_id)
        if for_update:
            stmt = stmt.with_for_update()
        try:
            row = db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e), chat_id=chat_id)
        if row is None:
            raise NotFound(code="CHAT_NOT_FOUND", message=f"Chat with ID '{chat_id}' not found", chat_id=chat_id)
        return row

    @staticmethod
    def _apply(row: Chat, document: ConversationDocument) -> None:
        # 整体替换 JSON 列，保证 SQLAlchemy 能检测到变更
        row.chat = document.to_payload()
        row.title = document.title or row.title or "New Chat"
        row.updated_at = int(document.updated_at or time.time())

    @staticmethod
    def _to_record(row: Chat) -> ChatRecord:
        return ChatRecord(
            id=row.id,
            user_id=row.user_id or "",
            title=row.title or "",
            created_at=int(row.created_at or 0),
            updated_at=int(row.updated_at or 0),
            payload=dict(row.chat or {}),
        )
