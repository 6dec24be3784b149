import json
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from chat_ops.config.settings import settings
from chat_ops.domain.conversation import ChatRecord, ConversationStore
from chat_ops.domain.exceptions import BusinessError, InvalidArgument, NotFound, StorageError
from chat_ops.domain.history import ConversationDocument


class JsonChatStore(ConversationStore):
    """本地文件存储：每个会话一个目录，chat.json 保存完整记录。

    事务通过进程内的逐会话锁串行化，不支持多进程并发写同一会话。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._chat_root = self._root / "chats"
        self._chat_root.mkdir(parents=True, exist_ok=True)
        # chat_id -> [锁, 等待/持有者数量]，计数归零即移除
        self._locks: Dict[str, List[Any]] = {}
        self._locks_guard = threading.Lock()

    def create_chat(
        self,
        user_id: str,
        title: str = "",
        payload: Optional[Dict[str, Any]] = None,
        chat_id: Optional[str] = None,
    ) -> ChatRecord:
        cid = chat_id or str(uuid4())
        cdir = self._chat_dir(cid)
        if (cdir / "chat.json").exists():
            raise BusinessError(code="CHAT_EXISTS", message=cid, http_status=409)
        cdir.mkdir(parents=True, exist_ok=True)
        now = int(time.time())
        chat = dict(payload or {})
        chat.setdefault("title", title)
        record = ChatRecord(id=cid, user_id=user_id, title=title, created_at=now, updated_at=now, payload=chat)
        self._write_record(cdir, record)
        return record

    def get_chat(self, chat_id: str) -> ChatRecord:
        path = self._chat_dir(chat_id) / "chat.json"
        if not path.exists():
            raise NotFound(code="CHAT_NOT_FOUND", message=f"Chat with ID '{chat_id}' not found", chat_id=chat_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return self._to_record(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e), chat_id=chat_id)

    def list_chats(self) -> List[ChatRecord]:
        items: List[ChatRecord] = []
        for cdir in self._chat_root.glob("*/"):
            path = cdir / "chat.json"
            if not path.exists():
                continue
            try:
                items.append(self._to_record(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError, TypeError):
                continue
        items.sort(key=lambda c: c.created_at, reverse=True)
        return items

    def load_conversation(self, chat_id: str) -> ConversationDocument:
        return ConversationDocument.from_payload(self.get_chat(chat_id).payload)

    def save_conversation(self, chat_id: str, document: ConversationDocument) -> ChatRecord:
        record = self.get_chat(chat_id)
        record.payload = document.to_payload()
        record.title = document.title or record.title
        record.updated_at = int(document.updated_at or time.time())
        self._write_record(self._chat_dir(chat_id), record)
        return record

    @contextmanager
    def transaction(self, chat_id: str) -> Iterator[Tuple[ChatRecord, ConversationDocument]]:
        """加载 -> 修改 -> 保存；with 块内抛出异常时不写回。"""
        with self._locked(chat_id):
            record = self.get_chat(chat_id)
            document = ConversationDocument.from_payload(record.payload)
            yield record, document
            saved = self.save_conversation(chat_id, document)
            record.payload = saved.payload
            record.updated_at = saved.updated_at
            record.title = saved.title

    def _chat_dir(self, chat_id: str) -> Path:
        if not chat_id or chat_id in (".", "..") or "/" in chat_id or "\\" in chat_id or "\x00" in chat_id:
            raise InvalidArgument(code="INVALID_CHAT_ID", message=f"Invalid chat ID: {chat_id!r}", chat_id=chat_id)
        return self._chat_root / chat_id

    @contextmanager
    def _locked(self, chat_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(chat_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(chat_id, None)

    def _write_record(self, cdir: Path, record: ChatRecord) -> None:
        path = cdir / "chat.json"
        tmp_path = cdir / f"chat.{uuid4().hex}.json.tmp"
        obj = {
            "id": record.id,
            "user_id": record.user_id,
            "title": record.title,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "chat": record.payload,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e), chat_id=record.id)

    @staticmethod
    def _to_record(data: Dict[str, Any]) -> ChatRecord:
        return ChatRecord(
            id=data["id"],
            user_id=data["user_id"],
            title=data.get("title") or "",
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data.get("updated_at") or 0),
            payload=data.get("chat") or {},
        )
