"""会话消息树的数据模型。

Open WebUI 将一次会话保存为 chat 表中的一段 JSON：

- history.messages: 消息 id -> 消息字典（树结构，parentId/childrenIds 双向链接）。
- history.currentId: 当前活跃（最近追加）的消息 id。
- 其余字段（title、models、params、tags 等）本包不关心，但必须原样保留。

本模块在加载边界做结构校验，把松散的字典转换为 Message / ConversationDocument，
并保证未被修改的字段在序列化回去时不丢失、不改变顺序。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import InvalidArgument


# 内部字段名 -> Open WebUI JSON 字段名，顺序即新消息的输出顺序
_MESSAGE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("role", "role"),
    ("content", "content"),
    ("parent_id", "parentId"),
    ("children_ids", "childrenIds"),
    ("timestamp", "timestamp"),
    ("done", "done"),
    ("model", "model"),
)
_MESSAGE_WIRE_KEYS = {wire for _, wire in _MESSAGE_FIELDS}


def _invalid(message: str, **extra: Any) -> InvalidArgument:
    return InvalidArgument(code="INVALID_CHAT_PAYLOAD", message=message, **extra)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Message:
    """会话树中的一个节点。

    - parent_id: 前驱消息 id，None 表示根节点。
    - children_ids: 后继消息 id 列表，允许多个（分叉对话）。
    - timestamp: 创建时间（秒级 epoch）。
    - done: True 表示该消息不再有流式生成。
    - model: 产生该消息的模型标签，脚本写入的消息为自由文本。
    - extra: Open WebUI 附加的其他字段（files、sources、usage 等），原样保留。
    """

    id: str
    role: str
    content: str
    parent_id: Optional[str] = None
    children_ids: List[str] = field(default_factory=list)
    timestamp: Optional[int] = None
    done: Optional[bool] = None
    model: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    # 加载时的原始键顺序；None 表示新建消息
    _source_keys: Optional[Tuple[str, ...]] = field(default=None, repr=False, compare=False)
    # 加载时的原始字段值（仅含实际出现的字段）与规范化后的值
    _source_values: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)
    _baseline: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_payload(cls, key: str, data: Any) -> "Message":
        if not isinstance(data, Mapping):
            raise _invalid(f"message {key!r} is not an object", message_id=key)

        msg_id = data.get("id", key)
        if not isinstance(msg_id, str) or msg_id != key:
            raise _invalid(f"message id {msg_id!r} does not match key {key!r}", message_id=key)

        role = data.get("role")
        if not isinstance(role, str):
            raise _invalid(f"message {key!r} has no valid role", message_id=key)

        content = data.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise _invalid(f"message {key!r} content must be a string", message_id=key)

        parent_id = data.get("parentId")
        if parent_id is not None and not isinstance(parent_id, str):
            raise _invalid(f"message {key!r} parentId must be a string or null", message_id=key)

        children_ids = data.get("childrenIds")
        if children_ids is None:
            children_ids = []
        if not isinstance(children_ids, list) or not all(isinstance(c, str) for c in children_ids):
            raise _invalid(f"message {key!r} childrenIds must be a list of strings", message_id=key)

        timestamp = data.get("timestamp")
        if timestamp is not None and not _is_number(timestamp):
            raise _invalid(f"message {key!r} timestamp must be a number", message_id=key)

        done = data.get("done")
        if done is not None and not isinstance(done, bool):
            raise _invalid(f"message {key!r} done must be a boolean", message_id=key)

        model = data.get("model")

        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in _MESSAGE_WIRE_KEYS}
        message = cls(
            id=msg_id,
            role=role,
            content=content,
            parent_id=parent_id,
            children_ids=list(children_ids),
            timestamp=timestamp,
            done=done,
            model=model,
            extra=extra,
            _source_keys=tuple(data.keys()),
            _source_values={k: copy.deepcopy(v) for k, v in data.items() if k in _MESSAGE_WIRE_KEYS},
        )
        message._baseline = copy.deepcopy(message._wire_values())
        return message

    def _wire_values(self) -> Dict[str, Any]:
        return {wire: getattr(self, attr) for attr, wire in _MESSAGE_FIELDS}

    def to_payload(self) -> Dict[str, Any]:
        """序列化为 Open WebUI 的消息字典。

        已加载的消息按原始键顺序输出；未被修改的字段写回加载时的原值
        （包括 null 与缺省），被修改的字段写当前值。
        新建消息按固定顺序输出全部字段。
        """

        values = self._wire_values()
        out: Dict[str, Any] = {}
        if self._source_keys is None:
            out.update(values)
        else:
            baseline = self._baseline or {}
            source_values = self._source_values or {}
            for key in self._source_keys:
                if key in values:
                    changed = values[key] != baseline.get(key)
                    out[key] = values[key] if changed else source_values.get(key)
                elif key in self.extra:
                    out[key] = self.extra[key]
            for key, value in values.items():
                if key not in out and value != baseline.get(key):
                    out[key] = value
        for key, value in self.extra.items():
            if key not in out:
                out[key] = value
        return copy.deepcopy(out)


@dataclass
class ConversationDocument:
    """一次会话的完整消息树状态。

    本类型不负责持久化：由 ConversationStore 加载，修改后再交回存储层保存。
    """

    messages_by_id: Dict[str, Message] = field(default_factory=dict)
    current_id: Optional[str] = None
    updated_at: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    history_extra: Dict[str, Any] = field(default_factory=dict)
    _source_keys: Optional[Tuple[str, ...]] = field(default=None, repr=False, compare=False)
    _history_keys: Optional[Tuple[str, ...]] = field(default=None, repr=False, compare=False)

    @property
    def title(self) -> Optional[str]:
        title = self.extra.get("title")
        return title if isinstance(title, str) else None

    @classmethod
    def from_payload(cls, payload: Any) -> "ConversationDocument":
        """从 chat 表的 JSON 字段构建文档；payload 为 None 视为空会话。"""

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise _invalid("chat payload is not an object")

        history = payload.get("history")
        if history is None:
            history = {}
        if not isinstance(history, Mapping):
            raise _invalid("chat history is not an object")

        raw_messages = history.get("messages")
        if raw_messages is None:
            raw_messages = {}
        if not isinstance(raw_messages, Mapping):
            raise _invalid("history.messages is not an object")

        messages = {key: Message.from_payload(key, data) for key, data in raw_messages.items()}

        current_id = history.get("currentId")
        if current_id is not None and not isinstance(current_id, str):
            raise _invalid("history.currentId must be a string or null")

        updated_at = payload.get("updated_at")
        if updated_at is not None and not _is_number(updated_at):
            raise _invalid("updated_at must be a number")

        return cls(
            messages_by_id=messages,
            current_id=current_id,
            updated_at=updated_at,
            extra={k: copy.deepcopy(v) for k, v in payload.items() if k not in ("history", "updated_at")},
            history_extra={k: copy.deepcopy(v) for k, v in history.items() if k not in ("messages", "currentId")},
            _source_keys=tuple(payload.keys()),
            _history_keys=tuple(history.keys()) if "history" in payload else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        history_values = {
            "messages": {mid: msg.to_payload() for mid, msg in self.messages_by_id.items()},
            "currentId": self.current_id,
        }
        history = _merge_ordered(self._history_keys, history_values, self.history_extra)

        top_values: Dict[str, Any] = {"history": history}
        if self.updated_at is not None or (self._source_keys and "updated_at" in self._source_keys):
            top_values["updated_at"] = self.updated_at
        return _merge_ordered(self._source_keys, top_values, self.extra)

    def clone(self) -> "ConversationDocument":
        return copy.deepcopy(self)

    def get(self, message_id: Optional[str]) -> Optional[Message]:
        if message_id is None:
            return None
        return self.messages_by_id.get(message_id)

    def check_integrity(self) -> List[str]:
        """返回文档中违反树结构约束的问题描述，空列表表示一致。"""

        problems: List[str] = []
        if self.current_id is not None and self.current_id not in self.messages_by_id:
            problems.append(f"currentId {self.current_id!r} does not exist")
        for mid, msg in self.messages_by_id.items():
            for child_id in msg.children_ids:
                child = self.messages_by_id.get(child_id)
                if child is None:
                    problems.append(f"message {mid!r} lists missing child {child_id!r}")
                elif child.parent_id != mid:
                    problems.append(f"child {child_id!r} of {mid!r} points to parent {child.parent_id!r}")
            if msg.parent_id is not None:
                parent = self.messages_by_id.get(msg.parent_id)
                if parent is None:
                    problems.append(f"message {mid!r} has missing parent {msg.parent_id!r}")
                elif mid not in parent.children_ids:
                    problems.append(f"parent {msg.parent_id!r} does not list child {mid!r}")
        return problems


def _merge_ordered(
    source_keys: Optional[Tuple[str, ...]],
    values: Dict[str, Any],
    extra: Dict[str, Any],
) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in source_keys or ():
        if key in values:
            out[key] = values[key]
        elif key in extra:
            out[key] = copy.deepcopy(extra[key])
    for key, value in extra.items():
        if key not in out:
            out[key] = copy.deepcopy(value)
    for key, value in values.items():
        if key not in out:
            out[key] = value
    return out
