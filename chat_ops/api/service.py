"""对外服务模块。

提供简化的函数接口供 CLI 或其他运维脚本调用：
列出会话、向会话追加消息、切换会话输入框可用状态。
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_ops.config.settings import settings
from chat_ops.domain.conversation import ChatEvent, ConversationStore, Notifier
from chat_ops.domain.exceptions import BusinessError, InvalidArgument, NotificationError
from chat_ops.domain.history import ConversationDocument
from chat_ops.domain.mutator import append_message
from chat_ops.infrastructure.logging.logger import logger
from chat_ops.notifications import create_notifier


_store: Optional[ConversationStore] = None
_notifier: Optional[Notifier] = None

_TRUE_VALUES = {"yes", "true", "1"}
_FALSE_VALUES = {"no", "false", "0"}


def get_default_store() -> ConversationStore:
    """按配置创建默认存储（单例）。"""
    global _store
    if _store is None:
        if settings.storage_backend == "json":
            from chat_ops.infrastructure.storage.json_store import JsonChatStore

            _store = JsonChatStore(root=settings.storage_root)
        else:
            from chat_ops.infrastructure.storage.sql_store import SqlChatStore

            _store = SqlChatStore(settings.database_url)
    return _store


def get_default_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = create_notifier()
    return _notifier


def parse_enabled(value: Any) -> bool:
    """把 yes/no、true/false、1/0（不区分大小写）解析为布尔值。"""
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise InvalidArgument(
        code="INVALID_ENABLED",
        message=f"--enabled must be 'yes' or 'no' (got: {value})",
    )


def list_chats(store: Optional[ConversationStore] = None) -> List[Dict[str, Any]]:
    """列出所有会话，按创建时间倒序。"""
    store = store or get_default_store()
    return [
        {
            "id": c.id,
            "title": c.title or "Untitled",
            "user_id": c.user_id,
            "created_at": c.created_at,
            "updated_at": c.updated_at,
        }
        for c in store.list_chats()
    ]


def add_message(
    chat_id: str,
    content: Optional[str],
    role: Optional[str] = None,
    model: Optional[str] = None,
    *,
    store: Optional[ConversationStore] = None,
    notifier: Optional[Notifier] = None,
) -> Dict[str, Any]:
    """向会话追加一条消息并通知前端刷新。

    Args:
        chat_id: 会话ID
        content: 消息内容（允许空字符串）
        role: 消息角色，默认取配置 default_role
        model: 消息模型标签，默认取配置 message_model_label

    Returns:
        包含 chat_id、message_id、parent_id、notified 的字典

    Raises:
        InvalidArgument: 参数缺失或角色非法
        NotFound: 会话不存在
        StorageError: 存储读写失败
    """
    store = store or get_default_store()
    log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "chat_id": chat_id}

    if not chat_id:
        raise InvalidArgument(code="MISSING_CHAT_ID", message="Chat ID is required")

    with store.transaction(chat_id) as (record, document):
        _, message_id = append_message(
            document,
            role or settings.default_role,
            content,
            model=model or settings.message_model_label,
            allowed_roles=settings.allowed_roles,
        )
        parent_id = document.messages_by_id[message_id].parent_id
    log_ctx["message_id"] = message_id
    _log(logging.INFO, "Stored message", log_ctx, parent_id=parent_id, role=role or settings.default_role, content=content)

    event = ChatEvent(chat_id=chat_id, message_id=message_id, user_id=record.user_id, type="chat:tags")
    notified = _notify_best_effort(notifier or get_default_notifier(), event, log_ctx)
    return {
        "chat_id": chat_id,
        "message_id": message_id,
        "parent_id": parent_id,
        "notified": notified,
    }


def set_chat_input(
    chat_id: str,
    enabled: bool,
    *,
    store: Optional[ConversationStore] = None,
    notifier: Optional[Notifier] = None,
) -> Dict[str, Any]:
    """向会话所属用户推送 chat:input:toggle 事件。

    该操作唯一的作用就是通知，因此通知失败会以 NotificationError 抛出。
    """
    store = store or get_default_store()
    notifier = notifier or get_default_notifier()
    log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "chat_id": chat_id}

    record = store.get_chat(chat_id)
    document = ConversationDocument.from_payload(record.payload)
    event = ChatEvent(
        chat_id=chat_id,
        message_id=document.current_id or "",
        user_id=record.user_id,
        type="chat:input:toggle",
        data={"enabled": enabled},
    )
    try:
        notifier.notify(event)
    except NotificationError as e:
        _log(logging.ERROR, "Chat input toggle failed", log_ctx, code=e.code, error=e.message, notifier=notifier.name)
        raise
    _log(logging.INFO, "Chat input toggled", log_ctx, enabled=enabled, notifier=notifier.name)
    return {"chat_id": chat_id, "enabled": enabled, "notified": True}


def _notify_best_effort(notifier: Notifier, event: ChatEvent, log_ctx: Dict[str, Any]) -> bool:
    try:
        notifier.notify(event)
    except BusinessError as e:
        _log(logging.WARNING, "Notification failed", log_ctx, code=e.code, error=e.message, notifier=notifier.name)
        return False
    except Exception as e:
        _log(logging.ERROR, "Notification crashed", log_ctx, exc_info=True, error=str(e), notifier=notifier.name)
        return False
    _log(logging.INFO, "Notification sent", log_ctx, event_type=event.type, notifier=notifier.name)
    return True


def _log(level: int, message: str, log_ctx: Dict[str, Any], exc_info: bool = False, **fields: Any) -> None:
    payload = dict(log_ctx)
    payload.update(fields)
    logger.log(level, message, exc_info=exc_info, extra={"extra": payload})
