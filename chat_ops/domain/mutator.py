"""会话树追加逻辑。

append_message 把一条新消息挂到当前叶子（history.currentId）之下，
若当前没有可用叶子则作为新的根节点，并把 currentId 指向新消息。

该函数只修改传入的文档，不做任何 I/O；加载、保存与通知由调用方负责。
调用方需独占文档实例（必要时先 clone），本函数不加锁。
"""

import logging
import time
from typing import Callable, Iterable, Optional, Tuple
from uuid import uuid4

from chat_ops.infrastructure.logging.logger import logger

from .exceptions import InconsistentState, InvalidArgument
from .history import ConversationDocument, Message


DEFAULT_ROLES: Tuple[str, ...] = ("user", "assistant")

IdGenerator = Callable[[], str]
Clock = Callable[[], int]


def default_id() -> str:
    return str(uuid4())


def default_clock() -> int:
    return int(time.time())


def append_message(
    document: ConversationDocument,
    role: str,
    content: Optional[str],
    id_generator: IdGenerator = default_id,
    clock: Clock = default_clock,
    *,
    model: Optional[str] = None,
    allowed_roles: Optional[Iterable[str]] = None,
    strict: bool = False,
) -> Tuple[ConversationDocument, str]:
    """在会话树末尾追加一条消息。

    Args:
        document: 待修改的会话文档，可以为空会话。
        role: 消息角色，必须在 allowed_roles 中（默认 user/assistant）。
        content: 消息文本，允许空字符串，不允许 None。
        id_generator: 生成新消息 id。
        clock: 返回当前秒级时间戳。
        model: 写入消息的模型标签。
        allowed_roles: 覆盖默认的角色白名单。
        strict: currentId 悬空时抛出 InconsistentState，而不是作为根节点追加。

    Returns:
        (document, 新消息 id)

    Raises:
        InvalidArgument: content 缺失或 role 不在白名单内。
        InconsistentState: 生成的 id 已存在；或 strict=True 且 currentId 悬空。
    """

    roles = tuple(allowed_roles) if allowed_roles is not None else DEFAULT_ROLES
    if content is None or not isinstance(content, str):
        raise InvalidArgument(code="MISSING_CONTENT", message="message content is required")
    if role not in roles:
        raise InvalidArgument(
            code="INVALID_ROLE",
            message=f"role must be one of {', '.join(roles)} (got: {role!r})",
            role=role,
        )

    # 1. 定位父节点
    parent: Optional[Message] = None
    current_id = document.current_id
    if current_id is not None:
        parent = document.messages_by_id.get(current_id)
        if parent is None:
            if strict:
                raise InconsistentState(
                    code="INCONSISTENT_CURRENT_ID",
                    message=f"currentId {current_id!r} does not resolve to a message",
                    current_id=current_id,
                )
            logger.warning(
                "currentId does not resolve to a message; appending as root",
                extra={"extra": {"code": "INCONSISTENT_CURRENT_ID", "current_id": current_id}},
            )

    # 2. 分配 id
    message_id = id_generator()
    if message_id in document.messages_by_id:
        raise InconsistentState(
            code="ID_COLLISION",
            message=f"generated message id {message_id!r} already exists",
            message_id=message_id,
        )

    # 3. 构造节点
    now = clock()
    message = Message(
        id=message_id,
        role=role,
        content=content,
        parent_id=parent.id if parent else None,
        children_ids=[],
        timestamp=now,
        done=True,
        model=model,
    )

    # 4-6. 链接父子、写入、移动 currentId
    if parent is not None:
        parent.children_ids.append(message_id)
    document.messages_by_id[message_id] = message
    document.current_id = message_id
    document.updated_at = now

    logger.log(
        logging.DEBUG,
        "Appended message",
        extra={"extra": {"message_id": message_id, "parent_id": message.parent_id, "role": role}},
    )
    return document, message_id
