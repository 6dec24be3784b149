"""会话事件通知层。

- base: NullNotifier 与通道约定。
- socket_notifier: Socket.IO Redis 总线直发。
- http_notifier: Open WebUI HTTP 事件接口。
"""

from typing import Optional

from chat_ops.config.settings import settings
from chat_ops.domain.conversation import Notifier
from chat_ops.domain.exceptions import InvalidArgument
from chat_ops.notifications.base import NullNotifier
from chat_ops.notifications.http_notifier import HttpEventNotifier
from chat_ops.notifications.socket_notifier import SocketBusNotifier


def resolve_transport(transport: Optional[str] = None, cfg=settings) -> str:
    """auto: 服务端使用 redis 管理器时走总线，否则走 HTTP。"""

    name = (transport or getattr(cfg, "notify_transport", "auto")).lower()
    if name == "auto":
        manager = (getattr(cfg, "websocket_manager", "") or "").lower()
        return "socket" if manager == "redis" else "http"
    return name


def create_notifier(transport: Optional[str] = None, cfg=settings) -> Notifier:
    name = resolve_transport(transport, cfg)
    if name == "socket":
        return SocketBusNotifier(cfg)
    if name == "http":
        return HttpEventNotifier(cfg)
    if name == "none":
        return NullNotifier()
    raise InvalidArgument(code="INVALID_TRANSPORT", message=f"Unknown notify transport: {name!r}")
