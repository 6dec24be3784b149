"""通知通道抽象。

服务层只依赖 Notifier 协议（见 domain.conversation），具体通道：

- SocketBusNotifier: 通过 Socket.IO 的 Redis 管理器直接向用户房间广播。
- HttpEventNotifier: 以会话所属用户身份调用 Open WebUI 的事件接口。
- NullNotifier: 不发送任何事件。

通道实现失败时统一抛出 NotificationError，由调用方决定是否吞掉。
"""

from chat_ops.domain.conversation import ChatEvent


class NullNotifier:
    name = "none"

    def notify(self, event: ChatEvent) -> None:
        return None
