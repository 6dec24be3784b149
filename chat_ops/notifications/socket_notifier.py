"""Socket.IO 总线通道。

服务端使用 Redis 作为 WEBSOCKET_MANAGER 时，外部进程可以通过只写的
AsyncRedisManager 向 user:<user_id> 房间广播 "events"，效果等同于服务端自己发出。

AsyncRedisManager 发布失败时只记录日志而不抛出，所以发送前先用 redis
客户端 ping 一次，连不上总线时以 NOTIFY_BUS_ERROR 报告。
"""

import asyncio
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
import socketio
from redis.exceptions import RedisError

from chat_ops.config.settings import settings
from chat_ops.domain.conversation import ChatEvent
from chat_ops.domain.exceptions import NotificationError


class SocketBusNotifier:
    name = "socket"

    def __init__(
        self,
        cfg=settings,
        manager_factory: Optional[Callable[..., Any]] = None,
        channel: str = "socketio",
        redis_factory: Optional[Callable[..., Any]] = None,
    ):
        self._settings = cfg
        self._manager_factory = manager_factory or socketio.AsyncRedisManager
        self._redis_factory = redis_factory or aioredis.from_url
        self._channel = channel

    def notify(self, event: ChatEvent) -> None:
        try:
            asyncio.run(self.notify_async(event))
        except (RedisError, OSError, ValueError) as e:
            raise NotificationError(code="NOTIFY_BUS_ERROR", message=str(e), chat_id=event.chat_id)

    async def notify_async(self, event: ChatEvent) -> None:
        url = self._settings.websocket_redis_url
        await self._ping(url)
        manager = self._manager_factory(url, channel=self._channel, write_only=True)
        await manager.emit("events", event.envelope(), room=event.room)

    async def _ping(self, url: str) -> None:
        timeout = getattr(self._settings, "http_timeout", 5.0)
        client = self._redis_factory(url, socket_connect_timeout=timeout, socket_timeout=timeout)
        try:
            await client.ping()
        finally:
            await client.aclose()
