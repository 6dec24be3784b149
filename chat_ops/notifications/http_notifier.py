"""HTTP 事件通道。

URL: {webui_api_url}/api/v1/chats/{chat_id}/messages/{message_id}/event
认证: Authorization: Bearer <以会话所属用户签发的 JWT>
"""

from datetime import timedelta
from typing import Iterable, Optional

import httpx

from chat_ops.auth.tokens import create_token
from chat_ops.config.secret_key import SecretProvider, default_providers, resolve_secret_key
from chat_ops.config.settings import settings
from chat_ops.domain.conversation import ChatEvent
from chat_ops.domain.exceptions import NotFound, NotificationError


class HttpEventNotifier:
    name = "http"

    def __init__(self, cfg=settings, secret_providers: Optional[Iterable[SecretProvider]] = None):
        self._settings = cfg
        self._secret_providers = secret_providers

    def notify(self, event: ChatEvent) -> None:
        if not event.message_id:
            raise NotificationError(
                code="NOTIFY_NO_MESSAGE",
                message="HTTP event endpoint requires a message id",
                chat_id=event.chat_id,
            )
        token = self._token_for(event.user_id)
        base = self._settings.webui_api_url.rstrip("/")
        url = f"{base}/api/v1/chats/{event.chat_id}/messages/{event.message_id}/event"
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    url,
                    json={"type": event.type, "data": event.data or {}},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NotificationError(code="NOTIFY_NETWORK_ERROR", message=str(e), chat_id=event.chat_id)
        if resp.status_code >= 400:
            raise NotificationError(
                code="NOTIFY_HTTP_ERROR",
                message=f"HTTP {resp.status_code}: {resp.text}",
                chat_id=event.chat_id,
                status_code=resp.status_code,
            )

    def _token_for(self, user_id: str) -> str:
        providers = self._secret_providers
        if providers is None:
            providers = default_providers(self._settings)
        try:
            secret = resolve_secret_key(providers)
        except NotFound as e:
            raise NotificationError(code=e.code, message=e.message)
        ttl = timedelta(seconds=self._settings.token_ttl_seconds)
        return create_token(user_id, secret.value, expires_in=ttl)
