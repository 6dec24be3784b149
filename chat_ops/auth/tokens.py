"""与 Open WebUI 兼容的 JWT 工具。

服务端的 create_token 使用 HS256 与 WEBUI_SECRET_KEY 签名，
载荷为 {"id": user_id, "exp": ...}；这里生成同样格式的令牌，
用于以会话所属用户的身份调用 HTTP 事件接口。
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from chat_ops.domain.exceptions import InvalidArgument

ALGORITHM = "HS256"


def create_token(user_id: str, secret: str, expires_in: Optional[timedelta] = None) -> str:
    if not secret:
        raise InvalidArgument(code="MISSING_SECRET_KEY", message="secret key is empty")
    payload: Dict[str, Any] = {"id": user_id}
    if expires_in is not None:
        payload["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
