"""包级 JSON 行日志。

每条记录一行 JSON：ts、level、name、msg，以及通过 extra={"extra": {...}}
传入的结构化字段。开启 log_redact_content 时，msg 与 content 字段截断到 64 字符。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from chat_ops.config.settings import settings

LOGGER_NAME = "chat_ops"
_REDACT_LIMIT = 64
_REDACTED_FIELDS = ("content",)


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self.redact = redact

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": self._clip(record.getMessage()),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                payload[key] = self._clip(value) if key in _REDACTED_FIELDS else value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

    def _clip(self, value: Any) -> Any:
        if self.redact and isinstance(value, str):
            return value[:_REDACT_LIMIT]
        return value


def setup_logger(cfg=settings) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(cfg.log_level)
    if logger.handlers:
        return logger
    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / f"{LOGGER_NAME}.log", encoding="utf-8")
    handler.setFormatter(JsonFormatter(redact=cfg.log_redact_content))
    logger.addHandler(handler)
    return logger


logger = setup_logger()
