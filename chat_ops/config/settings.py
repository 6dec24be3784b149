"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
字段名与 Open WebUI 的环境变量保持一致（DATABASE_URL、WEBUI_SECRET_KEY、
WEBSOCKET_MANAGER 等），便于在同一台机器上直接复用服务端的环境。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


DEFAULT_SECRET_KEY_FILES: List[str] = [
    "backend/.webui_secret_key",
    ".webui_secret_key",
    "../.webui_secret_key",
    "/app/.webui_secret_key",
    "/app/backend/.webui_secret_key",
]


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_OPS_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class YamlConfigSource(PydanticBaseSettingsSource):
    """config.yaml 配置源，优先级低于环境变量与 .env。"""

    def __init__(self, settings_cls):
        super().__init__(settings_cls)
        self._data = _load_config_from_yaml()

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return {k: v for k, v in self._data.items() if k in self.settings_cls.model_fields}


class ChatOpsSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 存储 ----
    database_url: str = Field(
        default="sqlite:///data/webui.db",
        description="Open WebUI 数据库连接串（SQLAlchemy URL）",
    )
    storage_backend: Literal["sql", "json"] = Field(
        default="sql",
        description="sql 直接读写 Open WebUI 数据库；json 使用本地文件存储",
    )
    storage_root: str = Field(default=".storage", description="json 存储根目录")

    # ---- 通知 ----
    webui_api_url: str = Field(default="http://localhost:8080", description="运行中的 Open WebUI 地址")
    websocket_manager: str = Field(default="", description="服务端 WEBSOCKET_MANAGER，redis 时可直接写总线")
    websocket_redis_url: str = Field(default="redis://localhost:6379/0", description="Socket.IO Redis 地址")
    notify_transport: Literal["auto", "socket", "http", "none"] = Field(
        default="auto",
        description="通知通道；auto 根据 websocket_manager 选择",
    )
    http_timeout: float = Field(default=5.0, ge=0.1, description="HTTP 超时时间（秒）")

    # ---- 认证 ----
    webui_secret_key: Optional[str] = Field(default=None, description="与服务端一致的 WEBUI_SECRET_KEY")
    secret_key_files: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SECRET_KEY_FILES),
        description="WEBUI_SECRET_KEY 的候选文件，按顺序查找",
    )
    token_ttl_seconds: int = Field(default=3600, ge=60, description="通知用 JWT 有效期（秒）")

    # ---- 消息 ----
    message_model_label: str = Field(default="Assistant 1", description="脚本写入消息的模型标签")
    default_role: str = Field(default="user", description="未指定角色时使用的消息角色")
    allowed_roles: List[str] = Field(default_factory=lambda: ["user", "assistant"], description="允许写入的角色")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("allowed_roles")
    @classmethod
    def validate_roles(cls, v: List[str]) -> List[str]:
        roles = [r.strip() for r in v if r and r.strip()]
        if not roles:
            raise ValueError("allowed_roles must not be empty")
        return roles

    @field_validator("websocket_manager")
    @classmethod
    def normalize_manager(cls, v: str) -> str:
        return (v or "").strip().lower()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )


settings = ChatOpsSettings()
