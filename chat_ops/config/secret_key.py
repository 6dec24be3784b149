"""WEBUI_SECRET_KEY 解析。

服务端签发 JWT 使用的密钥可能来自环境变量，也可能来自启动时生成的
.webui_secret_key 文件。这里按给定顺序依次尝试各个来源，返回第一个非空结果，
不会改写 os.environ。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Protocol

from chat_ops.config.settings import settings
from chat_ops.domain.exceptions import NotFound


@dataclass(frozen=True)
class SecretResolution:
    value: str
    source: str


class SecretProvider(Protocol):
    def resolve(self) -> Optional[SecretResolution]:
        ...


@dataclass(frozen=True)
class StaticSecretProvider:
    value: Optional[str]
    label: str = "settings"

    def resolve(self) -> Optional[SecretResolution]:
        if self.value and self.value.strip():
            return SecretResolution(self.value.strip(), self.label)
        return None


@dataclass(frozen=True)
class EnvSecretProvider:
    name: str = "WEBUI_SECRET_KEY"
    environ: Optional[Mapping[str, str]] = None

    def resolve(self) -> Optional[SecretResolution]:
        env = os.environ if self.environ is None else self.environ
        value = (env.get(self.name) or "").strip()
        if value:
            return SecretResolution(value, f"env:{self.name}")
        return None


@dataclass(frozen=True)
class FileSecretProvider:
    path: Path

    def resolve(self) -> Optional[SecretResolution]:
        path = Path(self.path).expanduser()
        if not path.is_file():
            return None
        value = path.read_text(encoding="utf-8").strip()
        if value:
            return SecretResolution(value, f"file:{path}")
        return None


def default_providers(cfg=settings, base_dir: Optional[Path] = None) -> List[SecretProvider]:
    """配置值 -> 环境变量 -> 候选文件（相对路径基于 base_dir，默认当前目录）。"""

    base = Path(base_dir) if base_dir is not None else Path.cwd()
    providers: List[SecretProvider] = [
        StaticSecretProvider(getattr(cfg, "webui_secret_key", None)),
        EnvSecretProvider(),
    ]
    for raw in getattr(cfg, "secret_key_files", []) or []:
        p = Path(raw).expanduser()
        providers.append(FileSecretProvider(p if p.is_absolute() else base / p))
    return providers


def resolve_secret_key(providers: Optional[Iterable[SecretProvider]] = None) -> SecretResolution:
    """返回第一个成功解析的密钥。

    Raises:
        NotFound: 所有来源都没有可用密钥。
    """

    tried: List[str] = []
    for provider in providers if providers is not None else default_providers():
        resolution = provider.resolve()
        if resolution is not None:
            return resolution
        tried.append(type(provider).__name__)
    raise NotFound(
        code="SECRET_KEY_NOT_FOUND",
        message="WEBUI_SECRET_KEY not found in settings, environment or key files",
        tried=tried,
    )
