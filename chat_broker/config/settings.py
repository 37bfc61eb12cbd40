"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
环境变量名沿用 MAX_HISTORY、SAVE_INTERVAL、CACHE_REFRESH、OLLAMA 等，
时间间隔单位为毫秒。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("BROKER_CONFIG_FILE")
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
        except Exception as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class BrokerSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 历史记录 ----
    max_history: int = Field(default=1000, ge=1, description="每个模型保留的最大消息条数")
    save_interval: int = Field(default=60000, ge=1, description="历史落盘间隔（毫秒）")
    history_dir: str = Field(default="history", description="历史文件目录")

    # ---- 模型可用性缓存 ----
    cache_refresh: int = Field(default=60000, ge=1, description="模型可用性缓存清空间隔（毫秒）")
    check_model_first: bool = Field(
        default=False,
        description="为 True 时先校验模型再写入用户消息；默认先写入后校验",
    )

    # ---- 内容过滤 ----
    banned_strings: str = Field(default="", description="逗号分隔的屏蔽词列表")

    # ---- 后端 ----
    ollama_base_url: str = Field(
        default="http://127.0.0.1:11434",
        validation_alias=AliasChoices("ollama", "ollama_base_url"),
        description="Ollama 服务地址",
    )
    http_timeout: Optional[float] = Field(
        default=None,
        description="后端请求超时（秒），为空表示不设超时",
    )

    # ---- 翻译 ----
    english_only: bool = Field(default=False, description="是否将非英文消息翻译为英文")
    translator_url: Optional[str] = Field(default=None, description="LibreTranslate 兼容服务地址")

    # ---- 服务与日志 ----
    host: str = Field(default="0.0.0.0", description="监听地址")
    port: int = Field(default=3000, ge=1, le=65535, description="监听端口")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("http_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("HTTP timeout must be positive")
        return v

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
            cls._config_source,
            file_secret_settings,
        )


def parse_banned_strings(raw: str) -> List[str]:
    """把逗号分隔的字符串切分为屏蔽词列表。

    空项会匹配所有消息，因此直接丢弃。
    """

    return [s.strip().lower() for s in (raw or "").split(",") if s.strip()]


settings = BrokerSettings()

