"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。

优先级（高 → 低）：显式参数 > 环境变量 > .env > config.yaml。
Provider 的密钥在这里只是“环境级”默认值，请求头里携带的密钥优先级更高，
见 chat_core.providers.credentials。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
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


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    # Groq
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_model: Optional[str] = Field(default=None, description="Groq 模型，为空时使用 registry 默认值")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq API 基础URL",
    )
    # Cerebras
    cerebras_api_key: Optional[str] = Field(default=None, description="Cerebras API 密钥")
    cerebras_model: Optional[str] = Field(default=None, description="Cerebras 模型")
    cerebras_base_url: str = Field(
        default="https://api.cerebras.ai/v1",
        description="Cerebras API 基础URL",
    )
    # OpenRouter
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API 密钥")
    openrouter_model: Optional[str] = Field(default=None, description="OpenRouter 模型")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API 基础URL",
    )
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- Relay 服务 ----
    host: str = Field(default="0.0.0.0", description="监听地址")
    port: int = Field(default=3000, ge=1, le=65535, description="监听端口")
    static_dir: str = Field(default="public", description="静态文件目录（index.html/style.css/app.js）")
    relay_queue_size: int = Field(
        default=64,
        ge=1,
        description="SSE 转发通道的容量（adapter 产出的片段数）",
    )

    # ---- 客户端 ----
    relay_url: str = Field(default="http://localhost:3000", description="Relay 服务地址")
    client_storage_root: str = Field(default=".storage", description="客户端本地存储目录")
    retry_delay: float = Field(default=1.5, ge=0.0, description="网络错误自动重试前的等待（秒）")
    max_file_chars: int = Field(default=8000, ge=100, description="单个文件注入到 prompt 的最大字符数")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("groq_api_key", "cerebras_api_key", "openrouter_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
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


settings = Settings()
