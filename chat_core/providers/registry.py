"""Provider 与模型配置。

Provider 集合是封闭的：只有 ProviderKind 中列出的几种。每种 Provider 的
基础 URL、默认模型、采样参数与可选模型列表都集中在这里，适配器本身只负责
协议转换，便于后续升级模型或调整参数。"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional


class ProviderKind(str, Enum):
    GROQ = "groq"
    CEREBRAS = "cerebras"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。

    - name: 展示名，用于徽标和 SSE 首帧里的 service 字段。
    - token_field: 该厂商接受的最大输出 token 字段名。
    - top_p: 为 None 时不发送该字段。
    - live_models: 是否支持调用上游接口实时列出模型。
    """

    kind: ProviderKind
    name: str
    base_url: str
    default_model: str
    max_tokens: int
    token_field: str = "max_completion_tokens"
    temperature: float = 0.6
    top_p: Optional[float] = None
    models: List[str] = field(default_factory=list)
    live_models: bool = False
    extra_headers: Dict[str, str] = field(default_factory=dict)


GROQ_CONFIG = ProviderConfig(
    kind=ProviderKind.GROQ,
    name="Groq",
    base_url="https://api.groq.com/openai/v1",
    default_model="moonshotai/kimi-k2-instruct-0905",
    max_tokens=4096,
    top_p=1.0,
    models=[
        "moonshotai/kimi-k2-instruct-0905",
        "deepseek-r1-distill-llama-70b",
        "llama-3.3-70b-versatile",
    ],
)

CEREBRAS_CONFIG = ProviderConfig(
    kind=ProviderKind.CEREBRAS,
    name="Cerebras",
    base_url="https://api.cerebras.ai/v1",
    default_model="gpt-oss-120b",
    max_tokens=8192,
    top_p=0.95,
    models=[
        "gpt-oss-120b",
        "qwen-3-235b-a22b-instruct-2507",
        "zai-glm-4.7",
        "llama3.1-8b",
    ],
    live_models=True,
)

OPENROUTER_CONFIG = ProviderConfig(
    kind=ProviderKind.OPENROUTER,
    name="OpenRouter",
    base_url="https://openrouter.ai/api/v1",
    default_model="openrouter/auto",
    max_tokens=4096,
    token_field="max_tokens",
    models=[
        "google/gemini-2.0-flash-exp:free",
        "meta-llama/llama-3.3-70b-instruct:free",
        "deepseek/deepseek-r1:free",
        "openrouter/auto",
    ],
    extra_headers={
        "HTTP-Referer": "http://localhost:3000",
        "X-Title": "NeuralChat",
    },
)


# 顺序即 round-robin 的轮转顺序
PROVIDER_REGISTRY: Mapping[ProviderKind, ProviderConfig] = {
    ProviderKind.GROQ: GROQ_CONFIG,
    ProviderKind.CEREBRAS: CEREBRAS_CONFIG,
    ProviderKind.OPENROUTER: OPENROUTER_CONFIG,
}


def parse_kind(name: Optional[str]) -> Optional[ProviderKind]:
    """把服务名（kind id 或展示名，不区分大小写）解析为 ProviderKind。

    "auto"、空值和未知名称都返回 None。
    """

    if not name:
        return None
    key = name.strip().lower()
    for kind, cfg in PROVIDER_REGISTRY.items():
        if key in (kind.value, cfg.name.lower()):
            return kind
    return None


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    kind = parse_kind(name)
    if kind is None:
        raise KeyError(f"Unknown provider: {name!r}")
    return PROVIDER_REGISTRY[kind]
