"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 解析环境/请求头凭据 (credentials)。
- 提供各厂商的具体实现 (groq_client、cerebras_client、openrouter_client)。
- 在多个 Provider 之间做选择 (selector)。
"""

from typing import Dict, Mapping, Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ProviderClient
from chat_core.providers.cerebras_client import CerebrasClient
from chat_core.providers.credentials import ProviderCredentials, resolve_credentials
from chat_core.providers.groq_client import GroqClient
from chat_core.providers.openrouter_client import OpenRouterClient
from chat_core.providers.registry import PROVIDER_REGISTRY, ProviderKind, parse_kind


CLIENT_CLASSES = {
    ProviderKind.GROQ: GroqClient,
    ProviderKind.CEREBRAS: CerebrasClient,
    ProviderKind.OPENROUTER: OpenRouterClient,
}


def create_provider(kind: ProviderKind, credentials: ProviderCredentials, cfg=None) -> ProviderClient:
    """根据 kind 创建 Provider 实例。"""

    client_cls = CLIENT_CLASSES[kind]
    return client_cls(credentials.api_key, model=credentials.model, cfg=cfg or settings)


def build_providers(
    credentials: Mapping[ProviderKind, ProviderCredentials],
    cfg=None,
) -> Dict[ProviderKind, ProviderClient]:
    """为每个已配置的 Provider 创建适配器，顺序与 registry 一致。"""

    providers: Dict[ProviderKind, ProviderClient] = {}
    for kind in PROVIDER_REGISTRY:
        cred = credentials.get(kind)
        if cred is not None and cred.configured:
            providers[kind] = create_provider(kind, cred, cfg)
    return providers


def providers_for_headers(headers: Optional[Mapping[str, str]] = None, cfg=None) -> Dict[ProviderKind, ProviderClient]:
    """Relay 默认使用的工厂：合并环境与请求头凭据后构建适配器表。"""

    cfg = cfg or settings
    return build_providers(resolve_credentials(cfg, headers), cfg)


__all__ = [
    "ProviderClient",
    "ProviderKind",
    "build_providers",
    "create_provider",
    "parse_kind",
    "providers_for_headers",
]
