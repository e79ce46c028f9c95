"""Provider 凭据解析。

凭据有两个来源：进程环境（Settings）与请求头 X-<Provider>-Key /
X-<Provider>-Model。两者同时存在时请求头优先，这样浏览器端保存的密钥
可以覆盖服务器上的默认配置。
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from chat_core.providers.registry import PROVIDER_REGISTRY, ProviderKind


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: Optional[str] = None
    model: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


def header_names(kind: ProviderKind) -> tuple:
    """返回某个 Provider 的 (密钥头, 模型头)，如 ("X-Groq-Key", "X-Groq-Model")。"""

    prefix = f"X-{kind.value.capitalize()}"
    return f"{prefix}-Key", f"{prefix}-Model"


def _lookup(headers: Mapping[str, str], name: str) -> Optional[str]:
    # starlette 的 Headers 本身大小写不敏感，普通 dict 需要手动匹配
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for k, v in headers.items():
            if k.lower() == lowered:
                value = v
                break
    value = (value or "").strip()
    return value or None


def resolve_credentials(
    cfg,
    headers: Optional[Mapping[str, str]] = None,
) -> Dict[ProviderKind, ProviderCredentials]:
    """合并环境配置与请求头，得到每个 Provider 的最终凭据。"""

    headers = headers or {}
    resolved: Dict[ProviderKind, ProviderCredentials] = {}
    for kind in PROVIDER_REGISTRY:
        key_header, model_header = header_names(kind)
        header_key = _lookup(headers, key_header)
        header_model = _lookup(headers, model_header)
        env_key = getattr(cfg, f"{kind.value}_api_key", None)
        env_model = getattr(cfg, f"{kind.value}_model", None)
        resolved[kind] = ProviderCredentials(
            api_key=header_key or env_key or None,
            model=header_model or env_model or None,
        )
    return resolved
