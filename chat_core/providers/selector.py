"""Service Selector：把一次请求解析为唯一的 ProviderClient。

规则：
1. 调用方指定了服务名，且该服务已配置 → 直接使用。
2. 否则在“当前已配置”的 Provider 之间 round-robin，每次 auto 选择游标加一。
3. 一个都没有配置 → ConfigurationError（400），没有可回退的对象。

游标是 ServiceSelector 实例上的普通整数，由 Relay 应用在启动时创建并持有。
它没有加锁：同一事件循环里的选择本身是同步的，不会交错；但如果把同一个
实例放到多个线程/进程共享，游标可能竞争，此时只保证大致公平，不保证严格轮转。
"""

from typing import List, Mapping, Optional

from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import ProviderKind, parse_kind


NO_PROVIDER_MESSAGE = (
    "No AI provider is configured. Add an API key for Groq, Cerebras or OpenRouter "
    "in the settings panel (or set GROQ_API_KEY / CEREBRAS_API_KEY / OPENROUTER_API_KEY on the server)."
)


class ServiceSelector:
    def __init__(self, start: int = 0):
        self._cursor = start

    @property
    def cursor(self) -> int:
        return self._cursor

    def select(
        self,
        providers: Mapping[ProviderKind, ProviderClient],
        name: Optional[str] = None,
    ) -> ProviderClient:
        """从已配置的 providers 中选出一个。

        providers 只应包含已配置（有密钥）的适配器，迭代顺序即轮转顺序。
        """

        kind = parse_kind(name)
        if kind is not None and kind in providers:
            return providers[kind]

        configured: List[ProviderClient] = list(providers.values())
        if not configured:
            raise ConfigurationError(code="NO_PROVIDER_CONFIGURED", message=NO_PROVIDER_MESSAGE)
        index = self._cursor % len(configured)
        self._cursor = (index + 1) % len(configured)
        return configured[index]
