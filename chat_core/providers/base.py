"""Provider 抽象接口。

Relay 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GroqClient）。
- 负责：把 ChatMessage 列表转成具体 API 请求，并把流式增量映射为纯文本片段。

这样可以在不改 Relay 代码的前提下接入更多 OpenAI 兼容的厂商。
"""

from typing import AsyncIterator, List, Protocol, Sequence

from chat_core.domain.models import ChatMessage
from chat_core.providers.registry import ProviderKind


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: 展示名，用于徽标/路由。
    - kind: 所属的 ProviderKind。
    - model: 实际使用的模型（请求头可以覆盖，所以只有实例化后才确定）。
    - chat_stream(messages): 建立流式调用并返回文本片段的异步迭代器。
      上游在开始流式之前失败时直接抛出异常；迭代器只能消费一次。
    - list_models(): 返回可选模型列表。
    """

    name: str
    kind: ProviderKind

    @property
    def model(self) -> str:
        ...

    async def chat_stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        ...

    async def list_models(self) -> List[str]:
        ...
