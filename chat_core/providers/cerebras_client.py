"""Cerebras Provider 适配器。

与 Groq 相同使用 max_completion_tokens；Cerebras 是唯一支持实时列出
账户可用模型（GET /models）的厂商，见 OpenAICompatibleClient.list_models。
"""

from chat_core.providers.openai_compat import OpenAICompatibleClient
from chat_core.providers.registry import CEREBRAS_CONFIG


class CerebrasClient(OpenAICompatibleClient):
    """Cerebras 提供方客户端实现。"""

    name = "Cerebras"
    config = CEREBRAS_CONFIG
