"""Groq Provider 适配器。

Groq 的 OpenAI 兼容端点位于 /openai/v1 之下，输出上限字段为
max_completion_tokens，top_p 固定为 1。
"""

from chat_core.providers.openai_compat import OpenAICompatibleClient
from chat_core.providers.registry import GROQ_CONFIG


class GroqClient(OpenAICompatibleClient):
    """Groq 提供方客户端实现。"""

    name = "Groq"
    config = GROQ_CONFIG
