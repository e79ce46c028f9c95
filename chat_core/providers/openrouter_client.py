"""OpenRouter Provider 适配器。

OpenRouter 使用旧的 max_tokens 字段，并要求 HTTP-Referer / X-Title 头
标识调用方；流中可能夹带 ": OPENROUTER PROCESSING" 注释行和 error 对象，
均由基类处理。
"""

from chat_core.providers.openai_compat import OpenAICompatibleClient
from chat_core.providers.registry import OPENROUTER_CONFIG


class OpenRouterClient(OpenAICompatibleClient):
    """OpenRouter 提供方客户端实现。"""

    name = "OpenRouter"
    config = OPENROUTER_CONFIG
