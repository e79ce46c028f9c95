"""Relay 请求体模型。

FastAPI 用这些 Pydantic 模型校验 POST /chat 的 JSON，
校验失败会被统一转换为 400 {"error": ...}。
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessageIn(BaseModel):
    """POST /chat 里的一条消息，与 domain.models.ChatMessage 对应。"""

    role: Literal["user", "assistant", "system"]
    content: str


class ChatBody(BaseModel):
    """POST /chat 的请求体。

    - messages: 完整的上下文（含可选的 system 消息），按时间顺序。
    - service: 可选的服务名；为空或 "auto" 时走 round-robin。
    """

    messages: List[ChatMessageIn] = Field(default_factory=list)
    service: Optional[str] = None
