"""客户端会话模型与存储协议。

会话只存在于客户端，Relay 不做任何持久化。这里的字段名与本地存储中的
JSON 结构一一对应（camelCase），to_dict/from_dict 负责两者之间的转换。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .models import ChatMessage, DisplayType, Role


@dataclass
class FileAttachment:
    """消息附带的文件。

    file_content 只在当前会话轮次内有效，写入长期存储前会被剥离；
    preview 保存图片的 base64，用于历史消息展示。
    """

    name: str
    mime_type: str
    size: Optional[int]
    display_type: DisplayType
    file_content: Optional[str] = None
    preview: Optional[str] = None

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "displayType": self.display_type,
            "preview": self.preview,
        }
        if include_content:
            data["fileContent"] = self.file_content
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileAttachment":
        return cls(
            name=data.get("name") or "",
            mime_type=data.get("mimeType") or "application/octet-stream",
            size=data.get("size"),
            display_type=data.get("displayType") or "binary",
            file_content=data.get("fileContent"),
            preview=data.get("preview"),
        )


@dataclass
class Message:
    """会话中的一条消息。

    - content: 用户消息时与 raw_text 相同；助手消息时为累积的回复文本。
    - display_text/raw_text: 用户实际输入的文本，永远不包含文件注入内容。
    - service/model: 助手消息的来源标记。
    """

    role: Role
    content: str
    timestamp: Optional[int] = None
    display_text: Optional[str] = None
    raw_text: Optional[str] = None
    files: List[FileAttachment] = field(default_factory=list)
    service: Optional[str] = None
    model: Optional[str] = None

    @property
    def text(self) -> str:
        """可读文本：优先 display_text，其次 raw_text、content。"""
        return (self.display_text or self.raw_text or self.content or "").strip()

    def to_chat_message(self, content: Optional[str] = None) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content if content is None else content)

    def to_dict(self, include_file_content: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content, "timestamp": self.timestamp}
        if self.role == "user":
            data["displayText"] = self.display_text
            data["rawText"] = self.raw_text
            data["files"] = [f.to_dict(include_content=include_file_content) for f in self.files]
        else:
            data["service"] = self.service or ""
            data["model"] = self.model or ""
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data.get("role") or "user",
            content=data.get("content") or "",
            timestamp=data.get("timestamp"),
            display_text=data.get("displayText"),
            raw_text=data.get("rawText"),
            files=[FileAttachment.from_dict(f) for f in data.get("files") or [] if isinstance(f, dict)],
            service=data.get("service") or None,
            model=data.get("model") or None,
        )


@dataclass
class Conversation:
    id: str
    title: str
    created_at: int
    messages: List[Message] = field(default_factory=list)
    system_prompt: str = ""
    used_service: Optional[str] = None
    pinned: bool = False

    def to_dict(self, include_file_content: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict(include_file_content) for m in self.messages],
            "systemPrompt": self.system_prompt,
            "createdAt": self.created_at,
            "usedService": self.used_service,
            "pinned": self.pinned,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            created_at=int(data.get("createdAt") or 0),
            messages=[Message.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)],
            system_prompt=data.get("systemPrompt") or "",
            used_service=data.get("usedService"),
            pinned=bool(data.get("pinned")),
        )


@dataclass
class ServiceConfig:
    """单个 Provider 的客户端配置，只通过请求头发送给 Relay。"""

    api_key: str = ""
    model: str = ""
    enabled: bool = False


class KeyValueStorage(Protocol):
    """客户端持久化的最小接口（浏览器 localStorage 的等价物）。"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...
