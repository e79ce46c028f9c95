"""统一的对话与上传数据模型。

本模块定义了 Relay 与各 Provider 之间共享的标准数据结构：

- ChatMessage: 发给 Provider 的一条对话消息（system/user/assistant）。
- UploadDescriptor: 上传文件经过分类/抽取后的统一描述。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
与这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal


# LLM 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# 上传文件的展示类型
DisplayType = Literal["text", "image", "binary"]


@dataclass(frozen=True)
class ChatMessage:
    """一条发给 Provider 的对话消息。

    发送后不可变，role 不会再改变。
    """

    role: Role
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class UploadDescriptor:
    """上传助手的统一返回结构。

    - type: text/image/binary，决定客户端如何展示与注入。
    - filename: 原始文件名。
    - content: text 时为解码后的文本，其余为 base64。
    - mime_type: 由扩展名推断出的 MIME 类型。
    - size: 原始字节数。
    """

    type: DisplayType
    filename: str
    content: str
    mime_type: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "filename": self.filename,
            "content": self.content,
            "mimeType": self.mime_type,
            "size": self.size,
        }
