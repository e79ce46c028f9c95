"""把客户端消息拼装成发给 Relay 的内容。

用户看到的文本 (display_text) 与发给模型的文本是分开的：附件只在这里
以标记的形式拼接到 content 后面，不会写回消息本身。
"""

from typing import List, Optional, Sequence

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation, FileAttachment, Message
from chat_core.domain.models import ChatMessage, UploadDescriptor


TRUNCATION_NOTICE = "\n\n[... content truncated: {total} characters in total ...]\n\n"


def truncate_file_content(text: Optional[str], max_chars: Optional[int] = None) -> str:
    """超过阈值的文本只保留开头和结尾各一半，中间插入截断说明。"""

    max_chars = max_chars or settings.max_file_chars
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    half = max_chars // 2
    return text[:half] + TRUNCATION_NOTICE.format(total=f"{len(text):,}") + text[-half:]


def attachment_from_upload(descriptor: UploadDescriptor, max_chars: Optional[int] = None) -> FileAttachment:
    return FileAttachment(
        name=descriptor.filename,
        mime_type=descriptor.mime_type,
        size=descriptor.size,
        display_type=descriptor.type,
        preview=descriptor.content if descriptor.type == "image" else None,
        file_content=truncate_file_content(descriptor.content, max_chars) if descriptor.type == "text" else None,
    )


def build_user_message(
    text: str,
    pending: Sequence[UploadDescriptor],
    timestamp: int,
    max_chars: Optional[int] = None,
) -> Message:
    return Message(
        role="user",
        content=text,
        display_text=text,
        raw_text=text,
        timestamp=timestamp,
        files=[attachment_from_upload(d, max_chars) for d in pending],
    )


def build_api_content(message: Message) -> str:
    if not message.files:
        return message.content
    extra = ""
    for f in message.files:
        if f.display_type == "image":
            extra += f"[Attached image: {f.name}]\n"
        elif f.file_content:
            extra += f"\n--- File: {f.name} ---\n{f.file_content}\n---\n"
        elif f.display_type == "binary":
            extra += f"[Attached binary file: {f.name} ({f.mime_type})]\n"
    prefix = message.content + "\n\n" if message.content else ""
    return prefix + extra.strip()


def build_api_messages(conv: Conversation) -> List[ChatMessage]:
    messages: List[ChatMessage] = []
    if conv.system_prompt:
        messages.append(ChatMessage(role="system", content=conv.system_prompt))
    for m in conv.messages:
        messages.append(m.to_chat_message(build_api_content(m)))
    return messages
