"""纯函数渲染：把状态转换为 UI 可以直接展示的行数据。

每次调用都从状态重新计算，不缓存任何东西；相同状态下两次渲染结果相同。
Tk 控制台和测试都只依赖这里的行结构。
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from chat_core.client.state import ChatState, now_ms
from chat_core.domain.conversation import Conversation, FileAttachment


AUTHOR_USER = "你"
AUTHOR_ASSISTANT = "助手"
NO_MESSAGES = "暂无消息"
PREVIEW_CHARS = 60

SERVICE_ICONS = {"Groq": "⚡", "Cerebras": "🧠", "OpenRouter": "🌐"}


@dataclass(frozen=True)
class ConversationRow:
    id: str
    title: str
    preview: str
    time: str
    icon: str
    active: bool
    pinned: bool


@dataclass(frozen=True)
class FileChip:
    name: str
    icon: str
    label: str
    size: str
    is_image: bool


@dataclass(frozen=True)
class MessageRow:
    index: int
    role: str
    author: str
    text: str
    service_tag: str
    time: str
    files: Tuple[FileChip, ...] = ()


def format_relative_time(ts: int, now: Optional[int] = None) -> str:
    """毫秒时间戳 → 相对时间：刚刚、5m、3h、2d，超过一周显示日期。"""

    diff = (now if now is not None else now_ms()) - ts
    minutes = diff // 60_000
    hours = diff // 3_600_000
    days = diff // 86_400_000
    if minutes < 1:
        return "刚刚"
    if minutes < 60:
        return f"{minutes}m"
    if hours < 24:
        return f"{hours}h"
    if days < 7:
        return f"{days}d"
    dt = datetime.fromtimestamp(ts / 1000)
    return f"{dt.month}月{dt.day}日"


def format_time(ts: Optional[int]) -> str:
    if not ts:
        return ""
    return datetime.fromtimestamp(ts / 1000).strftime("%H:%M")


def shorten_model(model: Optional[str]) -> str:
    if not model:
        return ""
    return model.split("/")[-1].split(":")[0][:24] or model


def format_file_size(size: Optional[int]) -> str:
    if not size:
        return ""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def file_icon(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "📎"
    if mime_type.startswith("image/"):
        return "🖼️"
    if mime_type == "application/pdf":
        return "📄"
    if "json" in mime_type:
        return "🔧"
    if "csv" in mime_type:
        return "📊"
    if any(lang in mime_type for lang in ("python", "javascript", "typescript")):
        return "💻"
    if mime_type.startswith("text/"):
        return "📝"
    return "📎"


def file_label(mime_type: Optional[str], filename: Optional[str] = None) -> str:
    if not mime_type:
        return "文件"
    if mime_type.startswith("image/"):
        return mime_type.split("/")[1].upper()
    if mime_type == "application/pdf":
        return "PDF"
    if "json" in mime_type:
        return "JSON"
    if "csv" in mime_type:
        return "CSV"
    if filename:
        return filename.rsplit(".", 1)[-1].upper()
    if mime_type.startswith("text/"):
        return "文本"
    return "文件"


def conversation_icon(conv: Conversation) -> str:
    if conv.pinned:
        return "📌"
    if not conv.messages:
        return "💬"
    return SERVICE_ICONS.get(conv.used_service or "", "💬")


def render_conversation_list(state: ChatState, now: Optional[int] = None) -> List[ConversationRow]:
    rows: List[ConversationRow] = []
    for conv in state.sorted_conversations():
        visible = [m for m in conv.messages if m.role != "system"]
        preview = NO_MESSAGES
        if visible:
            preview = visible[-1].text[:PREVIEW_CHARS].replace("\n", " ") or NO_MESSAGES
        rows.append(
            ConversationRow(
                id=conv.id,
                title=conv.title,
                preview=preview,
                time=format_relative_time(conv.created_at, now) if conv.messages else "",
                icon=conversation_icon(conv),
                active=conv.id == state.current_id,
                pinned=conv.pinned,
            )
        )
    return rows


def _file_chip(f: FileAttachment) -> FileChip:
    return FileChip(
        name=f.name,
        icon=file_icon(f.mime_type),
        label=file_label(f.mime_type, f.name),
        size=format_file_size(f.size),
        is_image=f.display_type == "image" and bool(f.preview),
    )


def render_messages(conv: Optional[Conversation]) -> List[MessageRow]:
    """用户消息只展示 display_text，附件内容不会出现在气泡里。"""

    if conv is None:
        return []
    rows: List[MessageRow] = []
    for idx, msg in enumerate(conv.messages):
        is_user = msg.role == "user"
        if is_user:
            text = msg.display_text if msg.display_text is not None else msg.content
        else:
            text = msg.content
        service_tag = ""
        if not is_user and msg.service:
            service_tag = msg.service + (f" · {shorten_model(msg.model)}" if msg.model else "")
        rows.append(
            MessageRow(
                index=idx,
                role=msg.role,
                author=AUTHOR_USER if is_user else AUTHOR_ASSISTANT,
                text=text,
                service_tag=service_tag,
                time=format_time(msg.timestamp),
                files=tuple(_file_chip(f) for f in msg.files),
            )
        )
    return rows
