"""会话导出与导入。

导出支持 markdown/json/txt 三种格式，返回 (文件名, MIME, 内容)，
由调用方决定写到哪里。只有 JSON 导出可以再导入，导入后 role/content/
service/model 与导出前一致。
"""

import json
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

from chat_core.client.state import DEFAULT_TITLE, ChatState
from chat_core.domain.conversation import Conversation, Message
from chat_core.domain.exceptions import ValidationError


EXPORT_FORMATS = {
    "markdown": ("md", "text/markdown"),
    "json": ("json", "application/json"),
    "txt": ("txt", "text/plain"),
}

_VALID_ROLES = {"user", "assistant", "system"}


def export_filename(conv: Conversation, ext: str) -> str:
    slug = re.sub(r"\s+", "-", conv.title[:30])
    return f"neuralchat-{slug}.{ext}"


def _to_markdown(conv: Conversation, exported_at: datetime) -> str:
    content = f"# {conv.title}\n\n_导出时间：{exported_at:%Y-%m-%d %H:%M:%S}_\n\n---\n\n"
    if conv.system_prompt:
        content += f"**系统提示词：** {conv.system_prompt}\n\n---\n\n"
    for m in conv.messages:
        if m.role == "user":
            label = "👤 你"
        else:
            service = f" ({m.service}{f' · {m.model}' if m.model else ''})" if m.service else ""
            label = f"🤖 助手{service}"
        content += f"## {label}\n\n{m.content}\n\n---\n\n"
    return content


def _to_json(conv: Conversation, exported_at: datetime) -> str:
    return json.dumps(
        {
            "title": conv.title,
            "exportedAt": exported_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "systemPrompt": conv.system_prompt,
            "messages": [
                {
                    "role": m.role,
                    "content": m.content,
                    "service": m.service,
                    "model": m.model,
                    "timestamp": m.timestamp,
                }
                for m in conv.messages
            ],
        },
        ensure_ascii=False,
        indent=2,
    )


def _to_text(conv: Conversation, exported_at: datetime) -> str:
    content = f"{conv.title}\n导出时间：{exported_at:%Y-%m-%d %H:%M:%S}\n{'=' * 50}\n\n"
    for m in conv.messages:
        label = "你" if m.role == "user" else f"助手{f' - {m.service}' if m.service else ''}"
        content += f"[{label}]\n{m.content}\n\n{'-' * 40}\n\n"
    return content


def export_conversation(
    conv: Conversation,
    fmt: str = "markdown",
    exported_at: Optional[datetime] = None,
) -> Tuple[str, str, str]:
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(code="UNKNOWN_EXPORT_FORMAT", message=f"Unknown export format: {fmt!r}")
    exported_at = exported_at or datetime.now().astimezone()
    ext, mime = EXPORT_FORMATS[fmt]
    if fmt == "markdown":
        content = _to_markdown(conv, exported_at)
    elif fmt == "json":
        content = _to_json(conv, exported_at)
    else:
        content = _to_text(conv, exported_at)
    return export_filename(conv, ext), mime, content


def import_conversation(state: ChatState, json_text: str) -> Conversation:
    """从 JSON 导出重建一个新会话，并切换为当前会话。"""

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise ValidationError(code="INVALID_IMPORT", message=f"Invalid JSON: {e}")
    if not isinstance(data, dict) or not isinstance(data.get("messages", []), list):
        raise ValidationError(code="INVALID_IMPORT", message="Not a NeuralChat JSON export")

    conv = state.new_conversation()
    conv.title = data.get("title") or DEFAULT_TITLE
    conv.system_prompt = data.get("systemPrompt") or ""
    for item in data.get("messages") or []:
        if not isinstance(item, dict) or item.get("role") not in _VALID_ROLES:
            continue
        content = item.get("content") or ""
        if item["role"] == "user":
            msg = Message(
                role="user",
                content=content,
                display_text=content,
                raw_text=content,
                timestamp=item.get("timestamp"),
            )
        else:
            msg = Message(
                role=item["role"],
                content=content,
                timestamp=item.get("timestamp"),
                service=item.get("service") or None,
                model=item.get("model") or None,
            )
            if msg.service:
                conv.used_service = msg.service
        conv.messages.append(msg)
    state.save()
    return conv
