"""客户端状态存储。

ChatState 持有所有会话、当前选择的服务、待发送的附件以及各 Provider 的
密钥配置。每次修改性的操作结束后都会同步写入 KeyValueStorage；写入或读取
失败只记录日志，不会抛给 UI。

持久化结构（键 neuralchat_v2，旧版键 neuralchat_state 只读兼容）：

    {
      "conversations": {"<id>": {...Conversation.to_dict()...}},
      "currentId": "...",
      "selectedService": "auto",
      "theme": "dark",
      "apiKeys": {"groq": {"key": "...", "model": "...", "enabled": true}, ...}
    }
"""

import json
import time
from typing import Callable, Dict, List, Optional, Union
from uuid import uuid4

from chat_core.domain.conversation import Conversation, KeyValueStorage, ServiceConfig
from chat_core.domain.exceptions import BusinessError, ValidationError
from chat_core.domain.models import UploadDescriptor
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_template
from chat_core.providers.credentials import header_names
from chat_core.providers.registry import PROVIDER_REGISTRY, ProviderKind, parse_kind


STORAGE_KEY = "neuralchat_v2"
LEGACY_STORAGE_KEY = "neuralchat_state"
DEFAULT_TITLE = "新对话"
TITLE_MAX_CHARS = 48
AUTO_SERVICE = "auto"


def now_ms() -> int:
    return int(time.time() * 1000)


def default_api_keys() -> Dict[str, ServiceConfig]:
    return {kind.value: ServiceConfig(model=cfg.default_model) for kind, cfg in PROVIDER_REGISTRY.items()}


def _kind_of(kind: Union[str, ProviderKind]) -> ProviderKind:
    resolved = kind if isinstance(kind, ProviderKind) else parse_kind(kind)
    if resolved is None:
        raise ValidationError(code="UNKNOWN_SERVICE", message=f"Unknown service: {kind!r}")
    return resolved


class ChatState:
    def __init__(self, storage: KeyValueStorage, clock: Callable[[], int] = now_ms):
        self.storage = storage
        self.clock = clock
        self.conversations: Dict[str, Conversation] = {}
        self.current_id: Optional[str] = None
        self.selected_service: str = AUTO_SERVICE
        self.pending_files: List[UploadDescriptor] = []
        self.streaming = False
        self.search_query = ""
        self.theme: Optional[str] = None
        self.api_keys: Dict[str, ServiceConfig] = default_api_keys()

    @property
    def current(self) -> Optional[Conversation]:
        if self.current_id is None:
            return None
        return self.conversations.get(self.current_id)

    # ---- 持久化 ----

    def to_dict(self) -> Dict:
        return {
            "conversations": {cid: conv.to_dict() for cid, conv in self.conversations.items()},
            "currentId": self.current_id,
            "selectedService": self.selected_service,
            "theme": self.theme,
            "apiKeys": {
                name: {"key": cfg.api_key, "model": cfg.model, "enabled": cfg.enabled}
                for name, cfg in self.api_keys.items()
            },
        }

    def save(self) -> bool:
        """写入存储；失败时记录警告并返回 False。"""

        try:
            self.storage.set(STORAGE_KEY, json.dumps(self.to_dict(), ensure_ascii=False))
        except (BusinessError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Storage save failed: {e}")
            return False
        return True

    def load(self) -> bool:
        """从存储恢复状态，优先新版键，其次旧版键。

        用户消息的 content/display_text 以 raw_text 为准恢复，
        附件的 file_content 不会被恢复。
        """

        try:
            raw = self.storage.get(STORAGE_KEY) or self.storage.get(LEGACY_STORAGE_KEY)
            if not raw:
                return False
            saved = json.loads(raw)
            if not isinstance(saved, dict):
                raise ValueError("stored state is not an object")

            # 会话集合可能是 {id: 会话} 或会话列表
            stored = saved.get("conversations") or {}
            if isinstance(stored, dict):
                entries = list(stored.items())
            elif isinstance(stored, list):
                entries = [(None, data) for data in stored]
            else:
                raise ValueError("stored conversations are not a collection")

            conversations: Dict[str, Conversation] = {}
            for cid, data in entries:
                if not isinstance(data, dict):
                    continue
                if cid is not None:
                    data.setdefault("id", cid)
                if not data.get("id"):
                    continue
                conv = Conversation.from_dict(data)
                for msg in conv.messages:
                    if msg.role == "user" and msg.raw_text is not None:
                        msg.content = msg.raw_text or msg.content
                        msg.display_text = msg.raw_text or msg.display_text or msg.content
                    for f in msg.files:
                        f.file_content = None
                conversations[conv.id] = conv

            self.conversations = conversations
            current_id = saved.get("currentId")
            self.current_id = current_id if current_id in conversations else None
            self.selected_service = saved.get("selectedService") or AUTO_SERVICE
            self.theme = saved.get("theme") or self.theme

            saved_keys = saved.get("apiKeys")
            if not isinstance(saved_keys, dict):
                saved_keys = {}
            for name, data in saved_keys.items():
                cfg = self.api_keys.get(name)
                if cfg is None or not isinstance(data, dict):
                    continue
                cfg.api_key = data.get("key", cfg.api_key) or ""
                cfg.model = data.get("model") or cfg.model
                cfg.enabled = bool(data.get("enabled", cfg.enabled))
        except (BusinessError, OSError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Storage load failed: {e}")
            return False
        return True

    # ---- 会话操作 ----

    def new_conversation(self) -> Conversation:
        created_at = self.clock()
        cid = f"conv_{created_at}"
        if cid in self.conversations:
            cid = f"{cid}_{uuid4().hex[:6]}"
        conv = Conversation(id=cid, title=DEFAULT_TITLE, created_at=created_at)
        self.conversations[cid] = conv
        self.current_id = cid
        self.pending_files = []
        self.save()
        return conv

    def get_conversation(self, conversation_id: str) -> Conversation:
        conv = self.conversations.get(conversation_id)
        if conv is None:
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)
        return conv

    def switch_conversation(self, conversation_id: str) -> Conversation:
        conv = self.get_conversation(conversation_id)
        self.current_id = conv.id
        self.pending_files = []
        self.save()
        return conv

    def delete_conversation(self, conversation_id: str) -> None:
        """删除会话；若删除的是当前会话，切到最近的一个，没有则新建。"""

        self.get_conversation(conversation_id)
        del self.conversations[conversation_id]
        if self.current_id == conversation_id:
            if self.conversations:
                latest = max(self.conversations.values(), key=lambda c: c.created_at)
                self.switch_conversation(latest.id)
            else:
                self.new_conversation()
        self.save()

    def toggle_pin(self, conversation_id: str) -> bool:
        conv = self.get_conversation(conversation_id)
        conv.pinned = not conv.pinned
        self.save()
        return conv.pinned

    def clear_messages(self, conversation_id: Optional[str] = None) -> None:
        conv = self.get_conversation(conversation_id or self.current_id or "")
        conv.messages = []
        self.save()

    def set_system_prompt(self, prompt: str, conversation_id: Optional[str] = None) -> None:
        conv = self.get_conversation(conversation_id or self.current_id or "")
        conv.system_prompt = (prompt or "").strip()
        self.save()

    def apply_template(self, name: str, conversation_id: Optional[str] = None) -> str:
        prompt = load_template(name)
        self.set_system_prompt(prompt, conversation_id)
        return prompt

    def update_title(self, conv: Conversation) -> None:
        """会话仍是默认标题时，用第一条用户消息生成标题。"""

        if not conv.messages or conv.title != DEFAULT_TITLE:
            return
        first_user = next((m for m in conv.messages if m.role == "user"), None)
        if first_user is None:
            return
        raw = first_user.display_text or first_user.raw_text or first_user.content or ""
        if not raw:
            return
        suffix = "…" if len(raw) > TITLE_MAX_CHARS else ""
        conv.title = raw[:TITLE_MAX_CHARS].replace("\n", " ") + suffix

    def sorted_conversations(self) -> List[Conversation]:
        """置顶在前，其余按创建时间倒序；search_query 过滤标题与消息文本。"""

        convs = sorted(self.conversations.values(), key=lambda c: (not c.pinned, -c.created_at))
        query = self.search_query.strip().lower()
        if query:
            convs = [
                c for c in convs
                if query in c.title.lower() or any(query in m.text.lower() for m in c.messages)
            ]
        return convs

    # ---- 附件 ----

    def add_pending_file(self, descriptor: UploadDescriptor) -> None:
        self.pending_files.append(descriptor)

    def remove_pending_file(self, index: int) -> None:
        if 0 <= index < len(self.pending_files):
            del self.pending_files[index]

    # ---- 服务与密钥 ----

    def save_api_key(self, kind: Union[str, ProviderKind], api_key: str, model: Optional[str] = None) -> None:
        resolved = _kind_of(kind)
        cfg = self.api_keys[resolved.value]
        cfg.api_key = (api_key or "").strip()
        cfg.model = (model or "").strip() or PROVIDER_REGISTRY[resolved].default_model
        cfg.enabled = bool(cfg.api_key)
        self.save()

    def clear_api_key(self, kind: Union[str, ProviderKind]) -> None:
        cfg = self.api_keys[_kind_of(kind).value]
        cfg.api_key = ""
        cfg.enabled = False
        self.save()

    def has_any_api_key(self) -> bool:
        return any(cfg.api_key.strip() for cfg in self.api_keys.values())

    def api_headers(self) -> Dict[str, str]:
        """为每个填写了密钥的 Provider 生成 X-<Provider>-Key/Model 请求头。"""

        headers: Dict[str, str] = {}
        for kind, provider_cfg in PROVIDER_REGISTRY.items():
            cfg = self.api_keys[kind.value]
            if not cfg.api_key:
                continue
            key_header, model_header = header_names(kind)
            headers[key_header] = cfg.api_key
            headers[model_header] = cfg.model or provider_cfg.default_model
        return headers

    def select_service(self, name: str) -> str:
        if not name or name.strip().lower() == AUTO_SERVICE:
            self.selected_service = AUTO_SERVICE
        else:
            self.selected_service = _kind_of(name).value
        self.save()
        return self.selected_service

    def set_theme(self, theme: str) -> None:
        self.theme = theme
        self.save()
