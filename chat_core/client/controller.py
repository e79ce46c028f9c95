"""单轮对话控制器。

每一轮对话都经过同一个状态机：

    idle → sending → streaming → (completed | cancelled | errored) → idle

- sending: 请求已发出，还没有收到任何 SSE 事件。
- streaming: 已收到首帧，助手占位消息已追加到会话末尾，片段逐个累加。
- completed/cancelled/errored: 本轮的结果，send_message 等方法会返回它，
  随后控制器回到 idle。

读取循环运行在单独的 asyncio.Task 中，stop() 通过取消该任务中断读取。
取消只保证客户端不再读取；Relay 侧在连接断开后自行取消生产者。

UI 通过两个回调获知变化：
- on_update(index): 某条消息（index 为 None 时表示整个会话）需要重新渲染。
- on_notify(message, level): 需要提示给用户的信息，level 为 info/success/error。
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from chat_core.client.content import build_api_messages, build_user_message
from chat_core.client.state import ChatState
from chat_core.client.streaming import RelayClient
from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation, Message
from chat_core.domain.exceptions import BusinessError, NetworkError
from chat_core.domain.models import UploadDescriptor
from chat_core.infrastructure.logging.logger import logger


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


UpdateCallback = Callable[[Optional[int]], None]
NotifyCallback = Callable[[str, str], None]


class ChatController:
    def __init__(
        self,
        state: ChatState,
        relay: RelayClient,
        on_update: Optional[UpdateCallback] = None,
        on_notify: Optional[NotifyCallback] = None,
        retry_delay: Optional[float] = None,
        max_file_chars: Optional[int] = None,
    ):
        self.state = state
        self.relay = relay
        self.on_update = on_update
        self.on_notify = on_notify
        self.retry_delay = settings.retry_delay if retry_delay is None else retry_delay
        self.max_file_chars = max_file_chars or settings.max_file_chars
        self.turn_state = TurnState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._placeholder: Optional[Message] = None
        self._abort_requested = False

    # ---- 回调 ----

    def _update(self, index: Optional[int] = None) -> None:
        if self.on_update is not None:
            self.on_update(index)

    def _notify(self, message: str, level: str = "info") -> None:
        if self.on_notify is not None:
            self.on_notify(message, level)

    # ---- 对外操作 ----

    async def send_message(self, text: str) -> Optional[TurnState]:
        """发送一条用户消息并流式接收回复。

        以下情况直接拒绝并返回 None：没有任何 API 密钥；文本与待发附件都为空；
        正在流式输出。
        """

        if not self.state.has_any_api_key():
            self._notify("请先在设置中配置 API 密钥", "error")
            return None
        text = (text or "").strip()
        if not text and not self.state.pending_files:
            return None
        if self.state.streaming:
            return None

        conv = self.state.current or self.state.new_conversation()
        message = build_user_message(text, self.state.pending_files, self.state.clock(), self.max_file_chars)
        conv.messages.append(message)
        self.state.update_title(conv)
        self.state.pending_files = []
        self.state.save()
        self._update(len(conv.messages) - 1)
        return await self._run_turn(conv)

    async def edit_message(self, index: int, text: str) -> Optional[TurnState]:
        """改写一条用户消息，丢弃其后的全部历史并重新生成回复。"""

        conv = self.state.current
        if conv is None or self.state.streaming:
            return None
        if not 0 <= index < len(conv.messages) or conv.messages[index].role != "user":
            return None
        text = (text or "").strip()
        if not text:
            return None
        msg = conv.messages[index]
        msg.content = text
        msg.raw_text = text
        msg.display_text = text
        del conv.messages[index + 1:]
        self.state.save()
        self._update(None)
        return await self._run_turn(conv)

    async def regenerate_from(self, index: int) -> Optional[TurnState]:
        """从 index 处（通常是一条助手消息）截断历史并重新生成。"""

        conv = self.state.current
        if conv is None or self.state.streaming:
            return None
        if not 0 <= index < len(conv.messages):
            return None
        del conv.messages[index:]
        self.state.save()
        self._update(None)
        return await self._run_turn(conv)

    def stop(self) -> bool:
        """中断当前的读取循环。没有进行中的流时返回 False。"""

        task = self._task
        if task is None or task.done():
            return False
        self._abort_requested = True
        task.cancel()
        return True

    def new_conversation(self) -> Conversation:
        if self.state.streaming:
            self.stop()
        conv = self.state.new_conversation()
        self._update(None)
        return conv

    def switch_conversation(self, conversation_id: str) -> Conversation:
        if self.state.streaming:
            self.stop()
        conv = self.state.switch_conversation(conversation_id)
        self._update(None)
        return conv

    async def upload_file(self, path) -> Optional[UploadDescriptor]:
        """上传本地文件，成功后加入待发送附件。"""

        path = Path(path)
        try:
            data = path.read_bytes()
            descriptor = await self.relay.upload(path.name, data)
        except OSError as e:
            self._notify(f"无法读取文件 {path.name}: {e}", "error")
            return None
        except BusinessError as e:
            self._notify(f"错误：{e.message}", "error")
            return None
        self.state.add_pending_file(descriptor)
        self._notify(f"{descriptor.filename} 已就绪", "success")
        return descriptor

    async def refresh_services(self) -> List[str]:
        try:
            return await self.relay.services(self.state.api_headers())
        except BusinessError as e:
            logger.warning(f"Failed to load services: {e.message}")
            self._notify(f"无法获取服务列表：{e.message}", "error")
            return []

    # ---- 单轮流程 ----

    async def _run_turn(self, conv: Conversation) -> TurnState:
        self._abort_requested = False
        self._placeholder = None
        self.state.streaming = True
        self.turn_state = TurnState.SENDING
        self._task = asyncio.create_task(self._stream_with_retry(conv))
        try:
            await self._task
            self.turn_state = TurnState.COMPLETED
        except asyncio.CancelledError:
            if not self._abort_requested:
                raise
            self._discard_empty_placeholder(conv)
            self.turn_state = TurnState.CANCELLED
            self._notify("已取消回复", "info")
        except BusinessError as e:
            logger.error(f"Chat turn failed: {e.message}", extra={"extra": {"code": e.code}})
            self._discard_empty_placeholder(conv)
            self.turn_state = TurnState.ERRORED
            self._notify(f"错误：{e.message}", "error")
        finally:
            self.state.streaming = False
            self._task = None
            self._placeholder = None
            self.state.save()
            self._update(None)

        result = self.turn_state
        self.turn_state = TurnState.IDLE
        return result

    async def _stream_with_retry(self, conv: Conversation) -> None:
        try:
            await self._stream_once(conv)
        except NetworkError as e:
            # 只对网络错误重试一次，重试前丢弃本次的占位消息
            logger.warning(f"Network error, retrying once: {e.message}")
            self._drop_placeholder(conv)
            self._notify("连接失败，正在重试…", "info")
            await asyncio.sleep(self.retry_delay)
            await self._stream_once(conv)

    async def _stream_once(self, conv: Conversation) -> None:
        self.turn_state = TurnState.SENDING
        service = self.state.selected_service
        stream = self.relay.stream_chat(
            build_api_messages(conv),
            service=None if service == "auto" else service,
            headers=self.state.api_headers(),
        )
        try:
            async for event in stream:
                placeholder = self._placeholder
                if placeholder is None:
                    placeholder = Message(
                        role="assistant", content="", timestamp=self.state.clock(), service="", model=""
                    )
                    conv.messages.append(placeholder)
                    self._placeholder = placeholder
                    self.turn_state = TurnState.STREAMING
                    self._update(len(conv.messages) - 1)
                if event.get("service"):
                    placeholder.service = event["service"]
                    placeholder.model = event.get("model") or ""
                    conv.used_service = placeholder.service
                content = event.get("content")
                if content:
                    placeholder.content += content
                    self._update(len(conv.messages) - 1)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _discard_empty_placeholder(self, conv: Conversation) -> None:
        placeholder = self._placeholder
        if placeholder is not None and not placeholder.content and conv.messages and conv.messages[-1] is placeholder:
            conv.messages.pop()

    def _drop_placeholder(self, conv: Conversation) -> None:
        placeholder = self._placeholder
        if placeholder is not None and conv.messages and conv.messages[-1] is placeholder:
            conv.messages.pop()
        self._placeholder = None
