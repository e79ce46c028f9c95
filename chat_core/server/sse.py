"""把 Provider 的文本片段转发为 Server-Sent Events。

帧格式（每帧以空行结束）：

    data: {"service": "Groq", "model": "..."}     首帧，告知实际使用的服务
    data: {"content": "..."}                      零到多帧，流式片段
    data: {"error": "..."}                        可选，流中途失败
    data: [DONE]                                  逻辑流结束（出错时同样发送）

Adapter 的迭代器由一个生产者任务读取，写入有界的 asyncio.Queue；
响应生成器从队列取出并编码成帧。消费方离开（客户端断开、生成器被关闭）时
生产者任务被取消，adapter 的迭代器随之关闭。无论成功与否，生成器都会
正常结束，由服务端关闭连接。
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from chat_core.infrastructure.logging.logger import logger


DONE_FRAME = "data: [DONE]\n\n"


def encode_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dataclass
class _Item:
    """队列里的一项：片段、错误或结束标记三者之一。"""

    content: Optional[str] = None
    error: Optional[BaseException] = None
    done: bool = False


class FragmentChannel:
    """单生产者/单消费者的有界通道。"""

    def __init__(self, maxsize: int = 64):
        self._queue: "asyncio.Queue[_Item]" = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None

    def start(self, source: AsyncIterator[str]) -> None:
        self._task = asyncio.create_task(self._pump(source))

    async def _pump(self, source: AsyncIterator[str]) -> None:
        try:
            async for fragment in source:
                if fragment:
                    await self._queue.put(_Item(content=fragment))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(_Item(error=e))
            return
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
        await self._queue.put(_Item(done=True))

    async def __aiter__(self) -> AsyncIterator[_Item]:
        while True:
            item = await self._queue.get()
            yield item
            if item.done or item.error is not None:
                return

    async def close(self) -> None:
        """取消生产者任务（若仍在运行），并等待其退出。"""

        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def relay_stream(
    source: AsyncIterator[str],
    service: str,
    model: str,
    queue_size: int = 64,
) -> AsyncIterator[str]:
    """把 adapter 的片段序列编码为 SSE 帧序列。"""

    channel = FragmentChannel(maxsize=queue_size)
    channel.start(source)
    fragments = 0
    try:
        yield encode_frame({"service": service, "model": model})
        async for item in channel:
            if item.content is not None:
                fragments += 1
                yield encode_frame({"content": item.content})
            elif item.error is not None:
                message = getattr(item.error, "message", None) or str(item.error) or type(item.error).__name__
                logger.error(
                    f"[{service}] stream failed: {message}",
                    extra={"extra": {"service": service, "fragments": fragments}},
                )
                yield encode_frame({"error": message})
                yield DONE_FRAME
                return
        yield DONE_FRAME
        logger.info(
            f"[{service}] stream completed",
            extra={"extra": {"service": service, "model": model, "fragments": fragments}},
        )
    finally:
        await channel.close()
