"""Tk 控制台使用的后台事件循环线程。

ChatState 与 ChatController 只在这个线程上读写：Tk 线程通过 call/submit
把修改投递过来，通过 query 取回只读快照。
"""

import asyncio
import threading
from typing import Any, Callable, Optional

from chat_core.domain.exceptions import BusinessError
from chat_core.infrastructure.logging.logger import logger


ErrorCallback = Callable[[BusinessError], None]


class LoopThread:
    def __init__(self, on_error: Optional[ErrorCallback] = None):
        self.on_error = on_error
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="chat-loop", daemon=True)
        self._thread.start()

    @property
    def thread_id(self) -> Optional[int]:
        return self._thread.ident

    def submit(self, coro):
        """在事件循环中运行协程，返回 concurrent.futures.Future。"""

        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, fn: Callable, *args, then: Optional[Callable[[], None]] = None) -> None:
        """在事件循环线程上执行 fn(*args)，完成后（无论成败）执行 then()。"""

        self.loop.call_soon_threadsafe(self._invoke, fn, args, then)

    def _invoke(self, fn, args, then) -> None:
        try:
            fn(*args)
        except BusinessError as e:
            logger.warning(f"UI action failed: {e.message}", extra={"extra": {"code": e.code}})
            if self.on_error is not None:
                self.on_error(e)
        finally:
            if then is not None:
                then()

    def query(self, fn: Callable[..., Any], *args, timeout: float = 5.0) -> Any:
        """在事件循环线程上求值并阻塞等待结果，只用于快速的只读操作。"""

        async def run():
            return fn(*args)

        return self.submit(run()).result(timeout)

    def close(self, timeout: float = 5.0) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self.loop.close()
