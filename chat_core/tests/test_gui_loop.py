import asyncio
import threading

from chat_core.client.controller import ChatController, TurnState
from chat_core.client.state import ChatState
from chat_core.client.storage import MemoryStorage
from chat_core.domain.exceptions import ValidationError
from chat_core.gui.loop import LoopThread


class SlowRelay:
    def __init__(self):
        self.started = threading.Event()

    async def stream_chat(self, messages, service=None, headers=None):
        yield {"service": "Groq", "model": "m"}
        self.started.set()
        await asyncio.sleep(30)
        yield {"content": "never"}


def _state():
    state = ChatState(MemoryStorage())
    state.save_api_key("groq", "gsk_test_key_123")
    state.new_conversation()
    return state


def test_call_runs_on_loop_thread_then_follow_up():
    worker = LoopThread()
    seen = []
    done = threading.Event()
    try:
        worker.call(lambda: seen.append(threading.get_ident()), then=done.set)
        assert done.wait(5)
        assert seen == [worker.thread_id]
        assert seen[0] != threading.get_ident()
    finally:
        worker.close()


def test_business_error_goes_to_callback_and_follow_up_still_runs():
    errors = []
    done = threading.Event()
    worker = LoopThread(on_error=errors.append)
    state = _state()
    try:
        worker.call(state.select_service, "mistral", then=done.set)
        assert done.wait(5)
        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)
    finally:
        worker.close()


def test_query_reads_state_on_loop_thread():
    worker = LoopThread()
    state = _state()
    try:
        worker.call(state.toggle_pin, state.current_id)
        pinned = worker.query(lambda: [c.pinned for c in state.sorted_conversations()])
        assert pinned == [True]
    finally:
        worker.close()


def test_stop_posted_from_another_thread_cancels_stream():
    state = _state()
    relay = SlowRelay()
    controller = ChatController(state, relay, retry_delay=0)
    worker = LoopThread()
    try:
        future = worker.submit(controller.send_message("hi"))
        assert relay.started.wait(5)
        worker.call(controller.stop)
        assert future.result(5) is TurnState.CANCELLED
        assert worker.query(lambda: [m.role for m in state.current.messages]) == ["user"]
        assert worker.query(lambda: state.streaming) is False
    finally:
        worker.close()


def test_delete_during_stream_on_loop_thread_keeps_save_consistent():
    state = _state()
    other = state.new_conversation()
    streaming = state.new_conversation()
    relay = SlowRelay()
    controller = ChatController(state, relay, retry_delay=0)
    worker = LoopThread()
    try:
        future = worker.submit(controller.send_message("hi"))
        assert relay.started.wait(5)
        worker.call(state.delete_conversation, other.id)
        worker.call(controller.stop)
        assert future.result(5) is TurnState.CANCELLED
        remaining = worker.query(lambda: list(state.conversations))
        assert other.id not in remaining
        assert streaming.id in remaining
        assert worker.query(state.save) is True
        assert worker.query(lambda: state.current_id) == streaming.id
    finally:
        worker.close()
