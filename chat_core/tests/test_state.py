import json

import pytest

from chat_core.client.state import DEFAULT_TITLE, LEGACY_STORAGE_KEY, STORAGE_KEY, ChatState
from chat_core.client.storage import MemoryStorage
from chat_core.domain.conversation import FileAttachment, Message
from chat_core.domain.exceptions import BusinessError, ValidationError
from chat_core.prompts import load_template


class Clock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        self.now += 1000
        return self.now


class BrokenStorage:
    def get(self, key):
        raise OSError("disk gone")

    def set(self, key, value):
        raise OSError("disk full")


def _state(storage=None):
    return ChatState(storage or MemoryStorage(), clock=Clock())


def test_new_conversation_becomes_current_and_is_persisted():
    storage = MemoryStorage()
    state = _state(storage)
    conv = state.new_conversation()
    assert state.current is conv
    assert conv.title == DEFAULT_TITLE
    saved = json.loads(storage.get(STORAGE_KEY))
    assert saved["currentId"] == conv.id
    assert conv.id in saved["conversations"]


def test_save_strips_file_content_and_load_restores_raw_text():
    storage = MemoryStorage()
    state = _state(storage)
    conv = state.new_conversation()
    conv.messages.append(
        Message(
            role="user", content="hi", display_text="hi", raw_text="hi", timestamp=1,
            files=[FileAttachment(name="a.txt", mime_type="text/plain", size=3, display_type="text", file_content="abc")],
        )
    )
    state.save()
    assert "abc" not in storage.get(STORAGE_KEY)

    restored = _state(storage)
    assert restored.load() is True
    msg = restored.current.messages[0]
    assert msg.content == "hi"
    assert msg.display_text == "hi"
    assert msg.files[0].file_content is None


def test_load_migrates_legacy_key_and_drops_injected_content():
    legacy = {
        "conversations": {
            "conv_1": {
                "id": "conv_1",
                "title": "old",
                "createdAt": 5,
                "messages": [
                    {
                        "role": "user",
                        "content": "hi\n\n--- File: a.txt ---\nabc\n---",
                        "rawText": "hi",
                        "files": [{"name": "a.txt", "mimeType": "text/plain", "fileContent": "abc"}],
                    },
                    {"role": "assistant", "content": "hello", "service": "Groq", "model": "m"},
                ],
            }
        },
        "currentId": "conv_1",
        "selectedService": "cerebras",
        "apiKeys": {"groq": {"key": "gsk_saved_key_1", "model": ""}, "mistral": {"key": "ignored"}},
    }
    state = _state(MemoryStorage({LEGACY_STORAGE_KEY: json.dumps(legacy)}))
    assert state.load() is True

    user = state.current.messages[0]
    assert user.content == "hi"
    assert user.display_text == "hi"
    assert user.files[0].file_content is None
    assert state.selected_service == "cerebras"
    assert state.api_keys["groq"].api_key == "gsk_saved_key_1"
    assert state.api_keys["groq"].model == "moonshotai/kimi-k2-instruct-0905"
    assert "mistral" not in state.api_keys


def test_storage_failures_are_logged_not_raised():
    state = _state(BrokenStorage())
    assert state.load() is False
    conv = state.new_conversation()
    assert state.save() is False
    assert state.current is conv

    corrupt = _state(MemoryStorage({STORAGE_KEY: "{not json"}))
    assert corrupt.load() is False
    assert corrupt.conversations == {}


def test_load_accepts_conversation_list_and_ignores_bad_api_keys():
    stored = {
        "conversations": [
            {"id": "c1", "title": "from list", "createdAt": 3, "messages": [{"role": "user", "content": "hi"}]},
            {"title": "no id"},
            "junk",
        ],
        "currentId": "c1",
        "apiKeys": [{"key": "x"}],
    }
    state = _state(MemoryStorage({STORAGE_KEY: json.dumps(stored)}))

    assert state.load() is True
    assert list(state.conversations) == ["c1"]
    assert state.current.title == "from list"
    assert state.has_any_api_key() is False


def test_load_with_wrong_conversations_type_is_logged_not_raised():
    state = _state(MemoryStorage({STORAGE_KEY: json.dumps({"conversations": "nope"})}))
    assert state.load() is False
    assert state.conversations == {}


def test_update_title_from_first_user_message():
    state = _state()
    conv = state.new_conversation()
    conv.messages.append(Message(role="user", content="x" * 60, display_text="line one\n" + "x" * 60))
    state.update_title(conv)
    assert conv.title == ("line one\n" + "x" * 60)[:48].replace("\n", " ") + "…"
    assert len(conv.title) == 49

    conv.messages[0].display_text = "changed"
    state.update_title(conv)
    assert conv.title.startswith("line one ")


def test_short_title_has_no_ellipsis():
    state = _state()
    conv = state.new_conversation()
    conv.messages.append(Message(role="user", content="hello", display_text="hello"))
    state.update_title(conv)
    assert conv.title == "hello"


def test_sorted_conversations_pinned_first_then_newest():
    state = _state()
    a = state.new_conversation()
    b = state.new_conversation()
    c = state.new_conversation()
    state.toggle_pin(a.id)

    order = [conv.id for conv in state.sorted_conversations()]
    assert order == [a.id, c.id, b.id]
    assert order == [conv.id for conv in state.sorted_conversations()]


def test_search_filters_on_title_and_message_text():
    state = _state()
    a = state.new_conversation()
    a.title = "Python tips"
    b = state.new_conversation()
    b.messages.append(Message(role="assistant", content="Use PYTHON generators"))
    state.new_conversation()

    state.search_query = "python"
    assert {conv.id for conv in state.sorted_conversations()} == {a.id, b.id}
    state.search_query = "nothing here"
    assert state.sorted_conversations() == []


def test_delete_current_switches_to_most_recent_or_creates_new():
    state = _state()
    a = state.new_conversation()
    b = state.new_conversation()
    c = state.new_conversation()

    state.delete_conversation(c.id)
    assert state.current_id == b.id
    state.delete_conversation(a.id)
    assert state.current_id == b.id

    state.delete_conversation(b.id)
    assert len(state.conversations) == 1
    assert state.current.title == DEFAULT_TITLE

    with pytest.raises(BusinessError):
        state.delete_conversation("missing")


def test_switch_clear_and_system_prompt():
    state = _state()
    a = state.new_conversation()
    a.messages.append(Message(role="user", content="hi"))
    state.new_conversation()

    state.switch_conversation(a.id)
    assert state.current is a
    state.set_system_prompt("  be brief  ")
    assert a.system_prompt == "be brief"
    state.clear_messages()
    assert a.messages == []

    prompt = state.apply_template("coder")
    assert a.system_prompt == prompt == load_template("coder")


def test_api_keys_and_headers():
    state = _state()
    assert state.has_any_api_key() is False
    assert state.api_headers() == {}

    state.save_api_key("groq", "  gsk_test_key_123 ", "")
    state.save_api_key("openrouter", "sk-or-test-key", "deepseek/deepseek-r1:free")
    assert state.has_any_api_key() is True
    assert state.api_headers() == {
        "X-Groq-Key": "gsk_test_key_123",
        "X-Groq-Model": "moonshotai/kimi-k2-instruct-0905",
        "X-Openrouter-Key": "sk-or-test-key",
        "X-Openrouter-Model": "deepseek/deepseek-r1:free",
    }

    state.clear_api_key("groq")
    assert "X-Groq-Key" not in state.api_headers()
    assert state.api_keys["groq"].enabled is False

    with pytest.raises(ValidationError):
        state.save_api_key("mistral", "key-1234567890")


def test_select_service():
    state = _state()
    assert state.select_service("Cerebras") == "cerebras"
    assert state.select_service("auto") == "auto"
    with pytest.raises(ValidationError):
        state.select_service("mistral")
