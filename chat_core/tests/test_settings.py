import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from chat_core.config.settings import Settings
from chat_core.prompts import TEMPLATE_NAMES, list_templates, load_template


def _isolate(monkeypatch):
    for name in ("PORT", "RELAY_QUEUE_SIZE", "GROQ_API_KEY", "GROQ_MODEL"):
        monkeypatch.delenv(name, raising=False)


def test_yaml_config_file_is_used(monkeypatch):
    _isolate(monkeypatch)
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "config.yaml"
        path.write_text("port: 4321\nrelay_queue_size: 16\ngroq_model: llama-3.3-70b-versatile\n", encoding="utf-8")
        monkeypatch.setenv("CHAT_CONFIG_FILE", str(path))

        cfg = Settings(_env_file=None)
        assert cfg.port == 4321
        assert cfg.relay_queue_size == 16
        assert cfg.groq_model == "llama-3.3-70b-versatile"

        monkeypatch.setenv("PORT", "5000")
        assert Settings(_env_file=None).port == 5000


def test_defaults_without_config(monkeypatch):
    _isolate(monkeypatch)
    with tempfile.TemporaryDirectory() as d:
        monkeypatch.setenv("CHAT_CONFIG_FILE", str(Path(d) / "missing.yaml"))
        monkeypatch.chdir(d)
        cfg = Settings(_env_file=None)
        assert cfg.retry_delay == 1.5
        assert cfg.max_file_chars == 8000
        assert cfg.relay_url == "http://localhost:3000"


def test_api_key_validation(monkeypatch):
    _isolate(monkeypatch)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, groq_api_key="short")
    assert Settings(_env_file=None, groq_api_key="   ").groq_api_key is None
    assert Settings(_env_file=None, groq_api_key=" gsk_test_key_123 ").groq_api_key == "gsk_test_key_123"


def test_prompt_templates():
    assert list_templates() == TEMPLATE_NAMES
    for name in TEMPLATE_NAMES:
        assert load_template(name)
    with pytest.raises(KeyError):
        load_template("pirate")
