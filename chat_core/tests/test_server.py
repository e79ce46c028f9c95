import json
import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from chat_core.domain.exceptions import ApiError
from chat_core.providers.registry import GROQ_CONFIG, PROVIDER_REGISTRY, ProviderKind
from chat_core.providers.selector import ServiceSelector
from chat_core.server.app import create_app


class SettingsStub:
    http_timeout = 1.0
    static_dir = "does-not-exist"
    relay_queue_size = 8
    groq_api_key = None
    groq_model = None
    cerebras_api_key = None
    cerebras_model = None
    openrouter_api_key = None
    openrouter_model = None


class FakeProvider:
    def __init__(self, kind, fragments=("Hello", " world"), error=None, pre_error=None, models=("fake-a", "fake-b")):
        self.kind = kind
        self.name = PROVIDER_REGISTRY[kind].name
        self.fragments = fragments
        self.error = error
        self.pre_error = pre_error
        self.models = list(models)
        self.calls = []

    @property
    def model(self):
        return "fake-model"

    async def chat_stream(self, messages):
        self.calls.append(list(messages))
        if self.pre_error is not None:
            raise self.pre_error
        return self._iter()

    async def _iter(self):
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error

    async def list_models(self):
        return self.models


def _client(providers=None, cfg=None, factory=None):
    providers = providers or {}
    app = create_app(cfg or SettingsStub(), ServiceSelector(), factory or (lambda headers: providers))
    return TestClient(app)


def _events(body):
    events = []
    for line in body.splitlines():
        if not line.startswith("data: "):
            continue
        data = line[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


def _chat_body(service=None):
    body = {"messages": [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}]}
    if service:
        body["service"] = service
    return body


def test_services_lists_auto_plus_configured():
    client = _client({
        ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ),
        ProviderKind.OPENROUTER: FakeProvider(ProviderKind.OPENROUTER),
    })
    resp = client.get("/services")
    assert resp.status_code == 200
    assert resp.json() == {"services": ["auto", "groq", "openrouter"]}
    assert resp.headers["access-control-allow-origin"] == "*"


def test_services_always_lists_auto():
    assert _client().get("/services").json() == {"services": ["auto"]}


def test_services_reads_keys_from_headers():
    client = TestClient(create_app(SettingsStub(), ServiceSelector()))
    assert client.get("/services").json() == {"services": ["auto"]}
    resp = client.get("/services", headers={"X-Groq-Key": "gsk_test_key_123"})
    assert resp.json() == {"services": ["auto", "groq"]}


def test_models_for_configured_and_unconfigured_service():
    client = _client({ProviderKind.CEREBRAS: FakeProvider(ProviderKind.CEREBRAS)})
    assert client.get("/models", params={"service": "cerebras"}).json() == {"models": ["fake-a", "fake-b"]}
    assert client.get("/models", params={"service": "groq"}).json() == {"models": GROQ_CONFIG.models}

    resp = client.get("/models", params={"service": "nope"})
    assert resp.status_code == 400
    assert "Unknown service" in resp.json()["error"]


def test_upload_json_file():
    resp = _client().post("/upload", files={"file": ("data.json", b'{"a":1}', "application/json")})
    assert resp.status_code == 200
    assert resp.json() == {
        "type": "text",
        "filename": "data.json",
        "content": '{"a":1}',
        "mimeType": "application/json",
        "size": 7,
    }


def test_upload_without_file_is_rejected():
    resp = _client().post("/upload", data={"other": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file provided"}


def test_chat_without_providers_is_400():
    resp = _client().post("/chat", json=_chat_body())
    assert resp.status_code == 400
    assert "configured" in resp.json()["error"]


def test_chat_streams_sse_frames():
    groq = FakeProvider(ProviderKind.GROQ)
    client = _client({ProviderKind.GROQ: groq})

    resp = client.post("/chat", json=_chat_body())

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["x-service"] == "Groq"
    assert resp.headers["cache-control"] == "no-cache"
    assert _events(resp.text) == [
        {"service": "Groq", "model": "fake-model"},
        {"content": "Hello"},
        {"content": " world"},
        "[DONE]",
    ]
    sent = groq.calls[0]
    assert [(m.role, m.content) for m in sent] == [("system", "be brief"), ("user", "hi")]


def test_chat_round_robin_between_configured_providers():
    client = _client({
        ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ),
        ProviderKind.CEREBRAS: FakeProvider(ProviderKind.CEREBRAS),
    })
    first = client.post("/chat", json=_chat_body()).headers["x-service"]
    second = client.post("/chat", json=_chat_body("auto")).headers["x-service"]
    assert {first, second} == {"Groq", "Cerebras"}

    explicit = client.post("/chat", json=_chat_body("cerebras")).headers["x-service"]
    assert explicit == "Cerebras"


def test_chat_upstream_failure_before_stream_is_500():
    err = ApiError(code="API_ERROR", message="Groq error 401: invalid api key", http_status=401)
    client = _client({ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ, pre_error=err)})
    resp = client.post("/chat", json=_chat_body())
    assert resp.status_code == 500
    assert resp.json() == {"error": "Groq error 401: invalid api key"}


def test_chat_mid_stream_failure_sends_error_frame():
    err = ApiError(code="API_ERROR", message="Groq error: overloaded", http_status=500)
    client = _client({ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ, fragments=("par",), error=err)})
    resp = client.post("/chat", json=_chat_body())
    assert resp.status_code == 200
    assert _events(resp.text) == [
        {"service": "Groq", "model": "fake-model"},
        {"content": "par"},
        {"error": "Groq error: overloaded"},
        "[DONE]",
    ]


def test_chat_invalid_body_is_400():
    client = _client({ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ)})
    resp = client.post("/chat", json={"messages": "hi"})
    assert resp.status_code == 400
    assert "error" in resp.json()

    resp = client.post("/chat", json={"messages": [{"role": "robot", "content": "x"}]})
    assert resp.status_code == 400


def test_options_preflight_and_not_found():
    client = _client()
    resp = client.options("/chat")
    assert resp.status_code == 204
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]

    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found"}
    assert resp.headers["access-control-allow-origin"] == "*"

    resp = client.get("/chat")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found"}

    assert client.delete("/services").status_code == 404


def test_unexpected_handler_exception_is_500_with_message():
    client = _client({ProviderKind.GROQ: FakeProvider(ProviderKind.GROQ, pre_error=RuntimeError("kaboom"))})
    resp = client.post("/chat", json=_chat_body())
    assert resp.status_code == 500
    assert resp.json() == {"error": "kaboom"}
    assert resp.headers["access-control-allow-origin"] == "*"


def test_static_files_are_served():
    with tempfile.TemporaryDirectory() as d:
        Path(d, "index.html").write_text("<h1>NeuralChat</h1>", encoding="utf-8")
        cfg = SettingsStub()
        cfg.static_dir = d
        client = _client(cfg=cfg)

        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "NeuralChat" in resp.text

        assert client.get("/app.js").status_code == 404
