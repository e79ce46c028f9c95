import asyncio
import json

import httpx
import pytest

from chat_core.client.streaming import RelayClient, SseDecoder
from chat_core.domain.exceptions import ApiError, NetworkError
from chat_core.domain.models import ChatMessage


class SettingsStub:
    relay_url = "http://relay.test"
    http_timeout = 1.0


def _relay(handler):
    return RelayClient(cfg=SettingsStub(), transport=httpx.MockTransport(handler))


def _collect(relay, **kwargs):
    async def run():
        messages = [ChatMessage(role="user", content="hi")]
        return [event async for event in relay.stream_chat(messages, **kwargs)]

    return asyncio.run(run())


def test_decoder_carries_partial_lines_between_chunks():
    decoder = SseDecoder()
    assert decoder.feed('data: {"service": "Gr') == []
    assert decoder.feed('oq", "model": "m"}\n\ndata: {"content": "He') == [{"service": "Groq", "model": "m"}]
    assert decoder.feed('llo"}\r\n\n: comment\ndata: not json\n') == [{"content": "Hello"}]
    assert decoder.feed("data: [DONE]\n\ndata: {\"content\": \"late\"}\n") == []
    assert decoder.done is True
    assert decoder.feed('data: {"content": "later"}\n') == []


def test_stream_chat_posts_messages_and_yields_events():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        body = (
            'data: {"service": "Groq", "model": "m"}\n\n'
            'data: {"content": "Hel"}\n\n'
            'data: {"content": "lo"}\n\n'
            "data: [DONE]\n\n"
        )
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    events = _collect(_relay(handler), service="groq", headers={"X-Groq-Key": "gsk_test_key_123"})

    assert events == [{"service": "Groq", "model": "m"}, {"content": "Hel"}, {"content": "lo"}]
    assert captured["url"] == "http://relay.test/chat"
    assert captured["headers"]["x-groq-key"] == "gsk_test_key_123"
    assert captured["body"] == {"messages": [{"role": "user", "content": "hi"}], "service": "groq"}


def test_auto_service_is_not_sent():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, text="data: [DONE]\n\n")

    assert _collect(_relay(handler), service="auto") == []
    assert "service" not in captured["body"]


def test_error_response_uses_error_field():
    def handler(request):
        return httpx.Response(400, json={"error": "No AI provider is configured."})

    with pytest.raises(ApiError) as ei:
        _collect(_relay(handler))
    assert ei.value.message == "No AI provider is configured."
    assert ei.value.http_status == 400


def test_error_response_without_json_body():
    def handler(request):
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(ApiError) as ei:
        _collect(_relay(handler))
    assert ei.value.message == "HTTP 502"


def test_error_frame_raises_api_error():
    def handler(request):
        body = 'data: {"service": "Groq", "model": "m"}\n\ndata: {"error": "Groq error: overloaded"}\n\ndata: [DONE]\n\n'
        return httpx.Response(200, text=body)

    relay = _relay(handler)

    async def run():
        received = []
        with pytest.raises(ApiError) as ei:
            async for event in relay.stream_chat([ChatMessage(role="user", content="hi")]):
                received.append(event)
        return received, ei.value

    received, err = asyncio.run(run())
    assert received == [{"service": "Groq", "model": "m"}]
    assert err.message == "Groq error: overloaded"


def test_unreachable_relay_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        _collect(_relay(handler))
    with pytest.raises(NetworkError):
        asyncio.run(_relay(handler).services())


def test_services_models_and_upload():
    def handler(request):
        if request.url.path == "/services":
            return httpx.Response(200, json={"services": ["auto", "groq"]})
        if request.url.path == "/models":
            assert request.url.params["service"] == "groq"
            return httpx.Response(200, json={"models": ["a", "b"]})
        if request.url.path == "/upload":
            assert b'filename="data.json"' in request.content
            return httpx.Response(
                200,
                json={"type": "text", "filename": "data.json", "content": '{"a":1}', "mimeType": "application/json", "size": 7},
            )
        return httpx.Response(404, json={"error": "Not found"})

    relay = _relay(handler)
    assert asyncio.run(relay.services()) == ["auto", "groq"]
    assert asyncio.run(relay.models("groq")) == ["a", "b"]

    descriptor = asyncio.run(relay.upload("data.json", b'{"a":1}'))
    assert descriptor.type == "text"
    assert descriptor.mime_type == "application/json"
    assert descriptor.size == 7
