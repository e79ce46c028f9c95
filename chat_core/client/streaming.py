"""Relay 的 HTTP 客户端与 SSE 解码。

RelayClient 对 Relay 的四个接口做了一层薄封装：

- services()/models(): 普通 JSON GET。
- upload(): multipart 上传，返回 UploadDescriptor。
- stream_chat(): POST /chat，逐个产出解码后的 SSE 事件（dict）。

错误约定与 Provider 适配器一致：
- 连接失败、超时 → NetworkError（客户端只对这一类自动重试）。
- 非 2xx 响应 → ApiError，消息取响应体的 error 字段，没有则为 "HTTP <status>"。
- 流中出现 {"error": ...} 帧 → ApiError，与 HTTP 失败的处理方式相同。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError
from chat_core.domain.models import ChatMessage, UploadDescriptor
from chat_core.infrastructure.logging.logger import logger


class SseDecoder:
    """增量 SSE 解码器。

    网络分片可能把一行切成两半，未以换行结束的尾部保留到下一次 feed。
    只处理 `data: ` 行；`[DONE]` 之后的数据全部忽略；无法解析的 JSON 直接跳过。
    """

    def __init__(self):
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> List[Dict[str, Any]]:
        if self.done:
            return []
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        events: List[Dict[str, Any]] = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith("data: "):
                continue
            data = line[6:].strip()
            if data == "[DONE]":
                self.done = True
                break
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                events.append(parsed)
        return events


class RelayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        cfg=settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or cfg.relay_url).rstrip("/")
        self._timeout = cfg.http_timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            trust_env=False,
        )

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        message = None
        try:
            body = resp.json()
            if isinstance(body, dict):
                message = body.get("error")
        except ValueError:
            pass
        raise ApiError(
            code="RELAY_ERROR",
            message=str(message or f"HTTP {resp.status_code}"),
            http_status=resp.status_code,
        )

    async def _get_json(self, path: str, params=None, headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        async with self._new_client() as client:
            try:
                resp = await client.get(path, params=params, headers=dict(headers or {}))
            except httpx.RequestError as e:
                raise NetworkError(code="RELAY_UNREACHABLE", message=f"Relay request failed: {e}", http_status=503)
        self._raise_for_status(resp)
        return resp.json()

    async def services(self, headers: Optional[Mapping[str, str]] = None) -> List[str]:
        data = await self._get_json("/services", headers=headers)
        return list(data.get("services") or [])

    async def models(self, service: str, headers: Optional[Mapping[str, str]] = None) -> List[str]:
        data = await self._get_json("/models", params={"service": service}, headers=headers)
        return list(data.get("models") or [])

    async def upload(self, filename: str, data: bytes) -> UploadDescriptor:
        async with self._new_client() as client:
            try:
                resp = await client.post("/upload", files={"file": (filename, data)})
            except httpx.RequestError as e:
                raise NetworkError(code="RELAY_UNREACHABLE", message=f"Upload failed: {e}", http_status=503)
        self._raise_for_status(resp)
        body = resp.json()
        if body.get("error"):
            raise ApiError(code="UPLOAD_ERROR", message=str(body["error"]))
        return UploadDescriptor(
            type=body.get("type") or "binary",
            filename=body.get("filename") or filename,
            content=body.get("content") or "",
            mime_type=body.get("mimeType") or "application/octet-stream",
            size=int(body.get("size") or len(data)),
        )

    async def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        service: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """发送对话并逐个产出 SSE 事件，遇到 [DONE] 或连接结束时停止。"""

        payload: Dict[str, Any] = {"messages": [m.to_payload() for m in messages]}
        if service and service != "auto":
            payload["service"] = service

        client = self._new_client()
        try:
            try:
                request = client.build_request("POST", "/chat", json=payload, headers=dict(headers or {}))
                resp = await client.send(request, stream=True)
            except httpx.RequestError as e:
                raise NetworkError(code="RELAY_UNREACHABLE", message=f"Relay request failed: {e}", http_status=503)
            try:
                if resp.status_code >= 400:
                    await resp.aread()
                    self._raise_for_status(resp)
                decoder = SseDecoder()
                async for chunk in resp.aiter_text():
                    for event in decoder.feed(chunk):
                        if event.get("error"):
                            logger.warning(f"Relay stream error: {event['error']}")
                            raise ApiError(code="STREAM_ERROR", message=str(event["error"]), http_status=502)
                        yield event
                    if decoder.done:
                        return
            except httpx.RequestError as e:
                raise NetworkError(code="RELAY_STREAM_ERROR", message=f"Relay stream interrupted: {e}", http_status=503)
            finally:
                await resp.aclose()
        finally:
            await client.aclose()
