"""OpenAI 兼容协议的 Provider 适配器基类。

Groq、Cerebras、OpenRouter 都提供与 OpenAI 相同的 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式: text/event-stream，每行 `data: {...}`，以 `data: [DONE]` 结束

本模块负责：

1. 接收统一的 ChatMessage 列表。
2. 按 ProviderConfig 构造请求体（固定采样参数）。
3. 建立流式连接并处理网络/API 异常（不在这里重试）。
4. 把增量事件映射为纯文本片段，空增量直接忽略。

具体厂商只需要继承本类并指定 config/name。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError, RateLimitError
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.registry import ProviderConfig, ProviderKind


class OpenAICompatibleClient:
    """OpenAI 兼容 Provider 的通用实现。

    - name: Provider 展示名（供日志/徽标使用）。
    - config: 厂商配置，由子类指定。
    - model: 实际使用的模型，构造时可被请求头覆盖。
    """

    name: str = ""
    config: ProviderConfig

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        cfg=settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            # 配置缺失走 ConfigurationError，方便 Relay 统一返回 400
            raise ConfigurationError(code="MISSING_API_KEY", message=f"{self.name} API key not set")
        self._api_key = api_key
        self._model = model or self.config.default_model
        # Settings 里包含 base_url、超时等配置
        self._settings = cfg
        self._transport = transport

    @property
    def kind(self) -> ProviderKind:
        return self.config.kind

    @property
    def model(self) -> str:
        return self._model

    # ---- 流式 ----

    async def chat_stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """建立流式调用，返回文本片段的异步迭代器。

        HTTP 状态在返回之前就已检查，所以上游的 4xx/5xx 会在 await 时直接抛出；
        返回的迭代器持有打开的响应，耗尽、出错或 aclose() 时关闭连接。
        """

        payload = self._build_payload(messages)
        client = self._new_client()
        logger.info(
            f"[{self.name}] Using model: {self.model}",
            extra={"extra": {"provider": self.kind.value, "model": self.model, "messages": len(payload["messages"])}},
        )
        try:
            request = client.build_request(
                "POST",
                f"{self._base_url()}/chat/completions",
                json=payload,
                headers=self._headers(),
            )
            resp = await client.send(request, stream=True)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            await client.aclose()
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or f"{self.name} connection failed", provider=self.name)

        if resp.status_code >= 400:
            try:
                body = await resp.aread()
            except httpx.RequestError:
                body = b""
            finally:
                await resp.aclose()
                await client.aclose()
            raise self._status_error(resp.status_code, body, resp.reason_phrase)

        return self._iter_fragments(client, resp)

    async def _iter_fragments(self, client: httpx.AsyncClient, resp: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in resp.aiter_lines():
                if not line:
                    continue
                data_str = line
                if data_str.startswith("data:"):
                    data_str = data_str[5:].strip()
                else:
                    # event:/id:/注释行（": OPENROUTER PROCESSING"）等
                    continue
                if not data_str:
                    continue
                if data_str == "[DONE]":
                    break
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    continue
                if not isinstance(chunk, dict):
                    continue
                if chunk.get("error"):
                    raise ApiError(
                        code="API_ERROR",
                        message=f"{self.name} error: {self._error_detail(chunk) or 'stream error'}",
                        http_status=500,
                        provider=self.name,
                    )
                fragment = self._extract_delta(chunk)
                if fragment:
                    yield fragment
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or f"{self.name} stream interrupted", provider=self.name)
        finally:
            await resp.aclose()
            await client.aclose()

    # ---- 模型列表 ----

    async def list_models(self) -> List[str]:
        """返回可选模型。支持实时列出的厂商会先查询上游，失败时退回固定列表。"""

        if not self.config.live_models:
            return list(self.config.models)
        try:
            async with self._new_client() as client:
                resp = await client.get(f"{self._base_url()}/models", headers=self._headers())
        except httpx.RequestError as e:
            logger.warning(f"[{self.name}] model listing failed: {e}")
            return list(self.config.models)
        if resp.status_code >= 400:
            logger.warning(f"[{self.name}] model listing failed with HTTP {resp.status_code}")
            return list(self.config.models)
        try:
            data = resp.json()
        except ValueError:
            return list(self.config.models)
        models = [item.get("id") for item in data.get("data") or [] if isinstance(item, dict) and item.get("id")]
        return models or list(self.config.models)

    # ---- 辅助方法 ----

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False, transport=self._transport)

    def _base_url(self) -> str:
        base = getattr(self._settings, f"{self.kind.value}_base_url", None) or self.config.base_url
        return base.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.config.extra_headers)
        return headers

    def _build_payload(self, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
        """把 ChatMessage 列表转成 chat/completions 请求 JSON。"""

        cfg = self.config
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in messages],
            "stream": True,
            "temperature": cfg.temperature,
            cfg.token_field: cfg.max_tokens,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        return payload

    @staticmethod
    def _extract_delta(chunk: Dict[str, Any]) -> str:
        choices = chunk.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    @staticmethod
    def _error_detail(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        err = data.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or "")
        if isinstance(err, str):
            return err
        return str(data.get("message") or "")

    def _status_error(self, status: int, body: bytes, reason: str) -> ApiError:
        """把上游的非 2xx 响应包装为 ApiError（429 为 RateLimitError）。"""

        detail = ""
        text = body.decode("utf-8", errors="replace") if body else ""
        try:
            detail = self._error_detail(json.loads(text)) if text else ""
        except json.JSONDecodeError:
            detail = text.strip()[:500]
        message = f"{self.name} error {status}: {detail or reason or 'request failed'}"
        if status == 429:
            # 限流错误不在这里重试，直接透传
            return RateLimitError(code="RATE_LIMIT", message=message, http_status=status, provider=self.name)
        return ApiError(code="API_ERROR", message=message, http_status=status, provider=self.name)
