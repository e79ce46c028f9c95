"""Relay HTTP 应用。

ENDPOINTS:
  GET     /services          当前可用的服务（含合成的 "auto"）
  GET     /models?service=X  某个服务的可选模型
  POST    /upload            multipart 单文件上传，返回分类/抽取结果
  POST    /chat              流式对话，text/event-stream
  GET     /, /index.html, /style.css, /app.js   静态资源
  OPTIONS *                  CORS 预检，204

所有响应都带宽松的 CORS 头。业务异常按其 http_status 返回 {"error": ...}，
未捕获的异常统一转换为 500 {"error": ...}，不会让进程崩溃。
"""

from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError, ValidationError
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import providers_for_headers
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import PROVIDER_REGISTRY, ProviderKind, parse_kind
from chat_core.providers.selector import ServiceSelector
from chat_core.server.schemas import ChatBody
from chat_core.server.sse import relay_stream
from chat_core.uploads import process_upload


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

STATIC_FILES = {
    "/": ("index.html", "text/html; charset=utf-8"),
    "/index.html": ("index.html", "text/html; charset=utf-8"),
    "/style.css": ("style.css", "text/css; charset=utf-8"),
    "/app.js": ("app.js", "application/javascript; charset=utf-8"),
}

ProviderFactory = Callable[[Mapping[str, str]], Dict[ProviderKind, ProviderClient]]


def _error(message: str, status: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def create_app(
    cfg=None,
    selector: Optional[ServiceSelector] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """构建 Relay 应用。

    Args:
        cfg: Settings 实例，默认使用全局 settings。
        selector: 持有 round-robin 游标的选择器，整个应用生命周期共享一个。
        provider_factory: 根据请求头构建“已配置适配器表”的工厂，测试时可替换。
    """

    cfg = cfg or settings
    selector = selector or ServiceSelector()
    if provider_factory is None:
        def provider_factory(headers: Mapping[str, str]) -> Dict[ProviderKind, ProviderClient]:
            return providers_for_headers(headers, cfg)

    app = FastAPI(title="NeuralChat Relay", docs_url=None, redoc_url=None)
    app.state.settings = cfg
    app.state.selector = selector
    app.state.provider_factory = provider_factory

    # ---- 中间件与异常映射 ----

    @app.middleware("http")
    async def cors_and_errors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[ERROR] {request.method} {request.url.path}: {e}", exc_info=True)
            response = _error(str(e) or type(e).__name__, 500)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError):
        logger.warning(
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra={"extra": {"code": exc.code, "status": exc.http_status}},
        )
        return _error(exc.message, exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(f"Invalid request: {details}", 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # 路由按“方法 + 路径”匹配，方法不符同样视为未匹配
        if exc.status_code in (404, 405):
            return _error("Not found", 404)
        return _error(str(exc.detail), exc.status_code)

    # ---- 路由 ----

    @app.get("/services")
    async def list_services(request: Request):
        providers = app.state.provider_factory(request.headers)
        names = [kind.value for kind in providers]
        return {"services": ["auto", *names]}

    @app.get("/models")
    async def list_models(request: Request, service: Optional[str] = None):
        kind = parse_kind(service)
        if kind is None:
            raise ValidationError(code="UNKNOWN_SERVICE", message=f"Unknown service: {service!r}")
        provider = app.state.provider_factory(request.headers).get(kind)
        if provider is None:
            return {"models": list(PROVIDER_REGISTRY[kind].models)}
        return {"models": await provider.list_models()}

    @app.post("/upload")
    async def upload(file: Optional[UploadFile] = File(default=None)):
        if file is None:
            return _error("No file provided", 400)
        data = await file.read()
        descriptor = process_upload(file.filename or "upload", data)
        logger.info(
            f"/upload → {descriptor.filename} ({descriptor.mime_type}, {descriptor.size} bytes)",
            extra={"extra": {"type": descriptor.type}},
        )
        return descriptor.to_dict()

    @app.post("/chat")
    async def chat(body: ChatBody, request: Request):
        providers = app.state.provider_factory(request.headers)
        # 没有任何已配置的 Provider 时抛 ConfigurationError → 400
        provider = app.state.selector.select(providers, body.service)
        messages = [ChatMessage(role=m.role, content=m.content) for m in body.messages]
        logger.info(
            f"/chat → {provider.name} | msgs: {len(messages)} | service param: {body.service or 'auto'}",
            extra={"extra": {"provider": provider.kind.value, "model": provider.model}},
        )

        try:
            stream = await provider.chat_stream(messages)
        except BusinessError as e:
            logger.error(f"[ERROR] chat_stream({provider.name}): {e.message}")
            return _error(e.message or "Service error", 500)

        return StreamingResponse(
            relay_stream(stream, provider.name, provider.model, cfg.relay_queue_size),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Service": provider.name,
            },
        )

    # ---- 静态资源 ----

    def _static_route(filename: str, media_type: str):
        async def serve():
            path = Path(cfg.static_dir) / filename
            if not path.is_file():
                return _error("Not found", 404)
            return FileResponse(path, media_type=media_type)

        return serve

    for route, (filename, media_type) in STATIC_FILES.items():
        app.add_api_route(route, _static_route(filename, media_type), methods=["GET"], include_in_schema=False)

    return app


app = create_app()
