"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Relay 层或客户端做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NO_PROVIDER_CONFIGURED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、upstream_status 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。客户端只对这一类错误自动重试一次。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx，或流中携带 error 时抛出。"""


class RateLimitError(ApiError):
    """Provider 限流错误（429）。不做重试，直接透传给调用方。"""


class ValidationError(BusinessError):
    """参数校验失败，例如上传请求缺少文件。"""


class ConfigurationError(BusinessError):
    """没有任何可用的 Provider 凭据。"""
