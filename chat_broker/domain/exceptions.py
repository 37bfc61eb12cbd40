"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 Worker 中统一转换为 ``{"error": message}`` 回复。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "BACKEND_STATUS"）。
        message: 返回给调用方的错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 model、status 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """请求体格式不合法，不会进入队列。"""


class ContentPolicyError(BusinessError):
    """消息命中屏蔽词，不会进入队列。"""


class ModelUnavailableError(BusinessError):
    """后端不认识该模型标识。"""


class BackendTransportError(BusinessError):
    """与后端通信失败：网络错误、超时或非 2xx 响应。"""


class TranslationError(BusinessError):
    """翻译服务调用失败，调用方回退为原文。"""


class PersistedStateCorruptError(BusinessError):
    """历史文件损坏，仅记录日志，不返回给任何调用方。"""
