"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
每个子类通过类属性 kind 声明所属的错误类别（ErrorKind），
会话控制器据此决定写入日志的方式以及展示给用户的兜底文案。
"""

from enum import Enum


class ErrorKind(str, Enum):
    """错误类别。"""

    CONFIGURATION = "configuration"  # 缺少密钥或仍是占位符
    TRANSPORT = "transport"  # 网络层失败 / 超时
    REMOTE_REJECTED = "remote_rejected"  # Provider 返回非 2xx
    PROTOCOL = "protocol"  # 响应结构不符合预期
    BUSY = "busy"  # 已有请求在进行中
    CANCELLED = "cancelled"  # 请求被主动取消


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 错误信息（可能包含 Provider 原文，不直接展示给用户）。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如原始响应体）。
    """

    kind: ErrorKind = ErrorKind.PROTOCOL

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    def to_log_fields(self) -> dict:
        """供观测日志使用的完整错误信息。"""
        fields = {
            "error_kind": self.kind.value,
            "error_code": self.code,
            "error_message": self.message,
            "http_status": self.http_status,
        }
        fields.update(self.extra)
        return fields


class ConfigurationError(BusinessError):
    """配置缺失或无效，例如未设置 API Key。"""

    kind = ErrorKind.CONFIGURATION


class TransportError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""

    kind = ErrorKind.TRANSPORT


class RemoteRejectedError(BusinessError):
    """第三方 API 返回非 2xx 时抛出。"""

    kind = ErrorKind.REMOTE_REJECTED


class RateLimitError(RemoteRejectedError):
    """Provider 限流错误（HTTP 429）。"""


class ProtocolError(BusinessError):
    """响应不是合法 JSON，或缺少 choices[0].message.content。"""

    kind = ErrorKind.PROTOCOL


class BusyError(BusinessError):
    """已有请求在进行中，新的提交被拒绝。"""

    kind = ErrorKind.BUSY
