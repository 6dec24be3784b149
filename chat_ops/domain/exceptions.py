"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在服务层或 CLI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 chat_id、message_id 等）。
    """

    http_status_default = 400

    def __init__(self, code: str, message: str, http_status: int | None = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status or self.http_status_default
        self.extra = extra
        super().__init__(message)


class InvalidArgument(BusinessError):
    """调用方输入缺失或格式错误（缺少 content、未知 role、非法 payload）。"""


class NotFound(BusinessError):
    """引用的会话、消息或密钥不存在。"""

    http_status_default = 404


class InconsistentState(BusinessError):
    """会话文档内部不一致，例如 currentId 指向不存在的消息。"""

    http_status_default = 409


class StorageError(BusinessError):
    """存储层读写失败，由存储实现抛出，服务层只负责透传。"""

    http_status_default = 500


class NotificationError(BusinessError):
    """事件通知失败（Socket 总线或 HTTP 接口）。"""

    http_status_default = 502
