"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器，
渲染为 {"code", "message", "data"} 的统一响应，而不是让请求崩溃。

错误分类：
- ValidationError: 输入不合法（如个数不是正整数）
- EligibilityError: 不满足提交资格（包括并发竞争失败）
- NotFoundError: 引用的实体不存在
- InvalidStateError: 实体不处于所需状态（如审核非 pending 的提交）
- ForbiddenError: 调用者没有所需角色
- UpstreamError: 数据库或 Stripe 调用失败，可重试
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """
    应用自定义异常类

    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息
    - status_code: HTTP 状态码
    - data: 附加的结构化数据（可选）

    使用示例：
        raise AppError(code=409001, message="Email already registered", status_code=409)
    """

    def __init__(
        self,
        *,
        code: int,
        message: str,
        status_code: int = 400,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.data = data


class ValidationError(AppError):
    def __init__(self, message: str, *, code: int = 400100) -> None:
        super().__init__(code=code, message=message, status_code=400)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Admin access required", *, code: int = 403100) -> None:
        super().__init__(code=code, message=message, status_code=403)


class NotFoundError(AppError):
    def __init__(self, message: str, *, code: int = 404100) -> None:
        super().__init__(code=code, message=message, status_code=404)


class EligibilityError(AppError):
    """
    不满足提交资格

    data 中带上当前资格状态，冷却期时还包括剩余天数，方便前端展示。
    """

    def __init__(
        self,
        message: str,
        *,
        code: int = 409100,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, status_code=409, data=data)


class InvalidStateError(AppError):
    def __init__(self, message: str, *, code: int = 409200) -> None:
        super().__init__(code=code, message=message, status_code=409)


class UpstreamError(AppError):
    """
    外部依赖调用失败

    collaborator / operation 记录是哪个外部服务的哪个操作失败，
    只用于日志，返回给前端的是通用的可重试错误。
    """

    def __init__(self, *, collaborator: str, operation: str, code: int = 502100) -> None:
        super().__init__(
            code=code,
            message="Upstream service unavailable, please retry",
            status_code=502,
            data={"retryable": True},
        )
        self.collaborator = collaborator
        self.operation = operation

    def __str__(self) -> str:
        return f"{self.collaborator}.{self.operation} failed"
