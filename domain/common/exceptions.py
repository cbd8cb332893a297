"""领域层业务异常基类。

core 层负责把 `code` 映射为 HTTP 状态并渲染统一外壳；领域层不反向依赖 core。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """
    业务异常基类

    - code: 业务码（BusinessCode / PaymentCode）
    - error_type: 返回给调用方的机器可读错误类型，如 INVALID_SIGNATURE
    - details: 附加上下文，不得包含密钥或签名原文
    """

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(error_type={self.error_type!r}, message={self.message!r})"


class DomainValidationException(BusinessException):
    """Caller-fixable input problem, always reported with the offending field."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )
