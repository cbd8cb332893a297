"""
Business codes shared by domain, core and API layers.

`BusinessCode` covers request, order and operator errors; gateway and
signature errors live in `shared.codes.payment_codes.PaymentCode` (6xxxx).
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 请求参数（1xxxx）
    PARAM_VALIDATION_ERROR = 10003

    # 订单与通知（2xxxx）
    NOT_FOUND = 20006
    ORDER_NOT_FOUND = 20100
    CHECKOUT_CONFLICT = 20101
    INVALID_TRANSITION = 20102
    NOTIFICATION_NOT_FOUND = 20103

    # 运维接口鉴权（3xxxx）
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # 系统（4xxxx）
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003

    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
