"""
Checkout API routes: create a pending order and its gateway-side order.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header

from api.dependencies import get_checkout_service
from application.dtos.checkout import CheckoutRequest, CheckoutResult
from application.services.checkout_service import CheckoutService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/{gateway}", summary="Start checkout", response_model=ApiResponse[CheckoutResult])
async def start_checkout(
    gateway: str,
    payload: CheckoutRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    创建待支付订单并在网关侧下单

    - **amount**: 最小货币单位的整数金额，必须等于商品合计
    - **Idempotency-Key**: 可选；相同键重复提交返回同一个网关订单
    - 返回的 **client_parameters** 交给前端拉起支付（razorpay checkout 或 HDFC 表单提交）
    """
    result = await service.start_checkout(gateway, payload, idempotency_key=idempotency_key)
    return success_response(data=result, message="Checkout started")
