"""
Payments API routes.

Client verification, browser returns, webhooks and reconciliation. Keep this
thin: verification and state changes live in PaymentCallbackService.
"""
from __future__ import annotations

import ipaddress
import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from api.middleware import get_request_id
from api.dependencies import (
    get_callback_service,
    get_client_info,
    get_gateway_factory,
    get_reconciliation_service,
)
from application.dtos.payments import (
    CallbackResult,
    OrderStatusView,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_callback_service import PaymentCallbackService
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from core.response import Response as ApiResponse, exception_json, success_response
from core.settings import payment_settings
from domain.common.exceptions import BusinessException
from domain.payment.exceptions import SignatureVerificationFailed
from infrastructure.external.payments import describe_gateways


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

# razorpay checkout 的客户端确认只走 HMAC 方案
VERIFY_GATEWAY = "razorpay"


def _ip_permitted(remote_ip: Optional[str], allowlist: list[str]) -> bool:
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


async def _read_fields(request: Request) -> dict[str, Any]:
    """Browser returns arrive as form posts; JSON is accepted too."""
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            body = json.loads(await request.body() or b"{}")
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")
        # 回跳字段按表单语义处理，统一为字符串
        return {k: str(v) for k, v in body.items() if isinstance(v, (str, int, float)) and not isinstance(v, bool)}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


def _redirect(result_path: str, outcome: str, order_reference: Optional[str]) -> RedirectResponse:
    query = {"outcome": outcome}
    if order_reference:
        query["order_reference"] = order_reference
    base = payment_settings.frontend_url.rstrip("/")
    return RedirectResponse(
        url=f"{base}/payment/{result_path}?{urlencode(query)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.post("/verify", summary="Verify client-side payment", response_model=ApiResponse[VerifyPaymentResponse])
async def verify_payment(
    payload: VerifyPaymentRequest,
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    service: PaymentCallbackService = Depends(get_callback_service),
    client: dict = Depends(get_client_info),
):
    """
    校验 checkout 成功回调的签名并落库

    - 签名 = HMAC-SHA256(key_secret, "order_ref|payment_ref")，64 位十六进制
    - 重复提交返回 outcome=duplicate，不会重复触发库存与邮件
    """
    gateway = gateways(VERIFY_GATEWAY)
    try:
        result = await service.handle_client_callback(
            gateway,
            payload.model_dump(),
            source="verify",
            client=client,
        )
    except SignatureVerificationFailed as exc:
        return exception_json(
            exc,
            status.HTTP_400_BAD_REQUEST,
            request_id=get_request_id(),
            data={"valid": False},
        )
    finally:
        await gateway.aclose()

    return success_response(
        data=VerifyPaymentResponse(
            valid=True,
            status=result.status,
            outcome=result.outcome.value,
            order_reference=result.order_reference,
            payment_reference=result.payment_reference,
            verified_at=datetime.now(timezone.utc),
        ),
        message="Payment verified",
    )


@router.post("/{gateway}/return", summary="Browser return from the gateway", include_in_schema=False)
async def payment_return(
    gateway: str,
    request: Request,
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    service: PaymentCallbackService = Depends(get_callback_service),
    client: dict = Depends(get_client_info),
):
    """处理网关 surl/furl 表单回跳，结果以 303 重定向到前端，只带通用结果与订单号"""
    fields = await _read_fields(request)
    adapter = gateways(gateway)
    order_reference: Optional[str] = None
    try:
        order_reference = adapter.parse_callback(fields).order_reference
        result: CallbackResult = await service.handle_client_callback(
            adapter, fields, source="browser_return", client=client
        )
    except BusinessException as exc:
        logger.warning(
            "payment_return_rejected",
            gateway=gateway,
            order_reference=order_reference,
            error_type=exc.error_type,
            error=exc.message,
        )
        return _redirect("failure", "error", order_reference)
    finally:
        await adapter.aclose()

    path = "success" if result.successful_payment else "failure"
    return _redirect(path, result.outcome.value, result.order_reference or order_reference)


@router.post("/webhooks/{gateway}", summary="Gateway webhook")
async def payments_webhook(
    gateway: str,
    request: Request,
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    service: PaymentCallbackService = Depends(get_callback_service),
    client: dict = Depends(get_client_info),
):
    # Optional IP allowlist（只看 TCP 对端地址，不信任 X-Forwarded-For）
    allowlist = payment_settings.webhook.ip_allowlist or []
    remote_ip = getattr(request.state, "peer_ip", None)
    if not _ip_permitted(remote_ip, allowlist):
        logger.warning("webhook_ip_not_allowed", gateway=gateway, remote_ip=remote_ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Source address not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    adapter = gateways(gateway)
    try:
        result = await service.handle_webhook(adapter, headers, raw_body, client=client)
    finally:
        await adapter.aclose()

    if result is None:
        logger.info("webhook_event_ignored", gateway=gateway)
    # 网关只认 {"status": "success"}，不套统一响应外壳
    return {"status": "success"}


@router.get(
    "/orders/{gateway}/{reference}",
    summary="Order payment status",
    response_model=ApiResponse[OrderStatusView],
)
async def order_status(
    gateway: str,
    reference: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    view = await service.get_order_status(gateway, reference)
    return success_response(data=view)


@router.post(
    "/orders/{gateway}/{reference}/reconcile",
    summary="Pull payment status from the gateway",
    response_model=ApiResponse[CallbackResult],
)
async def reconcile_order(
    gateway: str,
    reference: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    result = await service.reconcile_order(gateway, reference)
    return success_response(data=result, message="Reconciled")


@router.get("/gateways/status", summary="Gateway configuration status")
async def gateways_status():
    return success_response(data=describe_gateways())
