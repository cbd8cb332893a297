"""
运维接口：通知发件箱与待复核订单

所有接口要求 X-Admin-Token 请求头。
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_fulfillment_service,
    get_notification_service,
    require_admin_token,
)
from application.dtos.admin import FulfillmentUpdate, NotificationView, OrderSummary
from application.services.fulfillment_service import FulfillmentService
from application.services.notification_service import NotificationService
from core.response import Response as ApiResponse, success_response
from domain.notification.entity import NotificationStatus


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_token)],
)


@router.get("/notifications", summary="未发送的通知", response_model=ApiResponse[list[NotificationView]])
async def list_notifications(
    status: Optional[NotificationStatus] = Query(default=None, description="pending / failed；为空时返回所有未发送"),
    limit: int = Query(default=100, ge=1, le=500),
    service: NotificationService = Depends(get_notification_service),
):
    items = await service.list_unsent(status=status, limit=limit)
    return success_response(data=[NotificationView.from_entity(n) for n in items])


@router.post(
    "/notifications/{notification_id}/retry",
    summary="重新投递通知",
    response_model=ApiResponse[NotificationView],
)
async def retry_notification(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.retry(notification_id)
    return success_response(data=NotificationView.from_entity(notification), message="Notification re-queued")


@router.get("/orders/review", summary="待人工复核的订单", response_model=ApiResponse[list[OrderSummary]])
async def list_review_orders(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    orders = await service.list_review_required(skip=skip, limit=limit)
    return success_response(data=[OrderSummary.from_entity(o) for o in orders])


@router.post("/orders/{order_id}/status", summary="推进履约状态", response_model=ApiResponse[OrderSummary])
async def advance_order(
    order_id: int,
    payload: FulfillmentUpdate,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    paid → processing → shipped → delivered，pending/processing → cancelled

    支付结果（paid / payment_failed）只能由回调写入。
    """
    order = await service.advance(order_id, payload.status)
    return success_response(data=OrderSummary.from_entity(order), message="Order updated")
