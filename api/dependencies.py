"""
API依赖项 - 服务装配与管理接口鉴权
"""
import hmac
from typing import Any, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from application.ports.notifications import NotificationQueue
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from application.services.fulfillment_service import FulfillmentService
from application.services.notification_service import NotificationService
from application.services.payment_callback_service import PaymentCallbackService
from application.services.reconciliation_service import ReconciliationService
from application.services.side_effects import SideEffectDispatcher
from core.config import settings
from domain.common.unit_of_work import UnitOfWorkFactory
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.utils.dispatcher import TaskDispatcher
from infrastructure.unit_of_work import uow_factory


def get_uow_factory() -> UnitOfWorkFactory:
    return uow_factory()


def get_gateway_factory() -> Callable[[str], PaymentGateway]:
    return get_payment_gateway


def get_notification_queue() -> NotificationQueue:
    return TaskDispatcher()


def get_checkout_service(
    factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
) -> CheckoutService:
    return CheckoutService(factory, gateways)


def get_callback_service(
    factory: UnitOfWorkFactory = Depends(get_uow_factory),
    queue: NotificationQueue = Depends(get_notification_queue),
) -> PaymentCallbackService:
    dispatcher = SideEffectDispatcher(
        factory,
        queue,
        admin_recipients=settings.mail.admin_recipients,
        store_name=settings.mail.from_name or settings.PROJECT_NAME,
    )
    return PaymentCallbackService(factory, dispatcher)


def get_reconciliation_service(
    factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    callbacks: PaymentCallbackService = Depends(get_callback_service),
) -> ReconciliationService:
    return ReconciliationService(factory, gateways, callbacks)


def get_fulfillment_service(factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> FulfillmentService:
    return FulfillmentService(factory)


def get_notification_service(
    factory: UnitOfWorkFactory = Depends(get_uow_factory),
    queue: NotificationQueue = Depends(get_notification_queue),
) -> NotificationService:
    return NotificationService(factory, queue=queue)


def get_client_info(request: Request) -> dict[str, Any]:
    """Caller details recorded with rejected callbacks."""
    ip = getattr(request.state, "client_ip", None)
    if ip is None and request.client:
        ip = request.client.host
    return {"client_ip": ip, "user_agent": request.headers.get("User-Agent")}


async def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """管理接口使用静态令牌鉴权；未配置令牌时接口整体不可用"""
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled",
        )
    if not x_admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin token",
        )
    if not hmac.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )
