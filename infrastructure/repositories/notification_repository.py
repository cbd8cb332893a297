"""
通知发件箱仓储实现
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.notification.entity import Notification, NotificationKind, NotificationStatus
from domain.notification.repository import NotificationRepository
from infrastructure.models.notification import NotificationModel


logger = get_logger(__name__)


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            order_id=model.order_id,
            kind=NotificationKind(model.kind),
            recipient=model.recipient,
            subject=model.subject,
            text_body=model.text_body,
            html_body=model.html_body,
            status=NotificationStatus(model.status),
            attempts=model.attempts or 0,
            last_error=model.last_error,
            created_at=model.created_at,
            sent_at=model.sent_at,
        )

    async def add(self, notification: Notification) -> Optional[Notification]:
        db_row = NotificationModel(
            order_id=notification.order_id,
            kind=notification.kind.value,
            recipient=notification.recipient,
            subject=notification.subject,
            text_body=notification.text_body,
            html_body=notification.html_body,
            status=notification.status.value,
            attempts=notification.attempts,
            last_error=notification.last_error,
            created_at=datetime.now(timezone.utc),
        )
        existing = await self.session.execute(
            select(NotificationModel.id).where(
                NotificationModel.order_id == notification.order_id,
                NotificationModel.kind == notification.kind.value,
            )
        )
        if existing.scalar_one_or_none() is not None:
            logger.info(
                "notification_already_exists",
                order_id=notification.order_id,
                kind=notification.kind.value,
            )
            return None
        # 唯一约束冲突向上抛出，由所在 UoW 整体回滚（含同事务内的 paid 转换）
        try:
            self.session.add(db_row)
            await self.session.flush()
        except IntegrityError:
            logger.warning(
                "notification_insert_conflict",
                order_id=notification.order_id,
                kind=notification.kind.value,
            )
            raise
        await self.session.refresh(db_row)
        logger.info("notification_created", notification_id=db_row.id, order_id=db_row.order_id, kind=db_row.kind)
        return self._to_entity(db_row)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        result = await self.session.execute(
            select(NotificationModel).where(NotificationModel.id == notification_id)
        )
        row = result.scalar_one_or_none()
        return self._to_entity(row) if row else None

    async def list_by_order(self, order_id: int) -> List[Notification]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.order_id == order_id)
            .order_by(NotificationModel.id.asc())
        )
        return [self._to_entity(r) for r in result.scalars().all()]

    async def list_unsent(self, status: Optional[NotificationStatus] = None, limit: int = 100) -> List[Notification]:
        query = select(NotificationModel)
        if status:
            query = query.where(NotificationModel.status == status.value)
        else:
            query = query.where(NotificationModel.status != NotificationStatus.SENT.value)
        query = query.order_by(NotificationModel.created_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(r) for r in result.scalars().all()]

    async def mark_sent(self, notification_id: int) -> bool:
        result = await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.status != NotificationStatus.SENT.value,
            )
            .values(
                status=NotificationStatus.SENT.value,
                sent_at=datetime.now(timezone.utc),
                attempts=NotificationModel.attempts + 1,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_failed(self, notification_id: int, error: str) -> None:
        await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.status != NotificationStatus.SENT.value,
            )
            .values(
                status=NotificationStatus.FAILED.value,
                attempts=NotificationModel.attempts + 1,
                last_error=error[:2000],
            )
            .execution_options(synchronize_session=False)
        )
        logger.warning("notification_failed", notification_id=notification_id, error=error)
