import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.core.config import INVENTORY
from flycloth.models.notification import Notification, NotificationTypeEnum
from flycloth.models.user import User
from flycloth.utils import messaging

logger = logging.getLogger(__name__)

ORDER_STATUS_MESSAGES = {
    "processing": "is now being processed",
    "shipped": "has been shipped",
    "delivered": "has been delivered",
    "cancelled": "has been cancelled",
}


class NotificationService:
    """站内通知服务，通知属于非关键操作，任何失败都只记录日志"""

    @staticmethod
    async def create_notification(
            db: AsyncSession,
            user_id: Optional[int],
            type_: NotificationTypeEnum,
            title: str,
            message: str,
            link: Optional[str] = None,
            metadata: Optional[dict] = None,
    ) -> Optional[Notification]:
        try:
            notification = Notification(
                user_id=user_id,
                type=type_,
                title=title,
                message=message,
                link=link,
                extra_data=metadata or {},
            )
            db.add(notification)
            await db.commit()
            return notification
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"创建通知失败 ({type_.value}): {e}")
            return None

    async def notify_user(self, db: AsyncSession, user_id: int, type_: NotificationTypeEnum, title: str,
                          message: str, link: Optional[str] = None, metadata: Optional[dict] = None):
        return await self.create_notification(db, user_id, type_, title, message, link, metadata)

    async def notify_admins(self, db: AsyncSession, type_: NotificationTypeEnum, title: str, message: str,
                            link: Optional[str] = None, metadata: Optional[dict] = None):
        """面向所有管理员的通知只写一行，user_id 为空"""
        return await self.create_notification(db, None, type_, title, message, link, metadata)

    async def notify_new_order(self, db: AsyncSession, order_id: int, order_sn: str, user_id: int,
                               total_amount: Decimal) -> None:
        formatted_total = f"RM{float(total_amount):.2f}"

        await self.notify_user(
            db, user_id, NotificationTypeEnum.ORDER_CREATED,
            "Order Confirmed",
            f"Your order #{order_sn} for {formatted_total} has been received and is being processed.",
            "/user/orders",
        )
        await self.notify_admins(
            db, NotificationTypeEnum.PAYMENT_RECEIVED,
            "New Order Received",
            f"Order #{order_sn} for {formatted_total} has been placed and paid.",
            f"/admin/orders/{order_id}",
            {"order_id": order_id, "total_amount": float(total_amount)},
        )

    async def notify_order_status_change(self, db: AsyncSession, order_id: int, order_sn: str, user_id: int,
                                         old_status: str, new_status: str) -> None:
        message = ORDER_STATUS_MESSAGES.get(new_status, f"status changed to {new_status}")
        await self.notify_user(
            db, user_id, NotificationTypeEnum.ORDER_STATUS,
            f"Order {new_status.capitalize()}",
            f"Your order #{order_sn} {message}.",
            "/user/orders",
            {"order_id": order_id, "old_status": old_status, "new_status": new_status},
        )

    async def notify_low_stock(self, db: AsyncSession, variant_id: int, product_name: str, variant_info: str,
                               current_stock: int) -> None:
        is_out_of_stock = current_stock == 0
        alert = {
            "variant_id": variant_id,
            "product_name": product_name,
            "variant_info": variant_info,
            "current_stock": current_stock,
        }
        await self.notify_admins(
            db,
            NotificationTypeEnum.OUT_OF_STOCK if is_out_of_stock else NotificationTypeEnum.LOW_STOCK,
            "Out of Stock Alert" if is_out_of_stock else "Low Stock Alert",
            f"{product_name} ({variant_info}) is now out of stock!" if is_out_of_stock
            else f"{product_name} ({variant_info}) has only {current_stock} items left.",
            "/admin/inventory",
            alert,
        )
        # 同时投递到预警队列，由消费者发邮件
        await messaging.send_alert_to_queue(alert)

    async def notify_bad_review(self, db: AsyncSession, product_id: int, product_name: str, rating: int,
                                review_title: Optional[str] = None) -> None:
        stars = "★" * rating + "☆" * (5 - rating)
        title_part = f': "{review_title}"' if review_title else ""
        await self.notify_admins(
            db, NotificationTypeEnum.BAD_REVIEW,
            "Low Rating Review",
            f"{product_name} received a {rating}-star review{title_part} {stars}",
            "/admin/reviews",
            {"product_id": product_id, "rating": rating, "review_title": review_title},
        )

    async def check_and_notify_low_stock(self, db: AsyncSession, variant_id: int, product_name: str,
                                         variant_info: str, previous_stock: int, current_stock: int) -> bool:
        """
        只在库存首次跌破阈值或刚好售罄时通知
        :return: 是否发出了通知
        """
        threshold = INVENTORY["low_stock_threshold"]
        crossed_threshold = previous_stock >= threshold > current_stock
        sold_out = previous_stock > 0 and current_stock == 0
        if not (crossed_threshold or sold_out):
            return False

        await self.notify_low_stock(db, variant_id, product_name, variant_info, current_stock)
        return True

    # 查询接口

    @staticmethod
    def _visible_filter(user: User):
        if user.is_admin:
            return or_(Notification.user_id == user.id, Notification.user_id.is_(None))
        return Notification.user_id == user.id

    async def list_notifications(self, db: AsyncSession, user: User, limit: int = 20,
                                 unread_only: bool = False) -> List[Notification]:
        query = select(Notification).where(self._visible_filter(user))
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_unread_count(self, db: AsyncSession, user: User) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                self._visible_filter(user), Notification.is_read.is_(False)
            )
        )
        return result.scalar_one()

    async def mark_as_read(self, db: AsyncSession, user: User, notification_id: int) -> bool:
        """标记单条通知已读，通知必须对当前用户可见"""
        result = await db.execute(
            update(Notification)
            .where(Notification.id == notification_id, self._visible_filter(user))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount > 0

    async def mark_all_as_read(self, db: AsyncSession, user: User) -> int:
        """标记全部已读，管理员同时清空面向管理员的通知"""
        result = await db.execute(
            update(Notification)
            .where(self._visible_filter(user), Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount


notification_service = NotificationService()
