import enum
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flycloth.db.base_class import Base

if TYPE_CHECKING:
    from flycloth.models.user import User  # noqa


class NotificationTypeEnum(str, enum.Enum):
    ORDER_CREATED = "order_created"  # 用户：订单已下单
    ORDER_STATUS = "order_status"  # 用户：订单状态变更
    PAYMENT_RECEIVED = "payment_received"  # 管理员：收到新付款
    LOW_STOCK = "low_stock"  # 管理员：库存低于阈值
    OUT_OF_STOCK = "out_of_stock"  # 管理员：库存为0
    BAD_REVIEW = "bad_review"  # 管理员：2星及以下的评价


class Notification(Base):
    """站内通知模型，user_id 为空表示面向所有管理员"""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type: Mapped[NotificationTypeEnum] = mapped_column(Enum(NotificationTypeEnum), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # 列名为 metadata，但该属性名被 DeclarativeBase 占用
    extra_data: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user: Mapped[Optional["User"]] = relationship("User", back_populates="notifications")
