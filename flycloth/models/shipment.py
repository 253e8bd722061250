import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flycloth.db.base_class import Base

if TYPE_CHECKING:
    from flycloth.models.order import Order  # noqa


class ShipmentPaymentStatusEnum(str, enum.Enum):
    PENDING = "pending"  # 已创建运单，未付运费
    PAID = "paid"  # 已从EasyParcel余额支付
    FAILED = "failed"  # 支付失败


class Shipment(Base):
    """EasyParcel 运单模型，每个订单最多一个运单"""
    __tablename__ = "easyparcel_shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    easyparcel_order_no: Mapped[str] = mapped_column(String(64), nullable=False, comment="EasyParcel订单号，如EI-5UFAI")
    parcel_no: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="包裹号，如EP-PQKTE")
    courier_name: Mapped[str] = mapped_column(String(100), nullable=False)
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    weight: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    collect_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_status: Mapped[ShipmentPaymentStatusEnum] = mapped_column(
        Enum(ShipmentPaymentStatusEnum), default=ShipmentPaymentStatusEnum.PENDING
    )

    # 支付后回填
    awb: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="运单追踪号")
    awb_label_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ship_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    order: Mapped["Order"] = relationship("Order", back_populates="shipment")
