from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from flycloth.db.base_class import Base

STORE_SETTINGS_ID = "default"


class StoreSettings(Base):
    """店铺设置模型（单行表，id 固定为 default）"""
    __tablename__ = "store_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=STORE_SETTINGS_ID)
    shipping_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    free_shipping_threshold: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    # EasyParcel 揽件地址
    pickup_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pickup_company: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pickup_contact: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    pickup_addr1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pickup_addr2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pickup_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pickup_state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pickup_postcode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
