from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flycloth.db.base_class import Base

if TYPE_CHECKING:
    from flycloth.models.user import User  # noqa
    from flycloth.models.product import Product  # noqa
    from flycloth.models.order import Order  # noqa


class ProductReview(Base):
    """商品评价模型，同一用户对同一订单中的同一商品只能评价一次"""
    __tablename__ = "product_reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "order_id", name="uq_review_user_product_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, comment="评分(1-5)")
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # 关联关系
    user: Mapped["User"] = relationship("User", back_populates="product_reviews")
    product: Mapped["Product"] = relationship("Product", back_populates="reviews")
    order: Mapped["Order"] = relationship("Order")

    @property
    def reviewer_name(self) -> Optional[str]:
        return self.user.full_name if self.user else None
