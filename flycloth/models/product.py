import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import (Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
                        UniqueConstraint)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flycloth.db.base_class import Base

if TYPE_CHECKING:
    from flycloth.models.order import CartItem, OrderItem  # noqa
    from flycloth.models.product_review import ProductReview  # noqa


class FitEnum(str, enum.Enum):
    SLIM = "slim"  # 修身
    REGULAR = "regular"  # 常规
    OVERSIZE = "oversize"  # 宽松


FIT_LABELS = {
    FitEnum.SLIM.value: "Slim Fit",
    FitEnum.REGULAR.value: "Regular Fit",
    FitEnum.OVERSIZE.value: "Oversize Fit",
}


class MediaTypeEnum(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


class Category(Base):
    """商品分类模型"""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    products: Mapped[List["Product"]] = relationship("Product", back_populates="category")


class Product(Base):
    """商品模型"""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    sold_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"), nullable=True)

    # Stripe 同步信息
    stripe_product_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stripe_price_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # 关联
    category: Mapped[Optional["Category"]] = relationship("Category", back_populates="products")
    variants: Mapped[List["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )
    images: Mapped[List["ProductImage"]] = relationship(
        "ProductImage", back_populates="product", cascade="all, delete-orphan",
        order_by="ProductImage.sort_order"
    )
    reviews: Mapped[List["ProductReview"]] = relationship(
        "ProductReview", back_populates="product", cascade="all, delete-orphan"
    )

    @property
    def primary_image(self) -> Optional["ProductImage"]:
        return next((image for image in self.images if image.is_primary), None)


class ProductVariant(Base):
    """商品规格模型（尺码 + 版型）"""
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint("product_id", "size", "fit", name="uq_variant_product_size_fit"),
        CheckConstraint("stock_quantity >= 0", name="ck_variant_stock_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    size: Mapped[str] = mapped_column(String(20), nullable=False)
    fit: Mapped[FitEnum] = mapped_column(Enum(FitEnum), default=FitEnum.REGULAR, nullable=False)
    gsm: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="面料克重")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # 关联
    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    cart_items: Mapped[List["CartItem"]] = relationship("CartItem", back_populates="variant", passive_deletes=True)
    order_items: Mapped[List["OrderItem"]] = relationship("OrderItem", back_populates="variant", passive_deletes=True)

    @property
    def variant_info(self) -> str:
        return f"{self.size} / {FIT_LABELS.get(self.fit.value, self.fit.value)}"


class ProductImage(Base):
    """商品媒体模型（图片或视频）"""
    __tablename__ = "product_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    media_type: Mapped[MediaTypeEnum] = mapped_column(Enum(MediaTypeEnum), default=MediaTypeEnum.IMAGE)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    product: Mapped["Product"] = relationship("Product", back_populates="images")
