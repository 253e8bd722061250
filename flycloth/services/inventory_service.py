import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.core.config import INVENTORY
from flycloth.models.product import Product, ProductVariant
from flycloth.services.notification_service import notification_service

logger = logging.getLogger(__name__)


class InventoryService:
    """库存服务"""

    @staticmethod
    async def decrement_stock(db: AsyncSession, variant_id: int, amount: int) -> bool:
        """
        原子扣减库存，只有库存充足时才会更新
        不单独提交，由调用方负责事务
        :return: 是否扣减成功
        """
        if amount <= 0:
            raise ValueError("扣减数量必须大于0")

        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock_quantity >= amount)
            .values(stock_quantity=ProductVariant.stock_quantity - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def increment_stock(db: AsyncSession, variant_id: int, amount: int) -> bool:
        """回补库存，用于扣减失败后的补偿"""
        if amount <= 0:
            raise ValueError("回补数量必须大于0")

        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock_quantity=ProductVariant.stock_quantity + amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int) -> Optional[ProductVariant]:
        result = await db.execute(
            select(ProductVariant)
            .options(selectinload(ProductVariant.product))
            .where(ProductVariant.id == variant_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_stock(db: AsyncSession, variant_id: int) -> Optional[int]:
        result = await db.execute(select(ProductVariant.stock_quantity).where(ProductVariant.id == variant_id))
        return result.scalar_one_or_none()

    async def update_stock(self, db: AsyncSession, variant_id: int, quantity: int) -> ProductVariant:
        """
        后台直接设置库存，超出范围的值会被截断到 [0, max_stock]
        跌破预警阈值时通知管理员
        """
        variant = await self.get_variant(db, variant_id)
        if not variant:
            raise LookupError(f"规格 {variant_id} 不存在")

        previous_stock = variant.stock_quantity
        new_stock = max(0, min(quantity, INVENTORY["max_stock"]))
        variant.stock_quantity = new_stock
        await db.commit()
        logger.info(f"规格 {variant_id} 库存由 {previous_stock} 调整为 {new_stock}")

        await notification_service.check_and_notify_low_stock(
            db, variant.id, variant.product.name, variant.variant_info, previous_stock, new_stock
        )
        return variant

    @staticmethod
    def to_inventory_row(variant: ProductVariant) -> dict:
        return {
            "variant_id": variant.id,
            "product_id": variant.product_id,
            "product_name": variant.product.name,
            "product_sku": variant.product.sku,
            "variant_info": variant.variant_info,
            "stock_quantity": variant.stock_quantity,
            "price": variant.price,
            "is_low_stock": variant.stock_quantity < INVENTORY["low_stock_threshold"],
        }

    async def list_inventory(self, db: AsyncSession, skip: int = 0, limit: int = 100) -> List[dict]:
        """所有规格及其库存，按商品名排序"""
        result = await db.execute(
            select(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
            .options(selectinload(ProductVariant.product))
            .order_by(Product.name, ProductVariant.id)
            .offset(skip)
            .limit(limit)
        )
        return [self.to_inventory_row(variant) for variant in result.scalars().all()]

    async def get_low_stock_items(self, db: AsyncSession) -> List[dict]:
        """获取库存低于预警阈值的规格，库存少的排前面"""
        result = await db.execute(
            select(ProductVariant)
            .options(selectinload(ProductVariant.product))
            .where(ProductVariant.stock_quantity < INVENTORY["low_stock_threshold"])
            .order_by(ProductVariant.stock_quantity, ProductVariant.id)
        )
        return [self.to_inventory_row(variant) for variant in result.scalars().all()]


inventory_service = InventoryService()
