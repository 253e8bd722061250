from decimal import Decimal
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.core.config import CART
from flycloth.models.order import CartItem
from flycloth.models.product import FIT_LABELS, Product, ProductVariant
from flycloth.models.user import User
from flycloth.schemas.cart import (CartItemCreate, CartItemUpdate, CartValidationIssue, CartValidationReason,
                                   CartValidationResponse)
from flycloth.services.product_service import product_service
from flycloth.services.store_settings_service import store_settings_service
from flycloth.utils.currency import to_decimal


class CartService:
    async def get_cart_items(self, db: AsyncSession, user: User) -> List[CartItem]:  # noqa
        """获取用户的购物车项目，预加载规格、商品和商品图片"""
        result = await db.execute(
            select(CartItem)
            .where(CartItem.user_id == user.id)
            .options(
                selectinload(CartItem.variant)
                .selectinload(ProductVariant.product)
                .selectinload(Product.images)
            )
            .order_by(CartItem.created_at, CartItem.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def _to_line(item: CartItem) -> Dict[str, Any]:
        variant = item.variant
        product = variant.product
        primary = product.primary_image
        return {
            "id": item.id,
            "variant_id": variant.id,
            "product_id": product.id,
            "product_name": product.name,
            "product_sku": product.sku,
            "size": variant.size,
            "fit": variant.fit,
            "fit_label": FIT_LABELS.get(variant.fit.value, variant.fit.value),
            "variant_info": variant.variant_info,
            "unit_price": variant.price,
            "quantity": item.quantity,
            "line_total": variant.price * item.quantity,
            "stock_quantity": variant.stock_quantity,
            "image_path": primary.storage_path if primary else None,
            "stripe_price_id": product.stripe_price_id,
        }

    async def get_user_cart(self, db: AsyncSession, user: User, redis: Optional[Redis] = None) -> Dict[str, Any]:
        """获取购物车视图：明细、小计、运费、税费、合计"""
        items = await self.get_cart_items(db, user)
        lines = [self._to_line(item) for item in items]

        subtotal = sum((line["line_total"] for line in lines), Decimal("0"))
        store = await store_settings_service.get_store_settings(db, redis)
        if not lines or subtotal >= to_decimal(store.free_shipping_threshold):
            shipping_fee = Decimal("0")
        else:
            shipping_fee = to_decimal(store.shipping_fee)
        tax = to_decimal(subtotal * Decimal(str(store.tax_rate)))

        return {
            "items": lines,
            "item_count": sum(line["quantity"] for line in lines),
            "subtotal": to_decimal(subtotal),
            "shipping_fee": shipping_fee,
            "tax": tax,
            "total": to_decimal(subtotal + shipping_fee + tax),
        }

    async def get_checkout_lines(self, db: AsyncSession, user: User) -> List[Dict[str, Any]]:
        """结账用的购物车明细"""
        return [self._to_line(item) for item in await self.get_cart_items(db, user)]

    async def add_item_to_cart(self, db: AsyncSession, user: User, item_in: CartItemCreate) -> CartItem:
        """将商品添加到用户的购物车，已存在时合并数量"""
        variant = await product_service.get_variant(db, item_in.variant_id)
        if not variant or not variant.is_active or not variant.product.is_active:
            raise ValueError("商品规格不存在或已下架")

        items = await self.get_cart_items(db, user)
        cart_item = next((item for item in items if item.variant_id == item_in.variant_id), None)

        if cart_item:
            new_quantity = cart_item.quantity + item_in.quantity
        else:
            if len(items) >= CART["max_cart_items"]:
                raise ValueError(f"购物车最多只能有 {CART['max_cart_items']} 种商品")
            new_quantity = item_in.quantity

        if new_quantity > CART["max_quantity_per_item"]:
            raise ValueError(f"单个商品最多购买 {CART['max_quantity_per_item']} 件")
        if variant.stock_quantity < new_quantity:
            raise ValueError("库存不足")

        if cart_item:
            cart_item.quantity = new_quantity
        else:
            cart_item = CartItem(user_id=user.id, variant_id=variant.id, quantity=new_quantity)
            db.add(cart_item)

        await db.commit()
        return cart_item

    async def _get_owned_item(self, db: AsyncSession, user: User, cart_item_id: int) -> Optional[CartItem]:  # noqa
        result = await db.execute(
            select(CartItem)
            .options(selectinload(CartItem.variant))
            .where(CartItem.id == cart_item_id, CartItem.user_id == user.id)
        )
        return result.scalar_one_or_none()

    async def update_cart_item_quantity(self, db: AsyncSession, user: User, cart_item_id: int,
                                        item_in: CartItemUpdate) -> Optional[CartItem]:
        """更新购物车中商品的数量，只能修改自己的购物车"""
        cart_item = await self._get_owned_item(db, user, cart_item_id)
        if not cart_item:
            return None

        if cart_item.variant.stock_quantity < item_in.quantity:
            raise ValueError("库存不足")

        cart_item.quantity = item_in.quantity
        await db.commit()
        return cart_item

    async def remove_cart_item(self, db: AsyncSession, user: User, cart_item_id: int) -> bool:
        cart_item = await self._get_owned_item(db, user, cart_item_id)
        if not cart_item:
            return False

        await db.delete(cart_item)
        await db.commit()
        return True

    async def clear_cart(self, db: AsyncSession, user_id: int, commit: bool = True) -> None:  # noqa
        """清空用户的购物车"""
        await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
        if commit:
            await db.commit()

    async def validate_cart(self, db: AsyncSession, user: User) -> CartValidationResponse:
        """结账前校验库存"""
        issues = []
        for item in await self.get_cart_items(db, user):
            stock = item.variant.stock_quantity
            if stock == 0:
                reason = CartValidationReason.OUT_OF_STOCK
            elif item.quantity > stock:
                reason = CartValidationReason.INSUFFICIENT_STOCK
            else:
                continue
            issues.append(CartValidationIssue(
                variant_id=item.variant_id,
                product_name=item.variant.product.name,
                reason=reason,
                requested_quantity=item.quantity,
                available_stock=stock,
            ))
        return CartValidationResponse(valid=not issues, issues=issues)


cart_service = CartService()
