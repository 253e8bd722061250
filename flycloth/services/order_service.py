import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import stripe
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.models.order import Order, OrderItem, OrderStatusEnum, PaymentStatusEnum
from flycloth.models.product import Product
from flycloth.models.user import User
from flycloth.schemas.order import OrderCreationResult
from flycloth.services.cart_service import cart_service
from flycloth.services.inventory_service import inventory_service
from flycloth.services.notification_service import notification_service
from flycloth.services.payment_service import stripe_service
from flycloth.utils.currency import from_cents, to_decimal

logger = logging.getLogger(__name__)

# 后台可手动设置的订单状态
ADMIN_SETTABLE_STATUSES = {
    OrderStatusEnum.PENDING,
    OrderStatusEnum.PROCESSING,
    OrderStatusEnum.SHIPPED,
    OrderStatusEnum.DELIVERED,
    OrderStatusEnum.CANCELLED,
}


def generate_order_sn() -> str:
    return f"SN{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}{uuid.uuid4().hex[:6]}"


def extract_shipping_address(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """从结账会话中提取收货地址，兼容新旧两种API版本的字段位置"""
    shipping_details = session.get("shipping_details") or \
        (session.get("collected_information") or {}).get("shipping_details")
    if not shipping_details or not shipping_details.get("address"):
        return None

    address = shipping_details["address"]
    return {
        "name": shipping_details.get("name"),
        "line1": address.get("line1"),
        "line2": address.get("line2"),
        "city": address.get("city"),
        "state": address.get("state"),
        "postal_code": address.get("postal_code"),
        "country": address.get("country"),
    }


def _payment_intent_id(session: Dict[str, Any]) -> Optional[str]:
    payment_intent = session.get("payment_intent")
    if payment_intent is None or isinstance(payment_intent, str):
        return payment_intent
    return payment_intent.get("id")


class OrderService:

    async def create_order_from_stripe(self, db: AsyncSession, session: Dict[str, Any]) -> OrderCreationResult:
        """
        根据已完成的Stripe结账会话创建订单，这是唯一的下单入口
        1. 校验元数据，按会话ID做幂等
        2. 逐个原子扣减库存，任何一项失败则回补已扣库存、自动退款并记录已取消订单
        3. 创建订单和订单项，失败时回补库存
        4. 更新销量、清空购物车、发送通知、检查低库存（均为非关键操作）
        """
        session_id = session.get("id")
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        cart_items_json = metadata.get("cart_items")

        if not user_id or not cart_items_json:
            logger.error(f"结账会话 {session_id} 缺少必要的元数据")
            return OrderCreationResult(success=False, error="Missing required metadata")

        # 幂等检查，Stripe会重试Webhook
        existing = await db.execute(select(Order.id).where(Order.stripe_session_id == session_id))
        existing_id = existing.scalar_one_or_none()
        if existing_id is not None:
            logger.info(f"会话 {session_id} 的订单已存在: {existing_id}")
            return OrderCreationResult(success=True, order_id=existing_id)

        try:
            user_id = int(user_id)
            cart_items: List[Dict[str, Any]] = json.loads(cart_items_json)
        except (TypeError, ValueError):
            logger.error(f"结账会话 {session_id} 的元数据格式错误")
            return OrderCreationResult(success=False, error="Invalid metadata")

        total_amount = from_cents(session.get("amount_total"))
        discount_amount = from_cents((session.get("total_details") or {}).get("amount_discount"))
        shipping_address = extract_shipping_address(session)
        payment_intent_id = _payment_intent_id(session)

        # 1. 扣减库存
        stock_results = await self._decrement_stock_for_items(db, cart_items)
        failed = [item for item, previous in stock_results if previous is None]
        if failed:
            await self._rollback_stock_decrements(db, stock_results)
            failed_ids = ", ".join(str(item["variantId"]) for item in failed)
            refunded = await self._refund_and_record(
                db, session_id, user_id, total_amount, payment_intent_id, failed_ids
            )
            return OrderCreationResult(
                success=False,
                error=f"Insufficient stock for items: {failed_ids}",
                refunded=refunded,
            )

        # 2. 创建订单
        payment_method_types = session.get("payment_method_types") or []
        order = Order(
            order_sn=generate_order_sn(),
            user_id=user_id,
            status=OrderStatusEnum.PAID,
            payment_status=PaymentStatusEnum.PAID,
            total_amount=total_amount,
            discount_amount=discount_amount,
            shipping_address=shipping_address,
            payment_method=payment_method_types[0] if payment_method_types else "card",
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            items=[
                OrderItem(
                    variant_id=item["variantId"],
                    product_id=item.get("productId"),
                    product_name=item["name"],
                    variant_info=f"{item['size']} / {item['variantInfo']}",
                    quantity=item["quantity"],
                    unit_price=to_decimal(item["price"]),
                )
                for item in cart_items
            ],
        )
        try:
            db.add(order)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"为会话 {session_id} 创建订单失败: {e}")
            await self._rollback_stock_decrements(db, stock_results)
            return OrderCreationResult(success=False, error="Failed to create order")

        logger.info(f"订单已创建: {order.order_sn} (会话 {session_id})")

        # 3. 非关键的后续操作
        await self._update_sold_counts(db, cart_items)
        try:
            await cart_service.clear_cart(db, user_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"清空用户 {user_id} 的购物车失败: {e}")

        await notification_service.notify_new_order(db, order.id, order.order_sn, user_id, total_amount)
        for item, previous_stock in stock_results:
            await notification_service.check_and_notify_low_stock(
                db, item["variantId"], item["name"], f"{item['size']} / {item['variantInfo']}",
                previous_stock, previous_stock - item["quantity"]
            )

        return OrderCreationResult(success=True, order_id=order.id)

    @staticmethod
    async def _decrement_stock_for_items(db: AsyncSession,
                                         cart_items: List[Dict[str, Any]]) -> List[Tuple[Dict[str, Any], Optional[int]]]:
        """
        逐项扣减库存并提交
        :return: (购物车项, 扣减前库存)，扣减失败时库存为 None
        """
        results = []
        for item in cart_items:
            variant_id = item["variantId"]
            previous_stock = await inventory_service.get_stock(db, variant_id)
            if previous_stock is not None and await inventory_service.decrement_stock(db, variant_id, item["quantity"]):
                results.append((item, previous_stock))
            else:
                logger.warning(f"规格 {variant_id} 库存不足，无法扣减 {item['quantity']} 件")
                results.append((item, None))
        await db.commit()
        return results

    @staticmethod
    async def _rollback_stock_decrements(db: AsyncSession,
                                         stock_results: List[Tuple[Dict[str, Any], Optional[int]]]) -> None:
        """回补已成功扣减的库存"""
        for item, previous_stock in stock_results:
            if previous_stock is not None:
                await inventory_service.increment_stock(db, item["variantId"], item["quantity"])
        await db.commit()

    @staticmethod
    async def _refund_and_record(db: AsyncSession, session_id: str, user_id: int, total_amount: Decimal,
                                 payment_intent_id: Optional[str], failed_ids: str) -> bool:
        """库存竞争失败时自动退款，并记录一笔已取消的订单用于追踪"""
        if not payment_intent_id:
            return False

        try:
            stripe_service.refund_payment(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"自动退款失败 {payment_intent_id}: {e}")
            return False

        try:
            db.add(Order(
                order_sn=generate_order_sn(),
                user_id=user_id,
                status=OrderStatusEnum.CANCELLED,
                payment_status=PaymentStatusEnum.REFUNDED,
                total_amount=total_amount,
                stripe_session_id=session_id,
                stripe_payment_intent_id=payment_intent_id,
                notes=f"Auto-refunded: Insufficient stock for items: {failed_ids}",
            ))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"记录退款订单失败 (会话 {session_id}): {e}")
        return True

    @staticmethod
    async def _update_sold_counts(db: AsyncSession, cart_items: List[Dict[str, Any]]) -> None:
        quantities: Dict[int, int] = {}
        for item in cart_items:
            if item.get("productId"):
                quantities[item["productId"]] = quantities.get(item["productId"], 0) + item["quantity"]

        try:
            for product_id, quantity in quantities.items():
                await db.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(sold_count=Product.sold_count + quantity)
                    .execution_options(synchronize_session=False)
                )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"更新商品销量失败: {e}")

    async def handle_payment_failed(self, db: AsyncSession, payment_intent: Dict[str, Any]) -> int:  # noqa
        """支付失败时把关联订单标记为失败"""
        result = await db.execute(
            update(Order)
            .where(Order.stripe_payment_intent_id == payment_intent.get("id"))
            .values(payment_status=PaymentStatusEnum.FAILED)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount

    async def handle_session_expired(self, session: Dict[str, Any]) -> None:  # noqa
        user_id = (session.get("metadata") or {}).get("user_id")
        if user_id:
            logger.info(f"用户 {user_id} 的结账会话 {session.get('id')} 已过期")

    # 用户查询

    async def list_user_orders(self, db: AsyncSession, user: User) -> List[Order]:  # noqa
        result = await db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def get_user_order(self, db: AsyncSession, user: User, order_id: int) -> Optional[Order]:  # noqa
        result = await db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id, Order.user_id == user.id)
        )
        return result.scalar_one_or_none()

    async def get_order_by_session(self, db: AsyncSession, session_id: str,
                                   user: Optional[User] = None) -> Optional[Order]:  # noqa
        query = select(Order).options(selectinload(Order.items)).where(Order.stripe_session_id == session_id)
        if user is not None:
            query = query.where(Order.user_id == user.id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    # 后台管理

    async def list_orders(self, db: AsyncSession, status: Optional[OrderStatusEnum] = None, skip: int = 0,
                          limit: int = 20) -> Tuple[List[Order], int]:  # noqa
        query = select(Order)
        count_query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.options(selectinload(Order.items), selectinload(Order.user), selectinload(Order.shipment))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_order(self, db: AsyncSession, order_id: int) -> Optional[Order]:  # noqa
        result = await db.execute(
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.user), selectinload(Order.shipment))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_order_status(self, db: AsyncSession, order: Order, new_status: OrderStatusEnum) -> Order:
        """后台修改订单状态并通知用户"""
        if new_status not in ADMIN_SETTABLE_STATUSES:
            raise ValueError(f"不能手动将订单设置为 {new_status.value} 状态")

        old_status = order.status
        if old_status == new_status:
            return order

        order.status = new_status
        await db.commit()
        logger.info(f"订单 {order.order_sn} 状态: {old_status.value} -> {new_status.value}")

        await notification_service.notify_order_status_change(
            db, order.id, order.order_sn, order.user_id, old_status.value, new_status.value
        )
        return order


order_service = OrderService()
