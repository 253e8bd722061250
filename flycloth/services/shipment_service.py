import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flycloth.core.config import settings
from flycloth.models.order import Order, OrderStatusEnum
from flycloth.models.shipment import Shipment, ShipmentPaymentStatusEnum
from flycloth.services.easyparcel_client import (EasyParcelClient, PickupAddress, RateResult, ShippingAddress,
                                                 easyparcel_client, get_tracking_url)
from flycloth.services.notification_service import notification_service
from flycloth.services.store_settings_service import store_settings_service
from flycloth.utils.redis_lock import RedisLock

logger = logging.getLogger(__name__)

SHIPMENT_CONTENT = "Clothing"
# EasyParcel 包裹状态中表示已签收的取值（小写）
DELIVERED_SHIP_STATUSES = {"delivered"}


class ShipmentException(Exception):
    """运单操作异常，附带建议的HTTP状态码"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ShipmentService:

    @staticmethod
    async def _get_order(db: AsyncSession, order_id: int) -> Order:
        result = await db.execute(
            select(Order)
            .options(selectinload(Order.user), selectinload(Order.shipment))
            .where(Order.id == order_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise ShipmentException("订单不存在", 404)
        return order

    @staticmethod
    async def get_shipment_by_order(db: AsyncSession, order_id: int) -> Optional[Shipment]:
        result = await db.execute(select(Shipment).where(Shipment.order_id == order_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_pickup_address(db: AsyncSession) -> PickupAddress:
        store = await store_settings_service.get_store_settings_uncached(db)
        if not store.pickup_postcode:
            raise ShipmentException("未配置揽件地址，请先在后台设置中填写", 400)
        return PickupAddress(
            name=store.pickup_name or "Store",
            company=store.pickup_company or "",
            contact=store.pickup_contact or "0000000000",
            line1=store.pickup_addr1 or "",
            line2=store.pickup_addr2 or "",
            city=store.pickup_city or "Unknown",
            state=store.pickup_state or "Unknown",
            postcode=store.pickup_postcode,
            country="MY",
        )

    @staticmethod
    def build_recipient(order: Order) -> ShippingAddress:
        """收件人信息优先取订单收货地址，其次取用户资料"""
        address = order.shipping_address or {}
        profile = order.user
        return ShippingAddress(
            name=address.get("name") or (profile.full_name if profile else None) or "Customer",
            contact=(profile.phone if profile else None) or "0000000000",
            line1=address.get("line1") or address.get("address") or (profile.address if profile else None) or "",
            line2=address.get("line2") or "",
            city=address.get("city") or "Unknown",
            state=address.get("state") or "Unknown",
            postcode=address.get("postal_code") or address.get("postcode") or "00000",
            country=address.get("country") or "MY",
        )

    async def create_shipment_for_order(self, db: AsyncSession, order_id: int, weight: float = 1.0,
                                        collect_date: Optional[date] = None,
                                        client: Optional[EasyParcelClient] = None,
                                        redis: Optional[Redis] = None) -> Shipment:
        """
        为订单创建 EasyParcel 运单
        成功后保存运单记录，订单进入待发货状态
        """
        client = client or easyparcel_client
        if not client.is_enabled():
            raise ShipmentException("EasyParcel 未配置", 500)

        lock = RedisLock(redis, f"shipment:order:{order_id}", expire_seconds=30) if redis is not None else None
        if lock is not None and not await lock.acquire():
            raise ShipmentException("该订单的运单正在创建中，请稍后再试", 409)

        try:
            order = await self._get_order(db, order_id)
            if order.shipment is not None:
                raise ShipmentException("该订单已创建运单", 400)

            pickup = await self._get_pickup_address(db)
            recipient = self.build_recipient(order)
            ship_date = collect_date or (date.today() + timedelta(days=1))

            result = await client.create_shipment(
                pickup=pickup,
                recipient=recipient,
                weight=weight,
                content=SHIPMENT_CONTENT,
                value=float(order.total_amount),
                reference=order.order_sn,
                collect_date=ship_date,
            )
            if not result.success:
                raise ShipmentException(result.error or "创建运单失败", 500)

            shipment = Shipment(
                order_id=order.id,
                easyparcel_order_no=result.order_no,
                parcel_no=result.parcel_no,
                courier_name=result.courier or settings.EASYPARCEL_DEFAULT_COURIER,
                service_id=settings.EASYPARCEL_DEFAULT_SERVICE_ID,
                shipping_cost=result.price or 0,
                weight=weight,
                collect_date=ship_date,
                payment_status=ShipmentPaymentStatusEnum.PENDING,
            )
            db.add(shipment)
            order.status = OrderStatusEnum.AWAITING_SHIPMENT
            await db.commit()
            logger.info(f"订单 {order.order_sn} 已创建运单 {result.order_no}")
            return shipment
        finally:
            if lock is not None:
                await lock.release()

    async def pay_shipment_for_order(self, db: AsyncSession, order_id: int,
                                     client: Optional[EasyParcelClient] = None) -> Shipment:
        """支付运费，成功后回填运单号并把订单标记为已发货"""
        client = client or easyparcel_client
        if not client.is_enabled():
            raise ShipmentException("EasyParcel 未配置", 500)

        shipment = await self.get_shipment_by_order(db, order_id)
        if not shipment:
            raise ShipmentException("运单不存在", 404)
        if shipment.payment_status == ShipmentPaymentStatusEnum.PAID:
            raise ShipmentException("运单已支付", 400)

        result = await client.pay_shipment(shipment.easyparcel_order_no)
        if not result.success:
            shipment.payment_status = ShipmentPaymentStatusEnum.FAILED
            await db.commit()
            raise ShipmentException(result.error or "运单支付失败", 500)

        shipment.awb = result.awb
        shipment.awb_label_url = result.awb_label_url
        shipment.tracking_url = result.tracking_url or get_tracking_url(shipment.courier_name, result.awb or "")
        shipment.payment_status = ShipmentPaymentStatusEnum.PAID
        shipment.paid_at = datetime.now(timezone.utc)

        order = await db.get(Order, order_id)
        old_status = order.status
        order.status = OrderStatusEnum.SHIPPED
        await db.commit()
        logger.info(f"订单 {order.order_sn} 运单已支付，运单号 {shipment.awb}")

        await notification_service.notify_order_status_change(
            db, order.id, order.order_sn, order.user_id, old_status.value, OrderStatusEnum.SHIPPED.value
        )
        return shipment

    async def check_rates_for_order(self, db: AsyncSession, order_id: int, weight: float = 1.0,
                                    client: Optional[EasyParcelClient] = None) -> RateResult:
        client = client or easyparcel_client
        if not client.is_enabled():
            raise ShipmentException("EasyParcel 未配置", 500)

        order = await self._get_order(db, order_id)
        pickup = await self._get_pickup_address(db)
        result = await client.check_rates(pickup, self.build_recipient(order), weight)
        if not result.success:
            raise ShipmentException(result.error or "运费查询失败", 502)
        return result

    async def get_shipment_status(self, db: AsyncSession, order_id: int,
                                  client: Optional[EasyParcelClient] = None) -> dict:
        """透传 EasyParcel 包裹状态"""
        client = client or easyparcel_client
        if not client.is_enabled():
            raise ShipmentException("EasyParcel 未配置", 500)

        shipment = await self.get_shipment_by_order(db, order_id)
        if not shipment:
            raise ShipmentException("运单不存在", 404)

        result = await client.get_parcel_status(shipment.easyparcel_order_no)
        if not result.success:
            raise ShipmentException(result.error or "包裹状态查询失败", 502)
        return {
            "order_no": shipment.easyparcel_order_no,
            "parcel_no": result.parcel_no or shipment.parcel_no,
            "ship_status": result.ship_status,
            "awb": result.awb or shipment.awb,
            "tracking_url": shipment.tracking_url,
        }

    async def sync_paid_shipments(self, db: AsyncSession, client: Optional[EasyParcelClient] = None) -> int:
        """
        同步已支付运单的包裹状态，已送达的订单标记为 delivered
        :return: 本次标记为已送达的订单数
        """
        client = client or easyparcel_client
        result = await db.execute(
            select(Shipment)
            .join(Order, Shipment.order_id == Order.id)
            .options(selectinload(Shipment.order))
            .where(
                Shipment.payment_status == ShipmentPaymentStatusEnum.PAID,
                Order.status.in_([OrderStatusEnum.SHIPPED, OrderStatusEnum.AWAITING_SHIPMENT]),
            )
            .order_by(Shipment.id)
        )
        delivered = 0
        for shipment in result.scalars().all():
            status = await client.get_parcel_status(shipment.easyparcel_order_no)
            if not status.success:
                logger.warning(f"运单 {shipment.easyparcel_order_no} 状态同步失败: {status.error}")
                continue

            shipment.ship_status = status.ship_status
            shipment.awb = shipment.awb or status.awb
            shipment.awb_label_url = shipment.awb_label_url or status.awb_label_url
            order = shipment.order
            if (status.ship_status or "").strip().lower() in DELIVERED_SHIP_STATUSES:
                old_status = order.status
                order.status = OrderStatusEnum.DELIVERED
                await db.commit()
                delivered += 1
                await notification_service.notify_order_status_change(
                    db, order.id, order.order_sn, order.user_id, old_status.value, OrderStatusEnum.DELIVERED.value
                )
            else:
                await db.commit()
        return delivered


shipment_service = ShipmentService()
