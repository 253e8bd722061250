from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from flycloth.core.config import DEFAULT_STORE_SETTINGS, settings
from flycloth.models.notification import Notification, NotificationTypeEnum
from flycloth.models.order import Order, OrderStatusEnum
from flycloth.models.shipment import Shipment, ShipmentPaymentStatusEnum
from flycloth.models.store_settings import STORE_SETTINGS_ID, StoreSettings
from flycloth.services import shipment_service as shipment_module
from flycloth.services.easyparcel_client import (CourierRate, ParcelStatusResult, PaymentResult, RateResult,
                                                 ShipmentResult)
from flycloth.services.shipment_service import ShipmentException, shipment_service
from flycloth.tasks import shipment_tasks
from flycloth.utils.redis_lock import RedisLock

API = settings.API_V1_STR

ADDRESS = {
    "name": "Aina Rahman",
    "line1": "12 Jalan Ampang",
    "city": "Kuala Lumpur",
    "state": "Kuala Lumpur",
    "postal_code": "50450",
    "country": "MY",
}


class FakeEasyParcel:
    """记录调用参数的 EasyParcel 客户端替身"""

    def __init__(self, enabled=True, pay_ok=True, ship_status="Delivered"):
        self.enabled = enabled
        self.pay_ok = pay_ok
        self.ship_status = ship_status
        self.created = []
        self.paid = []

    def is_enabled(self):
        return self.enabled

    async def create_shipment(self, **kwargs):
        self.created.append(kwargs)
        return ShipmentResult(success=True, order_no="EI-A0001", parcel_no="EP-P0001", price=6.5,
                              courier="J&T Express")

    async def pay_shipment(self, order_no):
        self.paid.append(order_no)
        if not self.pay_ok:
            return PaymentResult(success=False, error="Insufficient EasyParcel credit balance")
        return PaymentResult(success=True, order_no=order_no, awb="JT0001",
                             awb_label_url="https://easyparcel.my/awb/JT0001.pdf")

    async def check_rates(self, pickup, recipient, weight):
        return RateResult(success=True, rates=[
            CourierRate(service_id="EP-CS0W", courier_name="J&T Express", service_name="Drop-off", price=6.5),
        ])

    async def get_parcel_status(self, order_no):
        return ParcelStatusResult(success=True, parcel_no="EP-P0001", ship_status=self.ship_status, awb="JT0001")


@pytest.fixture
async def pickup_configured(db):
    db.add(StoreSettings(
        id=STORE_SETTINGS_ID,
        shipping_fee=DEFAULT_STORE_SETTINGS["shipping_fee"],
        free_shipping_threshold=DEFAULT_STORE_SETTINGS["free_shipping_threshold"],
        tax_rate=DEFAULT_STORE_SETTINGS["tax_rate"],
        pickup_name="FlyCloth Studio",
        pickup_contact="0123456789",
        pickup_addr1="8 Jalan Tun Razak",
        pickup_city="Kuala Lumpur",
        pickup_state="Kuala Lumpur",
        pickup_postcode="50400",
    ))
    await db.commit()


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeEasyParcel()
    monkeypatch.setattr(shipment_module, "easyparcel_client", client)
    return client


async def test_endpoints_fail_when_easyparcel_disabled(client, admin_headers, user, make_product, make_order):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)

    res = await client.post(f"{API}/admin/shipments/{order.id}", headers=admin_headers, json={"weight": 0.5})
    assert res.status_code == 500
    assert res.json()["detail"] == "EasyParcel 未配置"

    assert (await client.post(f"{API}/admin/shipments/{order.id}/pay", headers=admin_headers)).status_code == 500
    assert (await client.get(f"{API}/admin/shipments/{order.id}/rates", headers=admin_headers)).status_code == 500


async def test_create_and_pay_shipment(client, db, admin_headers, user, make_product, make_order, pickup_configured,
                                       fake_client):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)

    res = await client.post(f"{API}/admin/shipments/{order.id}", headers=admin_headers,
                            json={"weight": 0.8, "collect_date": "2026-10-21"})
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["easyparcel_order_no"] == "EI-A0001"
    assert body["payment_status"] == "pending"
    assert body["collect_date"] == "2026-10-21"

    created = fake_client.created[0]
    assert created["reference"] == order.order_sn
    assert created["collect_date"] == date(2026, 10, 21)
    assert created["pickup"].postcode == "50400"
    assert created["recipient"].postcode == "50450"
    assert created["recipient"].name == "Aina Rahman"

    res = await client.get(f"{API}/admin/orders/{order.id}", headers=admin_headers)
    assert res.json()["status"] == "awaiting_shipment"

    res = await client.post(f"{API}/admin/shipments/{order.id}", headers=admin_headers, json={"weight": 0.8})
    assert res.status_code == 400
    assert res.json()["detail"] == "该订单已创建运单"

    res = await client.post(f"{API}/admin/shipments/{order.id}/pay", headers=admin_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["payment_status"] == "paid"
    assert body["awb"] == "JT0001"
    assert body["tracking_url"] == \
        "https://easyparcel.com/my/en/track/details/?courier=J%26T%20Express&awb=JT0001"

    res = await client.get(f"{API}/admin/orders/{order.id}", headers=admin_headers)
    assert res.json()["status"] == "shipped"
    assert res.json()["shipment"]["awb"] == "JT0001"

    notification = (await db.execute(
        select(Notification).where(Notification.type == NotificationTypeEnum.ORDER_STATUS)
    )).scalar_one()
    assert notification.extra_data["new_status"] == "shipped"

    res = await client.post(f"{API}/admin/shipments/{order.id}/pay", headers=admin_headers)
    assert res.status_code == 400


async def test_create_shipment_requires_pickup_address(client, admin_headers, user, make_product, make_order,
                                                       fake_client):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)
    res = await client.post(f"{API}/admin/shipments/{order.id}", headers=admin_headers, json={"weight": 0.8})
    assert res.status_code == 400
    assert fake_client.created == []


async def test_create_shipment_unknown_order(client, admin_headers, fake_client):
    res = await client.post(f"{API}/admin/shipments/9999", headers=admin_headers, json={"weight": 0.8})
    assert res.status_code == 404


async def test_create_shipment_is_locked_per_order(db, redis, user, make_product, make_order, pickup_configured):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)
    fake = FakeEasyParcel()

    lock = RedisLock(redis, f"shipment:order:{order.id}", expire_seconds=30)
    assert await lock.acquire()
    with pytest.raises(ShipmentException) as exc_info:
        await shipment_service.create_shipment_for_order(db, order.id, client=fake, redis=redis)
    assert exc_info.value.status_code == 409
    assert fake.created == []

    await lock.release()
    shipment = await shipment_service.create_shipment_for_order(db, order.id, client=fake, redis=redis)
    assert shipment.easyparcel_order_no == "EI-A0001"
    # 锁已释放
    assert await redis.get(f"lock:shipment:order:{order.id}") is None


async def test_failed_payment_marks_shipment(db, user, make_product, make_order, pickup_configured):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)
    fake = FakeEasyParcel(pay_ok=False)
    await shipment_service.create_shipment_for_order(db, order.id, client=fake)

    with pytest.raises(ShipmentException) as exc_info:
        await shipment_service.pay_shipment_for_order(db, order.id, client=fake)
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Insufficient EasyParcel credit balance"

    shipment = await shipment_service.get_shipment_by_order(db, order.id)
    assert shipment.payment_status == ShipmentPaymentStatusEnum.FAILED
    assert shipment.awb is None


async def test_rates_and_status(client, admin_headers, user, make_product, make_order, pickup_configured,
                                fake_client):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)

    res = await client.get(f"{API}/admin/shipments/{order.id}/rates", headers=admin_headers, params={"weight": 1.2})
    assert res.status_code == 200, res.text
    assert res.json()["rates"][0]["service_id"] == "EP-CS0W"

    assert (await client.get(f"{API}/admin/shipments/{order.id}", headers=admin_headers)).status_code == 404
    assert (await client.get(f"{API}/admin/shipments/{order.id}/status", headers=admin_headers)).status_code == 404

    await client.post(f"{API}/admin/shipments/{order.id}", headers=admin_headers, json={"weight": 1.2})
    res = await client.get(f"{API}/admin/shipments/{order.id}/status", headers=admin_headers)
    assert res.status_code == 200, res.text
    assert res.json()["ship_status"] == "Delivered"
    assert res.json()["order_no"] == "EI-A0001"


def test_recipient_falls_back_to_profile():
    profile = SimpleNamespace(full_name="Aina Rahman", phone="0198765432", address="3 Lorong Maarof")
    order = SimpleNamespace(shipping_address=None, user=profile)

    recipient = shipment_service.build_recipient(order)
    assert recipient.name == "Aina Rahman"
    assert recipient.contact == "0198765432"
    assert recipient.line1 == "3 Lorong Maarof"
    assert recipient.postcode == "00000"


async def test_sync_marks_delivered_orders(db, user, make_product, make_order, pickup_configured):
    product = await make_product()
    delivered = await make_order(user, product, shipping_address=ADDRESS)
    in_transit = await make_order(user, product, shipping_address=ADDRESS)

    for order, ship_status in ((delivered, "Delivered"), (in_transit, "In Transit")):
        fake = FakeEasyParcel(ship_status=ship_status)
        await shipment_service.create_shipment_for_order(db, order.id, client=fake)
        await shipment_service.pay_shipment_for_order(db, order.id, client=fake)

    class PerOrderStatus(FakeEasyParcel):
        async def get_parcel_status(self, order_no):
            return ParcelStatusResult(success=True, ship_status=statuses.pop(0))

    statuses = ["Delivered", "In Transit"]
    assert await shipment_service.sync_paid_shipments(db, client=PerOrderStatus()) == 1

    rows = (await db.execute(select(Order.id, Order.status).order_by(Order.id))).all()
    assert rows == [(delivered.id, OrderStatusEnum.DELIVERED), (in_transit.id, OrderStatusEnum.SHIPPED)]

    ship_statuses = (await db.execute(select(Shipment.ship_status).order_by(Shipment.order_id))).scalars().all()
    assert ship_statuses == ["Delivered", "In Transit"]


async def test_sync_ignores_failed_delivery_statuses(db, user, make_product, make_order, pickup_configured):
    product = await make_product()
    orders = [await make_order(user, product, shipping_address=ADDRESS) for _ in range(3)]
    for order in orders:
        fake = FakeEasyParcel()
        await shipment_service.create_shipment_for_order(db, order.id, client=fake)
        await shipment_service.pay_shipment_for_order(db, order.id, client=fake)

    class PerOrderStatus(FakeEasyParcel):
        async def get_parcel_status(self, order_no):
            return ParcelStatusResult(success=True, ship_status=statuses.pop(0))

    statuses = ["Undelivered - Returned to Sender", "Not Delivered", " delivered "]
    assert await shipment_service.sync_paid_shipments(db, client=PerOrderStatus()) == 1

    rows = (await db.execute(select(Order.status).order_by(Order.id))).scalars().all()
    assert rows == [OrderStatusEnum.SHIPPED, OrderStatusEnum.SHIPPED, OrderStatusEnum.DELIVERED]

    notified = (await db.execute(
        select(Notification.extra_data).where(Notification.type == NotificationTypeEnum.ORDER_STATUS)
    )).scalars().all()
    assert [data["new_status"] for data in notified].count("delivered") == 1


async def test_sync_task_skips_when_disabled():
    assert await shipment_tasks._run_sync_shipment_status() == "EasyParcel 未配置"


async def test_sync_task_runs_with_session(monkeypatch, session_factory, db, user, make_product, make_order,
                                           pickup_configured):
    order = await make_order(user, await make_product(), shipping_address=ADDRESS)
    fake = FakeEasyParcel(ship_status="Delivered")
    await shipment_service.create_shipment_for_order(db, order.id, client=fake)
    await shipment_service.pay_shipment_for_order(db, order.id, client=fake)

    monkeypatch.setattr(shipment_tasks, "async_session", session_factory)
    monkeypatch.setattr(shipment_tasks, "easyparcel_client", fake)

    assert await shipment_tasks._run_sync_shipment_status() == "1 个订单已送达"
