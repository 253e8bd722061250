from sqlalchemy import select

from flycloth.core.config import settings
from flycloth.models.notification import Notification, NotificationTypeEnum
from flycloth.models.order import OrderStatusEnum

API = settings.API_V1_STR


async def test_admin_orders_require_admin(client, user_headers):
    assert (await client.get(f"{API}/admin/orders/", headers=user_headers)).status_code == 403


async def test_list_orders_with_status_filter(client, admin_headers, user, other_user, make_product, make_order):
    product = await make_product()
    first = await make_order(user, product)
    second = await make_order(other_user, product, quantity=2)
    await make_order(user, product, status=OrderStatusEnum.SHIPPED)

    res = await client.get(f"{API}/admin/orders/", headers=admin_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["total"] == 3
    assert body["skip"] == 0
    assert body["limit"] == 20

    res = await client.get(f"{API}/admin/orders/", headers=admin_headers, params={"status": "paid", "limit": 1})
    body = res.json()
    assert body["total"] == 2
    assert len(body["items"]) == 1
    assert body["items"][0]["id"] in (first.id, second.id)

    res = await client.get(f"{API}/admin/orders/", headers=admin_headers, params={"status": "teleported"})
    assert res.status_code == 422


async def test_admin_order_detail(client, admin_headers, user, make_product, make_order):
    product = await make_product(name="Crew Tee")
    order = await make_order(user, product, quantity=3)

    res = await client.get(f"{API}/admin/orders/{order.id}", headers=admin_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["order_sn"] == order.order_sn
    assert body["user"]["email"] == "aina@flycloth.my"
    assert body["shipment"] is None
    assert body["items"][0]["product_name"] == "Crew Tee"
    assert body["items"][0]["quantity"] == 3

    assert (await client.get(f"{API}/admin/orders/9999", headers=admin_headers)).status_code == 404


async def test_update_status_notifies_customer(client, db, admin_headers, user, make_product, make_order):
    product = await make_product()
    order = await make_order(user, product)
    url = f"{API}/admin/orders/{order.id}/status"

    res = await client.put(url, headers=admin_headers, json={"status": "processing"})
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "processing"

    result = await db.execute(select(Notification).where(Notification.user_id == user.id))
    notification = result.scalar_one()
    assert notification.type == NotificationTypeEnum.ORDER_STATUS
    assert notification.title == "Order Processing"
    assert notification.message == f"Your order #{order.order_sn} is now being processed."
    assert notification.extra_data == {"order_id": order.id, "old_status": "paid", "new_status": "processing"}

    # 状态未变化时不重复通知
    await client.put(url, headers=admin_headers, json={"status": "processing"})
    result = await db.execute(select(Notification).where(Notification.user_id == user.id))
    assert len(result.scalars().all()) == 1


async def test_update_status_rejects_system_statuses(client, admin_headers, user, make_product, make_order):
    product = await make_product()
    order = await make_order(user, product, status=OrderStatusEnum.PROCESSING)
    url = f"{API}/admin/orders/{order.id}/status"

    for target in ("paid", "awaiting_shipment"):
        res = await client.put(url, headers=admin_headers, json={"status": target})
        assert res.status_code == 400

    assert (await client.put(f"{API}/admin/orders/9999/status", headers=admin_headers,
                             json={"status": "shipped"})).status_code == 404


async def test_update_status_checks_origin(client, admin_headers, user, make_product, make_order):
    product = await make_product()
    order = await make_order(user, product)
    headers = {**admin_headers, "Origin": "https://evil.example"}

    res = await client.put(f"{API}/admin/orders/{order.id}/status", headers=headers, json={"status": "shipped"})
    assert res.status_code == 403
