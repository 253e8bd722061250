from sqlalchemy import select

from flycloth.core.config import settings
from flycloth.models.notification import Notification, NotificationTypeEnum
from flycloth.services.notification_service import notification_service

API = settings.API_V1_STR


async def _seed(db, user, admin):
    await notification_service.notify_user(db, user.id, NotificationTypeEnum.ORDER_CREATED, "Order Confirmed", "ok")
    await notification_service.notify_user(db, user.id, NotificationTypeEnum.ORDER_STATUS, "Order Shipped", "ok")
    await notification_service.notify_user(db, admin.id, NotificationTypeEnum.ORDER_STATUS, "Order Shipped", "ok")
    await notification_service.notify_admins(db, NotificationTypeEnum.PAYMENT_RECEIVED, "New Order Received", "ok")


async def test_user_sees_only_own_notifications(client, db, user, admin, user_headers):
    await _seed(db, user, admin)

    res = await client.get(f"{API}/notifications/", headers=user_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert [n["title"] for n in body] == ["Order Shipped", "Order Confirmed"]
    assert all(n["user_id"] == user.id for n in body)

    res = await client.get(f"{API}/notifications/unread-count", headers=user_headers)
    assert res.json() == {"count": 2}


async def test_admin_also_sees_broadcast_notifications(client, db, user, admin, admin_headers):
    await _seed(db, user, admin)

    body = (await client.get(f"{API}/notifications/", headers=admin_headers)).json()
    assert [n["title"] for n in body] == ["New Order Received", "Order Shipped"]
    assert body[0]["user_id"] is None

    assert (await client.get(f"{API}/notifications/unread-count", headers=admin_headers)).json() == {"count": 2}


async def test_mark_as_read(client, db, user, admin, user_headers):
    await _seed(db, user, admin)
    result = await db.execute(select(Notification).order_by(Notification.id))
    own, _, admins_own, broadcast = result.scalars().all()

    res = await client.post(f"{API}/notifications/{own.id}/read", headers=user_headers)
    assert res.status_code == 200, res.text
    assert res.json() == {"success": True, "updated": 1}

    body = (await client.get(f"{API}/notifications/", headers=user_headers, params={"unread_only": True})).json()
    assert [n["title"] for n in body] == ["Order Shipped"]

    # 别人的通知和面向管理员的通知对普通用户不可见
    for hidden in (admins_own, broadcast):
        res = await client.post(f"{API}/notifications/{hidden.id}/read", headers=user_headers)
        assert res.status_code == 404
        assert res.json()["detail"] == "通知不存在"


async def test_mark_all_as_read(client, db, user, admin, user_headers, admin_headers):
    await _seed(db, user, admin)

    res = await client.post(f"{API}/notifications/read-all", headers=admin_headers)
    assert res.json() == {"success": True, "updated": 2}
    assert (await client.get(f"{API}/notifications/unread-count", headers=admin_headers)).json() == {"count": 0}

    # 普通用户的通知不受影响
    assert (await client.get(f"{API}/notifications/unread-count", headers=user_headers)).json() == {"count": 2}
    res = await client.post(f"{API}/notifications/read-all", headers=user_headers)
    assert res.json() == {"success": True, "updated": 2}


async def test_notification_limit(client, db, user, user_headers):
    for i in range(5):
        await notification_service.notify_user(db, user.id, NotificationTypeEnum.ORDER_STATUS, f"Update {i}", "ok")

    body = (await client.get(f"{API}/notifications/", headers=user_headers, params={"limit": 2})).json()
    assert [n["title"] for n in body] == ["Update 4", "Update 3"]

    res = await client.get(f"{API}/notifications/", headers=user_headers, params={"limit": 51})
    assert res.status_code == 422


async def test_low_stock_check_thresholds(db, sent_alerts):
    # 未跌破阈值
    assert not await notification_service.check_and_notify_low_stock(db, 1, "Crew Tee", "M / Regular Fit", 40, 30)
    # 已在阈值以下继续减少
    assert not await notification_service.check_and_notify_low_stock(db, 1, "Crew Tee", "M / Regular Fit", 20, 10)
    assert await notification_service.check_and_notify_low_stock(db, 1, "Crew Tee", "M / Regular Fit", 25, 24)
    assert await notification_service.check_and_notify_low_stock(db, 1, "Crew Tee", "M / Regular Fit", 3, 0)
    # 已售罄再次设置为0
    assert not await notification_service.check_and_notify_low_stock(db, 1, "Crew Tee", "M / Regular Fit", 0, 0)

    assert [alert["current_stock"] for alert in sent_alerts] == [24, 0]
    result = await db.execute(select(Notification.type, Notification.message).order_by(Notification.id))
    assert result.all() == [
        (NotificationTypeEnum.LOW_STOCK, "Crew Tee (M / Regular Fit) has only 24 items left."),
        (NotificationTypeEnum.OUT_OF_STOCK, "Crew Tee (M / Regular Fit) is now out of stock!"),
    ]


async def test_bad_review_notification_message(db):
    await notification_service.notify_bad_review(db, 7, "Crew Tee", 2, "Shrank")
    notification = (await db.execute(select(Notification))).scalar_one()
    assert notification.user_id is None
    assert notification.message == 'Crew Tee received a 2-star review: "Shrank" ★★☆☆☆'
    assert notification.extra_data == {"product_id": 7, "rating": 2, "review_title": "Shrank"}
