import pytest
from sqlalchemy import select

from flycloth.core.config import settings
from flycloth.models.notification import Notification, NotificationTypeEnum
from flycloth.models.product import FitEnum
from flycloth.services.inventory_service import inventory_service

API = settings.API_V1_STR


async def test_decrement_stock_is_conditional(db, make_product):
    product = await make_product(variants=(("M", FitEnum.REGULAR, 3),))
    variant_id = product.variants[0].id

    assert await inventory_service.decrement_stock(db, variant_id, 2)
    assert not await inventory_service.decrement_stock(db, variant_id, 2)
    await db.commit()
    assert await inventory_service.get_stock(db, variant_id) == 1

    assert await inventory_service.increment_stock(db, variant_id, 4)
    await db.commit()
    assert await inventory_service.get_stock(db, variant_id) == 5

    assert not await inventory_service.decrement_stock(db, 9999, 1)
    with pytest.raises(ValueError):
        await inventory_service.decrement_stock(db, variant_id, 0)
    with pytest.raises(ValueError):
        await inventory_service.increment_stock(db, variant_id, -1)


async def test_inventory_requires_admin(client, user_headers):
    assert (await client.get(f"{API}/admin/inventory/", headers=user_headers)).status_code == 403


async def test_list_inventory_and_low_stock(client, admin_headers, make_product):
    await make_product(name="Alpha Tee", variants=(("S", FitEnum.SLIM, 40), ("M", FitEnum.SLIM, 3)))
    await make_product(name="Beta Hoodie", variants=(("L", FitEnum.OVERSIZE, 0),))

    res = await client.get(f"{API}/admin/inventory/", headers=admin_headers)
    assert res.status_code == 200, res.text
    rows = res.json()
    assert [r["product_name"] for r in rows] == ["Alpha Tee", "Alpha Tee", "Beta Hoodie"]
    assert [r["is_low_stock"] for r in rows] == [False, True, True]

    res = await client.get(f"{API}/admin/inventory/low-stock", headers=admin_headers)
    assert [(r["product_name"], r["stock_quantity"]) for r in res.json()] == [
        ("Beta Hoodie", 0),
        ("Alpha Tee", 3),
    ]


async def test_update_stock_clamps_and_alerts_once(client, db, admin_headers, make_product, sent_alerts):
    product = await make_product(name="Alpha Tee", variants=(("M", FitEnum.REGULAR, 30),))
    url = f"{API}/admin/inventory/{product.variants[0].id}"

    res = await client.put(url, headers=admin_headers, json={"stock_quantity": 10})
    assert res.status_code == 200, res.text
    assert res.json()["stock_quantity"] == 10
    assert res.json()["is_low_stock"] is True
    assert sent_alerts == [{
        "variant_id": product.variants[0].id,
        "product_name": "Alpha Tee",
        "variant_info": "M / Regular Fit",
        "current_stock": 10,
    }]

    # 已低于阈值，继续减少不会重复预警
    await client.put(url, headers=admin_headers, json={"stock_quantity": 5})
    assert len(sent_alerts) == 1

    res = await client.put(url, headers=admin_headers, json={"stock_quantity": -3})
    assert res.json()["stock_quantity"] == 0
    assert len(sent_alerts) == 2
    assert sent_alerts[-1]["current_stock"] == 0

    res = await client.put(url, headers=admin_headers, json={"stock_quantity": 250000})
    assert res.json()["stock_quantity"] == 100000

    result = await db.execute(select(Notification).order_by(Notification.id))
    notifications = result.scalars().all()
    assert [n.type for n in notifications] == [NotificationTypeEnum.LOW_STOCK, NotificationTypeEnum.OUT_OF_STOCK]
    assert all(n.user_id is None for n in notifications)


async def test_update_stock_unknown_variant(client, admin_headers):
    res = await client.put(f"{API}/admin/inventory/9999", headers=admin_headers, json={"stock_quantity": 5})
    assert res.status_code == 404
