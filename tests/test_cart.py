from flycloth.core.config import settings
from flycloth.models.product import FitEnum

API = settings.API_V1_STR


async def _add(client, headers, variant_id: int, quantity: int = 1):
    return await client.post(f"{API}/cart/items", headers=headers,
                             json={"variant_id": variant_id, "quantity": quantity})


async def test_empty_cart(client, user_headers):
    res = await client.get(f"{API}/cart/", headers=user_headers)
    assert res.status_code == 200, res.text
    assert res.json() == {
        "items": [],
        "item_count": 0,
        "subtotal": 0.0,
        "shipping_fee": 0.0,
        "tax": 0.0,
        "total": 0.0,
    }


async def test_cart_totals_below_free_shipping(client, user_headers, make_product):
    product = await make_product(base_price="20.00")
    variant = product.variants[0]

    res = await _add(client, user_headers, variant.id, 2)
    assert res.status_code == 200, res.text
    cart = res.json()
    assert cart["item_count"] == 2
    assert cart["subtotal"] == 40.0
    assert cart["shipping_fee"] == 9.99
    assert cart["tax"] == 3.2
    assert cart["total"] == 53.19

    line = cart["items"][0]
    assert line["variant_id"] == variant.id
    assert line["variant_info"] == "M / Regular Fit"
    assert line["line_total"] == 40.0


async def test_cart_free_shipping_at_threshold(client, user_headers, make_product):
    product = await make_product(base_price="25.00")
    cart = (await _add(client, user_headers, product.variants[0].id, 2)).json()
    assert cart["subtotal"] == 50.0
    assert cart["shipping_fee"] == 0.0
    assert cart["total"] == 54.0


async def test_adding_same_variant_merges_quantity(client, user_headers, make_product):
    product = await make_product()
    variant_id = product.variants[0].id

    await _add(client, user_headers, variant_id, 3)
    cart = (await _add(client, user_headers, variant_id, 4)).json()
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 7

    res = await _add(client, user_headers, variant_id, 4)
    assert res.status_code == 400
    assert res.json()["detail"] == "单个商品最多购买 10 件"


async def test_add_item_validation(client, user_headers, make_product):
    low = await make_product(variants=(("S", FitEnum.SLIM, 2),))
    hidden = await make_product(is_active=False)

    res = await _add(client, user_headers, low.variants[0].id, 3)
    assert res.status_code == 400
    assert res.json()["detail"] == "库存不足"

    res = await _add(client, user_headers, hidden.variants[0].id, 1)
    assert res.status_code == 400

    res = await _add(client, user_headers, 9999, 1)
    assert res.status_code == 400

    res = await _add(client, user_headers, low.variants[0].id, 11)
    assert res.status_code == 422

    res = await _add(client, user_headers, low.variants[0].id, 0)
    assert res.status_code == 422


async def test_update_and_remove_items(client, user_headers, other_user_headers, make_product):
    product = await make_product(variants=(("M", FitEnum.REGULAR, 5),))
    cart = (await _add(client, user_headers, product.variants[0].id, 1)).json()
    item_id = cart["items"][0]["id"]

    res = await client.put(f"{API}/cart/items/{item_id}", headers=user_headers, json={"quantity": 4})
    assert res.status_code == 200, res.text
    assert res.json()["items"][0]["quantity"] == 4

    res = await client.put(f"{API}/cart/items/{item_id}", headers=user_headers, json={"quantity": 6})
    assert res.status_code == 400

    # 不能操作别人的购物车
    res = await client.put(f"{API}/cart/items/{item_id}", headers=other_user_headers, json={"quantity": 1})
    assert res.status_code == 404
    res = await client.delete(f"{API}/cart/items/{item_id}", headers=other_user_headers)
    assert res.status_code == 404

    res = await client.delete(f"{API}/cart/items/{item_id}", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["items"] == []


async def test_clear_cart(client, user_headers, make_product):
    first = await make_product()
    second = await make_product()
    await _add(client, user_headers, first.variants[0].id)
    await _add(client, user_headers, second.variants[0].id)

    res = await client.delete(f"{API}/cart/", headers=user_headers)
    assert res.status_code == 200, res.text
    assert res.json()["item_count"] == 0


async def test_validate_cart_reports_stock_issues(client, db, user_headers, make_product):
    sold_out = await make_product(name="Sold Out Tee", variants=(("M", FitEnum.REGULAR, 5),))
    short = await make_product(name="Short Tee", variants=(("L", FitEnum.REGULAR, 5),))
    fine = await make_product(name="Fine Tee")
    await _add(client, user_headers, sold_out.variants[0].id, 2)
    await _add(client, user_headers, short.variants[0].id, 4)
    await _add(client, user_headers, fine.variants[0].id, 1)

    res = await client.post(f"{API}/cart/validate", headers=user_headers)
    assert res.json() == {"valid": True, "issues": []}

    sold_out.variants[0].stock_quantity = 0
    short.variants[0].stock_quantity = 3
    await db.commit()

    res = await client.post(f"{API}/cart/validate", headers=user_headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["valid"] is False
    assert body["issues"] == [
        {"variant_id": sold_out.variants[0].id, "product_name": "Sold Out Tee", "reason": "OUT_OF_STOCK",
         "requested_quantity": 2, "available_stock": 0},
        {"variant_id": short.variants[0].id, "product_name": "Short Tee", "reason": "INSUFFICIENT_STOCK",
         "requested_quantity": 4, "available_stock": 3},
    ]


async def test_cart_requires_login(client):
    assert (await client.get(f"{API}/cart/")).status_code == 401
