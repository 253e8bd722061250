import json
from types import SimpleNamespace

import stripe

from flycloth.core.config import settings
from flycloth.models.product import FitEnum
from flycloth.services.payment_service import stripe_service

API = settings.API_V1_STR


def _promotion_codes(*codes: dict) -> stripe.ListObject:
    """构造 stripe.PromotionCode.list 的返回值"""
    data = [{"object": "promotion_code", **code} for code in codes]
    return stripe.ListObject.construct_from({"object": "list", "data": data}, "sk_test_dummy")


def _list_by_code(*codes: dict):
    def fake_list(**params):
        return _promotion_codes(*[code for code in codes if code["code"] == params.get("code")])

    return fake_list


async def _add(client, headers, variant_id: int, quantity: int = 1):
    res = await client.post(f"{API}/cart/items", headers=headers, json={"variant_id": variant_id, "quantity": quantity})
    assert res.status_code == 200, res.text


def _capture_session_create(monkeypatch) -> dict:
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

    monkeypatch.setattr("stripe.checkout.Session.create", fake_create)
    return captured


async def test_checkout_with_empty_cart(client, user_headers):
    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 400
    assert res.json()["detail"] == "购物车为空"


async def test_checkout_rejects_insufficient_stock(client, db, user_headers, make_product):
    product = await make_product(name="Last One", variants=(("M", FitEnum.REGULAR, 5),))
    await _add(client, user_headers, product.variants[0].id, 3)
    product.variants[0].stock_quantity = 1
    await db.commit()

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 400
    detail = res.json()["detail"]
    assert detail["message"] == "部分商品库存不足"
    assert detail["issues"][0]["reason"] == "INSUFFICIENT_STOCK"


async def test_checkout_session_params(client, user, user_headers, make_product, monkeypatch):
    product = await make_product(name="Boxy Tee", base_price="59.90", variants=(("L", FitEnum.OVERSIZE, 10),))
    await _add(client, user_headers, product.variants[0].id, 2)
    captured = _capture_session_create(monkeypatch)

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 200, res.text
    assert res.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_123", "session_id": "cs_test_123"}

    assert captured["mode"] == "payment"
    assert captured["customer_email"] == user.email
    assert captured["allow_promotion_codes"] is True
    assert "discounts" not in captured
    assert captured["shipping_address_collection"] == {"allowed_countries": ["MY", "SG", "BN"]}
    assert captured["success_url"].startswith("https://flycloth.my/")
    assert captured["line_items"] == [{
        "price_data": {
            "currency": "myr",
            "product_data": {"name": "Boxy Tee", "description": "L / Oversize Fit"},
            "unit_amount": 5990,
        },
        "quantity": 2,
    }]

    metadata = captured["metadata"]
    assert metadata["user_id"] == str(user.id)
    assert json.loads(metadata["cart_items"]) == [{
        "variantId": product.variants[0].id,
        "productId": product.id,
        "name": "Boxy Tee",
        "size": "L",
        "variantInfo": "Oversize Fit",
        "quantity": 2,
        "price": 59.9,
    }]


async def test_checkout_uses_synced_stripe_price(client, db, user_headers, make_product, monkeypatch):
    product = await make_product()
    product.stripe_price_id = "price_synced_1"
    await db.commit()
    await _add(client, user_headers, product.variants[0].id, 1)
    captured = _capture_session_create(monkeypatch)

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 200, res.text
    assert captured["line_items"] == [{"price": "price_synced_1", "quantity": 1}]


async def test_checkout_applies_known_promo_code(client, user_headers, make_product, monkeypatch):
    product = await make_product()
    await _add(client, user_headers, product.variants[0].id, 1)
    captured = _capture_session_create(monkeypatch)
    monkeypatch.setattr("stripe.PromotionCode.list", _list_by_code({"id": "promo_1", "code": "RAYA10"}))

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers,
                            json={"promo_code": "RAYA10"})
    assert res.status_code == 200, res.text
    assert captured["discounts"] == [{"promotion_code": "promo_1"}]
    assert "allow_promotion_codes" not in captured

    # 未知促销码退回到结账页手动输入
    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers,
                            json={"promo_code": "BOGUS"})
    assert res.status_code == 200, res.text
    assert captured["allow_promotion_codes"] is True


async def test_checkout_stripe_failure(client, user_headers, make_product, monkeypatch):
    product = await make_product()
    await _add(client, user_headers, product.variants[0].id, 1)

    def failing_create(**params):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr("stripe.checkout.Session.create", failing_create)

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 500
    assert res.json()["detail"] == "创建支付会话失败"


async def test_checkout_rate_limit(client, user_headers):
    for _ in range(5):
        res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
        assert res.status_code == 400

    res = await client.post(f"{API}/stripe/create-checkout-session", headers=user_headers, json={})
    assert res.status_code == 429
    assert "Retry-After" in res.headers


async def test_validate_promo_code(client, user_headers, monkeypatch):
    monkeypatch.setattr("stripe.PromotionCode.list", _list_by_code({
        "id": "promo_1",
        "code": "RAYA10",
        "coupon": {"object": "coupon", "percent_off": 10.0, "amount_off": None, "currency": None,
                   "name": "Raya Sale"},
    }))

    res = await client.post(f"{API}/stripe/validate-promo", headers=user_headers, json={"code": " RAYA10 "})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["valid"] is True
    assert body["code"] == "RAYA10"
    assert body["percent_off"] == 10.0
    assert body["name"] == "Raya Sale"

    res = await client.post(f"{API}/stripe/validate-promo", headers=user_headers, json={"code": "NOPE"})
    assert res.json() == {
        "valid": False, "code": "NOPE", "percent_off": None, "amount_off": None, "currency": None,
        "name": None, "error": "Invalid or expired promotion code",
    }

    res = await client.post(f"{API}/stripe/validate-promo", headers=user_headers, json={"code": "  "})
    assert res.json()["error"] == "No code provided"


async def test_validate_promo_code_amount_off(client, user_headers, monkeypatch):
    monkeypatch.setattr("stripe.PromotionCode.list", _list_by_code({
        "id": "promo_2",
        "code": "RM5OFF",
        "coupon": {"object": "coupon", "percent_off": None, "amount_off": 500, "currency": "myr", "name": None},
    }))

    body = (await client.post(f"{API}/stripe/validate-promo", headers=user_headers, json={"code": "RM5OFF"})).json()
    assert body["amount_off"] == 5.0
    assert body["currency"] == "myr"


async def test_list_promo_codes_admin_only(client, user_headers, admin_headers, monkeypatch):
    codes = _promotion_codes({"id": "promo_1", "code": "RAYA10", "times_redeemed": 3, "max_redemptions": 100,
                              "coupon": {"object": "coupon", "percent_off": 10.0, "name": "Raya Sale"}})
    monkeypatch.setattr("stripe.PromotionCode.list", lambda **params: codes)

    assert (await client.get(f"{API}/stripe/promo-codes", headers=user_headers)).status_code == 403

    res = await client.get(f"{API}/stripe/promo-codes", headers=admin_headers)
    assert res.status_code == 200, res.text
    item = res.json()["items"][0]
    assert item["code"] == "RAYA10"
    assert item["times_redeemed"] == 3
    assert item["percent_off"] == 10.0


async def test_checkout_session_summary(client, user, user_headers, other_user_headers, make_product, make_order,
                                        monkeypatch):
    product = await make_product()
    order = await make_order(user, product)
    session = stripe.checkout.Session.construct_from({
        "id": order.stripe_session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "amount_total": 2000,
        "customer_email": user.email,
        "metadata": {"user_id": str(user.id)},
    }, "sk_test_dummy")
    monkeypatch.setattr(stripe_service, "get_checkout_session", lambda session_id: session)

    res = await client.get(f"{API}/stripe/session/{order.stripe_session_id}", headers=user_headers)
    assert res.status_code == 200, res.text
    assert res.json() == {
        "session_id": order.stripe_session_id,
        "payment_status": "paid",
        "amount_total": 20.0,
        "customer_email": user.email,
        "order_id": order.id,
        "order_sn": order.order_sn,
    }

    res = await client.get(f"{API}/stripe/session/{order.stripe_session_id}", headers=other_user_headers)
    assert res.status_code == 404
