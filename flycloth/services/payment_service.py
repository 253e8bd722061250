import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import stripe

from flycloth.core.config import SHIPPING, settings
from flycloth.utils.currency import from_cents, to_cents

logger = logging.getLogger(__name__)


class StripeService:
    def __init__(self):
        """初始化Stripe客户端，未配置密钥时只记录警告"""
        if not settings.STRIPE_SECRET_KEY:
            logger.warning("未配置 STRIPE_SECRET_KEY，Stripe 相关功能不可用")
        stripe.api_key = settings.STRIPE_SECRET_KEY or None

    @staticmethod
    def build_line_item(line: Dict[str, Any]) -> Dict[str, Any]:
        """
        生成Stripe结账行项目
        商品已同步到Stripe时直接引用价格ID，否则使用临时价格
        """
        if line.get("stripe_price_id"):
            return {"price": line["stripe_price_id"], "quantity": line["quantity"]}

        return {
            "price_data": {
                "currency": settings.STRIPE_CURRENCY,
                "product_data": {
                    "name": line["product_name"],
                    "description": f"{line['size']} / {line['fit_label']}",
                },
                "unit_amount": to_cents(line["unit_price"]),
            },
            "quantity": line["quantity"],
        }

    @staticmethod
    def serialize_cart_metadata(lines: List[Dict[str, Any]]) -> str:
        """购物车快照写入会话元数据，回调时据此创建订单"""
        return json.dumps([
            {
                "variantId": line["variant_id"],
                "productId": line["product_id"],
                "name": line["product_name"],
                "size": line["size"],
                "variantInfo": line["fit_label"],
                "quantity": line["quantity"],
                "price": float(line["unit_price"]),
            }
            for line in lines
        ], separators=(",", ":"))

    def build_checkout_session_params(self, user_id: int, email: str, lines: List[Dict[str, Any]],
                                      promotion_code_id: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "payment_method_types": list(settings.STRIPE_PAYMENT_METHOD_TYPES),
            "mode": "payment",
            "line_items": [self.build_line_item(line) for line in lines],
            "success_url": f"{settings.APP_URL}/user/cart/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.APP_URL}/user/cart/payment/cancel",
            "customer_email": email,
            "metadata": {
                "user_id": str(user_id),
                "cart_items": self.serialize_cart_metadata(lines),
            },
            "shipping_address_collection": {"allowed_countries": list(SHIPPING["allowed_countries"])},
        }
        if promotion_code_id:
            params["discounts"] = [{"promotion_code": promotion_code_id}]
        else:
            params["allow_promotion_codes"] = True
        return params

    def find_promotion_code(self, code: str) -> Optional[Any]:  # noqa
        """按促销码查找一个有效的Stripe促销码对象"""
        promotion_codes = stripe.PromotionCode.list(code=code, active=True, limit=1, expand=["data.coupon"])
        if not promotion_codes.data:
            return None
        return promotion_codes.data[0].to_dict()

    def create_checkout_session(self, user_id: int, email: str, lines: List[Dict[str, Any]],
                                promo_code: Optional[str] = None) -> Dict[str, Optional[str]]:
        """
        创建Stripe结账会话
        :return: {"url": 支付页地址, "session_id": 会话ID}
        """
        promotion_code_id = None
        if promo_code:
            promotion_code = self.find_promotion_code(promo_code)
            if promotion_code is not None:
                promotion_code_id = promotion_code["id"]

        params = self.build_checkout_session_params(user_id, email, lines, promotion_code_id)
        session = stripe.checkout.Session.create(**params)
        logger.info(f"已为用户 {user_id} 创建结账会话 {session.id}")
        return {"url": session.url, "session_id": session.id}

    @staticmethod
    def _coupon_details(coupon: Any) -> Dict[str, Any]:
        if not coupon:
            return {"percent_off": None, "amount_off": None, "currency": None, "name": None}
        amount_off = coupon.get("amount_off")
        return {
            "percent_off": coupon.get("percent_off"),
            "amount_off": float(from_cents(amount_off)) if amount_off else None,
            "currency": coupon.get("currency"),
            "name": coupon.get("name"),
        }

    def validate_promo_code(self, code: Optional[str]) -> Dict[str, Any]:
        if not code or not code.strip():
            return {"valid": False, "error": "No code provided"}

        code = code.strip()
        try:
            promotion_code = self.find_promotion_code(code)
        except stripe.StripeError as e:
            logger.error(f"校验促销码失败: {e}")
            return {"valid": False, "code": code, "error": "Failed to validate promotion code"}

        if promotion_code is None:
            return {"valid": False, "code": code, "error": "Invalid or expired promotion code"}

        return {"valid": True, "code": code, **self._coupon_details(promotion_code.get("coupon"))}

    def list_active_promo_codes(self, limit: int = 10) -> List[Dict[str, Any]]:
        promotion_codes = stripe.PromotionCode.list(active=True, limit=limit, expand=["data.coupon"])
        return [
            {
                "id": promo.get("id"),
                "code": promo.get("code"),
                "times_redeemed": promo.get("times_redeemed") or 0,
                "max_redemptions": promo.get("max_redemptions"),
                **self._coupon_details(promo.get("coupon")),
            }
            for promo in (code.to_dict() for code in promotion_codes.data)
        ]

    def create_product(self, name: str, sku: str, price: Decimal, description: Optional[str] = None) -> Dict[str, str]:  # noqa
        """在Stripe中创建商品和价格，金额以分为单位"""
        stripe_product = stripe.Product.create(
            name=name,
            description=description or None,
            metadata={"sku": sku},
        )
        stripe_price = stripe.Price.create(
            product=stripe_product.id,
            unit_amount=to_cents(price),
            currency=settings.STRIPE_CURRENCY,
        )
        logger.info(f"商品 {sku} 已同步到Stripe: {stripe_product.id} / {stripe_price.id}")
        return {"stripe_product_id": stripe_product.id, "stripe_price_id": stripe_price.id}

    def refund_payment(self, payment_intent_id: str) -> Any:  # noqa
        refund = stripe.Refund.create(payment_intent=payment_intent_id, reason="requested_by_customer")
        logger.info(f"已为支付 {payment_intent_id} 发起退款")
        return refund

    def get_checkout_session(self, session_id: str) -> Any:  # noqa
        return stripe.checkout.Session.retrieve(session_id, expand=["line_items", "payment_intent"])

    def construct_event(self, payload: bytes, signature: str) -> Any:  # noqa
        """
        校验Webhook签名并解析事件
        签名无效时抛出 stripe.SignatureVerificationError
        """
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)


# 创建一个全局服务实例
stripe_service = StripeService()
