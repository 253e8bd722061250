import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, get_current_user, rate_limit
from flycloth.core.config import settings
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.checkout import (
    CheckoutSessionCreate,
    CheckoutSessionResponse,
    CheckoutSessionSummary,
    PromoCodeList,
    PromoValidationRequest,
    PromoValidationResult,
)
from flycloth.services.cart_service import cart_service
from flycloth.services.order_service import order_service
from flycloth.services.payment_service import stripe_service
from flycloth.utils.currency import from_cents
from flycloth.utils.log_utils import log_error, mask_sensitive
from flycloth.utils.rate_limit import checkout_rate_limiter, webhook_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse, summary="创建Stripe结账会话",
             dependencies=[Depends(rate_limit(checkout_rate_limiter))])
async def create_checkout_session(
        checkout_in: CheckoutSessionCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """
    用当前购物车创建结账会话，购物车为空或库存不足时拒绝
    """
    lines = await cart_service.get_checkout_lines(db, current_user)
    if not lines:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="购物车为空")

    validation = await cart_service.validate_cart(db, current_user)
    if not validation.valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "部分商品库存不足", "issues": validation.model_dump(mode="json")["issues"]},
        )

    try:
        return stripe_service.create_checkout_session(
            user_id=current_user.id,
            email=current_user.email,
            lines=lines,
            promo_code=checkout_in.promo_code,
        )
    except stripe.StripeError as e:
        log_error(logger, "创建结账会话", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="创建支付会话失败")


@router.post("/validate-promo", response_model=PromoValidationResult, summary="校验促销码")
async def validate_promo(
        promo_in: PromoValidationRequest,
        current_user: User = Depends(get_current_user),
):
    return stripe_service.validate_promo_code(promo_in.code)


@router.get("/promo-codes", response_model=PromoCodeList, summary="获取有效促销码",
            dependencies=[Depends(get_current_admin)])
async def list_promo_codes(limit: int = Query(10, ge=1, le=100)):
    try:
        return {"items": stripe_service.list_active_promo_codes(limit=limit)}
    except stripe.StripeError as e:
        log_error(logger, "获取促销码", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="获取促销码失败")


@router.get("/session/{session_id}", response_model=CheckoutSessionSummary, summary="查询结账会话")
async def get_checkout_session(
        session_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """
    支付成功页使用，返回会话摘要和已生成的订单
    订单由Webhook异步创建，可能暂时查不到
    """
    try:
        session = stripe_service.get_checkout_session(session_id).to_dict()
    except stripe.StripeError as e:
        log_error(logger, "查询结账会话", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="结账会话不存在")

    metadata = session.get("metadata") or {}
    if metadata.get("user_id") != str(current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="结账会话不存在")

    order = await order_service.get_order_by_session(db, session_id, user=current_user)
    amount_total = session.get("amount_total")
    return {
        "session_id": session_id,
        "payment_status": session.get("payment_status"),
        "amount_total": float(from_cents(amount_total)) if amount_total is not None else None,
        "customer_email": session.get("customer_email"),
        "order_id": order.id if order else None,
        "order_sn": order.order_sn if order else None,
    }


@router.post("/webhook", summary="Stripe Webhook回调", include_in_schema=False,
             dependencies=[Depends(rate_limit(webhook_rate_limiter))])
async def stripe_webhook(
        request: Request,
        stripe_signature: str | None = Header(None, alias="stripe-signature"),
        db: AsyncSession = Depends(get_db),
):
    """
    处理Stripe事件，签名校验使用原始请求体
    处理出错返回500，让Stripe重试
    """
    payload = await request.body()

    if not stripe_signature:
        logger.error("Webhook: 缺少签名头")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request"})

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Webhook: 未配置 STRIPE_WEBHOOK_SECRET")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            content={"error": "Server configuration error"})

    try:
        event = stripe_service.construct_event(payload, stripe_signature).to_dict()
    except (stripe.SignatureVerificationError, ValueError):
        logger.error("Webhook: 签名校验失败")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request"})

    event_type = event["type"]
    data_object = event["data"]["object"]
    try:
        if event_type == "checkout.session.completed":
            result = await order_service.create_order_from_stripe(db, data_object)
            if not result.success:
                logger.error(f"Webhook: 会话 {mask_sensitive(data_object.get('id'), 12)} 创建订单失败: "
                             f"{result.error}")
        elif event_type == "checkout.session.expired":
            await order_service.handle_session_expired(data_object)
        elif event_type == "payment_intent.payment_failed":
            await order_service.handle_payment_failed(db, data_object)
        elif settings.DEBUG:
            logger.info(f"[Webhook] 未处理的事件类型: {event_type}")
    except Exception as e:
        log_error(logger, "Webhook处理", e)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Processing error"})

    return {"received": True}
