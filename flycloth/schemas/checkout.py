from typing import List, Optional

from pydantic import BaseModel, Field


class CheckoutSessionCreate(BaseModel):
    promo_code: Optional[str] = Field(None, max_length=100, description="促销码")


class CheckoutSessionResponse(BaseModel):
    url: Optional[str] = None
    session_id: str


class PromoValidationRequest(BaseModel):
    code: Optional[str] = None


class PromoValidationResult(BaseModel):
    valid: bool
    code: Optional[str] = None
    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None
    name: Optional[str] = None
    error: Optional[str] = None


class PromoCode(BaseModel):
    id: str
    code: str
    percent_off: Optional[float] = None
    amount_off: Optional[float] = None
    currency: Optional[str] = None
    name: Optional[str] = None
    times_redeemed: int = 0
    max_redemptions: Optional[int] = None


class PromoCodeList(BaseModel):
    items: List[PromoCode] = []


class CheckoutSessionSummary(BaseModel):
    """支付成功页使用的会话摘要"""
    session_id: str
    payment_status: Optional[str] = None
    amount_total: Optional[float] = None
    customer_email: Optional[str] = None
    order_id: Optional[int] = None
    order_sn: Optional[str] = None
