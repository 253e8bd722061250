from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from flycloth.models.order import OrderStatusEnum, PaymentStatusEnum
from flycloth.models.shipment import ShipmentPaymentStatusEnum


# OrderItem Schemas

class OrderItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: Optional[int] = None
    product_id: Optional[int] = None
    product_name: str
    variant_info: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float


# Order Schemas

class ShippingAddress(BaseModel):
    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_sn: str
    user_id: int
    status: OrderStatusEnum
    payment_status: PaymentStatusEnum
    total_amount: float
    discount_amount: float
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None
    stripe_session_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[OrderItem] = []


class OrderCustomer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


class OrderShipment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    easyparcel_order_no: str
    courier_name: str
    payment_status: ShipmentPaymentStatusEnum
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    ship_status: Optional[str] = None


class AdminOrder(Order):
    """后台订单详情，附带顾客与运单信息"""
    stripe_payment_intent_id: Optional[str] = None
    user: Optional[OrderCustomer] = None
    shipment: Optional[OrderShipment] = None


class OrderList(BaseModel):
    items: List[AdminOrder]
    total: int
    skip: int
    limit: int


class OrderStatusUpdate(BaseModel):
    status: OrderStatusEnum = Field(..., description="新的订单状态")


class OrderCreationResult(BaseModel):
    """Stripe回调下单结果"""
    success: bool
    order_id: Optional[int] = None
    error: Optional[str] = None
    refunded: bool = False
