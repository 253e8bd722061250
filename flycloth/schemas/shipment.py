from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from flycloth.models.shipment import ShipmentPaymentStatusEnum


class Shipment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    easyparcel_order_no: str
    parcel_no: Optional[str] = None
    courier_name: str
    service_id: str
    shipping_cost: float
    weight: float
    collect_date: date
    payment_status: ShipmentPaymentStatusEnum
    awb: Optional[str] = None
    awb_label_url: Optional[str] = None
    tracking_url: Optional[str] = None
    ship_status: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class ShipmentCreate(BaseModel):
    weight: float = Field(1.0, gt=0, le=70, description="包裹重量(kg)")
    collect_date: Optional[date] = Field(None, description="揽件日期，默认明天")


class ShippingRate(BaseModel):
    service_id: str
    service_name: str
    courier_name: str
    price: float
    delivery: Optional[str] = None


class ShippingRateList(BaseModel):
    rates: List[ShippingRate] = []


class ShipmentStatus(BaseModel):
    order_no: str
    parcel_no: Optional[str] = None
    ship_status: Optional[str] = None
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
