from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StoreSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    shipping_fee: float
    free_shipping_threshold: float
    tax_rate: float
    pickup_name: Optional[str] = None
    pickup_company: Optional[str] = None
    pickup_contact: Optional[str] = None
    pickup_addr1: Optional[str] = None
    pickup_addr2: Optional[str] = None
    pickup_city: Optional[str] = None
    pickup_state: Optional[str] = None
    pickup_postcode: Optional[str] = None


class StoreFeesUpdate(BaseModel):
    shipping_fee: Decimal = Field(..., ge=0, decimal_places=2, description="运费")
    free_shipping_threshold: Decimal = Field(..., ge=0, decimal_places=2, description="包邮门槛")
    tax_rate: Decimal = Field(..., ge=0, le=1, description="税率(0-1)")


class PickupAddressUpdate(BaseModel):
    pickup_name: str = Field(..., min_length=1, max_length=100)
    pickup_company: Optional[str] = Field(None, max_length=100)
    pickup_contact: str = Field(..., min_length=1, max_length=20)
    pickup_addr1: str = Field(..., min_length=1, max_length=255)
    pickup_addr2: Optional[str] = Field(None, max_length=255)
    pickup_city: str = Field(..., min_length=1, max_length=100)
    pickup_state: str = Field(..., min_length=1, max_length=100)
    pickup_postcode: str = Field(..., min_length=5, max_length=10)
