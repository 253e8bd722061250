import enum
from typing import List, Optional

from pydantic import BaseModel, Field

from flycloth.core.config import CART
from flycloth.models.product import FitEnum


# Cart Item Schemas
class CartItemCreate(BaseModel):
    variant_id: int = Field(..., description="规格ID")
    quantity: int = Field(..., gt=0, le=CART["max_quantity_per_item"], description="数量")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0, le=CART["max_quantity_per_item"], description="数量")


class CartLine(BaseModel):
    id: int
    variant_id: int
    product_id: int
    product_name: str
    product_sku: str
    size: str
    fit: FitEnum
    variant_info: str
    unit_price: float
    quantity: int
    line_total: float
    stock_quantity: int
    image_path: Optional[str] = None


class Cart(BaseModel):
    items: List[CartLine] = []
    item_count: int = 0
    subtotal: float = 0.0
    shipping_fee: float = 0.0
    tax: float = 0.0
    total: float = 0.0


# Cart Validation Schemas
class CartValidationReason(str, enum.Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"


class CartValidationIssue(BaseModel):
    variant_id: int
    product_name: str
    reason: CartValidationReason
    requested_quantity: int
    available_stock: int


class CartValidationResponse(BaseModel):
    valid: bool
    issues: List[CartValidationIssue] = []
