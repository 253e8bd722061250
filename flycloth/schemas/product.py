from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flycloth.core.config import INVENTORY
from flycloth.models.product import FitEnum, MediaTypeEnum


# Category Schemas

class CategoryCreate(BaseModel):
    name: str = Field(..., max_length=100)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('分类名称不能为空')
        return v


class CategoryUpdate(CategoryCreate):
    pass


class Category(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


# Media Schemas

class ProductImageCreate(BaseModel):
    storage_path: str = Field(..., max_length=500)
    media_type: MediaTypeEnum = MediaTypeEnum.IMAGE
    is_primary: bool = False
    sort_order: Optional[int] = None


class ProductImage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    storage_path: str
    media_type: MediaTypeEnum
    is_primary: bool
    sort_order: int


# Variant Schemas

class ProductVariantCreate(BaseModel):
    sku: Optional[str] = Field(None, max_length=64)
    size: str = Field(..., min_length=1, max_length=20)
    fit: FitEnum = FitEnum.REGULAR
    gsm: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=INVENTORY["min_price"], le=INVENTORY["max_price"], decimal_places=2)
    stock_quantity: int = Field(0, ge=0, le=INVENTORY["max_stock"])
    is_active: bool = True


class ProductVariantUpdate(BaseModel):
    sku: Optional[str] = Field(None, max_length=64)
    size: Optional[str] = Field(None, min_length=1, max_length=20)
    fit: Optional[FitEnum] = None
    gsm: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=INVENTORY["min_price"], le=INVENTORY["max_price"], decimal_places=2)
    is_active: Optional[bool] = None


class ProductVariant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    sku: Optional[str] = None
    size: str
    fit: FitEnum
    gsm: Optional[int] = None
    price: float
    stock_quantity: int
    is_active: bool
    variant_info: str


# Product Schemas

class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = ""
    base_price: Decimal = Field(..., ge=INVENTORY["min_price"], le=INVENTORY["max_price"], decimal_places=2)
    featured: bool = False
    is_active: bool = True
    category_id: Optional[int] = None


class ProductCreate(ProductBase):
    variants: List[ProductVariantCreate] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    sku: Optional[str] = Field(None, min_length=1, max_length=64)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=INVENTORY["min_price"], le=INVENTORY["max_price"],
                                          decimal_places=2)
    featured: Optional[bool] = None
    is_active: Optional[bool] = None
    category_id: Optional[int] = None


class Product(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sku: str
    description: Optional[str] = None
    base_price: float
    featured: bool
    is_active: bool
    sold_count: int
    category_id: Optional[int] = None
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    created_at: datetime


class ProductListItem(Product):
    """商品列表项，附带主图和库存概况"""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    in_stock: bool = False
    fits: List[FitEnum] = []


class ReviewSummary(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    rating_distribution: dict[int, int] = {}


class ProductDetail(Product):
    images: List[ProductImage] = []
    variants: List[ProductVariant] = []
    category: Optional[Category] = None
    review_summary: Optional[ReviewSummary] = None


class ProductFilters(BaseModel):
    """商品列表筛选条件"""
    search: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    fits: List[FitEnum] = []
    gsm: List[int] = []
    category_id: Optional[int] = None
    featured: Optional[bool] = None


class StripeSyncResult(BaseModel):
    stripe_product_id: str
    stripe_price_id: str


# Inventory Schemas

class StockUpdate(BaseModel):
    # 超出范围的值会被截断到 [0, max_stock]
    stock_quantity: int


class InventoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: int
    product_id: int
    product_name: str
    product_sku: str
    variant_info: str
    stock_quantity: int
    price: float
    is_low_stock: bool
