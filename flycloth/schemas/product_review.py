from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# 评价基础模型
class ProductReviewBase(BaseModel):
    rating: int = Field(..., description="评分(1-5)", ge=1, le=5)
    title: Optional[str] = Field(None, description="评价标题", max_length=200)
    comment: Optional[str] = Field(None, description="评价内容")

    @field_validator('comment')
    def validate_comment_length(cls, v):
        if v and len(v) > 2000:
            raise ValueError('评价内容不能超过2000个字符')
        return v


# 创建评价请求模型
class ProductReviewCreate(ProductReviewBase):
    product_id: int = Field(..., description="商品ID")
    order_id: int = Field(..., description="订单ID")


# 更新评价请求模型
class ProductReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, description="评分(1-5)", ge=1, le=5)
    title: Optional[str] = Field(None, description="评价标题", max_length=200)
    comment: Optional[str] = Field(None, description="评价内容")

    @field_validator('comment')
    def validate_comment_length(cls, v):
        if v and len(v) > 2000:
            raise ValueError('评价内容不能超过2000个字符')
        return v


# 评价响应模型
class ProductReview(ProductReviewBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    product_id: int
    order_id: int
    reviewer_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# 商品评价统计模型
class ProductReviewStats(BaseModel):
    product_id: int
    average_rating: float = Field(..., description="平均评分，保留一位小数")
    total_reviews: int = Field(..., description="总评价数")
    rating_distribution: dict[int, int] = Field(..., description="评分分布，如 {5: 10, 4: 5, 3: 2, 2: 1, 1: 0}")


class PurchasedOrder(BaseModel):
    order_id: int
    order_sn: str
    created_at: datetime
    review: Optional[ProductReview] = None


class PurchaseEligibility(BaseModel):
    """当前用户对某商品的购买记录，用于判断能否评价"""
    product_id: int
    has_purchased: bool
    orders: List[PurchasedOrder] = []
