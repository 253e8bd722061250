from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.models.product import FitEnum
from flycloth.models.user import User
from flycloth.schemas.product import ProductDetail, ProductFilters, ProductListItem
from flycloth.schemas.product_review import ProductReview, ProductReviewStats, PurchaseEligibility
from flycloth.services.product_service import product_service
from flycloth.services.review_service import review_service

router = APIRouter()


@router.get("/", response_model=List[ProductListItem], summary="获取商品列表")
async def list_products(
        search: Optional[str] = Query(None, max_length=100, description="按名称或描述搜索"),
        min_price: Optional[Decimal] = Query(None, ge=0),
        max_price: Optional[Decimal] = Query(None, ge=0),
        fits: List[FitEnum] = Query([], description="版型，可多选"),
        gsm: List[int] = Query([], description="克重，可多选"),
        category_id: Optional[int] = None,
        featured: Optional[bool] = None,
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    公开商品列表，只返回上架商品
    """
    filters = ProductFilters(
        search=search or None,
        min_price=min_price,
        max_price=max_price,
        fits=fits,
        gsm=gsm,
        category_id=category_id,
        featured=featured,
    )
    return await product_service.list_products(db, filters, skip=skip, limit=limit, redis=redis_pool)


@router.get("/featured", response_model=List[ProductListItem], summary="获取精选商品")
async def list_featured_products(
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    return await product_service.list_featured_products(db, redis_pool)


@router.get("/{product_id}", response_model=ProductDetail, summary="获取商品详情")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """
    商品详情，包含图片、上架规格和评价概况
    """
    detail = await product_service.get_product_detail(db, product_id)
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="商品不存在")

    detail["review_summary"] = await review_service.get_product_review_stats(db, product_id)
    return detail


@router.get("/{product_id}/reviews", response_model=List[ProductReview], summary="获取商品评价列表")
async def list_product_reviews(
        product_id: int,
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    return await review_service.list_product_reviews(db, product_id, skip=skip, limit=limit)


@router.get("/{product_id}/review-summary", response_model=ProductReviewStats, summary="获取商品评价统计")
async def get_product_review_summary(product_id: int, db: AsyncSession = Depends(get_db)):
    return await review_service.get_product_review_stats(db, product_id)


@router.get("/{product_id}/purchases", response_model=PurchaseEligibility, summary="获取当前用户对商品的购买记录")
async def get_purchase_eligibility(
        product_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """
    返回包含该商品的订单及每个订单下已有的评价，用于判断能否评价
    """
    return await review_service.get_purchase_eligibility(db, current_user, product_id)
