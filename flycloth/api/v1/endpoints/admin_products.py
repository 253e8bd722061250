import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, rate_limit, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.models.product import Product, ProductVariant
from flycloth.schemas.product import (
    ProductCreate,
    ProductDetail,
    ProductImage,
    ProductImageCreate,
    ProductUpdate,
    ProductVariant as ProductVariantSchema,
    ProductVariantCreate,
    ProductVariantUpdate,
    StripeSyncResult,
)
from flycloth.services.product_service import product_service
from flycloth.utils.log_utils import log_error
from flycloth.utils.rate_limit import admin_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[
    Depends(get_current_admin),
    Depends(verify_admin_origin),
    Depends(rate_limit(admin_rate_limiter)),
])


async def _get_product_or_404(db: AsyncSession, product_id: int) -> Product:
    product = await product_service.get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="商品不存在")
    return product


async def _get_variant_or_404(db: AsyncSession, product_id: int, variant_id: int) -> ProductVariant:
    variant = await product_service.get_variant(db, variant_id)
    if not variant or variant.product_id != product_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="商品规格不存在")
    return variant


async def _detail(db: AsyncSession, product_id: int) -> dict:
    return await product_service.get_product_detail(db, product_id, include_inactive=True)


@router.get("/{product_id}", response_model=ProductDetail, summary="后台获取商品详情")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """包含下架商品和下架规格"""
    await _get_product_or_404(db, product_id)
    return await _detail(db, product_id)


@router.post("/", response_model=ProductDetail, status_code=status.HTTP_201_CREATED, summary="创建商品")
async def create_product(
        product_in: ProductCreate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    try:
        product = await product_service.create_product(db, product_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _detail(db, product.id)


@router.put("/{product_id}", response_model=ProductDetail, summary="更新商品")
async def update_product(
        product_id: int,
        product_in: ProductUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    更新商品信息，修改基础价格时同步所有规格价格
    """
    product = await _get_product_or_404(db, product_id)
    try:
        await product_service.update_product(db, product, product_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _detail(db, product_id)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除商品")
async def delete_product(
        product_id: int,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    product = await _get_product_or_404(db, product_id)
    await product_service.delete_product(db, product, redis_pool)


# 规格

@router.post("/{product_id}/variants", response_model=ProductVariantSchema, status_code=status.HTTP_201_CREATED,
             summary="添加商品规格")
async def add_variant(
        product_id: int,
        variant_in: ProductVariantCreate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    product = await _get_product_or_404(db, product_id)
    try:
        return await product_service.add_variant(db, product, variant_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{product_id}/variants/{variant_id}", response_model=ProductVariantSchema, summary="更新商品规格")
async def update_variant(
        product_id: int,
        variant_id: int,
        variant_in: ProductVariantUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    variant = await _get_variant_or_404(db, product_id, variant_id)
    try:
        return await product_service.update_variant(db, variant, variant_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{product_id}/variants/{variant_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="删除商品规格")
async def delete_variant(
        product_id: int,
        variant_id: int,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    variant = await _get_variant_or_404(db, product_id, variant_id)
    await product_service.delete_variant(db, variant, redis_pool)


# 媒体

@router.post("/{product_id}/media", response_model=ProductImage, status_code=status.HTTP_201_CREATED,
             summary="添加商品图片或视频")
async def add_media(
        product_id: int,
        media_in: ProductImageCreate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    登记已上传到存储的媒体文件，每个商品最多10个
    """
    product = await _get_product_or_404(db, product_id)
    try:
        return await product_service.add_media(db, product, media_in, redis_pool)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{product_id}/media/{image_id}/primary", response_model=ProductImage, summary="设为主图")
async def set_primary_media(
        product_id: int,
        image_id: int,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    product = await _get_product_or_404(db, product_id)
    try:
        return await product_service.set_primary_media(db, product, image_id, redis_pool)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/{product_id}/media/{image_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除商品媒体")
async def delete_media(
        product_id: int,
        image_id: int,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    product = await _get_product_or_404(db, product_id)
    try:
        await product_service.delete_media(db, product, image_id, redis_pool)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{product_id}/stripe-sync", response_model=StripeSyncResult, summary="同步商品到Stripe")
async def sync_product_to_stripe(product_id: int, db: AsyncSession = Depends(get_db)):
    """
    在 Stripe 创建商品和价格，并回写 Stripe ID
    """
    product = await _get_product_or_404(db, product_id)
    try:
        return await product_service.sync_to_stripe(db, product)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except stripe.StripeError as e:
        log_error(logger, "同步商品到Stripe", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Stripe 同步失败")
