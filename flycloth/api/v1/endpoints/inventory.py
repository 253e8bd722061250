from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, rate_limit, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.schemas.product import InventoryItem, StockUpdate
from flycloth.services.inventory_service import inventory_service
from flycloth.services.product_service import product_service
from flycloth.utils.rate_limit import admin_rate_limiter

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/", response_model=List[InventoryItem], summary="获取库存列表")
async def list_inventory(
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=500),
        db: AsyncSession = Depends(get_db),
):
    return await inventory_service.list_inventory(db, skip=skip, limit=limit)


@router.get("/low-stock", response_model=List[InventoryItem], summary="获取低库存规格")
async def list_low_stock(db: AsyncSession = Depends(get_db)):
    """
    库存低于预警阈值的规格，库存最少的排在前面
    """
    return await inventory_service.get_low_stock_items(db)


@router.put("/{variant_id}", response_model=InventoryItem, summary="设置规格库存",
            dependencies=[Depends(rate_limit(admin_rate_limiter))])
async def update_stock(
        variant_id: int,
        stock_in: StockUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    直接设置库存数量，超出范围时截断到 [0, 100000]
    """
    try:
        variant = await inventory_service.update_stock(db, variant_id, stock_in.stock_quantity)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    await product_service.invalidate_product_caches(redis_pool)
    return inventory_service.to_inventory_row(variant)
