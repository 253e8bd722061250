from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, rate_limit, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.schemas.store_settings import PickupAddressUpdate, StoreFeesUpdate, StoreSettings
from flycloth.services.store_settings_service import store_settings_service
from flycloth.utils.rate_limit import admin_rate_limiter

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/", response_model=StoreSettings, summary="获取店铺设置")
async def get_store_settings(db: AsyncSession = Depends(get_db)):
    """后台总是读取数据库中的最新值"""
    return await store_settings_service.get_store_settings_uncached(db)


@router.put("/fees", response_model=StoreSettings, summary="更新运费和税率",
            dependencies=[Depends(rate_limit(admin_rate_limiter))])
async def update_fees(
        fees_in: StoreFeesUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    return await store_settings_service.update_fees(db, fees_in, redis_pool)


@router.put("/pickup-address", response_model=StoreSettings, summary="更新揽件地址",
            dependencies=[Depends(rate_limit(admin_rate_limiter))])
async def update_pickup_address(
        address_in: PickupAddressUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """EasyParcel 下单时使用的揽件地址"""
    return await store_settings_service.update_pickup_address(db, address_in, redis_pool)
