import logging
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.core.config import DEFAULT_STORE_SETTINGS
from flycloth.models.store_settings import STORE_SETTINGS_ID, StoreSettings
from flycloth.schemas import store_settings as schemas
from flycloth.utils.cache import CacheKeys, CacheTTL, get_or_set, invalidate_cache

logger = logging.getLogger(__name__)


class StoreSettingsService:

    @staticmethod
    async def _get_row(db: AsyncSession) -> Optional[StoreSettings]:
        result = await db.execute(select(StoreSettings).where(StoreSettings.id == STORE_SETTINGS_ID))
        return result.scalar_one_or_none()

    async def get_store_settings_uncached(self, db: AsyncSession) -> schemas.StoreSettings:
        """直接读库，记录不存在时返回默认值"""
        row = await self._get_row(db)
        if row is None:
            return schemas.StoreSettings(
                shipping_fee=float(DEFAULT_STORE_SETTINGS["shipping_fee"]),
                free_shipping_threshold=float(DEFAULT_STORE_SETTINGS["free_shipping_threshold"]),
                tax_rate=float(DEFAULT_STORE_SETTINGS["tax_rate"]),
            )
        return schemas.StoreSettings.model_validate(row)

    async def get_store_settings(self, db: AsyncSession, redis: Optional[Redis] = None) -> schemas.StoreSettings:
        """带缓存的店铺设置"""

        async def fetcher():
            return (await self.get_store_settings_uncached(db)).model_dump()

        data = await get_or_set(redis, CacheKeys.STORE_SETTINGS, fetcher, CacheTTL.STORE_SETTINGS)
        return schemas.StoreSettings(**data)

    async def _get_or_create_row(self, db: AsyncSession) -> StoreSettings:
        row = await self._get_row(db)
        if row is None:
            row = StoreSettings(
                id=STORE_SETTINGS_ID,
                shipping_fee=DEFAULT_STORE_SETTINGS["shipping_fee"],
                free_shipping_threshold=DEFAULT_STORE_SETTINGS["free_shipping_threshold"],
                tax_rate=DEFAULT_STORE_SETTINGS["tax_rate"],
            )
            db.add(row)
        return row

    async def update_fees(self, db: AsyncSession, fees_in: schemas.StoreFeesUpdate,
                          redis: Optional[Redis] = None) -> schemas.StoreSettings:
        row = await self._get_or_create_row(db)
        row.shipping_fee = fees_in.shipping_fee
        row.free_shipping_threshold = fees_in.free_shipping_threshold
        row.tax_rate = fees_in.tax_rate
        await db.commit()
        await invalidate_cache(redis, CacheKeys.STORE_SETTINGS)
        logger.info("店铺费用设置已更新")
        return schemas.StoreSettings.model_validate(row)

    async def update_pickup_address(self, db: AsyncSession, address_in: schemas.PickupAddressUpdate,
                                    redis: Optional[Redis] = None) -> schemas.StoreSettings:
        row = await self._get_or_create_row(db)
        for field, value in address_in.model_dump().items():
            setattr(row, field, value)
        await db.commit()
        await invalidate_cache(redis, CacheKeys.STORE_SETTINGS)
        logger.info("揽件地址已更新")
        return schemas.StoreSettings.model_validate(row)


store_settings_service = StoreSettingsService()
