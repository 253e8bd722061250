"""
基于 Redis 的旁路缓存（cache-aside）
Redis 未配置或出错时直接回源，缓存失败不影响业务
"""
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fastapi.encoders import jsonable_encoder
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheKeys:
    """缓存键"""

    @staticmethod
    def user_role(user_id: int) -> str:
        return f"user:role:{user_id}"

    @staticmethod
    def user_profile(user_id: int) -> str:
        return f"user:profile:{user_id}"

    PRODUCTS_LIST = "products:list"
    FEATURED_PRODUCTS = "products:featured"
    CATEGORIES = "categories:all"
    STORE_SETTINGS = "store:settings"


class CacheTTL:
    """默认过期时间（秒）"""
    USER_ROLE = 300
    USER_PROFILE = 300
    PRODUCTS_LIST = 60
    CATEGORIES = 600
    STORE_SETTINGS = 60


async def get_or_set(
        redis: Optional[Redis],
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: int,
) -> T | Any:
    """
    读取缓存，未命中时调用 fetcher 回源并写入缓存
    注意：命中缓存时返回的是 JSON 反序列化后的数据
    """
    if redis is None:
        return await fetcher()

    try:
        cached = await redis.get(key)
    except RedisError as e:
        logger.error(f"Redis读取缓存失败 {key}: {e}")
        return await fetcher()

    if cached is not None:
        return json.loads(cached)

    data = await fetcher()
    try:
        await redis.set(key, json.dumps(jsonable_encoder(data)), ex=ttl)
    except RedisError as e:
        logger.error(f"Redis写入缓存失败 {key}: {e}")
    return data


async def invalidate_cache(redis: Optional[Redis], key: str) -> None:
    """删除单个缓存键"""
    if redis is None:
        return
    try:
        await redis.delete(key)
    except RedisError as e:
        logger.error(f"Redis删除缓存失败 {key}: {e}")


async def invalidate_cache_pattern(redis: Optional[Redis], pattern: str) -> None:
    """按模式批量删除缓存键"""
    if redis is None:
        return
    try:
        keys = [key async for key in redis.scan_iter(match=pattern)]
        if keys:
            await redis.delete(*keys)
    except RedisError as e:
        logger.error(f"Redis批量删除缓存失败 {pattern}: {e}")
