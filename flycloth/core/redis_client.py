from redis.asyncio import Redis

from flycloth.core.config import settings


async def get_redis_pool() -> Redis:
    """
    创建并返回一个新的 Redis 客户端实例
    每个请求/任务拥有自己的客户端，避免跨事件循环共享连接
    """
    return Redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True
    )
