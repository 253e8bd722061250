import asyncio
import uuid

from redis.asyncio import Redis

# 只有持有者才能释放锁
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """Redis分布式锁，用于防止同一订单被重复提交到外部接口"""

    def __init__(self, redis_client: Redis, lock_name: str, expire_seconds: int = 30):
        """
        :param redis_client: Redis客户端
        :param lock_name: 锁名称
        :param expire_seconds: 锁过期时间（秒）
        """
        self.redis = redis_client
        self.lock_name = f"lock:{lock_name}"
        self.expire_seconds = expire_seconds
        self.lock_value = str(uuid.uuid4())
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    async def acquire(self, retry_times: int = 0, retry_delay: float = 0.2) -> bool:
        """
        获取锁
        :param retry_times: 重试次数
        :param retry_delay: 重试延迟（秒）
        """
        for i in range(retry_times + 1):
            if await self.redis.set(self.lock_name, self.lock_value, nx=True, ex=self.expire_seconds):
                self._locked = True
                return True
            if i < retry_times:
                await asyncio.sleep(retry_delay)
        return False

    async def release(self) -> bool:
        if not self._locked:
            return False
        result = await self.redis.eval(_RELEASE_SCRIPT, 1, self.lock_name, self.lock_value)
        self._locked = False
        return bool(result)

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
