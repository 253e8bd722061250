"""
简单的进程内令牌桶限流器
多实例部署时每个进程各自计数
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

# 超过该时长未访问的桶会被清理（秒）
IDLE_BUCKET_SECONDS = 10 * 60
# 清理检查间隔（秒）
CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass
class RateLimitResult:
    success: bool
    remaining: int
    reset: float  # 下次补充令牌的时间戳（秒）


@dataclass
class _TokenBucket:
    tokens: int
    last_refill: float


class RateLimiter:
    """令牌桶限流器：每个 interval 补满 max_requests 个令牌"""

    def __init__(self, interval: float, max_requests: int, clock: Optional[Callable[[], float]] = None):
        """
        :param interval: 时间窗口（秒）
        :param max_requests: 每个窗口允许的请求数
        :param clock: 时间函数，便于测试注入
        """
        self.interval = interval
        self.max_requests = max_requests
        self._clock = clock or time.monotonic
        self._buckets: Dict[str, _TokenBucket] = {}
        self._last_cleanup = self._clock()

    def check(self, identifier: str) -> RateLimitResult:
        """检查标识（如IP地址）的请求是否放行"""
        now = self._clock()
        self._cleanup(now)

        bucket = self._buckets.get(identifier)
        if bucket is None:
            # 新桶立即消耗一个令牌
            bucket = _TokenBucket(tokens=self.max_requests - 1, last_refill=now)
            self._buckets[identifier] = bucket
            return RateLimitResult(success=True, remaining=bucket.tokens, reset=now + self.interval)

        elapsed = now - bucket.last_refill
        tokens_to_add = int(elapsed // self.interval) * self.max_requests
        if tokens_to_add > 0:
            bucket.tokens = min(self.max_requests, bucket.tokens + tokens_to_add)
            bucket.last_refill = now

        if bucket.tokens > 0:
            bucket.tokens -= 1
            return RateLimitResult(success=True, remaining=bucket.tokens, reset=bucket.last_refill + self.interval)

        return RateLimitResult(success=False, remaining=0, reset=bucket.last_refill + self.interval)

    def now(self) -> float:
        return self._clock()

    def reset(self, identifier: str) -> None:
        self._buckets.pop(identifier, None)

    def clear(self) -> None:
        self._buckets.clear()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now
        stale = [key for key, bucket in self._buckets.items() if now - bucket.last_refill > IDLE_BUCKET_SECONDS]
        for key in stale:
            del self._buckets[key]


# 预置限流器
checkout_rate_limiter = RateLimiter(interval=60, max_requests=5)
webhook_rate_limiter = RateLimiter(interval=60, max_requests=100)  # Stripe 会重试
admin_rate_limiter = RateLimiter(interval=60, max_requests=30)
