import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Any, Dict

import jwt
from passlib.context import CryptContext

from flycloth.core.config import settings

logger = logging.getLogger(__name__)

# 密码哈希上下文
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 令牌黑名单前缀
TOKEN_BLACKLIST_PREFIX = "token:blacklist:"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """获取密码哈希"""
    return pwd_context.hash(password)


def _create_token(subject: str | Any, token_type: str, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject), "type": token_type}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
        subject: str | Any, expires_delta: Optional[timedelta] = None
) -> str:
    """创建访问令牌"""
    return _create_token(
        subject, "access", expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(
        subject: str | Any, expires_delta: Optional[timedelta] = None
) -> str:
    """创建刷新令牌"""
    return _create_token(
        subject, "refresh", expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )


def decode_token(token: str) -> Dict[str, Any]:
    """解码令牌"""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


async def add_token_to_blacklist(token: str, redis_pool) -> None:
    """
    将令牌添加到黑名单，过期时间与令牌剩余有效期一致
    """
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        # 令牌无效或已过期，无需加入黑名单
        logger.info("令牌已失效，跳过加入黑名单")
        return

    exp_timestamp = payload.get("exp")
    if not exp_timestamp:
        return

    ttl = max(int(exp_timestamp - datetime.now(timezone.utc).timestamp()), 1)
    await redis_pool.set(f"{TOKEN_BLACKLIST_PREFIX}{token}", "1", ex=ttl)


async def is_token_blacklisted(token: str, redis_pool) -> bool:
    """
    检查令牌是否在黑名单中
    """
    return await redis_pool.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}") > 0
