"""
api依赖项
"""

from typing import Annotated, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.core.config import settings
from flycloth.core.redis_client import get_redis_pool
from flycloth.core.security import is_token_blacklisted
from flycloth.db.session import get_db
from flycloth.models.user import User, UserRoleEnum
from flycloth.schemas.auth import TokenData
from flycloth.utils.cache import CacheKeys, CacheTTL, get_or_set
from flycloth.utils.log_utils import validate_origin
from flycloth.utils.rate_limit import RateLimiter

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


async def get_current_user(
        token: Annotated[str, Depends(oauth2_scheme)],
        db: AsyncSession = Depends(get_db),
        redis_pool: Redis = Depends(get_redis_pool)
) -> User:
    """
    获取当前用户
    """
    # 检查令牌是否在黑名单中
    if await is_token_blacklisted(token, redis_pool):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="令牌已失效",
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="无法验证凭据",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData(sub=payload.get("sub"), type=payload.get("type"))
    except PyJWTError:
        raise credentials_exception

    if token_data.sub is None:
        raise credentials_exception
    if token_data.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的令牌类型",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, int(token_data.sub))
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户已被禁用")
    return user


async def get_user_role(db: AsyncSession, user_id: int, redis: Optional[Redis] = None) -> Optional[str]:
    """读取用户角色，走 Redis 旁路缓存"""

    async def fetch_role() -> Optional[str]:
        result = await db.execute(select(User.role).where(User.id == user_id))
        role = result.scalar_one_or_none()
        return role.value if role else None

    return await get_or_set(redis, CacheKeys.user_role(user_id), fetch_role, CacheTTL.USER_ROLE)


async def get_current_admin(
        current_user: Annotated[User, Depends(get_current_user)],
        db: AsyncSession = Depends(get_db),
        redis_pool: Redis = Depends(get_redis_pool)
) -> User:
    """
    获取当前管理员用户
    """
    role = await get_user_role(db, current_user.id, redis_pool)
    if role != UserRoleEnum.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要管理员权限")
    return current_user


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def rate_limit(limiter: RateLimiter):
    """
    按客户端IP限流，超出时返回429
    """

    async def rate_limit_dependency(request: Request) -> None:
        result = limiter.check(get_client_ip(request))
        if not result.success:
            retry_after = max(int(result.reset - limiter.now()), 1)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="请求过于频繁，请稍后再试",
                headers={"Retry-After": str(retry_after)},
            )

    return rate_limit_dependency


async def verify_admin_origin(request: Request) -> None:
    """
    后台写操作如果带有 Origin 头，必须与站点地址一致
    """
    origin = request.headers.get("origin")
    if request.method in MUTATING_METHODS and origin is not None and not validate_origin(origin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="非法的请求来源")
