from typing import Annotated, Optional

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.core.redis_client import get_redis_pool
from flycloth.core.security import (
    add_token_to_blacklist,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    is_token_blacklisted,
    verify_password,
)
from flycloth.db.session import get_db
from flycloth.models.user import User, UserRoleEnum
from flycloth.schemas.auth import RefreshTokenRequest, Token
from flycloth.schemas.user import User as UserSchema
from flycloth.schemas.user import UserCreate

router = APIRouter()


@router.post("/register", response_model=UserSchema, status_code=status.HTTP_201_CREATED, summary="用户注册")
async def register(
        user_in: UserCreate, db: AsyncSession = Depends(get_db)
) -> User:
    """
    创建新用户，角色固定为普通顾客
    """
    email = user_in.email.lower()
    result = await db.execute(select(User).where(func.lower(User.email) == email))
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="该邮箱已被注册",
        )

    user = User(
        email=email,
        full_name=user_in.full_name,
        password=get_password_hash(user_in.password),
        role=UserRoleEnum.USER,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/login", response_model=Token, summary="用户登录")
async def login_for_access_token(
        form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
        db: AsyncSession = Depends(get_db)
):
    """
    用户登录获取令牌，username 字段填写邮箱
    """
    result = await db.execute(select(User).where(func.lower(User.email) == form_data.username.lower()))
    user = result.scalars().first()

    if not user or not verify_password(form_data.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="邮箱或密码错误",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户已被禁用")

    return {
        "access_token": create_access_token(subject=user.id),
        "refresh_token": create_refresh_token(subject=user.id),
        "token_type": "bearer",
    }


@router.post("/refresh", response_model=Token, summary="刷新访问token")
async def refresh_access_token(
        refresh_token_data: RefreshTokenRequest,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool)
):
    """
    使用刷新令牌获取新的访问令牌
    """
    if await is_token_blacklisted(refresh_token_data.refresh_token, redis_pool):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="刷新令牌已失效，请重新登录",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(refresh_token_data.refresh_token)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="刷新令牌已过期或无效",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "refresh" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的刷新令牌",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, int(payload["sub"]))
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户不存在或已被禁用",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 返回新的访问令牌和原刷新令牌
    return {
        "access_token": create_access_token(subject=user.id),
        "refresh_token": refresh_token_data.refresh_token,
        "token_type": "bearer",
    }


@router.post("/logout", status_code=status.HTTP_200_OK, summary="用户退出登录")
async def logout(
        authorization: Optional[str] = Header(None),
        refresh_token: Optional[RefreshTokenRequest] = None,
        redis_pool=Depends(get_redis_pool)
):
    """
    退出登录

    将当前的访问令牌和刷新令牌（如果提供）加入黑名单
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未提供授权信息",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的授权信息格式",
            headers={"WWW-Authenticate": "Bearer"},
        )

    await add_token_to_blacklist(parts[1], redis_pool)
    if refresh_token:
        await add_token_to_blacklist(refresh_token.refresh_token, redis_pool)

    return {"detail": "退出登录成功"}
