from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.core.redis_client import get_redis_pool
from flycloth.core.security import get_password_hash, verify_password
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.user import PasswordChange, User as UserSchema, UserUpdate
from flycloth.utils.cache import CacheKeys, invalidate_cache

router = APIRouter()


@router.get("/me", response_model=UserSchema, summary="获取当前用户信息")
async def read_user_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.put("/me", response_model=UserSchema, summary="更新当前用户资料")
async def update_user_me(
        user_in: UserUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        current_user: User = Depends(get_current_user),
) -> User:
    """
    更新姓名、电话、地址，未提交的字段保持不变
    """
    for field, value in user_in.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    await invalidate_cache(redis_pool, CacheKeys.user_profile(current_user.id))
    return current_user


@router.post("/me/password", summary="修改密码")
async def change_password(
        password_in: PasswordChange,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    if not verify_password(password_in.current_password, current_user.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="当前密码错误")
    if password_in.current_password == password_in.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="新密码不能与当前密码相同")

    current_user.password = get_password_hash(password_in.new_password)
    await db.commit()
    return {"detail": "密码修改成功"}
