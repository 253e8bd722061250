from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.cart import Cart, CartItemCreate, CartItemUpdate, CartValidationResponse
from flycloth.services.cart_service import cart_service

router = APIRouter()


@router.get("/", response_model=Cart, summary="获取购物车")
async def read_user_cart(
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        current_user: User = Depends(get_current_user),
):
    """获取当前用户的购物车，包含小计、运费、税费和合计"""
    return await cart_service.get_user_cart(db, current_user, redis_pool)


@router.post("/items", response_model=Cart, summary="添加商品到购物车")
async def add_item_to_cart(
        *,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        item_in: CartItemCreate,
        current_user: User = Depends(get_current_user),
):
    try:
        await cart_service.add_item_to_cart(db, user=current_user, item_in=item_in)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await cart_service.get_user_cart(db, current_user, redis_pool)


@router.put("/items/{item_id}", response_model=Cart, summary="修改购物车商品数量")
async def update_cart_item(
        *,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        item_id: int,
        item_in: CartItemUpdate,
        current_user: User = Depends(get_current_user),
):
    try:
        cart_item = await cart_service.update_cart_item_quantity(db, user=current_user, cart_item_id=item_id,
                                                                 item_in=item_in)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not cart_item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="未找到购物车项目")
    return await cart_service.get_user_cart(db, current_user, redis_pool)


@router.delete("/items/{item_id}", response_model=Cart, summary="移除购物车商品")
async def remove_cart_item(
        *,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        item_id: int,
        current_user: User = Depends(get_current_user),
):
    if not await cart_service.remove_cart_item(db, user=current_user, cart_item_id=item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="未找到购物车项目")
    return await cart_service.get_user_cart(db, current_user, redis_pool)


@router.delete("/", response_model=Cart, summary="清空购物车")
async def clear_user_cart(
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        current_user: User = Depends(get_current_user),
):
    await cart_service.clear_cart(db, current_user.id)
    return await cart_service.get_user_cart(db, current_user, redis_pool)


@router.post("/validate", response_model=CartValidationResponse, summary="校验购物车库存")
async def validate_cart(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """结账前检查每一行是否缺货或库存不足"""
    return await cart_service.validate_cart(db, current_user)
