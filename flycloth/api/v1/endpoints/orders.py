from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_user
from flycloth.db.session import get_db
from flycloth.models.user import User
from flycloth.schemas.order import Order
from flycloth.services.order_service import order_service

router = APIRouter()


@router.get("/", response_model=List[Order], summary="获取我的订单列表")
async def list_my_orders(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    """当前用户的订单，最新的在前"""
    return await order_service.list_user_orders(db, current_user)


@router.get("/by-session/{session_id}", response_model=Order, summary="按结账会话查询订单")
async def get_order_by_session(
        session_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    order = await order_service.get_order_by_session(db, session_id, user=current_user)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订单不存在或尚未生成")
    return order


@router.get("/{order_id}", response_model=Order, summary="获取订单详情")
async def get_my_order(
        order_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
):
    order = await order_service.get_user_order(db, current_user, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订单不存在")
    return order
