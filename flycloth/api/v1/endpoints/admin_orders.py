from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, verify_admin_origin
from flycloth.db.session import get_db
from flycloth.models.order import OrderStatusEnum
from flycloth.schemas.order import AdminOrder, OrderList, OrderStatusUpdate
from flycloth.services.order_service import order_service

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/", response_model=OrderList, summary="后台订单列表")
async def list_orders(
        order_status: Optional[OrderStatusEnum] = Query(None, alias="status"),
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(db, status=order_status, skip=skip, limit=limit)
    return {"items": orders, "total": total, "skip": skip, "limit": limit}


@router.get("/{order_id}", response_model=AdminOrder, summary="后台订单详情")
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订单不存在")
    return order


@router.put("/{order_id}/status", response_model=AdminOrder, summary="修改订单状态")
async def update_order_status(
        order_id: int,
        status_in: OrderStatusUpdate,
        db: AsyncSession = Depends(get_db),
):
    """
    可设置为 pending / processing / shipped / delivered / cancelled，修改后通知用户
    """
    order = await order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订单不存在")

    try:
        await order_service.update_order_status(db, order, status_in.status)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await order_service.get_order(db, order_id)
