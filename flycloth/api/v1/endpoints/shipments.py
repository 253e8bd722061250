from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, rate_limit, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.schemas.shipment import Shipment, ShipmentCreate, ShipmentStatus, ShippingRateList
from flycloth.services.shipment_service import ShipmentException, shipment_service
from flycloth.utils.rate_limit import admin_rate_limiter

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/{order_id}", response_model=Shipment, summary="获取订单运单")
async def get_shipment(order_id: int, db: AsyncSession = Depends(get_db)):
    shipment = await shipment_service.get_shipment_by_order(db, order_id)
    if not shipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="运单不存在")
    return shipment


@router.post("/{order_id}", response_model=Shipment, status_code=status.HTTP_201_CREATED, summary="创建运单",
             dependencies=[Depends(rate_limit(admin_rate_limiter))])
async def create_shipment(
        order_id: int,
        shipment_in: ShipmentCreate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
):
    """
    在 EasyParcel 下单，订单进入待发货状态
    """
    try:
        return await shipment_service.create_shipment_for_order(
            db, order_id, weight=shipment_in.weight, collect_date=shipment_in.collect_date, redis=redis_pool
        )
    except ShipmentException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{order_id}/pay", response_model=Shipment, summary="支付运单",
             dependencies=[Depends(rate_limit(admin_rate_limiter))])
async def pay_shipment(order_id: int, db: AsyncSession = Depends(get_db)):
    """
    从 EasyParcel 余额支付运费，成功后订单标记为已发货
    """
    try:
        return await shipment_service.pay_shipment_for_order(db, order_id)
    except ShipmentException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{order_id}/rates", response_model=ShippingRateList, summary="查询运费")
async def check_rates(
        order_id: int,
        weight: float = Query(1.0, gt=0, le=70),
        db: AsyncSession = Depends(get_db),
):
    try:
        result = await shipment_service.check_rates_for_order(db, order_id, weight=weight)
    except ShipmentException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"rates": [asdict(rate) for rate in result.rates]}


@router.get("/{order_id}/status", response_model=ShipmentStatus, summary="查询包裹状态")
async def get_shipment_status(order_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await shipment_service.get_shipment_status(db, order_id)
    except ShipmentException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
