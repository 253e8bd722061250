import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.api.deps import get_current_admin, verify_admin_origin
from flycloth.core.redis_client import get_redis_pool
from flycloth.db.session import get_db
from flycloth.models.order import Order
from flycloth.models.user import User
from flycloth.schemas.user import CustomerSummary, RoleUpdate, User as UserSchema
from flycloth.utils.cache import CacheKeys, invalidate_cache

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_admin), Depends(verify_admin_origin)])


@router.get("/", response_model=List[CustomerSummary], summary="获取顾客列表")
async def list_customers(
        search: Optional[str] = None,
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        db: AsyncSession = Depends(get_db),
):
    """
    顾客列表，附带每位顾客的订单数
    """
    order_count = (
        select(Order.user_id, func.count(Order.id).label("order_count"))
        .group_by(Order.user_id)
        .subquery()
    )
    query = (
        select(User, func.coalesce(order_count.c.order_count, 0))
        .outerjoin(order_count, order_count.c.user_id == User.id)
    )
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))

    result = await db.execute(query.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit))
    customers = []
    for user, count in result.all():
        customer = CustomerSummary.model_validate(user)
        customer.order_count = count
        customers.append(customer)
    return customers


@router.put("/{user_id}/role", response_model=UserSchema, summary="修改用户角色")
async def update_user_role(
        user_id: int,
        role_in: RoleUpdate,
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis_pool),
        current_admin: User = Depends(get_current_admin),
) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="用户不存在")
    if user.id == current_admin.id and role_in.role != user.role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="不能修改自己的角色")

    user.role = role_in.role
    await db.commit()
    await db.refresh(user)
    await invalidate_cache(redis_pool, CacheKeys.user_role(user.id))
    logger.info(f"管理员 {current_admin.id} 将用户 {user.id} 的角色改为 {role_in.role.value}")
    return user
